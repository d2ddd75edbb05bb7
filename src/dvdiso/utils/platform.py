"""Platform detection, executable naming and tool download sources."""

import os
import platform
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .logging import get_logger

logger = get_logger(__name__)


class OperatingSystem(Enum):
    """Supported operating systems."""

    LINUX = "linux"
    MACOS = "macos"
    WINDOWS = "windows"
    UNKNOWN = "unknown"


class Architecture(Enum):
    """Supported CPU architectures."""

    X64 = "x64"
    X86 = "x86"
    ARM64 = "arm64"
    UNKNOWN = "unknown"


def detect_os() -> OperatingSystem:
    """Detect the current operating system."""
    system = platform.system().lower()

    if system == "linux":
        return OperatingSystem.LINUX
    if system == "darwin":
        return OperatingSystem.MACOS
    if system == "windows":
        return OperatingSystem.WINDOWS

    logger.warning(f"Unknown operating system detected: {system}")
    return OperatingSystem.UNKNOWN


def detect_architecture() -> Architecture:
    """Detect the current CPU architecture."""
    machine = platform.machine().lower()

    if machine in ("x86_64", "amd64", "x64"):
        return Architecture.X64
    if machine in ("i386", "i686", "x86"):
        return Architecture.X86
    if machine in ("arm64", "aarch64"):
        return Architecture.ARM64

    logger.warning(f"Unknown architecture detected: {machine}")
    return Architecture.UNKNOWN


def get_platform_info() -> Tuple[OperatingSystem, Architecture]:
    """Get both OS and architecture information."""
    os_type = detect_os()
    arch = detect_architecture()
    logger.debug(f"Platform info: {os_type.value}/{arch.value}")
    return os_type, arch


def executable_name(tool: str, os_type: Optional[OperatingSystem] = None) -> str:
    """File name of a tool's executable on the given (or current) platform."""
    os_type = os_type or detect_os()
    if os_type == OperatingSystem.WINDOWS and not tool.lower().endswith(".exe"):
        return f"{tool}.exe"
    return tool


def get_tool_download_urls() -> Dict[str, Dict[OperatingSystem, str]]:
    """Archive URLs for tools that can be installed on demand.

    Only Windows builds are published as standalone archives; on other
    platforms the tools come from the system package manager.
    """
    return {
        "dvdauthor": {
            OperatingSystem.WINDOWS: (
                "https://download.videohelp.com/gfd/edcounter.php"
                "?file=download%2Fdvdauthor_winbin.zip"
            ),
        },
        "xorriso": {
            OperatingSystem.WINDOWS: (
                "https://github.com/PeyTy/xorriso-exe-for-windows/"
                "archive/refs/heads/master.zip"
            ),
        },
    }


def get_download_url(tool: str) -> Optional[str]:
    """Download URL for ``tool`` on the current platform, if one exists.

    Raises:
        ValueError: If the tool is never downloaded
    """
    urls = get_tool_download_urls()
    if tool not in urls:
        raise ValueError(f"Unsupported tool: {tool}")

    url = urls[tool].get(detect_os())
    logger.debug(f"Download URL for {tool}: {url}")
    return url


def get_imgburn_candidates() -> List[Path]:
    """Well-known ImgBurn install locations outside the tools directory."""
    if detect_os() != OperatingSystem.WINDOWS:
        return []

    candidates = []
    for variable, default in (
        ("ProgramFiles(x86)", r"C:\Program Files (x86)"),
        ("ProgramFiles", r"C:\Program Files"),
    ):
        base = os.environ.get(variable, default)
        candidates.append(Path(base) / "ImgBurn" / "ImgBurn.exe")
    return candidates


_INSTALL_INSTRUCTIONS = {
    "ffmpeg": {
        OperatingSystem.MACOS: "Install using: brew install ffmpeg",
        OperatingSystem.LINUX: (
            "Install using:\n"
            "  Ubuntu/Debian: sudo apt install ffmpeg\n"
            "  Fedora: sudo dnf install ffmpeg"
        ),
        OperatingSystem.WINDOWS: (
            "Download a static build from https://ffmpeg.org/download.html "
            "and copy ffmpeg.exe and ffprobe.exe into the tools directory"
        ),
    },
    "dvdauthor": {
        OperatingSystem.MACOS: "Install using: brew install dvdauthor",
        OperatingSystem.LINUX: (
            "Install using:\n"
            "  Ubuntu/Debian: sudo apt install dvdauthor\n"
            "  Fedora: sudo dnf install dvdauthor"
        ),
        OperatingSystem.WINDOWS: "Enable tool downloads or copy dvdauthor.exe "
        "into the tools directory",
    },
    "iso": {
        OperatingSystem.MACOS: "Install using: brew install xorriso",
        OperatingSystem.LINUX: (
            "Install using:\n"
            "  Ubuntu/Debian: sudo apt install xorriso (or genisoimage)\n"
            "  Fedora: sudo dnf install xorriso"
        ),
        OperatingSystem.WINDOWS: "Install ImgBurn, enable tool downloads, or copy "
        "xorriso.exe into the tools directory",
    },
}


def get_install_instructions(tool: str) -> str:
    """Installation hint for a tool on the current platform."""
    key = "ffmpeg" if tool == "ffprobe" else tool
    if key in ("xorriso", "mkisofs", "genisoimage", "imgburn"):
        key = "iso"

    os_type = detect_os()
    instructions = _INSTALL_INSTRUCTIONS.get(key, {}).get(os_type)
    if instructions is None:
        return f"Install {tool} manually and make sure it is on PATH"
    return instructions
