"""Tool management service for dvdiso.

This module locates the external tools a conversion job needs (ffmpeg,
ffprobe, dvdauthor and an ISO builder) and downloads the ones that are
published as standalone archives when they are missing.
"""

import json
import shutil
import stat
import tarfile
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import requests

from ..config.settings import Settings
from ..exceptions import ToolMissingError
from ..utils.cancellation import CancellationToken
from ..utils.file_lock import FileLock
from ..utils.logging import LogSink
from ..utils.platform import executable_name, get_download_url, get_install_instructions
from .base import BaseService
from .iso_builder import IsoBuilder

TOOL_VERSIONS_FILE = "tool_versions.json"
DOWNLOAD_CHUNK_SIZE = 8192


@dataclass(frozen=True)
class ToolSpec:
    """A tool the pipeline may need."""

    name: str
    downloadable: bool = False


TOOLS: Dict[str, ToolSpec] = {
    "ffmpeg": ToolSpec("ffmpeg"),
    "ffprobe": ToolSpec("ffprobe"),
    "dvdauthor": ToolSpec("dvdauthor", downloadable=True),
    "xorriso": ToolSpec("xorriso", downloadable=True),
}

REQUIRED_TOOLS = ("ffmpeg", "ffprobe", "dvdauthor")


class ToolManager(BaseService):
    """Finds and installs the external tools required for DVD creation.

    Tools are looked up in the tools directory first and then on PATH when
    ``use_system_tools`` is enabled. ffmpeg and ffprobe are never downloaded.
    dvdauthor and xorriso are fetched on platforms that have a published
    archive, one install at a time per tool.
    """

    def __init__(self, settings: Settings, log_sink: Optional[LogSink] = None):
        super().__init__(settings, log_sink)
        self.tools_dir = settings.tools_dir
        self.tool_versions_file = self.tools_dir / TOOL_VERSIONS_FILE

    def get_tool_path(self, tool_name: str) -> Path:
        """Expected location of a tool inside the tools directory.

        Raises:
            ValueError: If the tool is unknown
        """
        if tool_name not in TOOLS:
            raise ValueError(f"Unknown tool: {tool_name}")
        return self.tools_dir / executable_name(tool_name)

    def _local_candidates(self, tool_name: str) -> List[Path]:
        filename = executable_name(tool_name)
        return [self.get_tool_path(tool_name), self.tools_dir / tool_name / filename]

    def find_local_tool(self, tool_name: str) -> Optional[Path]:
        for candidate in self._local_candidates(tool_name):
            if candidate.is_file():
                return candidate
        return None

    def find_tool(self, tool_name: str) -> Optional[Path]:
        """Locate a tool, preferring the tools directory over PATH.

        Returns:
            Path to the executable, or None if it cannot be found
        """
        local = self.find_local_tool(tool_name)
        if local is not None:
            self.logger.debug(f"Found {tool_name} in tools directory: {local}")
            return local

        if self.settings.use_system_tools:
            found = shutil.which(tool_name)
            if found:
                self.logger.debug(f"Found {tool_name} on PATH: {found}")
                return Path(found)

        self.logger.debug(f"{tool_name} not found")
        return None

    def require_tool(self, tool_name: str) -> Path:
        """Locate a tool or fail with installation instructions.

        Raises:
            ToolMissingError: If the tool cannot be found
        """
        path = self.find_tool(tool_name)
        if path is None:
            raise ToolMissingError(
                tool_name,
                f"Required tool not found: {tool_name}. "
                f"{get_install_instructions(tool_name)}",
            )
        return path

    def ensure_tools(
        self,
        need_iso: bool = False,
        iso_builders: Optional[Sequence[IsoBuilder]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Dict[str, Path]:
        """Make sure every tool the job needs is available.

        Missing downloadable tools are installed when ``download_tools`` is
        enabled. When an ISO is requested and none of ``iso_builders`` is
        available, xorriso is downloaded so the default builders can use it;
        if it cannot be downloaded the job is rejected here, before any work.

        Args:
            need_iso: Whether the job builds an ISO image
            iso_builders: Builders the ISO stage will choose from
            cancel_token: Checked between tools

        Returns:
            Mapping of tool name to executable path for the required tools

        Raises:
            ToolMissingError: If a required tool is unavailable
            JobCancelledError: If the job was cancelled
        """
        self._log_operation_start("tool check", need_iso=need_iso)
        paths: Dict[str, Path] = {}

        for tool_name in REQUIRED_TOOLS:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            path = self.find_tool(tool_name)
            if path is None and self._can_download(tool_name):
                path = self.download_tool(tool_name)
            if path is None:
                path = self.require_tool(tool_name)
            paths[tool_name] = path

        if need_iso and iso_builders is not None:
            if not any(builder.is_available() for builder in iso_builders):
                if self._can_download("xorriso"):
                    if cancel_token is not None:
                        cancel_token.raise_if_cancelled()
                    paths["xorriso"] = self.download_tool("xorriso")
                else:
                    names = ", ".join(builder.name for builder in iso_builders)
                    raise ToolMissingError(
                        "iso",
                        f"No ISO tool available (tried {names}). "
                        f"{get_install_instructions('iso')}",
                    )

        self._log_operation_complete(
            "tool check", tools=", ".join(f"{k}={v}" for k, v in paths.items())
        )
        return paths

    def _can_download(self, tool_name: str) -> bool:
        if not self.settings.download_tools or not TOOLS[tool_name].downloadable:
            return False
        return get_download_url(tool_name) is not None

    def get_tool_versions(self) -> Dict[str, str]:
        """Load recorded installs from tool_versions.json."""
        if not self.tool_versions_file.exists():
            return {}

        try:
            with open(self.tool_versions_file, "r", encoding="utf-8") as f:
                versions: Dict[str, str] = json.load(f)
            return versions
        except (json.JSONDecodeError, OSError) as e:
            self.logger.warning(f"Failed to load tool versions: {e}")
            return {}

    def save_tool_versions(self, versions: Dict[str, str]) -> None:
        self.tools_dir.mkdir(parents=True, exist_ok=True)
        with open(self.tool_versions_file, "w", encoding="utf-8") as f:
            json.dump(versions, f, indent=2)
        self.logger.debug(f"Saved tool versions: {versions}")

    def download_tool(self, tool_name: str) -> Path:
        """Download and install a tool into the tools directory.

        A tool that is already installed is never fetched again, including
        when another process installed it while this one waited for the lock.

        Returns:
            Path to the installed executable

        Raises:
            ToolMissingError: If the tool cannot be downloaded or installed
        """
        existing = self.find_local_tool(tool_name)
        if existing is not None:
            return existing

        try:
            url = get_download_url(tool_name)
        except ValueError as e:
            raise ToolMissingError(tool_name, str(e)) from e
        if url is None:
            raise ToolMissingError(
                tool_name,
                f"No download available for {tool_name} on this platform. "
                f"{get_install_instructions(tool_name)}",
            )

        self.tools_dir.mkdir(parents=True, exist_ok=True)
        lock = FileLock(self.tools_dir / f".{tool_name}.install.lock")
        try:
            lock.acquire()
        except TimeoutError as e:
            raise ToolMissingError(tool_name, str(e)) from e

        try:
            existing = self.find_local_tool(tool_name)
            if existing is not None:
                self.logger.info(f"{tool_name} was installed by another process")
                return existing
            return self._install_from_url(tool_name, url)
        finally:
            lock.release()

    def _install_from_url(self, tool_name: str, url: str) -> Path:
        self.logger.info(f"Starting download of {tool_name}")
        temp_path = Path(tempfile.mkdtemp(prefix=f"dvdiso_{tool_name}_"))
        try:
            archive = temp_path / f"{tool_name}{self._archive_suffix(url)}"
            self.download_file(url, archive)

            if archive.suffix:
                extract_dir = temp_path / "extracted"
                extract_dir.mkdir()
                self.extract_archive(archive, extract_dir)
                binary_path = self._find_binary_in_extracted(extract_dir, tool_name)
                if binary_path is None:
                    raise ToolMissingError(
                        tool_name,
                        f"Could not find {tool_name} binary in downloaded archive",
                    )
            else:
                binary_path = archive

            final_path = self._install_binary(tool_name, binary_path)
            self.make_executable(final_path)

            versions = self.get_tool_versions()
            versions[tool_name] = url
            self.save_tool_versions(versions)

            self.logger.info(f"Installed {tool_name} at {final_path}")
            return final_path
        except (
            requests.RequestException,
            OSError,
            zipfile.BadZipFile,
            tarfile.TarError,
        ) as e:
            self.logger.error(f"Failed to download {tool_name}: {e}")
            raise ToolMissingError(
                tool_name, f"Failed to download {tool_name}: {e}"
            ) from e
        finally:
            shutil.rmtree(temp_path, ignore_errors=True)

    @staticmethod
    def _archive_suffix(url: str) -> str:
        lower = url.lower()
        for suffix in (".tar.gz", ".tgz", ".tar.xz", ".tar"):
            if lower.endswith(suffix):
                return suffix
        if ".zip" in lower:
            return ".zip"
        return ""

    def _install_binary(self, tool_name: str, binary_path: Path) -> Path:
        """Copy the binary and its sibling libraries to ``tools_dir/<tool>/``."""
        target_dir = self.tools_dir / tool_name
        if target_dir.exists():
            shutil.rmtree(target_dir)
        shutil.copytree(binary_path.parent, target_dir)
        return target_dir / binary_path.name

    def download_file(self, url: str, destination: Path) -> None:
        """Stream ``url`` into ``destination``.

        Raises:
            requests.RequestException: On network or HTTP errors
        """
        self.logger.debug(f"Downloading {url} to {destination}")
        with requests.get(
            url, stream=True, timeout=self.settings.download_timeout
        ) as response:
            response.raise_for_status()
            total_size = int(response.headers.get("content-length", 0))
            downloaded = 0

            with open(destination, "wb") as f:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        downloaded += len(chunk)

        if total_size:
            self.logger.debug(f"Downloaded {downloaded}/{total_size} bytes")
        else:
            self.logger.debug(f"Downloaded {downloaded} bytes")

    def extract_archive(self, archive_path: Path, extract_to: Path) -> None:
        """Extract a zip or tar archive.

        Raises:
            OSError: If the archive format is not supported
        """
        self.logger.debug(f"Extracting {archive_path} to {extract_to}")
        name = archive_path.name.lower()

        if name.endswith(".zip"):
            with zipfile.ZipFile(archive_path, "r") as zip_ref:
                zip_ref.extractall(extract_to)
        elif name.endswith((".tar.gz", ".tgz", ".tar.xz", ".tar")):
            with tarfile.open(archive_path, "r:*") as tar_ref:
                tar_ref.extractall(extract_to, filter="data")
        else:
            raise OSError(f"Unsupported archive format: {archive_path.name}")

    def _find_binary_in_extracted(
        self, extract_dir: Path, tool_name: str
    ) -> Optional[Path]:
        for pattern in (executable_name(tool_name), tool_name, f"{tool_name}.exe"):
            for file_path in sorted(extract_dir.rglob(pattern)):
                if file_path.is_file():
                    self.logger.debug(f"Found {tool_name} binary at {file_path}")
                    return file_path
        return None

    def make_executable(self, file_path: Path) -> None:
        current = file_path.stat().st_mode
        file_path.chmod(current | stat.S_IEXEC | stat.S_IXGRP | stat.S_IXOTH)
        self.logger.debug(f"Made {file_path} executable")
