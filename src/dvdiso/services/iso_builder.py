"""DVD-Video ISO image creation.

Several tools can build a DVD-Video ISO9660/UDF image but each has its own
command line dialect. Every tool is wrapped in an :class:`IsoBuilder`; the
:class:`IsoMaker` uses the first builder whose executable can be found and
never looks further down the list.
"""

import os
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import FrozenSet, List, Optional, Sequence

from ..config.settings import Settings
from ..exceptions import OutputIntegrityError, ToolMissingError
from ..utils.cancellation import CancellationToken
from ..utils.filename import sanitize_disc_label
from ..utils.logging import LogSink
from ..utils.platform import (
    OperatingSystem,
    detect_os,
    executable_name,
    get_imgburn_candidates,
    get_install_instructions,
)
from .base import BaseService
from .dvd_author import AUDIO_TS
from .process_runner import ProcessRunner

PARTIAL_SUFFIX = ".partial"


class IsoBuilder(ABC):
    """One ISO building tool and its argument dialect."""

    #: Short name used in logs and errors
    name: str = ""
    #: Executable base names to look for, in order
    executables: Sequence[str] = ()
    #: Platforms the tool runs on; empty means all
    platforms: FrozenSet[OperatingSystem] = frozenset()

    def __init__(
        self, runner: ProcessRunner, tools_dir: Path, use_system_tools: bool = True
    ) -> None:
        self.runner = runner
        self.tools_dir = tools_dir
        self.use_system_tools = use_system_tools

    def candidate_paths(self) -> List[Path]:
        """Well-known locations of the executable under the tools directory."""
        paths = []
        for executable in self.executables:
            filename = executable_name(executable)
            paths.append(self.tools_dir / filename)
            paths.append(self.tools_dir / executable / filename)
        return paths

    def locate(self) -> Optional[Path]:
        """Return the executable path, or None if the tool is unavailable."""
        if self.platforms and detect_os() not in self.platforms:
            return None

        for candidate in self.candidate_paths():
            if candidate.is_file():
                return candidate

        if self.use_system_tools:
            for executable in self.executables:
                found = shutil.which(executable)
                if found:
                    return Path(found)
        return None

    def is_available(self) -> bool:
        return self.locate() is not None

    @abstractmethod
    def build_arguments(self, root: Path, out_path: Path, label: str) -> List[str]:
        """Arguments that build ``out_path`` from the DVD root ``root``."""

    def build_iso(
        self,
        root: Path,
        out_path: Path,
        label: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Path:
        """Build an image and verify it is non-empty.

        Raises:
            ToolMissingError: If the tool disappeared since selection
            ToolExecutionError: If the tool exits with a non-zero code
            OutputIntegrityError: If no image was written
        """
        executable = self.locate()
        if executable is None:
            raise ToolMissingError(self.name)

        label = sanitize_disc_label(label)
        self.runner.run(
            executable,
            self.build_arguments(root, out_path, label),
            working_dir=root.parent,
            cancel_token=cancel_token,
        ).check()

        if not out_path.is_file() or out_path.stat().st_size == 0:
            raise OutputIntegrityError(
                f"{self.name} reported success but the image is missing or empty",
                tool=self.name,
                context={"path": str(out_path)},
            )
        return out_path


class ImgBurnIsoBuilder(IsoBuilder):
    name = "imgburn"
    executables = ("ImgBurn",)
    platforms = frozenset({OperatingSystem.WINDOWS})

    def candidate_paths(self) -> List[Path]:
        return super().candidate_paths() + get_imgburn_candidates()

    def build_arguments(self, root: Path, out_path: Path, label: str) -> List[str]:
        return [
            "/MODE",
            "BUILD",
            "/BUILDMODE",
            "IMAGEFILE",
            "/SRC",
            str(root),
            "/DEST",
            str(out_path),
            "/FILESYSTEM",
            "ISO9660 + UDF",
            "/UDFREVISION",
            "1.02",
            "/VOLUMELABEL",
            label,
            "/START",
            "/CLOSE",
            "/NOIMAGEDETAILS",
            "/NOLOGO",
        ]


class XorrisoIsoBuilder(IsoBuilder):
    name = "xorriso"
    executables = ("xorriso",)

    def build_arguments(self, root: Path, out_path: Path, label: str) -> List[str]:
        return [
            "-as",
            "mkisofs",
            "-dvd-video",
            "-V",
            label,
            "-o",
            str(out_path),
            str(root),
        ]


class MkisofsIsoBuilder(IsoBuilder):
    name = "mkisofs"
    executables = ("mkisofs", "genisoimage")

    def build_arguments(self, root: Path, out_path: Path, label: str) -> List[str]:
        return ["-dvd-video", "-V", label, "-o", str(out_path), str(root)]


def default_builders(
    runner: ProcessRunner, tools_dir: Path, use_system_tools: bool = True
) -> List[IsoBuilder]:
    """ISO builders in order of preference."""
    return [
        builder_cls(runner, tools_dir, use_system_tools)
        for builder_cls in (ImgBurnIsoBuilder, XorrisoIsoBuilder, MkisofsIsoBuilder)
    ]


class IsoMaker(BaseService):
    """Builds the disc image with the first available builder."""

    def __init__(
        self,
        settings: Settings,
        builders: Sequence[IsoBuilder],
        log_sink: Optional[LogSink] = None,
    ):
        super().__init__(settings, log_sink)
        self.builders = list(builders)

    def select_builder(self) -> IsoBuilder:
        """Return the first available builder.

        Raises:
            ToolMissingError: If no builder is available
        """
        for builder in self.builders:
            if builder.is_available():
                self.logger.debug(f"Using {builder.name} for ISO creation")
                return builder

        names = ", ".join(builder.name for builder in self.builders)
        raise ToolMissingError(
            "iso",
            f"No ISO tool available (tried {names}). "
            f"{get_install_instructions('iso')}",
        )

    def create_iso(
        self,
        dvd_root: Path,
        destination_dir: Path,
        label: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Path:
        """Build ``<label>.iso`` in ``destination_dir`` from ``dvd_root``.

        The image is written to a ``.partial`` file first and renamed once it
        has been verified. The partial file is removed on any failure.

        Returns:
            Path of the finished image
        """
        builder = self.select_builder()
        label = sanitize_disc_label(label)
        (dvd_root / AUDIO_TS).mkdir(exist_ok=True)

        destination_dir.mkdir(parents=True, exist_ok=True)
        iso_path = destination_dir / f"{label}.iso"
        partial = destination_dir / f"{label}.iso{PARTIAL_SUFFIX}"
        if partial.exists():
            partial.unlink()

        self.logger.info(f"Creating ISO image {iso_path.name} with {builder.name}")
        try:
            builder.build_iso(dvd_root, partial, label, cancel_token)
            os.replace(partial, iso_path)
        finally:
            if partial.exists():
                partial.unlink()

        size_mb = iso_path.stat().st_size / (1024 * 1024)
        self.logger.info(f"ISO image created: {iso_path} ({size_mb:.1f}MB)")
        return iso_path
