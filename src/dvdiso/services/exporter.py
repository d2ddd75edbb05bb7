"""Folder export and promotion of finished artifacts to the output directory.

Artifacts are first assembled in a staging directory inside the output
directory. Only when every requested stage succeeded are they moved into
place with a rename, so a failed or cancelled job never leaves partial
output at the final paths.
"""

import os
import shutil
import uuid
from pathlib import Path
from typing import List, Optional

from ..config.settings import Settings
from ..exceptions import OutputIntegrityError
from ..utils.logging import LogSink
from .base import BaseService
from .dvd_author import AUDIO_TS, VIDEO_TS, find_structure_problems

STAGING_PREFIX = ".dvdiso-staging-"


def remove_path(path: Path) -> None:
    """Delete a file or directory tree if it exists."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


class FolderExporter(BaseService):
    """Copies the authored VIDEO_TS tree and promotes staged artifacts."""

    def __init__(self, settings: Settings, log_sink: Optional[LogSink] = None):
        super().__init__(settings, log_sink)

    def create_staging_dir(self, output_dir: Path, job_id: str = "") -> Path:
        """Create a private staging directory inside ``output_dir``."""
        output_dir.mkdir(parents=True, exist_ok=True)
        staging = output_dir / f"{STAGING_PREFIX}{job_id or uuid.uuid4().hex[:8]}"
        staging.mkdir()
        self.logger.debug(f"Created staging directory {staging}")
        return staging

    def export(self, video_ts_dir: Path, destination: Path) -> Path:
        """Copy a VIDEO_TS tree into ``destination``.

        Any existing ``VIDEO_TS`` at the destination is replaced and an empty
        ``AUDIO_TS`` is created next to it.

        Args:
            video_ts_dir: Validated VIDEO_TS directory
            destination: Directory to receive ``VIDEO_TS`` and ``AUDIO_TS``

        Returns:
            Path of the copied VIDEO_TS directory

        Raises:
            OutputIntegrityError: If the copy is incomplete
        """
        self._log_operation_start("folder export", source=video_ts_dir)
        destination.mkdir(parents=True, exist_ok=True)

        target = destination / VIDEO_TS
        remove_path(target)
        remove_path(destination / AUDIO_TS)

        shutil.copytree(video_ts_dir, target)
        (destination / AUDIO_TS).mkdir(exist_ok=True)

        source_files = sorted(f.name for f in video_ts_dir.iterdir() if f.is_file())
        copied_files = sorted(f.name for f in target.iterdir() if f.is_file())
        if source_files != copied_files:
            raise OutputIntegrityError(
                "Exported VIDEO_TS does not match the authored structure",
                context={"missing": sorted(set(source_files) - set(copied_files))},
            )

        problems = find_structure_problems(target)
        if problems:
            raise OutputIntegrityError(
                "Exported VIDEO_TS is incomplete: " + "; ".join(problems),
                context={"path": str(target)},
            )

        self._log_operation_complete("folder export", destination=target)
        return target

    def promote(self, staging_dir: Path, output_dir: Path) -> List[Path]:
        """Move every staged artifact into ``output_dir``.

        Existing artifacts of the same name are replaced. The staging
        directory is removed afterwards.

        Returns:
            Final paths of the promoted artifacts
        """
        promoted = []
        for staged in sorted(staging_dir.iterdir()):
            if staged.name.endswith(".partial"):
                continue
            target = output_dir / staged.name
            remove_path(target)
            os.replace(staged, target)
            promoted.append(target)
            self.logger.info(f"Wrote {target}")

        self.discard(staging_dir)
        return promoted

    def discard(self, staging_dir: Optional[Path]) -> None:
        """Remove a staging directory and everything in it."""
        if staging_dir is None or not staging_dir.exists():
            return
        try:
            shutil.rmtree(staging_dir)
            self.logger.debug(f"Removed staging directory {staging_dir}")
        except OSError as e:
            self.logger.warning(f"Failed to remove staging dir {staging_dir}: {e}")
