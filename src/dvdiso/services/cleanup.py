"""Cleanup of leftover job data.

Interrupted runs (a killed process, a power loss) can leave ``job_*`` work
directories behind, as well as staging directories and partial ISO images in
the output directory. This module removes them on request.
"""

import shutil
import time
from pathlib import Path
from typing import Dict, List, Optional

from ..utils.logging import get_logger
from .exporter import STAGING_PREFIX
from .iso_builder import PARTIAL_SUFFIX

logger = get_logger(__name__)

JOB_DIR_PREFIX = "job_"


class CleanupStats:
    """Statistics for cleanup operations."""

    def __init__(self) -> None:
        self.files_removed = 0
        self.directories_removed = 0
        self.bytes_freed = 0
        self.errors = 0

    @property
    def total_items_removed(self) -> int:
        return self.files_removed + self.directories_removed

    @property
    def size_freed_mb(self) -> float:
        return self.bytes_freed / (1024 * 1024)

    def merge(self, other: "CleanupStats") -> "CleanupStats":
        self.files_removed += other.files_removed
        self.directories_removed += other.directories_removed
        self.bytes_freed += other.bytes_freed
        self.errors += other.errors
        return self

    def __repr__(self) -> str:
        return (
            f"CleanupStats(files={self.files_removed}, "
            f"dirs={self.directories_removed}, "
            f"bytes={self.bytes_freed}, errors={self.errors})"
        )


class CleanupManager:
    """Removes stale job work directories and staging leftovers."""

    def __init__(self, work_dir: Path, output_dir: Optional[Path] = None) -> None:
        """Initialize the cleanup manager.

        Args:
            work_dir: Directory holding ``job_*`` work directories
            output_dir: Output directory that may hold staging leftovers
        """
        self.work_dir = work_dir
        self.output_dir = output_dir

        logger.debug(
            f"CleanupManager initialized with work_dir={work_dir}, "
            f"output_dir={output_dir}"
        )

    def find_job_dirs(self, older_than_hours: Optional[float] = None) -> List[Path]:
        """Job work directories, optionally only those not modified recently."""
        if not self.work_dir.exists():
            return []

        cutoff = None
        if older_than_hours is not None:
            cutoff = time.time() - older_than_hours * 3600

        job_dirs = []
        for item in sorted(self.work_dir.iterdir()):
            if not item.is_dir() or not item.name.startswith(JOB_DIR_PREFIX):
                continue
            if cutoff is not None and item.stat().st_mtime > cutoff:
                logger.debug(f"Skipping recent job directory: {item}")
                continue
            job_dirs.append(item)
        return job_dirs

    def find_staging_leftovers(self) -> List[Path]:
        """Staging directories and partial images left in the output directory."""
        if self.output_dir is None or not self.output_dir.exists():
            return []

        return [
            item
            for item in sorted(self.output_dir.iterdir())
            if item.name.startswith(STAGING_PREFIX)
            or item.name.endswith(PARTIAL_SUFFIX)
        ]

    def clean_job_dirs(
        self, older_than_hours: Optional[float] = None, dry_run: bool = False
    ) -> CleanupStats:
        """Remove job work directories.

        Args:
            older_than_hours: Only remove directories older than this
            dry_run: If True, only report what would be cleaned

        Returns:
            CleanupStats with cleanup results
        """
        logger.info("Cleaning job work directories...")
        stats = CleanupStats()
        for job_dir in self.find_job_dirs(older_than_hours):
            self._remove_item(job_dir, stats, dry_run, "job directory")

        logger.info(
            f"Job directory cleanup complete: {stats.directories_removed} "
            f"directories, {stats.size_freed_mb:.1f}MB freed"
        )
        return stats

    def clean_staging(self, dry_run: bool = False) -> CleanupStats:
        logger.info("Cleaning staging leftovers...")
        stats = CleanupStats()
        for item in self.find_staging_leftovers():
            self._remove_item(item, stats, dry_run, "staging leftover")
        return stats

    def clean_all(
        self, older_than_hours: Optional[float] = None, dry_run: bool = False
    ) -> Dict[str, CleanupStats]:
        """Run every cleanup.

        Returns:
            Dictionary mapping cleanup type to CleanupStats
        """
        results = {
            "jobs": self.clean_job_dirs(older_than_hours, dry_run),
            "staging": self.clean_staging(dry_run),
        }

        total = CleanupStats()
        for stats in results.values():
            total.merge(stats)
        logger.info(
            f"Cleanup complete: {total.total_items_removed} items, "
            f"{total.size_freed_mb:.1f}MB freed, {total.errors} errors"
        )
        return results

    def _remove_item(
        self, item: Path, stats: CleanupStats, dry_run: bool, item_type: str
    ) -> None:
        """Remove a file or directory and update statistics."""
        try:
            if item.is_file():
                size = item.stat().st_size
            else:
                size = self._calculate_directory_size(item)

            if dry_run:
                logger.info(f"Would remove {item_type}: {item} ({size} bytes)")
            else:
                logger.debug(f"Removing {item_type}: {item}")
                if item.is_file():
                    item.unlink()
                    stats.files_removed += 1
                else:
                    shutil.rmtree(item)
                    stats.directories_removed += 1

            stats.bytes_freed += size

        except OSError as e:
            logger.warning(f"Failed to remove {item_type} {item}: {e}")
            stats.errors += 1

    def _calculate_directory_size(self, directory: Path) -> int:
        total_size = 0
        for item in directory.rglob("*"):
            try:
                if item.is_file():
                    total_size += item.stat().st_size
            except OSError as e:
                logger.debug(f"Cannot stat {item}: {e}")
        return total_size
