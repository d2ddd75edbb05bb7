"""File locking for the shared tools directory.

Two processes installing the same missing tool at once must not overwrite
each other's files, so tool installation is guarded by a lock file.
"""

import os
import time
from pathlib import Path
from typing import Any, Optional

import psutil

from .logging import get_logger

logger = get_logger(__name__)

STALE_LOCK_SECONDS = 600


class FileLock:
    """A simple file-based lock for cross-process synchronization."""

    def __init__(self, lock_path: Path, timeout: float = 120.0) -> None:
        """Initialize the file lock.

        Args:
            lock_path: Path to the lock file
            timeout: Maximum time to wait for lock acquisition in seconds
        """
        self.lock_path = lock_path
        self.timeout = timeout
        self.locked = False

    def acquire(self, non_blocking: bool = False) -> bool:
        """Acquire the lock.

        Args:
            non_blocking: If True, don't wait for lock availability

        Returns:
            True if lock was acquired, False otherwise

        Raises:
            TimeoutError: If lock cannot be acquired within timeout
            RuntimeError: If lock is already held by this instance
        """
        if self.locked:
            raise RuntimeError("Lock is already held by this instance")

        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        start_time = time.monotonic()

        while True:
            try:
                fd = os.open(
                    str(self.lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600
                )
            except FileExistsError:
                if non_blocking:
                    return False

                if time.monotonic() - start_time >= self.timeout:
                    raise TimeoutError(
                        f"Failed to acquire lock within {self.timeout}s: "
                        f"{self.lock_path}"
                    )

                if self._is_stale_lock():
                    logger.info(f"Removing stale lock: {self.lock_path}")
                    self._remove_lock_file()
                    continue

                time.sleep(0.1)
                continue

            try:
                os.write(fd, f"{os.getpid()}\n{time.time()}\n".encode())
            finally:
                os.close(fd)

            self.locked = True
            logger.debug(f"Acquired lock: {self.lock_path}")
            return True

    def release(self) -> None:
        """Release the lock.

        Raises:
            RuntimeError: If lock is not held by this instance
        """
        if not self.locked:
            raise RuntimeError("Lock is not held by this instance")

        self._remove_lock_file()
        self.locked = False
        logger.debug(f"Released lock: {self.lock_path}")

    def _is_stale_lock(self) -> bool:
        """A lock is stale when its owner is gone or it is too old."""
        try:
            lines = self.lock_path.read_text().strip().split("\n")
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Error reading lock file {self.lock_path}: {e}")
            return True

        try:
            pid = int(lines[0])
            timestamp = float(lines[1])
        except (IndexError, ValueError):
            logger.warning(f"Invalid lock file format: {self.lock_path}")
            return True

        if time.time() - timestamp > STALE_LOCK_SECONDS:
            return True
        return not psutil.pid_exists(pid)

    def _remove_lock_file(self) -> None:
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove lock file {self.lock_path}: {e}")

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self.locked:
            self.release()

    @property
    def owner_pid(self) -> Optional[int]:
        try:
            return int(self.lock_path.read_text().split("\n", 1)[0])
        except (OSError, ValueError):
            return None
