"""Cooperative cancellation for running jobs."""

import threading
from typing import Optional

from ..exceptions import JobCancelledError
from .logging import get_logger

logger = get_logger(__name__)


class CancellationToken:
    """Thread-safe cancellation flag shared between a caller and a job.

    The caller calls :meth:`cancel`; the job polls :attr:`is_cancelled` or
    calls :meth:`raise_if_cancelled` at its checkpoints.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        logger.info("Cancellation requested")

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: Optional[str] = None) -> None:
        """Raise :class:`JobCancelledError` if cancellation was requested."""
        if self._event.is_set():
            raise JobCancelledError(stage=stage)
