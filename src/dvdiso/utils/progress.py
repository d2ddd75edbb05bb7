"""Progress accounting across pipeline stages of very different cost."""

import threading
from typing import Callable, Dict, Optional, Tuple

from ..models.job import ConvertProgress, JobStage
from .logging import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[ConvertProgress], None]

# Percentage band reserved for each stage: (start, end).
STAGE_BANDS: Dict[JobStage, Tuple[int, int]] = {
    JobStage.PREPARE: (0, 5),
    JobStage.PROBE: (5, 10),
    JobStage.TRANSCODE: (10, 70),
    JobStage.AUTHOR: (70, 80),
    JobStage.VALIDATE: (80, 82),
    JobStage.EXPORT: (82, 88),
    JobStage.ISO: (88, 99),
    JobStage.DONE: (100, 100),
}


class StageProgressReporter:
    """Maps per-stage fractions onto overall job percentages.

    Every stage owns a band of the 0-100 range. Stages report the fraction of
    their own work that is complete and the reporter emits a
    :class:`ConvertProgress` snapshot to the callback. Reported percentages
    never decrease, so skipped stages simply leave a jump.
    """

    def __init__(
        self,
        callback: Optional[ProgressCallback] = None,
        bands: Optional[Dict[JobStage, Tuple[int, int]]] = None,
    ) -> None:
        self.callback = callback
        self.bands = dict(bands or STAGE_BANDS)
        self.current_stage: Optional[JobStage] = None
        self.percent = 0
        self._lock = threading.Lock()

    def percent_for(self, stage: JobStage, fraction: float) -> int:
        """Overall percentage for ``fraction`` (0-1) of ``stage``."""
        start, end = self.bands[stage]
        fraction = min(1.0, max(0.0, fraction))
        return int(start + fraction * (end - start))

    def start_stage(self, stage: JobStage, message: str = "") -> ConvertProgress:
        """Report entry into a stage."""
        return self.update(stage, 0.0, message or f"{stage.value}...")

    def update(
        self, stage: JobStage, fraction: float, message: str = ""
    ) -> ConvertProgress:
        """Report progress within a stage.

        Args:
            stage: Stage reporting progress
            fraction: Completed share of the stage's work, 0-1
            message: Human-readable status

        Returns:
            The snapshot that was emitted
        """
        with self._lock:
            self.current_stage = stage
            self.percent = max(self.percent, self.percent_for(stage, fraction))
            snapshot = ConvertProgress(
                stage=stage, percent=self.percent, message=message
            )

        logger.trace(f"Progress: {snapshot}")  # type: ignore[attr-defined]
        if self.callback is not None:
            self.callback(snapshot)
        return snapshot

    def update_items(
        self, stage: JobStage, index: int, total: int, message: str = ""
    ) -> ConvertProgress:
        """Report that ``index`` of ``total`` equal work items are finished."""
        fraction = index / total if total > 0 else 1.0
        return self.update(stage, fraction, message)

    def complete(self, message: str = "Done") -> ConvertProgress:
        return self.update(JobStage.DONE, 1.0, message)
