"""Tests for stage progress accounting."""

from unittest.mock import Mock

import pytest

from dvdiso.models.job import ConvertProgress, JobStage
from dvdiso.utils.progress import STAGE_BANDS, StageProgressReporter


class TestStageBands:
    """Test cases for the stage band table."""

    def test_bands_are_ordered_and_contiguous(self):
        """Test that each band starts where the previous one ended."""
        ordered = [
            JobStage.PREPARE,
            JobStage.PROBE,
            JobStage.TRANSCODE,
            JobStage.AUTHOR,
            JobStage.VALIDATE,
            JobStage.EXPORT,
            JobStage.ISO,
        ]
        previous_end = 0
        for stage in ordered:
            start, end = STAGE_BANDS[stage]
            assert start == previous_end
            assert end > start
            previous_end = end
        assert STAGE_BANDS[JobStage.DONE] == (100, 100)

    def test_transcode_has_the_largest_band(self):
        """Test that the most expensive stage owns the widest band."""
        widths = {stage: end - start for stage, (start, end) in STAGE_BANDS.items()}
        assert max(widths, key=widths.get) == JobStage.TRANSCODE


class TestStageProgressReporter:
    """Test cases for StageProgressReporter."""

    def setup_method(self):
        """Set up test fixtures."""
        self.callback = Mock()
        self.reporter = StageProgressReporter(self.callback)

    def test_percent_for(self):
        """Test mapping of stage fractions onto the overall range."""
        assert self.reporter.percent_for(JobStage.TRANSCODE, 0.0) == 10
        assert self.reporter.percent_for(JobStage.TRANSCODE, 0.5) == 40
        assert self.reporter.percent_for(JobStage.TRANSCODE, 1.0) == 70
        assert self.reporter.percent_for(JobStage.ISO, 2.0) == 99

    def test_update_emits_snapshot(self):
        """Test that updates reach the callback."""
        snapshot = self.reporter.update(JobStage.AUTHOR, 0.5, "Authoring")

        self.callback.assert_called_once_with(snapshot)
        assert snapshot == ConvertProgress(JobStage.AUTHOR, 75, "Authoring")

    def test_progress_never_decreases(self):
        """Test that a lower report keeps the previous percentage."""
        self.reporter.update(JobStage.TRANSCODE, 0.8)
        snapshot = self.reporter.update(JobStage.TRANSCODE, 0.2)
        assert snapshot.percent == 58

    def test_sequence_is_monotonic(self):
        """Test monotonicity across a full run of stages."""
        for stage in STAGE_BANDS:
            self.reporter.start_stage(stage)
            for step in range(5):
                self.reporter.update(stage, step / 4)
        percents = [call.args[0].percent for call in self.callback.call_args_list]
        assert percents == sorted(percents)
        assert percents[-1] == 100

    def test_update_items(self):
        """Test item based progress."""
        snapshot = self.reporter.update_items(JobStage.PROBE, 1, 2)
        assert snapshot.percent == 7

    def test_update_items_with_no_items(self):
        """Test that zero items counts as complete."""
        snapshot = self.reporter.update_items(JobStage.PROBE, 0, 0)
        assert snapshot.percent == 10

    def test_complete(self):
        """Test the final snapshot."""
        snapshot = self.reporter.complete()
        assert snapshot.stage == JobStage.DONE
        assert snapshot.percent == 100

    def test_without_callback(self):
        """Test that a reporter without callback still tracks state."""
        reporter = StageProgressReporter()
        reporter.start_stage(JobStage.PREPARE, "Starting")
        assert reporter.current_stage == JobStage.PREPARE
        assert reporter.percent == 0


class TestConvertProgress:
    """Test cases for ConvertProgress."""

    def test_percent_out_of_range(self):
        """Test that invalid percentages are rejected."""
        with pytest.raises(ValueError):
            ConvertProgress(JobStage.DONE, 101)

    def test_str(self):
        """Test the console rendering."""
        assert str(ConvertProgress(JobStage.ISO, 90, "Imaging")) == " 90% [ISO] Imaging"
