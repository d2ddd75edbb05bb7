"""Tests for source models."""

from pathlib import Path

import pytest

from dvdiso.models.job import build_sources
from dvdiso.models.source import ProbeMetadata, SourceItem


def make_metadata(**overrides) -> ProbeMetadata:
    values = dict(
        duration=1800.0,
        width=1920,
        height=1080,
        frame_rate=23.976,
        has_audio=True,
        audio_channels=6,
        audio_sample_rate=48000,
    )
    values.update(overrides)
    return ProbeMetadata(**values)


class TestProbeMetadata:
    """Test cases for ProbeMetadata."""

    def test_resolution(self):
        """Test the resolution string."""
        assert make_metadata().resolution == "1920x1080"

    def test_negative_duration_rejected(self):
        """Test validation of negative durations."""
        with pytest.raises(ValueError):
            make_metadata(duration=-1)


class TestSourceItem:
    """Test cases for SourceItem."""

    def test_from_path_starts_unprobed(self):
        """Test that new items carry no probed data."""
        item = SourceItem.from_path("/videos/a.mkv")
        assert item.path == Path("/videos/a.mkv")
        assert item.duration == 0.0
        assert not item.has_audio
        assert not item.probed

    def test_path_is_immutable(self):
        """Test that the path cannot be reassigned."""
        item = SourceItem.from_path("/videos/a.mkv")
        with pytest.raises(AttributeError):
            item.path = Path("/videos/b.mkv")

    def test_apply_probe(self):
        """Test that probing fills in the metadata."""
        item = SourceItem.from_path("/videos/a.mkv")
        item.apply_probe(make_metadata())

        assert item.probed
        assert item.duration == 1800.0
        assert (item.width, item.height) == (1920, 1080)
        assert item.audio_channels == 6

    def test_apply_probe_is_idempotent(self):
        """Test that applying the same metadata twice changes nothing."""
        item = SourceItem.from_path("/videos/a.mkv")
        metadata = make_metadata()
        item.apply_probe(metadata)
        first = SourceItem(**vars(item))
        item.apply_probe(metadata)
        assert item == first

    def test_invalid_values_rejected(self):
        """Test construction-time validation."""
        with pytest.raises(ValueError):
            SourceItem(path=Path("a.mkv"), duration=-5)

    def test_name(self):
        """Test the display name."""
        item = SourceItem.from_path("/videos/Holiday 2024.mp4")
        assert item.name == "Holiday 2024.mp4"


class TestBuildSources:
    """Test cases for build_sources."""

    def test_preserves_order(self):
        """Test that the input order is kept."""
        sources = build_sources(["b.mkv", "a.mkv", "c.mkv"])
        assert [source.name for source in sources] == ["b.mkv", "a.mkv", "c.mkv"]
        assert isinstance(sources, tuple)
