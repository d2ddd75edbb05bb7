"""Tests for folder export and artifact promotion."""

from pathlib import Path

import pytest

from dvdiso.config.settings import Settings
from dvdiso.exceptions import OutputIntegrityError
from dvdiso.services.exporter import STAGING_PREFIX, FolderExporter, remove_path


@pytest.fixture
def settings(tmp_path):
    """Create test settings."""
    return Settings(
        tools_dir=tmp_path / "tools",
        work_dir=tmp_path / "work",
        output_dir=tmp_path / "output",
        log_dir=tmp_path / "logs",
    )


def write_video_ts(video_ts: Path) -> Path:
    video_ts.mkdir(parents=True)
    for name in ("VIDEO_TS.IFO", "VIDEO_TS.BUP", "VTS_01_0.IFO", "VTS_01_0.BUP"):
        (video_ts / name).write_bytes(b"\x00" * 1024)
    (video_ts / "VTS_01_1.VOB").write_bytes(b"\x00" * 4096)
    return video_ts


class TestRemovePath:
    """Test cases for remove_path."""

    def test_file_and_directory(self, tmp_path):
        """Test removal of files and trees."""
        file_path = tmp_path / "file"
        file_path.write_text("x")
        tree = tmp_path / "tree" / "nested"
        tree.mkdir(parents=True)

        remove_path(file_path)
        remove_path(tmp_path / "tree")
        remove_path(tmp_path / "missing")

        assert not file_path.exists()
        assert not (tmp_path / "tree").exists()


class TestFolderExporter:
    """Test cases for FolderExporter."""

    def test_staging_dir_inside_output(self, settings, tmp_path):
        """Test that staging lives in the output directory."""
        exporter = FolderExporter(settings)
        staging = exporter.create_staging_dir(tmp_path / "output", "abc123")
        assert staging == tmp_path / "output" / f"{STAGING_PREFIX}abc123"
        assert staging.is_dir()

    def test_export(self, settings, tmp_path):
        """Test copying VIDEO_TS and creating AUDIO_TS."""
        exporter = FolderExporter(settings)
        source = write_video_ts(tmp_path / "dvdroot" / "VIDEO_TS")
        destination = tmp_path / "staging"

        target = exporter.export(source, destination)

        assert target == destination / "VIDEO_TS"
        assert sorted(p.name for p in target.iterdir()) == sorted(
            p.name for p in source.iterdir()
        )
        assert (destination / "AUDIO_TS").is_dir()

    def test_export_replaces_existing(self, settings, tmp_path):
        """Test that a stale VIDEO_TS is replaced."""
        exporter = FolderExporter(settings)
        source = write_video_ts(tmp_path / "dvdroot" / "VIDEO_TS")
        stale = tmp_path / "staging" / "VIDEO_TS"
        stale.mkdir(parents=True)
        (stale / "OLD.VOB").write_text("old")

        target = exporter.export(source, tmp_path / "staging")

        assert not (target / "OLD.VOB").exists()

    def test_export_incomplete_source(self, settings, tmp_path):
        """Test that an incomplete tree is rejected after copying."""
        exporter = FolderExporter(settings)
        source = write_video_ts(tmp_path / "dvdroot" / "VIDEO_TS")
        (source / "VTS_01_1.VOB").unlink()

        with pytest.raises(OutputIntegrityError):
            exporter.export(source, tmp_path / "staging")

    def test_promote(self, settings, tmp_path):
        """Test that staged artifacts replace final outputs."""
        exporter = FolderExporter(settings)
        output_dir = tmp_path / "output"
        staging = exporter.create_staging_dir(output_dir, "job1")
        write_video_ts(staging / "VIDEO_TS")
        (staging / "DISC.iso").write_bytes(b"iso")
        (staging / "OTHER.iso.partial").write_bytes(b"partial")
        old = output_dir / "VIDEO_TS"
        old.mkdir()
        (old / "OLD.VOB").write_text("old")

        promoted = exporter.promote(staging, output_dir)

        assert promoted == [output_dir / "DISC.iso", output_dir / "VIDEO_TS"]
        assert (output_dir / "VIDEO_TS" / "VTS_01_1.VOB").exists()
        assert not (output_dir / "VIDEO_TS" / "OLD.VOB").exists()
        assert not (output_dir / "OTHER.iso.partial").exists()
        assert not staging.exists()

    def test_discard(self, settings, tmp_path):
        """Test that discarding removes the staging tree."""
        exporter = FolderExporter(settings)
        staging = exporter.create_staging_dir(tmp_path / "output", "job2")
        (staging / "DISC.iso").write_bytes(b"iso")

        exporter.discard(staging)
        exporter.discard(staging)
        exporter.discard(None)

        assert not staging.exists()
        assert list((tmp_path / "output").iterdir()) == []
