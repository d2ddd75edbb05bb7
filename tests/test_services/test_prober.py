"""Tests for source probing."""

import json
from pathlib import Path
from unittest.mock import Mock

import pytest

from dvdiso.config.settings import Settings
from dvdiso.exceptions import ProbeError
from dvdiso.services.process_runner import ProcessResult, ProcessRunner
from dvdiso.services.prober import SourceProber, parse_frame_rate, parse_probe_output
from dvdiso.utils.logging import LogSink

FFPROBE_OUTPUT = {
    "format": {"duration": "1800.040000"},
    "streams": [
        {
            "codec_type": "video",
            "width": 1920,
            "height": 1080,
            "r_frame_rate": "24000/1001",
        },
        {"codec_type": "audio", "channels": 6, "sample_rate": "48000"},
        {"codec_type": "audio", "channels": 2, "sample_rate": "44100"},
    ],
}


@pytest.fixture
def settings(tmp_path):
    """Create test settings."""
    return Settings(
        tools_dir=tmp_path / "tools",
        work_dir=tmp_path / "work",
        output_dir=tmp_path / "output",
        log_dir=tmp_path / "logs",
    )


@pytest.fixture
def mock_runner():
    """Create a mock process runner."""
    runner = Mock(spec=ProcessRunner)
    runner.log_sink = LogSink()
    return runner


class TestParseFrameRate:
    """Test cases for parse_frame_rate."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("30000/1001", 29.97),
            ("25/1", 25.0),
            ("25", 25.0),
            (23.976, 23.976),
            ("0/0", 0.0),
            ("n/a", 0.0),
            (None, 0.0),
            ("-5", 0.0),
        ],
    )
    def test_values(self, value, expected):
        """Test rational, plain and malformed rates."""
        assert parse_frame_rate(value) == pytest.approx(expected, abs=0.01)


class TestParseProbeOutput:
    """Test cases for parse_probe_output."""

    def test_full_output(self):
        """Test that the first video and audio streams are used."""
        metadata = parse_probe_output(FFPROBE_OUTPUT)
        assert metadata.duration == pytest.approx(1800.04)
        assert metadata.resolution == "1920x1080"
        assert metadata.frame_rate == pytest.approx(23.976, abs=0.001)
        assert metadata.has_audio
        assert metadata.audio_channels == 6
        assert metadata.audio_sample_rate == 48000

    def test_stream_duration_fallback(self):
        """Test that the video stream duration is used when the format has none."""
        metadata = parse_probe_output(
            {"streams": [{"codec_type": "video", "duration": "42.5"}]}
        )
        assert metadata.duration == 42.5

    def test_empty_output(self):
        """Test that missing fields default to zero."""
        metadata = parse_probe_output({})
        assert metadata.duration == 0.0
        assert metadata.resolution == "0x0"
        assert not metadata.has_audio

    def test_garbage_values(self):
        """Test that unparsable numbers become zero."""
        metadata = parse_probe_output(
            {
                "format": {"duration": "N/A"},
                "streams": [{"codec_type": "video", "width": "wide"}],
            }
        )
        assert metadata.duration == 0.0
        assert metadata.width == 0


class TestSourceProber:
    """Test cases for SourceProber."""

    def test_probe_success(self, settings, mock_runner):
        """Test probing through the process runner."""
        mock_runner.run.return_value = ProcessResult(
            tool="ffprobe", exit_code=0, stdout=json.dumps(FFPROBE_OUTPUT)
        )
        prober = SourceProber(settings, mock_runner, Path("/bin/ffprobe"))

        metadata = prober.probe(Path("/videos/a.mkv"))

        assert metadata.duration == pytest.approx(1800.04)
        args, kwargs = mock_runner.run.call_args
        assert args[0] == Path("/bin/ffprobe")
        assert args[1][-1] == str(Path("/videos/a.mkv"))
        assert "-show_streams" in args[1]
        assert kwargs["capture_stdout"] is True

    def test_shares_runner_sink(self, settings, mock_runner):
        """Test that the prober logs to the runner's sink."""
        prober = SourceProber(settings, mock_runner, Path("/bin/ffprobe"))
        assert prober.log_sink is mock_runner.log_sink

    def test_non_zero_exit(self, settings, mock_runner):
        """Test that ffprobe failures raise ProbeError."""
        mock_runner.run.return_value = ProcessResult(
            tool="ffprobe", exit_code=1, output_tail=["Invalid data found"]
        )
        prober = SourceProber(settings, mock_runner, Path("/bin/ffprobe"))

        with pytest.raises(ProbeError) as exc_info:
            prober.probe(Path("/videos/broken.mkv"))
        assert exc_info.value.tool == "ffprobe"
        assert exc_info.value.output_tail == ["Invalid data found"]
        assert "broken.mkv" in str(exc_info.value)

    @pytest.mark.parametrize("stdout", ["{not json", "[1, 2]"])
    def test_bad_output(self, settings, mock_runner, stdout):
        """Test that unusable output raises ProbeError."""
        mock_runner.run.return_value = ProcessResult(
            tool="ffprobe", exit_code=0, stdout=stdout
        )
        prober = SourceProber(settings, mock_runner, Path("/bin/ffprobe"))
        with pytest.raises(ProbeError):
            prober.probe(Path("/videos/a.mkv"))
