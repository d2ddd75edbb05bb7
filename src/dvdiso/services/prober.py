"""Source probing with ffprobe."""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from ..config.settings import Settings
from ..exceptions import ProbeError
from ..models.source import ProbeMetadata
from ..utils.cancellation import CancellationToken
from ..utils.logging import LogSink
from .base import BaseService
from .process_runner import ProcessRunner


def parse_frame_rate(value: Any) -> float:
    """Convert an ffprobe rate such as ``"30000/1001"`` to frames per second.

    Plain numbers are accepted. A zero denominator or an unparsable value
    yields 0.0.
    """
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return max(0.0, float(value))

    text = str(value).strip()
    try:
        if "/" in text:
            numerator, denominator = text.split("/", 1)
            den = float(denominator)
            if den == 0:
                return 0.0
            return max(0.0, float(numerator) / den)
        return max(0.0, float(text))
    except ValueError:
        return 0.0


def _to_float(value: Any) -> float:
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return 0.0


def _to_int(value: Any) -> int:
    try:
        return max(0, int(float(value)))
    except (TypeError, ValueError):
        return 0


def parse_probe_output(data: Dict[str, Any]) -> ProbeMetadata:
    """Build :class:`ProbeMetadata` from ffprobe JSON output.

    Missing fields are left at zero. Only the first video and first audio
    stream are considered.
    """
    format_info = data.get("format") or {}
    duration = _to_float(format_info.get("duration"))

    width = height = 0
    frame_rate = 0.0
    has_audio = False
    channels = sample_rate = 0
    seen_video = False

    for stream in data.get("streams") or []:
        codec_type = stream.get("codec_type")
        if codec_type == "video" and not seen_video:
            seen_video = True
            width = _to_int(stream.get("width"))
            height = _to_int(stream.get("height"))
            frame_rate = parse_frame_rate(stream.get("r_frame_rate"))
            if not duration:
                duration = _to_float(stream.get("duration"))
        elif codec_type == "audio" and not has_audio:
            has_audio = True
            channels = _to_int(stream.get("channels"))
            sample_rate = _to_int(stream.get("sample_rate"))

    return ProbeMetadata(
        duration=duration,
        width=width,
        height=height,
        frame_rate=frame_rate,
        has_audio=has_audio,
        audio_channels=channels,
        audio_sample_rate=sample_rate,
    )


class SourceProber(BaseService):
    """Reads duration, resolution, frame rate and audio layout of sources."""

    def __init__(
        self,
        settings: Settings,
        runner: ProcessRunner,
        ffprobe_path: Path,
        log_sink: Optional[LogSink] = None,
    ):
        if log_sink is None:
            log_sink = runner.log_sink
        super().__init__(settings, log_sink)
        self.runner = runner
        self.ffprobe_path = ffprobe_path

    def build_probe_command(self, source_path: Path) -> list:
        return [
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            str(source_path),
        ]

    def probe(
        self, source_path: Path, cancel_token: Optional[CancellationToken] = None
    ) -> ProbeMetadata:
        """Probe one source file.

        Args:
            source_path: File to inspect
            cancel_token: Job cancellation token

        Returns:
            Parsed metadata

        Raises:
            ProbeError: If ffprobe fails or its output cannot be parsed
            JobCancelledError: If the job was cancelled
        """
        self.logger.debug(f"Probing {source_path}")
        result = self.runner.run(
            self.ffprobe_path,
            self.build_probe_command(source_path),
            cancel_token=cancel_token,
            capture_stdout=True,
        )

        if result.exit_code != 0:
            raise ProbeError(
                "ffprobe",
                result.exit_code,
                result.output_tail,
                message=f"Failed to probe {source_path.name}",
                context={"path": str(source_path)},
            )

        try:
            data = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise ProbeError(
                "ffprobe",
                0,
                result.output_tail,
                message=f"Invalid ffprobe output for {source_path.name}: {e}",
                context={"path": str(source_path)},
            ) from e

        if not isinstance(data, dict):
            raise ProbeError(
                "ffprobe",
                0,
                message=f"Unexpected ffprobe output for {source_path.name}",
                context={"path": str(source_path)},
            )

        metadata = parse_probe_output(data)
        self.logger.info(
            f"Probed {source_path.name}: {metadata.duration:.1f}s, "
            f"{metadata.resolution}, {metadata.frame_rate:.3f}fps, "
            f"audio={'yes' if metadata.has_audio else 'no'}"
        )
        return metadata
