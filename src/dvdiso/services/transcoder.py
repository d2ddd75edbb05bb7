"""Transcoding sources into DVD-compliant MPEG-2 program streams with ffmpeg."""

import os
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from ..config.settings import Settings
from ..exceptions import OutputIntegrityError
from ..models.job import DvdSettings
from ..models.preset import PresetDefinition
from ..models.source import SourceItem
from ..utils.cancellation import CancellationToken
from ..utils.logging import LogSink
from ..utils.time_format import parse_ffmpeg_time
from .base import BaseService
from .process_runner import ProcessRunner

# Called with (completed_fraction, message) where the fraction covers all sources.
TranscodeProgress = Callable[[float, str], None]


def output_name(index: int) -> str:
    """File name of the encoded stream for the source at ``index`` (0-based)."""
    return f"title_{index + 1:02d}.mpg"


class DvdTranscoder(BaseService):
    """Encodes each source into one MPEG program stream, in input order."""

    def __init__(
        self,
        settings: Settings,
        runner: ProcessRunner,
        ffmpeg_path: Path,
        log_sink: Optional[LogSink] = None,
    ):
        if log_sink is None:
            log_sink = runner.log_sink
        super().__init__(settings, log_sink)
        self.runner = runner
        self.ffmpeg_path = ffmpeg_path

    def build_transcode_command(
        self,
        source: Path,
        output: Path,
        dvd: DvdSettings,
        preset: PresetDefinition,
        video_kbps: int,
        pass_number: Optional[int] = None,
        passlog_prefix: Optional[Path] = None,
    ) -> List[str]:
        """Build ffmpeg arguments for one encode.

        Args:
            source: Input file
            output: Destination ``.mpg`` file
            dvd: DVD mode, aspect and chapter settings
            preset: Active encoding preset
            video_kbps: Video bitrate chosen for the job
            pass_number: 1 or 2 for two-pass encodes, None for single pass
            passlog_prefix: Shared statistics file prefix for two-pass encodes

        Returns:
            Argument list, without the executable
        """
        width, height = dvd.mode.frame_size
        video = preset.video
        audio = preset.audio
        max_rate = max(video.max_rate_kbps, video_kbps)
        min_rate = min(video.min_rate_kbps, video_kbps)

        cmd = [
            "-hide_banner",
            "-nostdin",
            "-y",
            "-i",
            str(source),
            "-target",
            dvd.mode.target,
            "-s",
            f"{width}x{height}",
            "-r",
            dvd.mode.frame_rate,
        ]

        if dvd.aspect.encoder_flag:
            cmd.extend(["-aspect", dvd.aspect.encoder_flag])

        cmd.extend(
            [
                "-b:v",
                f"{video_kbps}k",
                "-maxrate",
                f"{max_rate}k",
                "-minrate",
                f"{min_rate}k",
                "-bufsize",
                f"{video.buf_size_kbps}k",
            ]
        )

        if pass_number == 1:
            cmd.extend(
                [
                    "-an",
                    "-pass",
                    "1",
                    "-passlogfile",
                    str(passlog_prefix),
                    "-f",
                    "mpeg2video",
                    os.devnull,
                ]
            )
            return cmd

        cmd.extend(
            [
                "-c:a",
                audio.codec,
                "-b:a",
                f"{audio.bitrate_kbps}k",
                "-ar",
                str(audio.sample_rate_hz),
                "-ac",
                str(audio.channels),
            ]
        )

        if pass_number == 2:
            cmd.extend(["-pass", "2", "-passlogfile", str(passlog_prefix)])

        cmd.append(str(output))
        return cmd

    def transcode_source(
        self,
        source: SourceItem,
        output: Path,
        dvd: DvdSettings,
        preset: PresetDefinition,
        video_kbps: int,
        cancel_token: Optional[CancellationToken] = None,
        on_position: Optional[Callable[[float], None]] = None,
    ) -> Path:
        """Encode one source.

        Args:
            source: Source to encode
            output: Destination file
            dvd: DVD settings
            preset: Active preset
            video_kbps: Video bitrate for the job
            cancel_token: Job cancellation token
            on_position: Called with the completed fraction (0-1) of this
                source's final pass as ffmpeg reports its position

        Returns:
            Path of the encoded stream

        Raises:
            ToolExecutionError: If ffmpeg exits with a non-zero code
            OutputIntegrityError: If ffmpeg reported success without output
            JobCancelledError: If the job was cancelled
        """
        self._log_operation_start(
            "transcode", source=source.name, video_kbps=video_kbps
        )

        passes: Sequence[Optional[int]] = (1, 2) if preset.video.two_pass else (None,)
        passlog_prefix = output.with_suffix("") if preset.video.two_pass else None

        if output.exists():
            output.unlink()

        for pass_number in passes:
            cmd = self.build_transcode_command(
                source.path,
                output,
                dvd,
                preset,
                video_kbps,
                pass_number=pass_number,
                passlog_prefix=passlog_prefix,
            )
            callback = None
            if on_position is not None and source.duration > 0:
                callback = self._position_callback(
                    source.duration, pass_number, len(passes), on_position
                )

            self.runner.run(
                self.ffmpeg_path,
                cmd,
                working_dir=output.parent,
                cancel_token=cancel_token,
                line_callback=callback,
            ).check()

        if not output.exists() or output.stat().st_size == 0:
            raise OutputIntegrityError(
                f"ffmpeg reported success but produced no output for {source.name}",
                tool="ffmpeg",
                context={"output": str(output)},
            )

        if passlog_prefix is not None:
            for stats in output.parent.glob(f"{passlog_prefix.name}*.log*"):
                stats.unlink()

        self._log_operation_complete(
            "transcode",
            source=source.name,
            size_mb=f"{output.stat().st_size / (1024 * 1024):.1f}",
        )
        return output

    @staticmethod
    def _position_callback(
        duration: float,
        pass_number: Optional[int],
        pass_count: int,
        on_position: Callable[[float], None],
    ) -> Callable[[str, str], None]:
        pass_index = (pass_number or 1) - 1

        def callback(stream: str, line: str) -> None:
            position = parse_ffmpeg_time(line)
            if position is None:
                return
            fraction = min(1.0, position / duration)
            on_position((pass_index + fraction) / pass_count)

        return callback

    def transcode_sources(
        self,
        sources: Sequence[SourceItem],
        output_dir: Path,
        dvd: DvdSettings,
        preset: PresetDefinition,
        video_kbps: int,
        cancel_token: Optional[CancellationToken] = None,
        progress: Optional[TranscodeProgress] = None,
    ) -> List[Path]:
        """Encode all sources in order.

        Cancellation is checked before each source. Progress is reported as
        the fraction of all sources completed, with each source taking an
        equal share.

        Returns:
            Encoded stream paths, one per source, in input order
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        total = len(sources)
        outputs: List[Path] = []

        for index, source in enumerate(sources):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            message = f"Encoding {index + 1}/{total}: {source.name}"
            if progress is not None:
                progress(index / total, message)

            def on_position(
                fraction: float, index: int = index, msg: str = message
            ) -> None:
                if progress is not None:
                    progress((index + fraction) / total, msg)

            outputs.append(
                self.transcode_source(
                    source,
                    output_dir / output_name(index),
                    dvd,
                    preset,
                    video_kbps,
                    cancel_token=cancel_token,
                    on_position=on_position,
                )
            )

        if progress is not None:
            progress(1.0, f"Encoded {total} source(s)")
        return outputs
