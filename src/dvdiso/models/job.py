"""Conversion job data models."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional, Tuple

from ..exceptions import JobCancelledError, PipelineError
from ..utils.filename import sanitize_disc_label
from ..utils.logging import get_logger
from .preset import PresetDefinition, match_enum_value
from .source import SourceItem

logger = get_logger(__name__)

MIN_CHAPTER_MINUTES = 1
MAX_CHAPTER_MINUTES = 60


def _is_blank(value: Any) -> bool:
    return isinstance(value, str) and not value.strip()


class DvdMode(str, Enum):
    """Target DVD video standard."""

    PAL = "PAL"
    NTSC = "NTSC"

    @classmethod
    def parse(cls, value: Any) -> "DvdMode":
        return cls(match_enum_value(cls, value))

    @property
    def frame_size(self) -> Tuple[int, int]:
        return (720, 576) if self is DvdMode.PAL else (720, 480)

    @property
    def frame_rate(self) -> str:
        """Frame rate as accepted by the encoder."""
        return "25" if self is DvdMode.PAL else "30000/1001"

    @property
    def target(self) -> str:
        return "pal-dvd" if self is DvdMode.PAL else "ntsc-dvd"


class AspectMode(str, Enum):
    """Display aspect handling. AUTO leaves the encoder to decide."""

    AUTO = "Auto"
    WIDE = "16:9"
    STANDARD = "4:3"

    @classmethod
    def parse(cls, value: Any) -> "AspectMode":
        if isinstance(value, str):
            aliases = {"anamorphic16x9": cls.WIDE, "standard4x3": cls.STANDARD}
            alias = aliases.get(value.strip().lower())
            if alias is not None:
                return alias
        return cls(match_enum_value(cls, value))

    @property
    def encoder_flag(self) -> Optional[str]:
        return None if self is AspectMode.AUTO else self.value


class ChapterMode(str, Enum):
    OFF = "Off"
    EVERY_N_MINUTES = "EveryNMinutes"

    @classmethod
    def parse(cls, value: Any) -> "ChapterMode":
        return cls(match_enum_value(cls, value))


@dataclass(frozen=True)
class DvdSettings:
    """DVD target settings, fixed for the lifetime of a job."""

    mode: DvdMode = DvdMode.PAL
    aspect: AspectMode = AspectMode.AUTO
    chapter_mode: ChapterMode = ChapterMode.OFF
    chapter_minutes: int = 5
    preset_id: str = "fit"

    def __post_init__(self) -> None:
        """Normalize enum values and clamp the chapter interval."""
        object.__setattr__(self, "mode", DvdMode.parse(self.mode))
        object.__setattr__(self, "aspect", AspectMode.parse(self.aspect))
        object.__setattr__(self, "chapter_mode", ChapterMode.parse(self.chapter_mode))

        clamped = min(
            MAX_CHAPTER_MINUTES, max(MIN_CHAPTER_MINUTES, int(self.chapter_minutes))
        )
        if clamped != self.chapter_minutes:
            logger.debug(
                f"Chapter interval {self.chapter_minutes} clamped to {clamped} minutes"
            )
        object.__setattr__(self, "chapter_minutes", clamped)


@dataclass(frozen=True)
class OutputSettings:
    """Where and what to write. The disc label is sanitized on construction."""

    output_dir: Path
    export_folder: bool = True
    export_iso: bool = True
    disc_label: str = ""
    blank_output_dir: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "blank_output_dir", _is_blank(self.output_dir))
        object.__setattr__(self, "output_dir", Path(self.output_dir))
        object.__setattr__(self, "disc_label", sanitize_disc_label(self.disc_label))

    @property
    def has_output(self) -> bool:
        return self.export_folder or self.export_iso

    @property
    def iso_name(self) -> str:
        return f"{self.disc_label}.iso"


@dataclass(frozen=True)
class ConvertJobRequest:
    """Everything needed to run one conversion job.

    Construction does not validate completeness; the pipeline rejects
    malformed requests in its Prepare stage before any tool runs.
    """

    sources: Tuple[SourceItem, ...]
    dvd: DvdSettings
    output: OutputSettings
    working_dir: Path
    tools_dir: Path
    preset: Optional[PresetDefinition]
    blank_paths: Tuple[str, ...] = field(default=(), init=False, repr=False)

    def __post_init__(self) -> None:
        # Path("") is ".", so empty strings are recorded before coercion
        blank = [
            name
            for name in ("working_dir", "tools_dir")
            if _is_blank(getattr(self, name))
        ]
        if self.output.blank_output_dir:
            blank.insert(0, "output_dir")
        object.__setattr__(self, "blank_paths", tuple(blank))
        object.__setattr__(self, "sources", tuple(self.sources))
        object.__setattr__(self, "working_dir", Path(self.working_dir))
        object.__setattr__(self, "tools_dir", Path(self.tools_dir))

    @property
    def total_duration(self) -> float:
        return sum(source.duration for source in self.sources)


class JobStage(str, Enum):
    """Pipeline stages, in execution order."""

    PREPARE = "Prepare"
    PROBE = "Probe"
    TRANSCODE = "Transcode"
    AUTHOR = "Author"
    VALIDATE = "Validate"
    EXPORT = "Export"
    ISO = "ISO"
    DONE = "Done"


class JobState(str, Enum):
    """Job lifecycle states: the stages plus two terminal outcomes."""

    PREPARE = "Prepare"
    PROBE = "Probe"
    TRANSCODE = "Transcode"
    AUTHOR = "Author"
    VALIDATE = "Validate"
    EXPORT = "Export"
    ISO = "ISO"
    DONE = "Done"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


@dataclass(frozen=True)
class ConvertProgress:
    """A progress snapshot emitted by the pipeline."""

    stage: JobStage
    percent: int
    message: str = ""

    def __post_init__(self) -> None:
        if not 0 <= self.percent <= 100:
            raise ValueError("percent must be between 0 and 100")

    def __str__(self) -> str:
        if self.message:
            return f"{self.percent:3d}% [{self.stage.value}] {self.message}"
        return f"{self.percent:3d}% [{self.stage.value}]"


@dataclass
class JobResult:
    """Outcome of a conversion job."""

    state: JobState
    video_ts_path: Optional[Path] = None
    iso_path: Optional[Path] = None
    error: Optional[PipelineError] = None
    video_bitrate_kbps: Optional[int] = None
    job_dir: Optional[Path] = None
    transcoded_files: Tuple[Path, ...] = field(default_factory=tuple)

    @property
    def success(self) -> bool:
        return self.state == JobState.DONE

    @property
    def cancelled(self) -> bool:
        return self.state == JobState.CANCELLED

    @property
    def artifacts(self) -> Tuple[Path, ...]:
        return tuple(
            path for path in (self.video_ts_path, self.iso_path) if path is not None
        )

    def raise_for_error(self) -> None:
        """Raise the stored error if the job did not succeed."""
        if self.error is not None:
            raise self.error
        if self.state == JobState.CANCELLED:
            raise JobCancelledError()

    @classmethod
    def failed(cls, error: PipelineError, **kwargs: Any) -> "JobResult":
        state = (
            JobState.CANCELLED
            if isinstance(error, JobCancelledError)
            else JobState.FAILED
        )
        return cls(state=state, error=error, **kwargs)


def build_sources(paths: Iterable[Any]) -> Tuple[SourceItem, ...]:
    """Create source items for the given file paths, preserving order."""
    return tuple(SourceItem.from_path(path) for path in paths)
