"""Source video data models."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

from ..utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProbeMetadata:
    """Metadata reported by the probe tool for one source file."""

    duration: float = 0.0  # Duration in seconds
    width: int = 0
    height: int = 0
    frame_rate: float = 0.0
    has_audio: bool = False
    audio_channels: int = 0
    audio_sample_rate: int = 0

    def __post_init__(self) -> None:
        """Validate probe metadata after initialization."""
        if self.duration < 0:
            raise ValueError("duration must be non-negative")
        if self.width < 0 or self.height < 0:
            raise ValueError("width and height must be non-negative")
        if self.frame_rate < 0:
            raise ValueError("frame_rate must be non-negative")

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass
class SourceItem:
    """An input video file added to a conversion job.

    The path is fixed at construction. Probed fields start at zero/False and
    are filled in by the prober; stages must cope with them staying unset.
    """

    path: Path
    duration: float = 0.0
    width: int = 0
    height: int = 0
    frame_rate: float = 0.0
    has_audio: bool = False
    audio_channels: int = 0
    audio_sample_rate: int = 0
    probed: bool = False

    def __post_init__(self) -> None:
        """Validate source item after initialization."""
        object.__setattr__(self, "path", Path(self.path))
        if not str(self.path):
            raise ValueError("path cannot be empty")
        if self.duration < 0:
            raise ValueError("duration must be non-negative")
        if self.width < 0 or self.height < 0:
            raise ValueError("width and height must be non-negative")

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "path" and "path" in self.__dict__:
            raise AttributeError("SourceItem.path cannot be changed")
        super().__setattr__(name, value)

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "SourceItem":
        return cls(path=Path(path))

    def apply_probe(self, metadata: ProbeMetadata) -> None:
        """Store probed metadata on this item.

        Applying the same metadata again leaves the item unchanged.

        Args:
            metadata: Metadata returned by the prober
        """
        self.duration = metadata.duration
        self.width = metadata.width
        self.height = metadata.height
        self.frame_rate = metadata.frame_rate
        self.has_audio = metadata.has_audio
        self.audio_channels = metadata.audio_channels
        self.audio_sample_rate = metadata.audio_sample_rate
        self.probed = True

        logger.debug(
            f"Probed {self.path.name}: {self.duration:.1f}s "
            f"{self.width}x{self.height} @ {self.frame_rate:.3f}fps, "
            f"audio={self.has_audio} ({self.audio_channels}ch "
            f"{self.audio_sample_rate}Hz)"
        )

    @property
    def name(self) -> str:
        return self.path.name
