"""Encoding preset models loaded from ``presets.json``."""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def match_enum_value(enum_cls: Any, value: Any) -> Any:
    """Resolve enum members case-insensitively by value or name."""
    if isinstance(value, str):
        lowered = value.strip().lower()
        for member in enum_cls:
            if lowered in (member.value.lower(), member.name.lower()):
                return member
    return value


class EncodeMode(str, Enum):
    """How the video bitrate of a preset is chosen."""

    FIT = "Fit"
    BEST = "Best"
    FAST = "Fast"


class _PresetModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )


class AudioPreset(_PresetModel):
    """Audio encoding parameters."""

    codec: str = "ac3"
    bitrate_kbps: int = Field(default=192, gt=0)
    sample_rate_hz: int = Field(default=48000, gt=0)
    channels: int = Field(default=2, ge=1, le=8)


class VideoPreset(_PresetModel):
    """Video encoding parameters. ``target_rate_kbps`` unset means automatic."""

    target_rate_kbps: Optional[int] = Field(default=None, gt=0)
    max_rate_kbps: int = Field(default=8000, gt=0)
    buf_size_kbps: int = Field(default=1835, gt=0)
    min_rate_kbps: int = Field(default=2000, gt=0)
    two_pass: bool = False

    @model_validator(mode="after")
    def validate_rate_bounds(self) -> "VideoPreset":
        if self.min_rate_kbps > self.max_rate_kbps:
            raise ValueError(
                f"min_rate_kbps ({self.min_rate_kbps}) exceeds "
                f"max_rate_kbps ({self.max_rate_kbps})"
            )
        return self


class PresetDefinition(_PresetModel):
    """A named encoding preset."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    encode_mode: EncodeMode = Field(default=EncodeMode.FIT, alias="encodeMode")
    audio: AudioPreset = Field(default_factory=AudioPreset)
    video: VideoPreset = Field(default_factory=VideoPreset)

    @field_validator("encode_mode", mode="before")
    @classmethod
    def parse_encode_mode(cls, v: Any) -> Any:
        return match_enum_value(EncodeMode, v)

    @property
    def is_fit(self) -> bool:
        return self.encode_mode == EncodeMode.FIT


class ChaptersDefaults(_PresetModel):
    mode: str = "Off"
    minutes: int = 5


class PresetsDefaults(_PresetModel):
    """Default job settings stored alongside the presets."""

    dvd_mode: str = "PAL"
    aspect: str = "Auto"
    chapters: ChaptersDefaults = Field(default_factory=ChaptersDefaults)
    preset_id: str = "fit"
    export_folder: bool = True
    export_iso: bool = True
    disc_label: str = "DVDVIDEO"


class PresetsRoot(_PresetModel):
    """Top level of a presets file."""

    version: int = 1
    defaults: PresetsDefaults = Field(default_factory=PresetsDefaults)
    presets: List[PresetDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_ids(self) -> "PresetsRoot":
        seen = set()
        for preset in self.presets:
            key = preset.id.lower()
            if key in seen:
                raise ValueError(f"Duplicate preset id: {preset.id}")
            seen.add(key)
        return self

    def get(self, preset_id: str) -> Optional[PresetDefinition]:
        """Look up a preset by id, ignoring case."""
        wanted = preset_id.lower()
        for preset in self.presets:
            if preset.id.lower() == wanted:
                return preset
        return None
