"""Data models for dvdiso."""

from .job import (
    AspectMode,
    ChapterMode,
    ConvertJobRequest,
    ConvertProgress,
    DvdMode,
    DvdSettings,
    JobResult,
    JobStage,
    JobState,
    OutputSettings,
)
from .preset import (
    AudioPreset,
    EncodeMode,
    PresetDefinition,
    PresetsRoot,
    VideoPreset,
)
from .source import ProbeMetadata, SourceItem

__all__ = [
    "AspectMode",
    "AudioPreset",
    "ChapterMode",
    "ConvertJobRequest",
    "ConvertProgress",
    "DvdMode",
    "DvdSettings",
    "EncodeMode",
    "JobResult",
    "JobStage",
    "JobState",
    "OutputSettings",
    "PresetDefinition",
    "PresetsRoot",
    "ProbeMetadata",
    "SourceItem",
    "VideoPreset",
]
