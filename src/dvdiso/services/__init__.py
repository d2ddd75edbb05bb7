"""Services for dvdiso."""

from .base import BaseService
from .cleanup import CleanupManager, CleanupStats
from .dvd_author import AuthoredDVD, AuthoredTitle, DvdAuthor
from .exporter import FolderExporter
from .iso_builder import (
    ImgBurnIsoBuilder,
    IsoBuilder,
    IsoMaker,
    MkisofsIsoBuilder,
    XorrisoIsoBuilder,
    default_builders,
)
from .pipeline import ConvertPipeline, JobHandle, JobRunner
from .process_runner import ProcessResult, ProcessRunner
from .prober import SourceProber
from .tool_manager import ToolManager
from .transcoder import DvdTranscoder

__all__ = [
    "AuthoredDVD",
    "AuthoredTitle",
    "BaseService",
    "CleanupManager",
    "CleanupStats",
    "ConvertPipeline",
    "DvdAuthor",
    "DvdTranscoder",
    "FolderExporter",
    "ImgBurnIsoBuilder",
    "IsoBuilder",
    "IsoMaker",
    "JobHandle",
    "JobRunner",
    "MkisofsIsoBuilder",
    "ProcessResult",
    "ProcessRunner",
    "SourceProber",
    "ToolManager",
    "XorrisoIsoBuilder",
    "default_builders",
]
