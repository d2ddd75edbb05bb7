"""Utility functions for dvdiso."""

from .bitrate import (
    EFFECTIVE_DISC_CAPACITY_BYTES,
    calculate_fit_video_bitrate,
    resolve_video_bitrate,
)
from .cancellation import CancellationToken
from .filename import (
    DEFAULT_DISC_LABEL,
    normalize_to_ascii,
    sanitize_disc_label,
)
from .logging import (
    LogLine,
    LogSink,
    get_logger,
    operation_context,
    setup_logging,
)
from .platform import (
    detect_architecture,
    detect_os,
    executable_name,
    get_download_url,
    get_install_instructions,
    get_platform_info,
)
from .time_format import (
    chapter_offsets,
    format_chapter_timestamp,
    format_duration_human_readable,
)

__all__ = [
    # Bitrate
    "EFFECTIVE_DISC_CAPACITY_BYTES",
    "calculate_fit_video_bitrate",
    "resolve_video_bitrate",
    # Cancellation
    "CancellationToken",
    # Filename utilities
    "DEFAULT_DISC_LABEL",
    "normalize_to_ascii",
    "sanitize_disc_label",
    # Logging utilities
    "LogLine",
    "LogSink",
    "get_logger",
    "operation_context",
    "setup_logging",
    # Platform utilities
    "detect_architecture",
    "detect_os",
    "executable_name",
    "get_download_url",
    "get_install_instructions",
    "get_platform_info",
    # Time formatting
    "chapter_offsets",
    "format_chapter_timestamp",
    "format_duration_human_readable",
]
