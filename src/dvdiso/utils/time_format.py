"""Time formatting utilities."""

import re
from typing import List, Optional

_FFMPEG_TIME = re.compile(r"time=\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")


def format_duration_human_readable(duration_seconds: float) -> str:
    """Format duration in seconds to a human-readable string.

    Args:
        duration_seconds: Duration in seconds

    Returns:
        Formatted duration string (e.g., "1h 23m 45s", "23m 45s", "45s")
    """
    total = int(duration_seconds)
    if total < 0:
        return "0s"

    hours = total // 3600
    minutes = (total % 3600) // 60
    seconds = total % 60

    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if seconds > 0 or not parts:
        parts.append(f"{seconds}s")

    return " ".join(parts)


def format_chapter_timestamp(seconds: int) -> str:
    """Format an offset as ``H:MM:SS`` for dvdauthor chapter lists."""
    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"


def chapter_offsets(duration_seconds: float, interval_minutes: int) -> List[int]:
    """Chapter start offsets in seconds for one title.

    A chapter always starts at zero. Further marks are placed every
    ``interval_minutes`` strictly before the end of the title; an unknown
    (zero) duration yields only the initial mark.
    """
    step = max(1, int(interval_minutes)) * 60
    offsets = [0]
    position = step
    while position < duration_seconds:
        offsets.append(position)
        position += step
    return offsets


def parse_ffmpeg_time(line: str) -> Optional[float]:
    """Extract the ``time=HH:MM:SS.ss`` position from an ffmpeg status line.

    Returns:
        Position in seconds, or None if the line has no time field
    """
    match = _FFMPEG_TIME.search(line)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)
