"""Video bitrate selection for single-layer DVD output."""

import math
from typing import TYPE_CHECKING

from .logging import get_logger

if TYPE_CHECKING:
    from ..models.preset import PresetDefinition

logger = get_logger(__name__)

# Usable space on a single-layer disc after filesystem and navigation overhead.
EFFECTIVE_DISC_CAPACITY_GIB = 4.1
EFFECTIVE_DISC_CAPACITY_BYTES = EFFECTIVE_DISC_CAPACITY_GIB * 1024**3

DEFAULT_VIDEO_BITRATE_KBPS = 5000


def capacity_bytes_from_gib(capacity_gib: float) -> float:
    return capacity_gib * 1024**3


def calculate_fit_video_bitrate(
    total_duration_seconds: float,
    audio_bitrate_kbps: int,
    min_kbps: int,
    max_kbps: int,
    capacity_bytes: float = EFFECTIVE_DISC_CAPACITY_BYTES,
) -> int:
    """Compute the video bitrate that fills the disc.

    The audio track is reserved first; the remaining bits are spread over the
    total duration and the result is clamped to ``[min_kbps, max_kbps]``.
    Longer content never yields a higher bitrate.

    Args:
        total_duration_seconds: Combined duration of all titles. Values below
            one second are treated as one second.
        audio_bitrate_kbps: Audio bitrate in kbit/s
        min_kbps: Lowest acceptable video bitrate
        max_kbps: Highest acceptable video bitrate
        capacity_bytes: Disc budget in bytes

    Returns:
        Video bitrate in kbit/s

    Raises:
        ValueError: If the bounds are inverted or negative
    """
    if min_kbps > max_kbps:
        raise ValueError(f"min_kbps ({min_kbps}) exceeds max_kbps ({max_kbps})")
    if min_kbps < 0 or audio_bitrate_kbps < 0:
        raise ValueError("bitrates must be non-negative")

    seconds = max(1.0, float(total_duration_seconds))
    available_bits = capacity_bytes * 8
    audio_bits = seconds * audio_bitrate_kbps * 1000
    video_bits = max(0.0, available_bits - audio_bits)
    video_kbps = math.floor(video_bits / seconds / 1000)

    result = min(max_kbps, max(min_kbps, video_kbps))
    logger.debug(
        f"Fit bitrate for {seconds:.0f}s with {audio_bitrate_kbps}k audio: "
        f"raw {video_kbps}k, clamped to {result}k [{min_kbps}-{max_kbps}]"
    )
    return result


def resolve_video_bitrate(
    preset: "PresetDefinition",
    total_duration_seconds: float,
    capacity_bytes: float = EFFECTIVE_DISC_CAPACITY_BYTES,
) -> int:
    """Pick the video bitrate for a job.

    Fit presets use :func:`calculate_fit_video_bitrate`. Other presets use
    their fixed target rate, or a default when they do not define one, kept
    within the preset's bounds.
    """
    video = preset.video
    if preset.is_fit:
        return calculate_fit_video_bitrate(
            total_duration_seconds,
            preset.audio.bitrate_kbps,
            video.min_rate_kbps,
            video.max_rate_kbps,
            capacity_bytes,
        )

    target = video.target_rate_kbps or DEFAULT_VIDEO_BITRATE_KBPS
    result = min(video.max_rate_kbps, max(video.min_rate_kbps, target))
    logger.debug(f"Preset {preset.id} uses fixed video bitrate {result}k")
    return result
