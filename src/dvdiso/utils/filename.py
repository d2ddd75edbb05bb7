"""Disc label normalization."""

import re

from unidecode import unidecode

from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_DISC_LABEL = "DVDVIDEO"
MAX_DISC_LABEL_LENGTH = 32

_WHITESPACE = re.compile(r"\s+")
_LABEL_DISALLOWED = re.compile(r"[^A-Z0-9_-]")


def normalize_to_ascii(text: str) -> str:
    """Transliterate text to plain ASCII.

    Args:
        text: Input text, possibly containing non-ASCII characters

    Returns:
        ASCII approximation of the text
    """
    return unidecode(text)


def sanitize_disc_label(label: str, fallback: str = DEFAULT_DISC_LABEL) -> str:
    """Convert arbitrary text into a valid volume label.

    The result is uppercase, contains only ``A-Z``, ``0-9``, ``_`` and ``-``,
    is at most 32 characters long and never empty. Sanitizing an already
    sanitized label returns it unchanged.

    Args:
        label: User supplied label
        fallback: Label used when nothing valid remains

    Returns:
        Sanitized volume label
    """
    text = normalize_to_ascii(label or "").strip().upper()
    text = _WHITESPACE.sub("_", text)
    text = _LABEL_DISALLOWED.sub("", text)
    text = text[:MAX_DISC_LABEL_LENGTH].strip("_-")

    if not text:
        if label and label.strip():
            logger.debug(f"Disc label {label!r} fully stripped, using {fallback}")
        return fallback

    if text != label:
        logger.trace(  # type: ignore[attr-defined]
            f"Sanitized disc label {label!r} to {text!r}"
        )
    return text
