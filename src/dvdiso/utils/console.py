"""Console output utilities with color support."""

import os
import sys
from typing import Optional, TextIO


class Colors:
    """ANSI color codes for console output."""

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    BOLD = "\033[1m"
    RESET = "\033[0m"


def supports_color(stream: Optional[TextIO] = None) -> bool:
    """Check if the stream is a terminal that understands ANSI codes."""
    stream = stream or sys.stdout
    if not hasattr(stream, "isatty") or not stream.isatty():
        return False
    if "NO_COLOR" in os.environ:
        return False

    if sys.platform == "win32":
        return (
            os.environ.get("TERM", "").lower() in ("xterm", "xterm-256color")
            or "ANSICON" in os.environ
            or "WT_SESSION" in os.environ
        )
    return True


def _emit(
    message: str, color: str, title: Optional[str], stream: TextIO
) -> None:
    if supports_color(stream):
        if title:
            formatted = (
                f"{color}{Colors.BOLD}{title}:{Colors.RESET} "
                f"{color}{message}{Colors.RESET}"
            )
        else:
            formatted = f"{color}{message}{Colors.RESET}"
    else:
        formatted = f"{title}: {message}" if title else message

    print(formatted, file=stream, flush=True)


def print_error(message: str, title: Optional[str] = None) -> None:
    """Print an error message in red to stderr."""
    _emit(message, Colors.RED, title, sys.stderr)


def print_warning(message: str, title: Optional[str] = None) -> None:
    """Print a warning message in yellow to stderr."""
    _emit(message, Colors.YELLOW, title, sys.stderr)


def print_success(message: str, title: Optional[str] = None) -> None:
    """Print a success message in green."""
    _emit(message, Colors.GREEN, title, sys.stdout)


def print_info(message: str, title: Optional[str] = None) -> None:
    """Print an info message in blue."""
    _emit(message, Colors.BLUE, title, sys.stdout)


def print_progress_line(text: str, width: int = 100) -> None:
    """Rewrite the current terminal line with ``text``."""
    if sys.stdout.isatty():
        sys.stdout.write("\r" + text[:width].ljust(width))
        sys.stdout.flush()
    else:
        print(text, flush=True)


def finish_progress_line() -> None:
    if sys.stdout.isatty():
        sys.stdout.write("\n")
        sys.stdout.flush()
