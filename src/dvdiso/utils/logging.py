"""Logging utilities: TRACE level, structured JSON output and the tool log sink."""

import json
import logging
import logging.handlers
import shlex
import threading
import uuid
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Deque, Generator, List, Optional, Sequence

# Add TRACE level
TRACE_LEVEL = 5
logging.addLevelName(TRACE_LEVEL, "TRACE")


def trace(self: logging.Logger, message: str, *args: Any, **kwargs: Any) -> None:
    """Log a message with severity 'TRACE'."""
    if self.isEnabledFor(TRACE_LEVEL):
        self._log(TRACE_LEVEL, message, args, **kwargs)


logging.Logger.trace = trace  # type: ignore[attr-defined]

_context = threading.local()

_STANDARD_RECORD_FIELDS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "taskName", "correlation_id", "operation", "component"}


class ContextFilter(logging.Filter):
    """Filter to add job/operation context to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = getattr(_context, "correlation_id", None)
        record.operation = getattr(_context, "operation", None)
        record.component = getattr(_context, "component", None)

        for key, value in getattr(_context, "context", {}).items():
            setattr(record, key, value)

        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured log files."""

    def __init__(self, include_traceback: bool = True) -> None:
        super().__init__()
        self.include_traceback = include_traceback

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for key in ("correlation_id", "operation", "component"):
            value = getattr(record, key, None)
            if value:
                log_entry[key] = value

        context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_RECORD_FIELDS and not key.startswith("_")
        }
        if context:
            log_entry["context"] = context

        if record.exc_info and self.include_traceback:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(log_entry, default=str, ensure_ascii=False)


def setup_logging(
    log_dir: Path,
    log_level: str = "INFO",
    log_file: str = "dvdiso.log",
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    console_output: bool = True,
    json_format: bool = True,
) -> None:
    """Set up logging configuration.

    Args:
        log_dir: Directory for log files
        log_level: Logging level
        log_file: Name of the main log file
        max_file_size: Maximum size of log files before rotation
        backup_count: Number of backup files to keep
        console_output: Whether to output logs to console
        json_format: Whether to use JSON formatting for the log file
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = TRACE_LEVEL if log_level.upper() == "TRACE" else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(TRACE_LEVEL)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    context_filter = ContextFilter()

    file_handler = logging.handlers.RotatingFileHandler(
        log_dir / log_file,
        maxBytes=max_file_size,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(numeric_level)

    if json_format:
        file_formatter: logging.Formatter = JSONFormatter(include_traceback=True)
    else:
        file_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    file_handler.setFormatter(file_formatter)
    file_handler.addFilter(context_filter)
    root_logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(levelname)s - %(message)s", datefmt="%H:%M:%S"
            )
        )
        root_logger.addHandler(console_handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Set correlation ID for current thread, generating one if None."""
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())

    _context.correlation_id = correlation_id
    return correlation_id


def get_correlation_id() -> Optional[str]:
    """Get current correlation ID."""
    return getattr(_context, "correlation_id", None)


@contextmanager
def operation_context(
    operation: str,
    component: Optional[str] = None,
    correlation_id: Optional[str] = None,
    **kwargs: Any,
) -> Generator[str, None, None]:
    """Context manager attaching operation context to log records.

    Args:
        operation: Operation name
        component: Component name
        correlation_id: Correlation ID (generates UUID if None)
        **kwargs: Additional context

    Yields:
        The correlation ID
    """
    saved = {
        attr: getattr(_context, attr, None)
        for attr in ("correlation_id", "operation", "component")
    }
    saved_context = dict(getattr(_context, "context", {}))

    try:
        actual_correlation_id = set_correlation_id(correlation_id)
        _context.operation = operation
        _context.component = component
        _context.context = {**saved_context, **kwargs}

        yield actual_correlation_id

    finally:
        for attr, value in saved.items():
            if value is not None:
                setattr(_context, attr, value)
            elif hasattr(_context, attr):
                delattr(_context, attr)
        _context.context = saved_context


def format_command(executable: Any, arguments: Sequence[str]) -> str:
    """Render a command line for log output."""
    return " ".join(shlex.quote(str(part)) for part in [executable, *arguments])


@dataclass(frozen=True)
class LogLine:
    """A single line of external tool output."""

    source: str
    stream: str
    text: str
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"[{self.source}:{self.stream}] {self.text}"


LogSubscriber = Callable[[LogLine], None]


class LogSink:
    """Append-only stream of external tool output.

    A sink is created per job and handed to every component that launches
    processes. Lines are forwarded to the ``dvdiso.tools`` logger and to any
    subscribers as they arrive, so observers see tool output in near real
    time. Only the most recent ``max_lines`` lines are retained.
    """

    def __init__(
        self, max_lines: int = 5000, logger: Optional[logging.Logger] = None
    ) -> None:
        self._lines: Deque[LogLine] = deque(maxlen=max_lines)
        self._subscribers: List[LogSubscriber] = []
        self._lock = threading.Lock()
        self._logger = logger or get_logger("dvdiso.tools")

    def write(self, source: str, text: str, stream: str = "info") -> LogLine:
        """Append a line to the sink and notify subscribers."""
        line = LogLine(source=source, stream=stream, text=text.rstrip("\r\n"))
        with self._lock:
            self._lines.append(line)
            subscribers = list(self._subscribers)

        self._logger.debug(str(line))
        for subscriber in subscribers:
            subscriber(line)
        return line

    def subscribe(self, subscriber: LogSubscriber) -> None:
        """Register a callable receiving every subsequent line."""
        with self._lock:
            self._subscribers.append(subscriber)

    def lines(self, source: Optional[str] = None) -> List[LogLine]:
        """Return a snapshot of retained lines, optionally for one source."""
        with self._lock:
            snapshot = list(self._lines)
        if source is None:
            return snapshot
        return [line for line in snapshot if line.source == source]

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)
