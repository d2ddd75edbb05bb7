"""Base service class for dvdiso services."""

from typing import Any, Optional

from ..config.settings import Settings
from ..utils.logging import LogSink, get_logger


def _with_context(message: str, context: dict) -> str:
    if not context:
        return message
    details = ", ".join(f"{key}={value}" for key, value in context.items())
    return f"{message} (context: {details})"


class BaseService:
    """Base class for pipeline services.

    Services share the application settings, a module logger and the job's
    log sink. The sink receives the output of every external tool a service
    launches, so one sink per job collects the whole job's tool output.
    """

    def __init__(self, settings: Settings, log_sink: Optional[LogSink] = None):
        """Initialize the base service.

        Args:
            settings: Application settings object
            log_sink: Sink for tool output; a private one is created if omitted
        """
        self.settings = settings
        self.log_sink = log_sink if log_sink is not None else LogSink()
        self.logger = get_logger(self.__class__.__module__)
        self.logger.debug(f"{self.__class__.__name__} initialized")

    def _log_operation_start(self, operation: str, **context: Any) -> None:
        self.logger.info(_with_context(f"Starting {operation}", context))

    def _log_operation_complete(self, operation: str, **context: Any) -> None:
        self.logger.info(_with_context(f"Completed {operation}", context))

    def _log_operation_error(
        self, operation: str, error: Exception, **context: Any
    ) -> None:
        self.logger.error(_with_context(f"Failed {operation}: {error}", context))
