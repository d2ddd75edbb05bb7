"""Exception hierarchy for dvdiso.

All errors raised by the package derive from :class:`DVDIsoError`, which
carries an optional context dictionary for debugging. Errors raised while a
conversion job runs derive from :class:`PipelineError` and are attributed to
the stage and external tool that produced them.
"""

from typing import Any, Dict, Optional, Sequence


class DVDIsoError(Exception):
    """Base exception for all dvdiso errors.

    Attributes:
        context: Optional dictionary containing additional error context
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        """Initialize the error.

        Args:
            message: The error message
            context: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.context = context or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        base_message = super().__str__()
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base_message} (context: {context_str})"
        return base_message


class ConfigurationError(DVDIsoError):
    """Raised when application settings are invalid."""


class PresetError(DVDIsoError):
    """Raised when a presets file cannot be loaded or a preset is unknown."""


class PipelineError(DVDIsoError):
    """Error raised while a conversion job runs.

    The orchestrator fills in ``stage`` when a stage service leaves it unset,
    so every failure reaching the caller names the stage it happened in.

    Attributes:
        stage: Name of the pipeline stage that failed
        tool: Name of the external tool involved, if any
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        tool: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.message = message
        self.stage = stage
        self.tool = tool

    def describe(self) -> str:
        """Return a user-facing description naming stage and tool."""
        prefix = f"[{self.stage}] " if self.stage else ""
        tool = f"{self.tool}: " if self.tool else ""
        return f"{prefix}{tool}{self}"


class JobValidationError(PipelineError):
    """Raised when a job request is malformed.

    Always raised before any external process is started.
    """


class ToolMissingError(PipelineError):
    """Raised when a required external executable cannot be found."""

    def __init__(
        self,
        tool: str,
        message: Optional[str] = None,
        stage: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message or f"Required tool not found: {tool}",
            stage=stage,
            tool=tool,
            context=context,
        )


class ToolExecutionError(PipelineError):
    """Raised when an external process exits with a non-zero code.

    Attributes:
        exit_code: Exit code reported by the process
        output_tail: Last lines of the process output
    """

    def __init__(
        self,
        tool: str,
        exit_code: int,
        output_tail: Optional[Sequence[str]] = None,
        message: Optional[str] = None,
        stage: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message or f"{tool} exited with code {exit_code}",
            stage=stage,
            tool=tool,
            context=context,
        )
        self.exit_code = exit_code
        self.output_tail = list(output_tail or [])

    def describe(self) -> str:
        """Return description including the captured output tail."""
        description = super().describe()
        if self.output_tail:
            tail = "\n".join(f"    {line}" for line in self.output_tail)
            description = f"{description}\n  Last output:\n{tail}"
        return description


class ProbeError(ToolExecutionError):
    """Raised when a source file cannot be probed."""


class OutputIntegrityError(PipelineError):
    """Raised when a tool reported success but its output is missing or incomplete."""


class JobCancelledError(PipelineError):
    """Raised when the user cancels a running job. Not a fault."""

    def __init__(
        self,
        message: str = "Job cancelled by user",
        stage: Optional[str] = None,
        tool: Optional[str] = None,
    ):
        super().__init__(message, stage=stage, tool=tool)
