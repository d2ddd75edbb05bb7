"""Configuration settings for dvdiso.

Settings come from defaults, an optional JSON config file and ``DVDISO_*``
environment variables, in increasing order of priority, and are validated
with pydantic.
"""

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigurationError
from ..utils.bitrate import EFFECTIVE_DISC_CAPACITY_GIB
from ..utils.filename import DEFAULT_DISC_LABEL

# Space needed for one job: transcoded streams plus authored copy.
RECOMMENDED_FREE_SPACE_GB = 10.0


class ValidationResult:
    """Container for validation results with error details."""

    def __init__(self) -> None:
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def add_error(self, error: str) -> None:
        self.errors.append(error)

    def add_warning(self, warning: str) -> None:
        self.warnings.append(warning)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    def get_summary(self) -> str:
        """Get a summary of validation results."""
        parts = []
        if self.errors:
            parts.append(f"{len(self.errors)} error(s)")
        if self.warnings:
            parts.append(f"{len(self.warnings)} warning(s)")
        return ", ".join(parts) if parts else "validation passed"

    def raise_if_invalid(self) -> None:
        """Raise ConfigurationError if validation failed."""
        if not self.is_valid:
            error_msg = "Configuration validation failed:\n" + "\n".join(
                f"  - {error}" for error in self.errors
            )
            raise ConfigurationError(
                error_msg, {"errors": self.errors, "warnings": self.warnings}
            )


class Settings(BaseSettings):
    """Application settings with validation."""

    # Directory settings
    tools_dir: Path = Field(default_factory=lambda: Path.cwd() / "tools")
    work_dir: Path = Field(default_factory=lambda: Path.cwd() / "work")
    output_dir: Path = Field(default_factory=lambda: Path.cwd() / "output")
    log_dir: Path = Field(default_factory=lambda: Path.cwd() / "logs")

    # Logging settings
    log_level: str = Field(default="INFO")
    log_file_max_size: int = Field(default=10 * 1024 * 1024)  # 10MB
    log_file_backup_count: int = Field(default=5)
    json_logs: bool = Field(default=True)

    # Tool settings
    use_system_tools: bool = Field(default=True)
    download_tools: bool = Field(default=True)
    download_timeout: float = Field(default=60.0)
    process_kill_timeout: float = Field(default=5.0)

    # Pipeline settings
    strict_probe: bool = Field(default=False)
    keep_work_files: bool = Field(default=False)
    disc_capacity_gib: float = Field(default=EFFECTIVE_DISC_CAPACITY_GIB)
    presets_file: Optional[Path] = Field(default=None)

    # DVD defaults
    video_format: str = Field(default="PAL")
    aspect_ratio: str = Field(default="Auto")
    chapter_interval_minutes: Optional[int] = Field(default=None)
    preset_id: str = Field(default="fit")
    disc_label: str = Field(default=DEFAULT_DISC_LABEL)
    export_folder: bool = Field(default=True)
    export_iso: bool = Field(default=True)

    # Console output settings
    verbose: bool = Field(default=False)
    quiet: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_prefix="DVDISO_",
        case_sensitive=False,
        env_ignore_empty=True,
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @field_validator(
        "log_file_max_size",
        "disc_capacity_gib",
        "process_kill_timeout",
        "download_timeout",
    )
    @classmethod
    def validate_positive(cls, v: float, info: Any) -> float:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @field_validator("log_file_backup_count")
    @classmethod
    def validate_log_file_backup_count(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Log file backup count must be non-negative")
        return v

    @field_validator("video_format")
    @classmethod
    def validate_video_format(cls, v: str) -> str:
        """Validate video format is PAL or NTSC."""
        valid_formats = ["PAL", "NTSC"]
        if v.upper() not in valid_formats:
            raise ValueError(f"Video format must be one of: {', '.join(valid_formats)}")
        return v.upper()

    @field_validator("aspect_ratio")
    @classmethod
    def validate_aspect_ratio(cls, v: str) -> str:
        """Validate aspect ratio is Auto, 4:3 or 16:9."""
        if v.lower() == "auto":
            return "Auto"
        valid_ratios = ["4:3", "16:9"]
        if v not in valid_ratios:
            raise ValueError("Aspect ratio must be one of: Auto, 4:3, 16:9")
        return v

    @field_validator("chapter_interval_minutes")
    @classmethod
    def validate_chapter_interval(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 1 <= v <= 60:
            raise ValueError("Chapter interval must be between 1 and 60 minutes")
        return v

    @field_validator("tools_dir", "work_dir", "output_dir", "log_dir", "presets_file")
    @classmethod
    def validate_directories(cls, v: Union[str, Path, None]) -> Optional[Path]:
        """Convert string paths to absolute Path objects."""
        if v is None:
            return None
        v = Path(v).expanduser()
        if not v.is_absolute():
            v = Path.cwd() / v
        return v

    @field_validator("quiet")
    @classmethod
    def validate_quiet_verbose_conflict(cls, v: bool, info: Any) -> bool:
        """Ensure quiet and verbose are not both True."""
        if v and info.data.get("verbose", False):
            raise ValueError("Cannot use both --quiet and --verbose flags")
        return v

    @model_validator(mode="after")
    def validate_cross_field_constraints(self) -> "Settings":
        """Cross-field validation."""
        result = ValidationResult()
        self._validate_directory_config(result)
        self._validate_output_config(result)
        result.raise_if_invalid()
        return self

    def _validate_directory_config(self, result: ValidationResult) -> None:
        directories = {
            "tools_dir": self.tools_dir,
            "work_dir": self.work_dir,
            "output_dir": self.output_dir,
        }

        resolved_dirs: Dict[str, Path] = {}
        for name, path in directories.items():
            resolved = path.resolve()
            for other_name, other in resolved_dirs.items():
                if other == resolved:
                    result.add_error(
                        f"Directory conflict: {name} and {other_name} "
                        f"resolve to the same path: {resolved}"
                    )
            resolved_dirs[name] = resolved

        work = resolved_dirs["work_dir"]
        output = resolved_dirs["output_dir"]
        if output.is_relative_to(work):
            result.add_error(
                f"output_dir ({output}) must not be inside work_dir ({work})"
            )

    def _validate_output_config(self, result: ValidationResult) -> None:
        if not self.export_folder and not self.export_iso:
            result.add_error(
                "At least one of export_folder and export_iso must be enabled"
            )

    def _validate_logging_config(self, result: ValidationResult) -> None:
        total_log_space = self.log_file_max_size * (self.log_file_backup_count + 1)
        if total_log_space > 500 * 1024 * 1024:  # 500MB
            total_mb = total_log_space / (1024 * 1024)
            result.add_warning(
                f"Total log file space usage could reach {total_mb:.1f}MB"
            )

    def _validate_tool_config(self, result: ValidationResult) -> None:
        if not self.use_system_tools and not self.download_tools:
            result.add_warning(
                "System tools and tool downloads are both disabled - "
                f"all tools must already be present in {self.tools_dir}"
            )

    def _validate_disk_space(self, result: ValidationResult) -> None:
        for name, path in (("work", self.work_dir), ("output", self.output_dir)):
            check_path = path if path.exists() else path.parent
            if not check_path.exists():
                continue
            try:
                free_gb = shutil.disk_usage(check_path).free / (1024**3)
            except OSError:
                continue
            if free_gb < RECOMMENDED_FREE_SPACE_GB:
                result.add_warning(
                    f"Low disk space for {name} directory ({check_path}): "
                    f"only {free_gb:.1f}GB available"
                )

    def validate_comprehensive(self) -> ValidationResult:
        """Perform comprehensive validation and return detailed results.

        Unlike model validation this never raises; callers decide how to
        handle the reported problems.
        """
        result = ValidationResult()
        self._validate_directory_config(result)
        self._validate_output_config(result)
        self._validate_logging_config(result)
        self._validate_tool_config(result)
        self._validate_disk_space(result)
        return result

    def create_directories(self) -> None:
        """Create all configured directories if they don't exist."""
        for directory in (self.tools_dir, self.work_dir, self.log_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def get_effective_log_level(self) -> str:
        """Get the effective log level considering verbose/quiet flags."""
        if self.quiet:
            return "ERROR"
        if self.verbose:
            return "DEBUG"
        return self.log_level

    @property
    def disc_capacity_bytes(self) -> float:
        return self.disc_capacity_gib * 1024**3

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary for serialization."""
        return {
            key: str(value) if isinstance(value, Path) else value
            for key, value in self.model_dump().items()
        }

    def save_to_file(self, config_file: Path) -> None:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load_config(
        cls, config_file: Optional[Path] = None, **overrides: Any
    ) -> "Settings":
        """Load configuration from file and environment variables.

        Priority order:
        1. Explicit overrides
        2. Environment variables
        3. Config file
        4. Default values
        """
        init_kwargs: Dict[str, Any] = {}

        if config_file and config_file.exists():
            try:
                with open(config_file, "r", encoding="utf-8") as f:
                    file_config = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                raise ConfigurationError(
                    f"Failed to load config from {config_file}: {e}"
                ) from e
            if not isinstance(file_config, dict):
                raise ConfigurationError(
                    f"Config file {config_file} must contain a JSON object"
                )
            init_kwargs.update(file_config)

        # Environment variables take priority over the config file.
        for key in list(init_kwargs):
            if os.environ.get(f"DVDISO_{key.upper()}"):
                del init_kwargs[key]

        init_kwargs.update(overrides)
        return cls(**init_kwargs)


def get_default_config_file() -> Path:
    """Get the default configuration file path."""
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config_home:
        return Path(xdg_config_home) / "dvdiso" / "config.json"
    return Path.home() / ".config" / "dvdiso" / "config.json"


def load_settings(
    config_file: Optional[Path] = None, validate: bool = True, **overrides: Any
) -> Settings:
    """Load application settings from configuration file and environment.

    Args:
        config_file: Optional path to configuration file.
                    If None, uses default location.
        validate: Whether to perform comprehensive validation and log warnings.
        **overrides: Values taking priority over file and environment

    Returns:
        Settings instance with loaded configuration.

    Raises:
        ConfigurationError: If the file cannot be read or validation fails.
    """
    if config_file is None:
        config_file = get_default_config_file()

    settings = Settings.load_config(config_file, **overrides)

    if validate:
        validation_result = settings.validate_comprehensive()
        for warning in validation_result.warnings:
            logging.warning(f"Configuration warning: {warning}")
        validation_result.raise_if_invalid()

    return settings


def validate_settings(settings: Settings, strict: bool = False) -> ValidationResult:
    """Validate settings and return detailed results.

    Args:
        settings: Settings object to validate
        strict: If True, treats warnings as errors

    Returns:
        ValidationResult with detailed validation information
    """
    result = settings.validate_comprehensive()

    if strict and result.has_warnings:
        for warning in result.warnings:
            result.add_error(f"Strict mode: {warning}")
        result.warnings.clear()

    return result
