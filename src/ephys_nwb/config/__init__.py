"""Configuration module for the ephys-nwb pipeline.

Load and validate TOML configuration with Pydantic models and environment
overrides. As a Layer 1 module, may import: exceptions, utils.

Example:
    >>> from ephys_nwb.config import load_settings
    >>> settings = load_settings("pipeline.toml")
    >>> settings.events.min_event_count
    25
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

try:
    import tomli as tomllib  # Python < 3.11
except ImportError:
    import tomllib  # Python >= 3.11

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..exceptions import ConfigError

__all__ = [
    "Settings",
    "ProjectConfig",
    "PathsConfig",
    "SessionConfig",
    "SyncConfig",
    "EventsConfig",
    "LoggingConfig",
    "load_settings",
    "ENV_PREFIX",
]

ENV_PREFIX = "EPHYS_NWB_"


# ============================================================================
# Configuration Models
# ============================================================================


class ProjectConfig(BaseModel):
    """Project-level configuration."""

    name: str = Field(default="ephys-nwb-pipeline")


class PathsConfig(BaseModel):
    """Directory paths configuration."""

    raw_root: Path = Field(default=Path("data/raw"))
    output_root: Path = Field(default=Path("data/nwb"))

    @field_validator("raw_root", "output_root", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Path:
        """Expand environment variables and user home in paths."""
        if isinstance(v, str):
            return Path(os.path.expandvars(os.path.expanduser(v)))
        return v


class SessionConfig(BaseModel):
    """Session metadata copied into the NWB file."""

    identifier: str = Field(default="")
    experimenter: str = Field(default="")
    institution: str = Field(default="")
    lab: str = Field(default="")
    description: str = Field(default="")
    experiment_description: str = Field(default="")
    session_start: str = Field(default="", description="ISO date, e.g. 2022-03-08")


class SyncConfig(BaseModel):
    """Drift correction configuration."""

    time_resolution: float = Field(default=1e9, gt=0, description="Required timestamp resolution (ticks/s)")
    gap_factor: float = Field(default=2.0, gt=1.0, description="Pause threshold as a multiple of the sample interval")
    nsx_pattern: str = Field(default="**/*.ns6")


class EventsConfig(BaseModel):
    """Event reconciliation configuration."""

    nev_pattern: str = Field(default="**/*.nev")
    info_pattern: str = Field(default="**/*_info.mat")
    log_pattern: str = Field(default="**/*.txt")
    min_event_count: int = Field(default=25, ge=0)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO")
    structured: bool = Field(default=False)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}, got '{v}'")
        return v_upper


class Settings(BaseModel):
    """Complete pipeline settings."""

    project: ProjectConfig = Field(default_factory=ProjectConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"extra": "forbid"}  # Reject unknown keys


# ============================================================================
# Loading Functions
# ============================================================================


def load_settings(
    toml_path: Path | str | None = None,
    env_prefix: str = ENV_PREFIX,
) -> Settings:
    """Load and validate settings from TOML and environment.

    Args:
        toml_path: Path to TOML configuration file (optional)
        env_prefix: Environment variable prefix (default: EPHYS_NWB_)

    Returns:
        Validated Settings object

    Raises:
        ConfigError: If toml_path doesn't exist or configuration is invalid
    """
    config_dict: dict[str, Any] = {}

    if toml_path is not None:
        toml_path = Path(toml_path)
        if not toml_path.exists():
            raise ConfigError(f"Configuration file not found: {toml_path}", {"path": str(toml_path)})

        with open(toml_path, "rb") as f:
            try:
                config_dict = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigError(f"Invalid TOML in {toml_path}: {e}", {"path": str(toml_path)}) from e

    config_dict = _apply_env_overrides(config_dict, env_prefix)

    try:
        return Settings(**config_dict)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def _apply_env_overrides(config: dict[str, Any], prefix: str) -> dict[str, Any]:
    """Apply environment variable overrides to config dict.

    Supports nested keys with double underscore notation:
    EPHYS_NWB_EVENTS__MIN_EVENT_COUNT=10
    EPHYS_NWB_SYNC__GAP_FACTOR=3.0

    Args:
        config: Configuration dictionary
        prefix: Environment variable prefix

    Returns:
        Configuration with environment overrides applied
    """
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        config_key = key[len(prefix) :].lower()
        parts = config_key.split("__")

        current = config
        for part in parts[:-1]:
            if part not in current:
                current[part] = {}
            current = current[part]

        current[parts[-1]] = value if _is_text_field(parts) else _parse_env_value(value)

    return config


def _is_text_field(parts: list[str]) -> bool:
    """Whether a nested settings key names a str or Path field.

    Text fields keep the raw environment value, so an identifier such as
    20220308 is not parsed into a number first.
    """
    model: type[BaseModel] = Settings
    for part in parts[:-1]:
        field = model.model_fields.get(part)
        if field is None or not (isinstance(field.annotation, type) and issubclass(field.annotation, BaseModel)):
            return False
        model = field.annotation

    field = model.model_fields.get(parts[-1])
    return field is not None and field.annotation in (str, Path)


def _parse_env_value(value: str) -> Any:
    """Parse environment variable value to appropriate type.

    Args:
        value: String value from environment

    Returns:
        Parsed value (bool, int, float, or str)
    """
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False

    try:
        if "." in value or "e" in value.lower():
            return float(value)
        return int(value)
    except ValueError:
        pass

    return value
