"""Configuration models for vidqueue.

Defines Pydantic v2 models for scheduler limits, the Gemini video API
executor, and the selectable models/aspect ratios. All values are fixed at
process start; nothing is negotiated at runtime.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from vidqueue.core.errors import ConfigError
from vidqueue.core.logging import get_logger

_logger = get_logger("core.config")


class SchedulerConfig(BaseModel):
    """Admission limits for the job scheduler."""

    max_concurrent_jobs: int = Field(
        default=2,
        ge=1,
        le=64,
        description="Maximum jobs in Processing at the same time.",
    )
    rate_limit_job_count: int = Field(
        default=5,
        ge=1,
        description="Maximum job admissions inside one rate window.",
    )
    rate_limit_window_ms: int = Field(
        default=60_000,
        gt=0,
        description="Length of the trailing rate window in milliseconds.",
    )

    @property
    def rate_limit_window_seconds(self) -> float:
        """Rate window length in seconds."""
        return self.rate_limit_window_ms / 1000.0


class GeminiConfig(BaseModel):
    """Configuration for the Gemini (Veo) video generation API.

    Example YAML:
        gemini:
          api_key_env: GEMINI_API_KEY
          poll_interval_seconds: 10
          max_poll_attempts: 90
    """

    base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Base URL of the Generative Language REST API",
    )
    api_key_env: str = Field(
        default="GEMINI_API_KEY",
        description="Environment variable name containing the API key.",
    )
    poll_interval_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Delay between polls of a running generation operation.",
    )
    max_poll_attempts: int | None = Field(
        default=90,
        ge=1,
        description="Polls before giving up on an operation. None polls forever.",
    )
    request_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Timeout for a single HTTP request.",
    )
    model_aliases: dict[str, str] = Field(
        default_factory=lambda: {"veo-3.0-fast-preview": "veo-2.0-generate-001"},
        description="Map of user-facing model names to API model names.",
    )

    def api_model(self, model: str) -> str:
        """Resolve a user-facing model name to the name the API expects."""
        return self.model_aliases.get(model, model)


class QueueConfig(BaseModel):
    """Top-level vidqueue configuration.

    Follows the same Field() conventions throughout. Loaded from YAML with
    ``QueueConfig.from_yaml`` or built with defaults.
    """

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    models: list[str] = Field(
        default_factory=lambda: ["veo-3.0-fast-preview", "veo-2.0-generate-001"],
        description="Selectable model identifiers. The first is the default.",
    )
    aspect_ratios: list[str] = Field(
        default_factory=lambda: ["9:16", "16:9"],
        description="Selectable aspect ratios.",
    )
    default_aspect_ratio: str = Field(
        default="16:9",
        description="Aspect ratio used when a job does not specify one.",
    )
    output_dir: Path = Field(
        default=Path("videos"),
        description="Directory where downloaded videos are written.",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = Field(
        default=None,
        description="Minimum log level when --log-level is not given. "
        "None keeps the CLI default (WARNING).",
    )
    log_file: Path | None = Field(
        default=None,
        description="JSON log file when --log-file is not given. "
        "None means log to stderr only.",
    )

    @field_validator("models", "aspect_ratios")
    @classmethod
    def _non_empty_unique(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("must contain at least one value")
        if len(v) != len(set(v)):
            raise ValueError("must not contain duplicates")
        return v

    @model_validator(mode="after")
    def _default_aspect_ratio_selectable(self) -> QueueConfig:
        if self.default_aspect_ratio not in self.aspect_ratios:
            raise ValueError(
                f"default_aspect_ratio {self.default_aspect_ratio!r} is not one of "
                f"{self.aspect_ratios}"
            )
        return self

    @property
    def default_model(self) -> str:
        return self.models[0]

    @classmethod
    def from_yaml(cls, path: Path) -> QueueConfig:
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data or {})


def load_config(path: Path | None = None) -> QueueConfig:
    """Load a QueueConfig, falling back to defaults when no path is given.

    Raises:
        ConfigError: If the file cannot be read, parsed or validated.
    """
    if path is None:
        return QueueConfig()
    try:
        config = QueueConfig.from_yaml(path)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e
    _logger.debug("config.loaded", path=str(path))
    return config


__all__ = ["GeminiConfig", "QueueConfig", "SchedulerConfig", "load_config"]
