"""Shared utilities for vidqueue CLI commands.

- Logging option state and one-time logging configuration
- Config loading with user-facing errors
- Executor construction
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import typer
from rich.console import Console

from vidqueue.backends.base import VideoExecutor
from vidqueue.backends.gemini import GeminiVideoExecutor
from vidqueue.core.config import QueueConfig, load_config
from vidqueue.core.errors import ConfigError
from vidqueue.core.logging import configure_logging, get_logger

_logger = get_logger("cli")


# =============================================================================
# Logging configuration
# =============================================================================


@dataclass
class CliLoggingConfig:
    """Logging options collected from global CLI flags."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None
    file: Path | None = None
    format: Literal["json", "console", "both"] = "console"
    configured: bool = False


_log_config = CliLoggingConfig()


def set_log_level(level: str) -> None:
    _log_config.level = level.upper()  # type: ignore[assignment]


def set_log_file(path: Path | None) -> None:
    """Set the log file path. Console output continues alongside the JSON file."""
    _log_config.file = path
    if path and _log_config.format == "console":
        _log_config.format = "both"


def set_log_format(fmt: str) -> None:
    _log_config.format = fmt.lower()  # type: ignore[assignment]


def configure_global_logging(console: Console) -> None:
    """Configure logging from the global CLI options, once per session.

    Raises:
        typer.Exit: If the options are inconsistent.
    """
    if _log_config.configured:
        return
    try:
        configure_logging(
            level=_log_config.level or "WARNING",
            format=_log_config.format,
            file_path=_log_config.file,
        )
        _log_config.configured = True
    except (ValueError, AttributeError) as e:
        console.print(f"[red]Logging configuration error:[/red] {e}")
        raise typer.Exit(1) from None


def reset_logging_state() -> None:
    """Reset CLI logging state (for tests)."""
    global _log_config
    _log_config = CliLoggingConfig()


# =============================================================================
# Config and executor
# =============================================================================


def load_config_or_exit(path: Path | None, console: Console) -> QueueConfig:
    """Load configuration, printing the error and exiting 2 on failure."""
    try:
        config = load_config(path)
    except ConfigError as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(2) from None
    apply_config_logging(config, console)
    return config


def apply_config_logging(config: QueueConfig, console: Console) -> None:
    """Fill logging options the command line left unset from the config file.

    Logging is reconfigured only when the config actually changes something.
    """
    changed = False
    if _log_config.level is None and config.log_level is not None:
        set_log_level(config.log_level)
        changed = True
    if _log_config.file is None and config.log_file is not None:
        set_log_file(config.log_file)
        changed = True
    if changed:
        _log_config.configured = False
        configure_global_logging(console)


def create_executor(config: QueueConfig) -> VideoExecutor:
    """Build the executor jobs run against."""
    _logger.debug("cli.executor_created", executor="gemini", output_dir=str(config.output_dir))
    return GeminiVideoExecutor(config.gemini, config.output_dir)


__all__ = [
    "CliLoggingConfig",
    "apply_config_logging",
    "configure_global_logging",
    "create_executor",
    "load_config_or_exit",
    "reset_logging_state",
    "set_log_file",
    "set_log_format",
    "set_log_level",
]
