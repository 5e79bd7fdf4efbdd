"""Pytest fixtures for vidqueue tests."""

from __future__ import annotations

import logging
from collections.abc import Generator

import pytest
import structlog

from vidqueue.core.config import QueueConfig, SchedulerConfig

from tests.helpers import FakeExecutor, ManualClock


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset logging state before and after each test."""
    import vidqueue.cli.helpers as cli_helpers

    cli_helpers.reset_logging_state()
    structlog.reset_defaults()

    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    cli_helpers.reset_logging_state()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    for handler in original_handlers:
        root_logger.addHandler(handler)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def queue_config(tmp_path) -> QueueConfig:
    """Default limits (2 concurrent, 5 per minute) writing into tmp_path."""
    return QueueConfig(
        scheduler=SchedulerConfig(
            max_concurrent_jobs=2,
            rate_limit_job_count=5,
            rate_limit_window_ms=60_000,
        ),
        output_dir=tmp_path / "videos",
    )
