from __future__ import annotations

import pytest

from tests.reliability_patterns.support.fakes import (
    FakeLogger,
    ManualTimerFactory,
    SleepRecorder,
)


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def timers() -> ManualTimerFactory:
    """Provide a deterministic reset timer factory per test."""
    return ManualTimerFactory()


@pytest.fixture
def sleep() -> SleepRecorder:
    """Provide a ``time.sleep`` replacement that records delays."""
    return SleepRecorder()
