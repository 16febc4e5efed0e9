"""One-shot reset timers used to leave the ``OPEN`` state."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Protocol


class ResetTimer(Protocol):
    """One-shot, cancelable timer armed once per ``OPEN`` episode."""

    def start(self) -> None:
        """Arm the timer."""

    def cancel(self) -> None:
        """Cancel a pending firing. No-op once fired or cancelled."""


TimerFactory = Callable[[float, Callable[[], None]], ResetTimer]


def threading_reset_timer(interval: float, callback: Callable[[], None]) -> ResetTimer:
    """Build a daemon :class:`threading.Timer` firing ``callback`` once."""
    timer = threading.Timer(max(interval, 0.0), callback)
    timer.daemon = True
    return timer
