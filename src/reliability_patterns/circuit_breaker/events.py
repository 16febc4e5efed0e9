"""Notification hooks for circuit breakers."""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Generic, ParamSpec, Protocol

from reliability_patterns.circuit_breaker.state import CircuitBreakerState
from reliability_patterns.logging import log_warning

if TYPE_CHECKING:
    from reliability_patterns.circuit_breaker.breaker import CircuitBreaker

P = ParamSpec("P")
_logger = logging.getLogger(__name__)


class EventHook(Generic[P]):
    """Ordered observer list keyed by subscription handle.

    Callbacks run synchronously on the emitting thread in registration order.
    A callback that raises is logged and skipped so the remaining subscribers
    and the emitting breaker are unaffected.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._handles = itertools.count(1)
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callable[P, None]] = {}

    def __len__(self) -> int:
        return len(self._callbacks)

    def subscribe(self, callback: Callable[P, None]) -> int:
        """Register ``callback`` and return the handle used to unsubscribe it."""
        with self._lock:
            handle = next(self._handles)
            self._callbacks[handle] = callback
        return handle

    def unsubscribe(self, handle: int) -> bool:
        """Remove a subscription. Returns ``False`` for unknown handles."""
        with self._lock:
            return self._callbacks.pop(handle, None) is not None

    def emit(self, *args: P.args, **kwargs: P.kwargs) -> None:
        with self._lock:
            callbacks = tuple(self._callbacks.values())
        for callback in callbacks:
            try:
                callback(*args, **kwargs)
            except Exception:
                callback_name = getattr(
                    callback, "__qualname__", callback.__class__.__qualname__
                )
                log_warning(
                    _logger,
                    "circuit_breaker.listener_failed",
                    hook=self.name,
                    callback=callback_name,
                    exc_info=True,
                )


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker notifications.

    Notes:
        Both hooks fire after the mutation they report, never before.
    """

    def on_state_change(
        self,
        breaker: CircuitBreaker,
        old: CircuitBreakerState,
        new: CircuitBreakerState,
    ) -> None:
        """Handle circuit state transitions."""

    def on_service_level_change(
        self, breaker: CircuitBreaker, service_level: float
    ) -> None:
        """Handle a failure count change and the resulting service level."""
