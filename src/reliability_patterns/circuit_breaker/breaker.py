"""Core circuit breaker implementation."""

from __future__ import annotations

import logging
import threading
from collections.abc import Awaitable, Callable, Sequence
from functools import partial
from typing import ParamSpec, TypeVar

from reliability_patterns.circuit_breaker.events import BreakerListener, EventHook
from reliability_patterns.circuit_breaker.exceptions import (
    THRESHOLD_MESSAGE,
    OpenCircuitError,
    OperationFailedError,
)
from reliability_patterns.circuit_breaker.state import (
    BreakerSnapshot,
    CircuitBreakerState,
)
from reliability_patterns.circuit_breaker.timer import (
    ResetTimer,
    TimerFactory,
    threading_reset_timer,
)
from reliability_patterns.logging import log_info, log_warning

T = TypeVar("T")
P = ParamSpec("P")

_logger = logging.getLogger(__name__)

_TRIPPABLE = frozenset({CircuitBreakerState.CLOSED, CircuitBreakerState.HALF_OPEN})
_RESETTABLE = frozenset({CircuitBreakerState.OPEN, CircuitBreakerState.HALF_OPEN})
_PROBING = frozenset({CircuitBreakerState.HALF_OPEN})
_OPEN = frozenset({CircuitBreakerState.OPEN})


class CircuitBreaker:
    """Stateful admission gate around a dangerous operation.

    ``CLOSED`` admits calls and counts failures. Reaching ``threshold`` trips
    the breaker to ``OPEN``, which refuses calls until ``reset_timeout``
    elapses. The breaker then moves to ``HALF_OPEN`` and the next outcome
    decides: success closes it, failure reopens it regardless of the count.

    Successes decay the failure count by one, so ``service_level`` recovers
    gradually instead of snapping back to 100.
    """

    def __init__(
        self,
        threshold: int = 5,
        reset_timeout: float = 60.0,
        *,
        name: str = "circuit_breaker",
        listeners: Sequence[BreakerListener] | None = None,
        timer_factory: TimerFactory | None = None,
    ) -> None:
        """Build a circuit breaker.

        Args:
            threshold: Failures tolerated before the circuit trips.
            reset_timeout: Seconds spent ``OPEN`` before a probe is allowed.
            name: Breaker name used in log fields and error messages.
            listeners: Listeners subscribed to both notification hooks.
            timer_factory: Builds the one-shot reset timer for each ``OPEN``
                episode. Defaults to a daemon ``threading.Timer``.
        """
        if threshold <= 0:
            raise ValueError(THRESHOLD_MESSAGE)
        if reset_timeout < 0:
            raise ValueError("reset_timeout must be >= 0")

        self.name = name
        self._threshold = threshold
        self._reset_timeout = float(reset_timeout)
        self._timer_factory = (
            threading_reset_timer if timer_factory is None else timer_factory
        )

        self._state = CircuitBreakerState.CLOSED
        self._state_lock = threading.Lock()
        self._timer: ResetTimer | None = None
        self._episode = 0

        self._failure_count = 0
        self._count_lock = threading.Lock()

        self.state_changed: EventHook[
            [CircuitBreaker, CircuitBreakerState, CircuitBreakerState]
        ] = EventHook("state_changed")
        self.service_level_changed: EventHook[[CircuitBreaker, float]] = EventHook(
            "service_level_changed"
        )
        for listener in listeners or ():
            self.state_changed.subscribe(listener.on_state_change)
            self.service_level_changed.subscribe(listener.on_service_level_change)

    def __repr__(self) -> str:
        return (
            f"CircuitBreaker(name={self.name!r}, state={self._state.value}, "
            f"failure_count={self._failure_count}, threshold={self._threshold})"
        )

    @property
    def state(self) -> CircuitBreakerState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def threshold(self) -> int:
        """Failures tolerated before the circuit trips.

        Lowering it does not trip the breaker or clamp ``failure_count``; the
        next failure does.
        """
        return self._threshold

    @threshold.setter
    def threshold(self, value: int) -> None:
        if value <= 0:
            raise ValueError(THRESHOLD_MESSAGE)
        self._threshold = value

    @property
    def reset_timeout(self) -> float:
        """Seconds spent ``OPEN``. Changes apply from the next trip."""
        return self._reset_timeout

    @reset_timeout.setter
    def reset_timeout(self, value: float) -> None:
        if value < 0:
            raise ValueError("reset_timeout must be >= 0")
        self._reset_timeout = float(value)

    @property
    def service_level(self) -> float:
        """Health percentage: 0 means offline, 100 means no recent failures."""
        threshold = self._threshold
        level = (threshold - self._failure_count) / threshold * 100
        return min(max(level, 0.0), 100.0)

    @property
    def allowed_to_attempt_execute(self) -> bool:
        return self._state in _TRIPPABLE

    def snapshot(self) -> BreakerSnapshot:
        return BreakerSnapshot(
            name=self.name,
            state=self._state,
            failure_count=self._failure_count,
            threshold=self._threshold,
            service_level=self.service_level,
        )

    def execute(
        self,
        operation: Callable[P, T],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke ``operation`` under circuit breaker protection.

        Args:
            operation: Dangerous callable to execute.
            *args: Positional arguments forwarded to ``operation``.
            **kwargs: Keyword arguments forwarded to ``operation``.

        Returns:
            The result of ``operation``.

        Raises:
            OpenCircuitError: When the circuit is open; ``operation`` is not
                invoked.
            OperationFailedError: When ``operation`` raised. The original
                exception is available as ``cause``.
        """
        self._admit()
        try:
            result = operation(*args, **kwargs)
        except Exception as exc:
            self._record_failure()
            raise OperationFailedError(self.name, exc) from exc
        self._record_success()
        return result

    async def execute_async(
        self,
        operation: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Await ``operation`` under circuit breaker protection.

        Same transitions as :meth:`execute`. Outcomes are recorded when the
        awaited call completes, so calls in flight together are all admitted
        against the state observed before any of them finished.
        """
        self._admit()
        try:
            result = await operation(*args, **kwargs)
        except Exception as exc:
            self._record_failure()
            raise OperationFailedError(self.name, exc) from exc
        self._record_success()
        return result

    def trip(self) -> None:
        """Force the circuit open. No effect when already ``OPEN``."""
        self._transition(_TRIPPABLE, CircuitBreakerState.OPEN)

    def reset(self) -> None:
        """Force the circuit closed. No effect when already ``CLOSED``."""
        self._transition(_RESETTABLE, CircuitBreakerState.CLOSED)

    def _admit(self) -> None:
        # Not atomic with _record_failure/_record_success: a burst of callers
        # can all pass this check before any outcome is recorded, so the
        # threshold is a soft bound on in-flight attempts. Do not hold a lock
        # across the guarded call.
        if self._state == CircuitBreakerState.OPEN:
            log_info(_logger, "circuit_breaker.call_rejected", breaker=self.name)
            raise OpenCircuitError(self.name)

    def _record_failure(self) -> None:
        if self._state == CircuitBreakerState.HALF_OPEN:
            self.trip()
            return

        with self._count_lock:
            incremented = self._failure_count < self._threshold
            if incremented:
                self._failure_count += 1
            exhausted = self._failure_count >= self._threshold

        if incremented:
            self.service_level_changed.emit(self, self.service_level)
        if exhausted:
            self.trip()

    def _record_success(self) -> None:
        if self._state == CircuitBreakerState.HALF_OPEN:
            self._transition(_PROBING, CircuitBreakerState.CLOSED)

        with self._count_lock:
            decremented = self._failure_count > 0
            if decremented:
                self._failure_count -= 1

        if decremented:
            self.service_level_changed.emit(self, self.service_level)

    def _on_reset_timer(self, episode: int) -> None:
        self._transition(_OPEN, CircuitBreakerState.HALF_OPEN, episode=episode)

    def _transition(
        self,
        allowed: frozenset[CircuitBreakerState],
        new: CircuitBreakerState,
        *,
        episode: int | None = None,
    ) -> bool:
        """Move to ``new`` if the current state is in ``allowed``.

        The reset timer runs exactly while ``OPEN``: leaving ``OPEN`` cancels
        it and entering ``OPEN`` arms a fresh one tagged with a new episode.
        A timer firing for an older episode is ignored.
        """
        armed: ResetTimer | None = None
        with self._state_lock:
            old = self._state
            if old not in allowed:
                return False
            if episode is not None and episode != self._episode:
                return False
            self._state = new
            stale, self._timer = self._timer, None
            if new == CircuitBreakerState.OPEN:
                self._episode += 1
                armed = self._timer_factory(
                    self._reset_timeout,
                    partial(self._on_reset_timer, self._episode),
                )
                self._timer = armed

        if stale is not None:
            stale.cancel()
        if armed is not None:
            armed.start()

        log = log_warning if new == CircuitBreakerState.OPEN else log_info
        log(
            _logger,
            "circuit_breaker.state_changed",
            breaker=self.name,
            old_state=old.value,
            new_state=new.value,
            failure_count=self._failure_count,
        )
        self.state_changed.emit(self, old, new)
        return True
