from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from reliability_patterns.circuit_breaker import (
    CircuitBreaker,
    OpenCircuitError,
    OperationFailedError,
    RetriesExhaustedError,
)
from reliability_patterns.circuit_breaker.exceptions import (
    RETRIES_FAILED_MESSAGE,
    RETRIES_REFUSED_MESSAGE,
)
from reliability_patterns.logging import log_warning

T = TypeVar("T")

_logger = logging.getLogger(__name__)
_RETRY_ON = retry_if_exception_type((OpenCircuitError, OperationFailedError))


@dataclass(frozen=True)
class RetryOptions:
    """Retry budget and fixed delay between attempts.

    Attributes:
        allowed_retries: Total attempts, refused ones included.
        retry_interval: Seconds slept after every unsuccessful attempt except
            the last.
    """

    allowed_retries: int = 12
    retry_interval: float = 5.0

    def __post_init__(self) -> None:
        if self.allowed_retries < 1:
            raise ValueError("allowed_retries must be >= 1")
        if self.retry_interval < 0:
            raise ValueError("retry_interval must be >= 0")


def _build_retrying_kwargs(
    breaker: CircuitBreaker,
    options: RetryOptions,
    sleep: Callable[[float], Any] | None,
) -> dict[str, Any]:
    def _before_sleep(state: RetryCallState) -> None:
        outcome = state.outcome
        error = None if outcome is None else outcome.exception()
        log_warning(
            _logger,
            "retry.attempt_failed",
            breaker=breaker.name,
            attempt=state.attempt_number,
            allowed_retries=options.allowed_retries,
            refused=isinstance(error, OpenCircuitError),
            retry_in=options.retry_interval,
        )

    kwargs: dict[str, Any] = {
        "retry": _RETRY_ON,
        "stop": stop_after_attempt(options.allowed_retries),
        "wait": wait_fixed(options.retry_interval),
        "before_sleep": _before_sleep,
        "reraise": False,
    }
    if sleep is not None:
        kwargs["sleep"] = sleep
    return kwargs


def build_fixed_interval_retrying(
    breaker: CircuitBreaker,
    options: RetryOptions,
    *,
    sleep: Callable[[float], None] | None = None,
) -> Retrying:
    """Build a ``Retrying`` that retries breaker refusals and failures."""
    return Retrying(**_build_retrying_kwargs(breaker, options, sleep))


def build_fixed_interval_async_retrying(
    breaker: CircuitBreaker,
    options: RetryOptions,
    *,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` that retries breaker refusals and failures."""
    return AsyncRetrying(**_build_retrying_kwargs(breaker, options, sleep))


def _exhausted(
    breaker: CircuitBreaker,
    options: RetryOptions,
    failures: list[Exception],
) -> OpenCircuitError | RetriesExhaustedError:
    log_warning(
        _logger,
        "retry.exhausted",
        breaker=breaker.name,
        allowed_retries=options.allowed_retries,
        failures=len(failures),
    )
    if failures:
        return RetriesExhaustedError(RETRIES_FAILED_MESSAGE, failures)
    return OpenCircuitError(breaker.name, RETRIES_REFUSED_MESSAGE)


def execute_with_retries(
    breaker: CircuitBreaker,
    operation: Callable[[], T],
    options: RetryOptions | None = None,
    *,
    sleep: Callable[[float], None] | None = None,
) -> T:
    """Call ``operation`` through ``breaker``, retrying on refusal or failure.

    Every attempt counts against ``options.allowed_retries``, including those
    refused without invoking ``operation``. The first success is returned.

    Args:
        breaker: Breaker guarding the dependency.
        operation: Zero-argument callable to attempt.
        options: Retry budget and delay. Defaults to ``RetryOptions()``.
        sleep: Replacement for ``time.sleep`` between attempts.

    Raises:
        RetriesExhaustedError: The budget ran out and at least one attempt
            reached ``operation``; holds each failure in attempt order.
        OpenCircuitError: The budget ran out with every attempt refused.
    """
    options = RetryOptions() if options is None else options
    failures: list[Exception] = []
    try:
        for attempt in build_fixed_interval_retrying(breaker, options, sleep=sleep):
            with attempt:
                if not breaker.allowed_to_attempt_execute:
                    raise OpenCircuitError(breaker.name)
                try:
                    return breaker.execute(operation)
                except OperationFailedError as exc:
                    failures.append(exc.cause)
                    raise
    except RetryError:
        pass
    raise _exhausted(breaker, options, failures)


def execute_action_with_retries(
    breaker: CircuitBreaker,
    action: Callable[[], object],
    options: RetryOptions | None = None,
    *,
    sleep: Callable[[float], None] | None = None,
) -> None:
    """Like :func:`execute_with_retries`, discarding the action's result."""
    execute_with_retries(breaker, action, options, sleep=sleep)


async def execute_with_retries_async(
    breaker: CircuitBreaker,
    operation: Callable[[], Awaitable[T]],
    options: RetryOptions | None = None,
    *,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> T:
    """Async counterpart of :func:`execute_with_retries`.

    Delays suspend the calling task only; no breaker lock is held.
    """
    options = RetryOptions() if options is None else options
    failures: list[Exception] = []
    retrying = build_fixed_interval_async_retrying(breaker, options, sleep=sleep)
    try:
        async for attempt in retrying:
            with attempt:
                if not breaker.allowed_to_attempt_execute:
                    raise OpenCircuitError(breaker.name)
                try:
                    return await breaker.execute_async(operation)
                except OperationFailedError as exc:
                    failures.append(exc.cause)
                    raise
    except RetryError:
        pass
    raise _exhausted(breaker, options, failures)


async def execute_action_with_retries_async(
    breaker: CircuitBreaker,
    action: Callable[[], Awaitable[object]],
    options: RetryOptions | None = None,
    *,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> None:
    """Like :func:`execute_with_retries_async`, discarding the result."""
    await execute_with_retries_async(breaker, action, options, sleep=sleep)
