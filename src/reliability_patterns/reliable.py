"""Apply retry-wrapped breaker calls across a sequence of inputs.

All elements share the same breaker. In the parallel runners a failing element
can trip the breaker and cause sibling elements' attempts to be refused.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from functools import partial
from typing import TypeVar

from reliability_patterns.circuit_breaker import CircuitBreaker
from reliability_patterns.logging import log_warning
from reliability_patterns.retry import (
    RetryOptions,
    execute_with_retries,
    execute_with_retries_async,
)

S = TypeVar("S")
R = TypeVar("R")

PARALLEL_FAILED_MESSAGE = "One or more elements failed after exhausting retries"
_logger = logging.getLogger(__name__)


def _validate_max_concurrency(max_concurrency: int | None) -> None:
    if max_concurrency is not None and max_concurrency < 1:
        raise ValueError("max_concurrency must be >= 1 when provided")


def for_each(
    breaker: CircuitBreaker,
    items: Iterable[S],
    body: Callable[[S], R],
    options: RetryOptions | None = None,
) -> list[R]:
    """Run ``body`` for each item in order, each call retried through ``breaker``.

    The first element whose retries are exhausted raises immediately and the
    remaining items are not processed.

    Returns:
        The results of ``body`` in input order.
    """
    results: list[R] = []
    for item in items:
        results.append(execute_with_retries(breaker, partial(body, item), options))
    return results


def parallel_for_each(
    breaker: CircuitBreaker,
    items: Iterable[S],
    body: Callable[[S], R],
    options: RetryOptions | None = None,
    max_concurrency: int | None = None,
) -> list[R]:
    """Run ``body`` for each item on a bounded thread pool.

    Completion order is unspecified. Every element runs to completion; failed
    elements are reported together afterwards.

    Args:
        breaker: Breaker shared by all workers.
        items: Finite input sequence.
        body: Per-element action.
        options: Retry budget applied to each element independently.
        max_concurrency: Worker bound. ``None`` uses the executor default.

    Returns:
        The results of ``body`` in input order.

    Raises:
        ExceptionGroup: Terminal retry errors of every failed element.
    """
    _validate_max_concurrency(max_concurrency)
    with ThreadPoolExecutor(
        max_workers=max_concurrency,
        thread_name_prefix=f"reliable:{breaker.name}",
    ) as executor:
        futures: list[Future[R]] = [
            executor.submit(
                execute_with_retries,
                breaker,
                partial(body, item),
                options,
            )
            for item in items
        ]
        wait(futures)

    errors: list[Exception] = []
    for index, future in enumerate(futures):
        error = future.exception()
        if error is None:
            continue
        if not isinstance(error, Exception):
            raise error
        log_warning(
            _logger,
            "reliable.element_failed",
            breaker=breaker.name,
            index=index,
            error=error.__class__.__name__,
        )
        errors.append(error)
    if errors:
        raise ExceptionGroup(PARALLEL_FAILED_MESSAGE, errors)
    return [future.result() for future in futures]


async def for_each_async(
    breaker: CircuitBreaker,
    items: Iterable[S],
    body: Callable[[S], Awaitable[R]],
    options: RetryOptions | None = None,
) -> list[R]:
    """Async counterpart of :func:`for_each`."""
    results: list[R] = []
    for item in items:
        result = await execute_with_retries_async(breaker, partial(body, item), options)
        results.append(result)
    return results


async def parallel_for_each_async(
    breaker: CircuitBreaker,
    items: Iterable[S],
    body: Callable[[S], Awaitable[R]],
    options: RetryOptions | None = None,
    max_concurrency: int | None = None,
) -> list[R]:
    """Run ``body`` for each item concurrently inside an ``asyncio.TaskGroup``.

    At most ``max_concurrency`` elements are in flight at once. The first
    failed element cancels the rest and the task group raises its
    ``ExceptionGroup``.
    """
    _validate_max_concurrency(max_concurrency)
    limiter = None if max_concurrency is None else asyncio.Semaphore(max_concurrency)

    async def _run(item: S) -> R:
        operation = partial(body, item)
        if limiter is None:
            return await execute_with_retries_async(breaker, operation, options)
        async with limiter:
            return await execute_with_retries_async(breaker, operation, options)

    async with asyncio.TaskGroup() as group:
        tasks = [group.create_task(_run(item)) for item in items]
    return [task.result() for task in tasks]
