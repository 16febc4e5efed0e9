"""In-process circuit breaker for sync and async operations.

Key behavior notes:
  - One breaker guards one logical dependency; nothing is persisted or shared
    across instances.
  - Admission is best effort. The ``OPEN`` check and the failure bookkeeping
    are separate steps, so concurrent callers may all be admitted before any
    outcome is recorded.
  - Successes decay the failure count by one rather than clearing it, and a
    ``HALF_OPEN`` failure always reopens the circuit.
  - Notifications fire synchronously on the mutating thread, after the change.
"""

from reliability_patterns.circuit_breaker.breaker import CircuitBreaker
from reliability_patterns.circuit_breaker.events import BreakerListener, EventHook
from reliability_patterns.circuit_breaker.exceptions import (
    OpenCircuitError,
    OperationFailedError,
    ReliabilityError,
    RetriesExhaustedError,
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

__all__ = [
    "BreakerListener",
    "BreakerSnapshot",
    "CircuitBreaker",
    "CircuitBreakerState",
    "EventHook",
    "OpenCircuitError",
    "OperationFailedError",
    "ReliabilityError",
    "ResetTimer",
    "RetriesExhaustedError",
    "TimerFactory",
    "threading_reset_timer",
]
