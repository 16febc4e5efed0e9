"""Circuit breaker state primitives."""

from dataclasses import dataclass
from enum import StrEnum


class CircuitBreakerState(StrEnum):
    """Circuit breaker admission states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of breaker internals useful for metrics/logging.

    Attributes:
        name: Breaker name.
        state: Admission state at the time of the snapshot.
        failure_count: Weighted count of recent failures.
        threshold: Failure count at which the breaker trips.
        service_level: Health percentage derived from the two counters.
    """

    name: str
    state: CircuitBreakerState
    failure_count: int
    threshold: int
    service_level: float
