"""Circuit breaker exceptions.

Callers can distinguish between:
  - A call being refused because the circuit is open.
  - A call that was attempted and failed inside the guarded operation.
  - A retry budget spent with at least one attempted call failing.
"""

from collections.abc import Sequence

OPEN_CIRCUIT_MESSAGE = "Circuit breaker is currently open"
OPERATION_FAILED_MESSAGE = "Operation failed"
THRESHOLD_MESSAGE = "Threshold must be greater than zero"
RETRIES_FAILED_MESSAGE = "The operation failed on every retry attempt"
RETRIES_REFUSED_MESSAGE = (
    "The operation exhausted all possible retry opportunities while waiting for "
    "the circuit breaker to close"
)


class ReliabilityError(Exception):
    """Base exception for breaker signals."""


class OpenCircuitError(ReliabilityError):
    """Raised when a call is refused because the circuit is open.

    Attributes:
        breaker_name: Name of the breaker refusing the call.
    """

    def __init__(self, breaker_name: str, message: str = OPEN_CIRCUIT_MESSAGE) -> None:
        self.breaker_name = breaker_name
        super().__init__(f"{message}: {breaker_name}")


class OperationFailedError(ReliabilityError):
    """Raised when the guarded operation itself raised.

    Attributes:
        breaker_name: Name of the breaker that admitted the call.
        cause: Exception raised by the guarded operation.
    """

    def __init__(self, breaker_name: str, cause: Exception) -> None:
        self.breaker_name = breaker_name
        self.cause = cause
        super().__init__(f"{OPERATION_FAILED_MESSAGE}: {breaker_name}: {cause!r}")


class RetriesExhaustedError(ExceptionGroup):
    """Raised when the retry budget is spent and at least one attempt failed.

    ``exceptions`` holds the causes in attempt order; refused attempts are not
    included.
    """

    def derive(self, excs: Sequence[Exception]) -> "RetriesExhaustedError":
        return RetriesExhaustedError(self.message, excs)
