"""Error taxonomy for load-test runs.

Only ``ConfigurationError`` ever escapes ``LoadTester.run_load_test``; the
failure types are recorded in the run's error histogram by message.
"""

TIMEOUT_MESSAGE = "Request timeout"
CANCELLED_MESSAGE = "Request cancelled"


class LoadTestError(Exception):
    """Base class for engine errors."""
    pass


class ConfigurationError(LoadTestError, ValueError):
    """Invalid load-test configuration; raised before any run state exists."""
    pass


class OperationFailure(LoadTestError):
    """The target raised or returned a non-success response."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TimeoutFailure(OperationFailure):
    """The target did not settle within the per-request timeout."""

    def __init__(self, message: str = TIMEOUT_MESSAGE):
        super().__init__(message)


def error_message(exc: BaseException) -> str:
    """Histogram key for a failed attempt."""
    if isinstance(exc, OperationFailure):
        return exc.message
    return str(exc) or type(exc).__name__
