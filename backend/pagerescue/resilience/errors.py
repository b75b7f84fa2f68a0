# pagerescue/resilience/errors.py
class ResilienceError(Exception):
    """Base for errors raised by the resilience primitives themselves."""

class RetryExhaustedError(ResilienceError):
    """All attempts failed with retryable errors. `last_error` is also chained as __cause__."""

    def __init__(self, last_error: BaseException, attempts: int):
        super().__init__(f"Operation failed after {attempts} attempt(s): {last_error}")
        self.last_error = last_error
        self.attempts = attempts

class CircuitOpenError(ResilienceError):
    """Breaker is open (or a half-open trial call is already in flight); the operation was not invoked."""

    def __init__(self, name: str, retry_after_seconds: float | None = None):
        msg = f"Circuit '{name}' is OPEN - dependency temporarily unavailable"
        if retry_after_seconds is not None:
            msg += f" (retry in {retry_after_seconds:.1f}s)"
        super().__init__(msg)
        self.name = name
        self.retry_after_seconds = retry_after_seconds
