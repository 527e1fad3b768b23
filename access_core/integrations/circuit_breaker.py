"""
Circuit breaker for calls to remote authorities.
"""
from enum import Enum
from datetime import datetime, timedelta
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """States of the circuit breaker."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised when a call is attempted while the circuit is open."""

    def __init__(self, name: str):
        super().__init__(f"Circuit breaker {name} is OPEN")
        self.name = name


class CircuitBreaker:
    """
    Stops calling a failing dependency until it has had time to recover.

    - CLOSED: calls pass through
    - OPEN: calls are rejected immediately
    - HALF_OPEN: a single trial call decides whether to close again
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        expected_exception: type = Exception,
        name: Optional[str] = None
    ):
        self.name = name or "CircuitBreaker"
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self.failure_count = 0
        self.last_failure_time: Optional[datetime] = None
        self.state = CircuitState.CLOSED
        self._half_open_attempts = 0

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def record_success(self):
        if self.state == CircuitState.HALF_OPEN:
            logger.info(f"{self.name}: Circuit recovered, closing")

        self.failure_count = 0
        self._half_open_attempts = 0
        self.state = CircuitState.CLOSED

    def record_failure(self, exception: Optional[Exception] = None):
        self.failure_count += 1
        self.last_failure_time = datetime.now()

        if self.state == CircuitState.HALF_OPEN:
            self._half_open_attempts += 1
            logger.warning(f"{self.name}: Trial call failed, reopening circuit")
            self.state = CircuitState.OPEN

        elif self.failure_count >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                logger.error(
                    f"{self.name}: Failure threshold reached "
                    f"({self.failure_count}/{self.failure_threshold}), opening circuit: {exception}"
                )
            self.state = CircuitState.OPEN

    def can_attempt(self) -> bool:
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            if self.last_failure_time and \
               datetime.now() - self.last_failure_time > timedelta(seconds=self.recovery_timeout):
                logger.info(f"{self.name}: Recovery timeout reached, attempting recovery")
                self.state = CircuitState.HALF_OPEN
                self._half_open_attempts = 0
                return True
            return False

        return self._half_open_attempts == 0

    def reset(self):
        self.failure_count = 0
        self.last_failure_time = None
        self._half_open_attempts = 0
        self.state = CircuitState.CLOSED

    def __enter__(self):
        if not self.can_attempt():
            raise CircuitOpenError(self.name)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.record_success()
        elif issubclass(exc_type, self.expected_exception):
            self.record_failure(exc_val)

        # Don't suppress the exception
        return False
