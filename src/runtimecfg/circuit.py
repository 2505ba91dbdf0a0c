"""
Caller-side Resilience: Circuit Breaker and Exponential Backoff

The resolver core never retries. The monitor loop wraps each collaborator
call (health probe, membership query) with these helpers instead:

    cb = CircuitBreaker(threshold=5, timeout=60, service_name="api_health",
                        structured_logger=structured_logger)
    healthy = cb.call(exponential_backoff_retry, probe.check, max_retries=2)

States:
    CLOSED     calls go through; consecutive failures are counted
    OPEN       calls are rejected with CircuitOpenError until ``timeout`` expires
    HALF_OPEN  one trial call decides between CLOSED and OPEN again

A success in any state resets the failure count. State is guarded by a lock;
the protected call itself runs outside it.
"""

import logging
import os
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple, Type

from .structured_events import StructuredEventLogger

logger = logging.getLogger(os.getenv("LOGGER_NAME", "RUNTIMECFG"))

CLOSED = "CLOSED"
OPEN = "OPEN"
HALF_OPEN = "HALF_OPEN"


class CircuitOpenError(Exception):
    """Raised instead of calling a service whose circuit is open."""


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker for one collaborator.

    Attributes:
        threshold (int): Consecutive failures that open the circuit.
        timeout (int): Seconds the circuit stays OPEN before a trial call.
        service_name (str): Name used in log messages and events.
        failure_count (int): Current run of consecutive failures.
        last_failure (float | None): time.monotonic() of the latest failure.
        state (str): CLOSED, OPEN or HALF_OPEN.
    """

    def __init__(self,
                 threshold: int = 5,
                 timeout: int = 300,
                 service_name: str = "unknown",
                 structured_logger: Optional[StructuredEventLogger] = None):
        if threshold < 1:
            raise ValueError("Threshold must be >= 1")
        if timeout < 1:
            raise ValueError("Timeout must be >= 1")

        self.threshold = threshold
        self.timeout = timeout
        self.service_name = service_name
        self.structured_logger = structured_logger

        self.failure_count = 0
        self.last_failure: Optional[float] = None
        self.state = CLOSED
        self.lock = threading.Lock()

    def _notify(self, event_name: str, failure_count: int, error_message: Optional[str] = None) -> None:
        if self.structured_logger:
            self.structured_logger.log_circuit_breaker_event(
                service=self.service_name, event_name=event_name,
                failure_count=failure_count, error_message=error_message)

    def _seconds_until_retry(self) -> float:
        if self.last_failure is None:
            return 0.0
        return self.timeout - (time.monotonic() - self.last_failure)

    def _admit(self) -> None:
        """Reject the call while OPEN, or move to HALF_OPEN once the timeout expired. Caller holds the lock."""
        if self.state != OPEN:
            return

        remaining = self._seconds_until_retry()
        if remaining > 0:
            self._notify("call_blocked", self.failure_count,
                         f"Circuit breaker OPEN, {int(remaining)}s remaining")
            raise CircuitOpenError(f"Circuit breaker OPEN for {self.service_name}")

        self.state = HALF_OPEN
        logger.info(f"Circuit breaker for {self.service_name} is HALF_OPEN, allowing a trial call")
        self._notify("half_open", self.failure_count)

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Run ``func(*args, **kwargs)`` unless the circuit is open.

        Raises:
            CircuitOpenError: While OPEN and the timeout has not expired.
            Exception: Whatever ``func`` raised, after it was counted.
        """
        with self.lock:
            self._admit()

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            with self.lock:
                self.record_failure(str(e))
            raise

        with self.lock:
            if self.state != CLOSED or self.failure_count:
                self.reset()
        return result

    def record_failure(self, error_message: Optional[str] = None) -> None:
        """Count one failure. Caller holds the lock."""
        self.failure_count += 1
        self.last_failure = time.monotonic()

        if self.state != OPEN and (self.state == HALF_OPEN or self.failure_count >= self.threshold):
            self.state = OPEN
            logger.warning(f"Circuit breaker OPEN for {self.service_name} "
                           f"({self.failure_count} consecutive failures): {error_message}")
            self._notify("opened", self.failure_count, error_message)
        else:
            logger.debug(f"{self.service_name} failure {self.failure_count}/{self.threshold}")
            self._notify("failure_recorded", self.failure_count, error_message)

    def reset(self) -> None:
        """Close the circuit after a success. Caller holds the lock."""
        previous_state, previous_failures = self.state, self.failure_count
        self.state = CLOSED
        self.failure_count = 0
        self.last_failure = None

        if previous_state != CLOSED:
            logger.info(f"Circuit breaker CLOSED for {self.service_name} after "
                        f"{previous_failures} failures")
            self._notify("closed", previous_failures)

    def get_state(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "service_name": self.service_name,
                "state": self.state,
                "failure_count": self.failure_count,
                "threshold": self.threshold,
                "timeout": self.timeout,
                "time_until_retry": max(0, int(self._seconds_until_retry())) if self.state == OPEN else None,
            }


def exponential_backoff_retry(func: Callable,
                              max_retries: int = 3,
                              initial_delay: float = 1.0,
                              max_delay: float = 60.0,
                              backoff_factor: float = 2.0,
                              retry_on: Tuple[Type[BaseException], ...] = (Exception,)) -> Any:
    """
    Call ``func()`` until it succeeds or the retries are used up.

    The n-th retry waits ``min(initial_delay * backoff_factor ** (n - 1), max_delay)``
    seconds. Exceptions outside ``retry_on`` propagate immediately.

    Args:
        func (Callable): Zero-argument callable.
        max_retries (int): Retries after the first attempt, >= 0.
        initial_delay (float): Delay before the first retry, > 0.
        max_delay (float): Cap for any delay, >= initial_delay.
        backoff_factor (float): Multiplier per retry, >= 1.0.
        retry_on (tuple): Exception types that are retried.

    Raises:
        ValueError: For invalid parameters.
        Exception: The last exception once every attempt failed.
    """
    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")
    if initial_delay <= 0:
        raise ValueError("initial_delay must be > 0")
    if max_delay < initial_delay:
        raise ValueError("max_delay must be >= initial_delay")
    if backoff_factor < 1.0:
        raise ValueError("backoff_factor must be >= 1.0")

    name = getattr(func, '__name__', repr(func))
    delay = initial_delay
    attempt = 0
    while True:
        try:
            return func()
        except retry_on as e:
            if attempt >= max_retries:
                logger.error(f"{name} failed after {attempt + 1} attempts: {e}")
                raise
            wait = min(delay, max_delay)
            logger.warning(f"{name} failed (attempt {attempt + 1}/{max_retries + 1}): {e}; "
                           f"retrying in {wait:.2f}s")
            time.sleep(wait)
            delay *= backoff_factor
            attempt += 1
