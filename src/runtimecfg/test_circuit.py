"""
Unit Tests for Circuit Breaker and Exponential Backoff

Test Coverage:
    - Initialization and validation
    - Failure counting and opening at the threshold
    - Blocking while OPEN, HALF_OPEN after the timeout, recovery to CLOSED
    - Structured events for state changes
    - Backoff delays, retry_on filtering and parameter validation
"""

import threading
import time
import unittest
from unittest.mock import Mock, patch, call

from .circuit import CircuitBreaker, CircuitOpenError, exponential_backoff_retry


def failing(exc=RuntimeError("boom")):
    def func():
        raise exc
    return func


class TestCircuitBreakerInitialization(unittest.TestCase):

    def test_defaults(self):
        cb = CircuitBreaker()
        self.assertEqual(cb.threshold, 5)
        self.assertEqual(cb.timeout, 300)
        self.assertEqual(cb.service_name, "unknown")
        self.assertEqual(cb.state, "CLOSED")
        self.assertIsNone(cb.last_failure)

    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            CircuitBreaker(threshold=0)
        with self.assertRaises(ValueError):
            CircuitBreaker(timeout=0)


class TestCircuitBreakerStates(unittest.TestCase):

    def test_success_passes_arguments(self):
        cb = CircuitBreaker(threshold=3, timeout=60)
        self.assertEqual(cb.call(lambda a, b=None: f"{a}-{b}", "x", b="y"), "x-y")
        self.assertEqual(cb.failure_count, 0)

    def test_opens_at_threshold(self):
        cb = CircuitBreaker(threshold=2, timeout=60, service_name="membership")
        for _ in range(2):
            with self.assertRaises(RuntimeError):
                cb.call(failing())
        self.assertEqual(cb.state, "OPEN")

        func = Mock()
        with self.assertRaises(CircuitOpenError):
            cb.call(func)
        func.assert_not_called()

    def test_success_resets_failure_count(self):
        cb = CircuitBreaker(threshold=3, timeout=60)
        with self.assertRaises(RuntimeError):
            cb.call(failing())
        self.assertEqual(cb.failure_count, 1)
        cb.call(lambda: True)
        self.assertEqual(cb.failure_count, 0)
        self.assertEqual(cb.state, "CLOSED")

    def test_half_open_after_timeout_then_closed(self):
        structured_logger = Mock()
        cb = CircuitBreaker(threshold=1, timeout=60, service_name="api_health",
                            structured_logger=structured_logger)
        with self.assertRaises(RuntimeError):
            cb.call(failing())
        cb.last_failure = time.monotonic() - 120

        self.assertEqual(cb.call(lambda: "recovered"), "recovered")
        self.assertEqual(cb.state, "CLOSED")

        event_names = [c.kwargs["event_name"]
                       for c in structured_logger.log_circuit_breaker_event.call_args_list]
        self.assertEqual(event_names, ["opened", "half_open", "closed"])

    def test_half_open_failure_reopens(self):
        cb = CircuitBreaker(threshold=1, timeout=60)
        with self.assertRaises(RuntimeError):
            cb.call(failing())
        cb.last_failure = time.monotonic() - 120
        with self.assertRaises(RuntimeError):
            cb.call(failing())
        self.assertEqual(cb.state, "OPEN")

    def test_get_state(self):
        cb = CircuitBreaker(threshold=1, timeout=60, service_name="svc")
        self.assertIsNone(cb.get_state()["time_until_retry"])
        with self.assertRaises(RuntimeError):
            cb.call(failing())
        state = cb.get_state()
        self.assertEqual(state["state"], "OPEN")
        self.assertEqual(state["service_name"], "svc")
        self.assertLessEqual(state["time_until_retry"], 60)

    def test_concurrent_failures_counted(self):
        cb = CircuitBreaker(threshold=100, timeout=60)

        def worker():
            for _ in range(10):
                try:
                    cb.call(failing())
                except RuntimeError:
                    pass

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(cb.failure_count, 50)


@patch('runtimecfg.circuit.time.sleep')
class TestExponentialBackoffRetry(unittest.TestCase):

    def test_first_attempt_success(self, mock_sleep):
        self.assertEqual(exponential_backoff_retry(lambda: 42), 42)
        mock_sleep.assert_not_called()

    def test_retries_until_success(self, mock_sleep):
        func = Mock(side_effect=[ValueError("1"), ValueError("2"), "ok"])
        func.__name__ = "probe"
        self.assertEqual(exponential_backoff_retry(func, max_retries=3, initial_delay=1.0), "ok")
        self.assertEqual(mock_sleep.call_args_list, [call(1.0), call(2.0)])

    def test_delay_capped(self, mock_sleep):
        func = Mock(side_effect=ValueError("down"))
        func.__name__ = "probe"
        with self.assertRaises(ValueError):
            exponential_backoff_retry(func, max_retries=4, initial_delay=1.0, max_delay=3.0)
        self.assertEqual(func.call_count, 5)
        self.assertEqual(mock_sleep.call_args_list, [call(1.0), call(2.0), call(3.0), call(3.0)])

    def test_unlisted_exceptions_not_retried(self, mock_sleep):
        func = Mock(side_effect=KeyError("bug"))
        func.__name__ = "probe"
        with self.assertRaises(KeyError):
            exponential_backoff_retry(func, max_retries=3, retry_on=(ValueError,))
        self.assertEqual(func.call_count, 1)

    def test_zero_retries(self, mock_sleep):
        func = Mock(side_effect=ValueError("down"))
        func.__name__ = "probe"
        with self.assertRaises(ValueError):
            exponential_backoff_retry(func, max_retries=0)
        self.assertEqual(func.call_count, 1)
        mock_sleep.assert_not_called()

    def test_invalid_parameters(self, mock_sleep):
        for kwargs in [{"max_retries": -1}, {"initial_delay": 0},
                       {"initial_delay": 5.0, "max_delay": 1.0}, {"backoff_factor": 0.5}]:
            with self.subTest(kwargs=kwargs):
                with self.assertRaises(ValueError):
                    exponential_backoff_retry(lambda: None, **kwargs)


if __name__ == '__main__':
    unittest.main()
