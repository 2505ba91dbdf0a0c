"""
Unit Tests for Structured Event Logging

Test Coverage:
    - ActionResult values and log level selection
    - Event payloads for resolver and monitor operations
    - Correlation ID propagation
    - JSON formatting and structured/non-structured filters
"""

import json
import logging
import unittest
from unittest.mock import patch

from .structured_events import StructuredEventLogger, StructuredEvent, EventType, ActionResult
from .logging_setup import StructuredFormatter, StructuredFilter, NonStructuredFilter, setup_logger


class TestActionResult(unittest.TestCase):

    def test_values(self):
        self.assertEqual({r.value for r in ActionResult},
                         {"success", "failure", "no_change", "skipped"})


class TestStructuredEventLogger(unittest.TestCase):

    def setUp(self):
        self.structured_logger = StructuredEventLogger("test_runtimecfg_events")

    def logged(self, mock_log):
        level, message = mock_log.call_args[0][:2]
        return level, message, mock_log.call_args[1]["extra"]["json_fields"]

    @patch.object(logging.Logger, 'log')
    def test_failure_logged_at_error(self, mock_log):
        self.structured_logger.log_lb_config_refresh([], 6443, ActionResult.FAILURE,
                                                     error_message="api down")
        level, message, fields = self.logged(mock_log)
        self.assertEqual(level, logging.ERROR)
        self.assertEqual(message, "lb.refresh_backends: failure - api down")
        self.assertTrue(fields["structured_event"])
        self.assertEqual(fields["event_type"], EventType.LB_CONFIG_REFRESH.value)

    @patch.object(logging.Logger, 'log')
    def test_no_change_logged_at_debug(self, mock_log):
        self.structured_logger.log_event({"result": "no_change", "component": "c", "operation": "o"})
        self.assertEqual(mock_log.call_args[0][0], logging.DEBUG)

    @patch.object(logging.Logger, 'log')
    def test_node_config_resolved_payload(self, mock_log):
        self.structured_logger.log_node_config_resolved(
            "ostest", "example.com", "ens3", {"api": 1, "dns": 2, "ingress": 3}, ["8.8.8.8"],
            duration_ms=12)
        level, _, fields = self.logged(mock_log)
        self.assertEqual(level, logging.INFO)
        self.assertEqual(fields["details"]["router_ids"], {"api": 1, "dns": 2, "ingress": 3})
        self.assertEqual(fields["duration_ms"], 12)

    @patch.object(logging.Logger, 'log')
    def test_identity_fallback_payload(self, mock_log):
        self.structured_logger.log_identity_fallback("/etc/kubernetes/kubeconfig", "malformed",
                                                     ActionResult.SUCCESS)
        _, _, fields = self.logged(mock_log)
        self.assertEqual(fields["component"], "identity")
        self.assertEqual(fields["details"]["primary_failure"], "malformed")

    @patch.object(logging.Logger, 'log')
    def test_alarm_transition_operation(self, mock_log):
        self.structured_logger.log_alarm_transition("api_unhealthy", False, True, 3, 5)
        self.assertEqual(self.logged(mock_log)[2]["operation"], "raise")
        self.structured_logger.log_alarm_transition("api_unhealthy", True, False, 3, 5)
        self.assertEqual(self.logged(mock_log)[2]["operation"], "clear")

    @patch.object(logging.Logger, 'log')
    def test_unhealthy_check_is_failure(self, mock_log):
        self.structured_logger.log_health_check("https://127.0.0.1:6443/healthz", False)
        self.assertEqual(self.logged(mock_log)[2]["result"], "failure")

    @patch.object(logging.Logger, 'log')
    def test_correlation_id(self, mock_log):
        self.structured_logger.set_correlation_id("mon-1-abc")
        self.structured_logger.log_circuit_breaker_event("membership", "opened", failure_count=5)
        self.assertEqual(self.logged(mock_log)[2]["correlation_id"], "mon-1-abc")
        self.structured_logger.log_event({"result": "success"})
        self.assertEqual(self.logged(mock_log)[2]["correlation_id"], "mon-1-abc")

    @patch.object(logging.Logger, 'log')
    def test_lifecycle_event(self, mock_log):
        self.structured_logger.log_lifecycle("shutdown", {"consecutive_errors": 0})
        _, message, fields = self.logged(mock_log)
        self.assertEqual(message, "daemon.shutdown: success")
        self.assertEqual(fields["event_type"], EventType.DAEMON_LIFECYCLE.value)

    def test_invalid_event_type(self):
        with self.assertRaises(TypeError):
            self.structured_logger.log_event("not an event")


class TestStructuredFormatting(unittest.TestCase):

    def record(self, json_fields=None):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "plain message", None, None)
        if json_fields is not None:
            record.json_fields = json_fields
        return record

    def test_formatter(self):
        formatter = StructuredFormatter()
        structured = self.record({"structured_event": True, "component": "lb"})
        self.assertEqual(json.loads(formatter.format(structured)),
                         {"structured_event": True, "component": "lb"})
        self.assertEqual(formatter.format(self.record()), "plain message")

    def test_filters(self):
        structured = self.record({"structured_event": True})
        plain = self.record()
        self.assertTrue(StructuredFilter().filter(structured))
        self.assertFalse(StructuredFilter().filter(plain))
        self.assertTrue(NonStructuredFilter().filter(plain))
        self.assertFalse(NonStructuredFilter().filter(structured))

    def test_setup_logger_replaces_handlers(self):
        logger = setup_logger("test_runtimecfg_setup", "DEBUG", None, 1024, 1)
        logger = setup_logger("test_runtimecfg_setup", "WARNING", None, 1024, 1)
        self.assertEqual(len(logger.handlers), 1)
        self.assertEqual(logger.level, logging.WARNING)
        self.assertFalse(logger.propagate)


if __name__ == '__main__':
    unittest.main()
