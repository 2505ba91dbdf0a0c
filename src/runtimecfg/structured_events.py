"""
Structured Events

Machine-readable records of what the resolver and the monitor did, emitted as
ordinary log records carrying a ``json_fields`` payload. logging_setup routes
them to the JSON console/file handlers and keeps them out of the plain ones.

Every event has the same envelope:

    {"structured_event": true, "event_type": ..., "timestamp": ...,
     "result": "success" | "failure" | "no_change" | "skipped",
     "component": ..., "operation": ..., "details": {...},
     "duration_ms": ..., "error_message": ..., "correlation_id": ...}

Failures are logged at ERROR, no-change results at DEBUG, the rest at INFO.
"""

import logging
import time
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class EventType(Enum):
    IDENTITY_FALLBACK = "identity_fallback"
    NODE_CONFIG_RESOLVED = "node_config_resolved"
    LB_CONFIG_REFRESH = "lb_config_refresh"
    HEALTH_CHECK_RESULT = "health_check_result"
    ALARM_TRANSITION = "alarm_transition"
    CIRCUIT_BREAKER_EVENT = "circuit_breaker_event"
    DAEMON_LIFECYCLE = "daemon_lifecycle"


class ActionResult(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    NO_CHANGE = "no_change"
    SKIPPED = "skipped"


_RESULT_LEVELS = {
    ActionResult.FAILURE.value: logging.ERROR,
    ActionResult.NO_CHANGE.value: logging.DEBUG,
}


@dataclass
class StructuredEvent:
    event_type: str
    timestamp: float
    result: str
    component: str
    operation: str
    details: Dict[str, Any]
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None
    correlation_id: Optional[str] = None


class StructuredEventLogger:
    """
    Emits structured events for resolver and monitor operations.

    An instance is handed to the components that should report events; nothing
    in the resolver looks one up globally. The monitor sets a correlation ID per
    poll so the events of one cycle can be grouped.
    """

    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(logger_name)
        self.correlation_id: Optional[str] = None

    def set_correlation_id(self, correlation_id: Optional[str]):
        self.correlation_id = correlation_id

    def _payload(self, event: Union[StructuredEvent, Dict[str, Any]]) -> Dict[str, Any]:
        if isinstance(event, StructuredEvent):
            fields = asdict(event)
        elif isinstance(event, dict):
            fields = dict(event)
        else:
            raise TypeError(f"Event must be StructuredEvent dataclass or dict, got {type(event)}")
        if self.correlation_id:
            fields["correlation_id"] = self.correlation_id
        return {"structured_event": True, **fields}

    def log_event(self, event: Union[StructuredEvent, Dict[str, Any]]) -> None:
        payload = self._payload(event)
        result = payload.get("result")

        message = f"{payload.get('component', 'unknown')}.{payload.get('operation', 'unknown')}: {result}"
        if payload.get("error_message"):
            message += f" - {payload['error_message']}"

        self.logger.log(_RESULT_LEVELS.get(result, logging.INFO), message,
                        extra={"json_fields": payload})

    def _emit(self, event_type: EventType, component: str, operation: str,
              result: ActionResult, details: Dict[str, Any],
              duration_ms: Optional[int] = None,
              error_message: Optional[str] = None) -> None:
        self.log_event(StructuredEvent(
            event_type=event_type.value,
            timestamp=time.time(),
            result=result.value,
            component=component,
            operation=operation,
            details=details,
            duration_ms=duration_ms,
            error_message=error_message,
        ))

    def log_identity_fallback(self, kubeconfig_path: str, reason: str, result: ActionResult,
                              error_message: Optional[str] = None) -> None:
        """Cluster identity came (or failed to come) from the kubeconfig."""
        self._emit(EventType.IDENTITY_FALLBACK, "identity", "kubeconfig_fallback", result,
                   {"kubeconfig_path": kubeconfig_path, "primary_failure": reason},
                   error_message=error_message)

    def log_node_config_resolved(self, cluster_name: str, domain: str, vrrp_interface: str,
                                 router_ids: Dict[str, int], dns_upstreams: List[str],
                                 duration_ms: Optional[int] = None) -> None:
        self._emit(EventType.NODE_CONFIG_RESOLVED, "resolver", "resolve_node_config",
                   ActionResult.SUCCESS,
                   {
                       "cluster_name": cluster_name,
                       "cluster_domain": domain,
                       "vrrp_interface": vrrp_interface,
                       "router_ids": router_ids,
                       "dns_upstreams": dns_upstreams,
                   },
                   duration_ms=duration_ms)

    def log_lb_config_refresh(self, backends: List[str], api_port: int, result: ActionResult,
                              duration_ms: Optional[int] = None,
                              error_message: Optional[str] = None) -> None:
        self._emit(EventType.LB_CONFIG_REFRESH, "lb", "refresh_backends", result,
                   {"backends": backends, "backend_count": len(backends), "api_port": api_port},
                   duration_ms=duration_ms, error_message=error_message)

    def log_health_check(self, endpoint: str, healthy: bool,
                         details: Optional[Dict[str, Any]] = None,
                         duration_ms: Optional[int] = None,
                         error_message: Optional[str] = None) -> None:
        """An unhealthy observation is reported as a failure."""
        self._emit(EventType.HEALTH_CHECK_RESULT, "health_check", "probe_api",
                   ActionResult.SUCCESS if healthy else ActionResult.FAILURE,
                   {"endpoint": endpoint, "healthy": healthy, **(details or {})},
                   duration_ms=duration_ms, error_message=error_message)

    def log_alarm_transition(self, alarm_name: str, old_alarm: bool, new_alarm: bool,
                             on_threshold: int, off_threshold: int) -> None:
        self._emit(EventType.ALARM_TRANSITION, "alarm", "raise" if new_alarm else "clear",
                   ActionResult.SUCCESS,
                   {
                       "alarm": alarm_name,
                       "old_alarm": old_alarm,
                       "new_alarm": new_alarm,
                       "on_threshold": on_threshold,
                       "off_threshold": off_threshold,
                   })

    def log_circuit_breaker_event(self, service: str, event_name: str,
                                  failure_count: Optional[int] = None,
                                  error_message: Optional[str] = None) -> None:
        """event_name is one of opened, closed, half_open, failure_recorded, call_blocked."""
        self._emit(EventType.CIRCUIT_BREAKER_EVENT, "circuit_breaker", event_name,
                   ActionResult.SUCCESS,
                   {"service": service, "failure_count": failure_count},
                   error_message=error_message)

    def log_lifecycle(self, operation: str, details: Dict[str, Any]) -> None:
        """Daemon startup/shutdown."""
        self._emit(EventType.DAEMON_LIFECYCLE, "daemon", operation, ActionResult.SUCCESS, details)
