"""
Monitor Daemon

Long-running caller of the resolver. It resolves the node once at startup and
then polls on a fixed interval:

    1. Probe the local API server's /healthz endpoint
    2. Feed the observation to the alarm stabilizer (hysteresis)
    3. Refresh the API load balancer backends (optional)
    4. Write the node record for the template renderers when it changed

Resilience:
    The resolver core never retries. This loop is where retry policy lives:
    every collaborator call runs under a per-service CircuitBreaker wrapping
    exponential_backoff_retry, and every call carries a timeout from Config.
    A failed health probe counts as a defect observation; a failed backend
    refresh keeps the previous backends.

Signal Handling:
    SIGTERM/SIGINT set shutdown_event; the current cycle completes first.

Usage:
    from .daemon import startup, run_loop
    from .config import Config

    cfg = Config()
    context = startup(cfg)
    run_loop(cfg, context)
"""

import hashlib
import json
import logging
import os
import signal
import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Dict, Optional

from .circuit import CircuitBreaker, CircuitOpenError, exponential_backoff_retry
from .config import Config, validate_configuration
from .errors import HealthProbeError, MembershipQueryError
from .health import HealthProbe, KubernetesHealthProbe
from .identity import FileClusterConfigSource
from .lb import MembershipSource, KubernetesMembershipSource, format_etcd_backends
from .models import Node
from .network import PsutilNetworkResolver
from .resolver import resolve_node_config, get_lb_config
from .state import AlarmState
from .structured_events import StructuredEventLogger
from .utils import file_md5

# Set by signal handlers and checked by the main loop
shutdown_event = threading.Event()

DEFAULT_MAX_CONSECUTIVE_ERRORS = 10
API_ALARM_NAME = "api_unhealthy"


def _logger(cfg: Optional[Config] = None) -> logging.Logger:
    return logging.getLogger(cfg.logger_name if cfg else os.getenv("LOGGER_NAME", "RUNTIMECFG"))


@dataclass
class MonitorContext:
    node: Node
    probe: HealthProbe
    membership: Optional[MembershipSource]
    structured_logger: StructuredEventLogger
    alarm: AlarmState = field(default_factory=AlarmState)
    breakers: Dict[str, CircuitBreaker] = field(default_factory=dict)


def signal_handler(signum: int, frame) -> None:
    """Request a graceful shutdown on SIGTERM/SIGINT."""
    name = {signal.SIGTERM: 'SIGTERM', signal.SIGINT: 'SIGINT'}.get(signum, f'Signal-{signum}')
    _logger().info(f"Received {name}, initiating graceful shutdown...")
    shutdown_event.set()


def setup_signal_handlers() -> None:
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)


def build_node(cfg: Config,
               structured_logger: Optional[StructuredEventLogger] = None,
               membership_source: Optional[MembershipSource] = None) -> Node:
    """Resolve the node from the sources and VIPs named in ``cfg``."""
    config_source = FileClusterConfigSource(cfg.cluster_config_path) if cfg.cluster_config_path else None
    return resolve_node_config(
        kubeconfig_path=cfg.kubeconfig_path,
        config_source=config_source,
        resolv_conf_path=cfg.resolv_conf_path,
        network_resolver=PsutilNetworkResolver(_logger(cfg)),
        api_vip=cfg.api_vip,
        ingress_vip=cfg.ingress_vip,
        dns_vip=cfg.dns_vip,
        membership_source=membership_source,
        api_port=cfg.api_port,
        lb_port=cfg.lb_port,
        stat_port=cfg.stat_port,
        structured_logger=structured_logger,
        log=_logger(cfg),
    )


def write_node_config(node: Node, path: str) -> bool:
    """
    Write the node record as JSON unless the file already holds the same content.

    Returns:
        bool: True if the file was (re)written.
    """
    content = node.to_json() + "\n"
    if os.path.isfile(path):
        if file_md5(path) == hashlib.md5(content.encode("utf-8")).hexdigest():
            return False

    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w") as f:
        f.write(content)
    os.replace(tmp_path, path)
    return True


def check_api_health(cfg: Config, context: MonitorContext) -> bool:
    """
    Probe the API once (with retries) and return the defect observation.

    Probe failures and an open circuit count as a defect.
    """
    logger = _logger(cfg)
    breaker = context.breakers["api_health"]
    start_time = time.time()
    endpoint = getattr(context.probe, "endpoint", "local-api")

    try:
        healthy = breaker.call(
            exponential_backoff_retry,
            context.probe.check,
            max_retries=cfg.max_retries,
            initial_delay=cfg.initial_backoff,
            max_delay=cfg.max_backoff,
            retry_on=(HealthProbeError,),
        )
        error_message = None
    except (HealthProbeError, CircuitOpenError) as e:
        logger.warning(f"API health probe failed: {e}")
        healthy = False
        error_message = str(e)

    context.structured_logger.log_health_check(
        endpoint, healthy,
        duration_ms=int((time.time() - start_time) * 1000),
        error_message=error_message)
    return not healthy


def refresh_backends(cfg: Config, context: MonitorContext) -> bool:
    """
    Recompute the load balancer backends and fold them into the node record.

    Returns:
        bool: True if the backend set changed.
    """
    logger = _logger(cfg)
    breaker = context.breakers["membership"]
    try:
        lb_config = breaker.call(
            exponential_backoff_retry,
            lambda: get_lb_config(context.membership, cfg.api_port, cfg.lb_port, cfg.stat_port,
                                  cfg.api_vip, structured_logger=context.structured_logger),
            max_retries=cfg.max_retries,
            initial_delay=cfg.initial_backoff,
            max_delay=cfg.max_backoff,
            retry_on=(MembershipQueryError,),
        )
    except (MembershipQueryError, CircuitOpenError) as e:
        logger.warning(f"Keeping previous API backends, refresh failed: {e}")
        return False

    if lb_config == context.node.lb_config:
        return False

    old = [b.address for b in context.node.lb_config.backends]
    new = [b.address for b in lb_config.backends]
    logger.info(f"API backends changed: {old} -> {new}")
    context.node = replace(
        context.node,
        lb_config=lb_config,
        cluster=replace(context.node.cluster, etcd_backends=format_etcd_backends(lb_config.backends)),
    )
    return True


def run_cycle(cfg: Config, context: MonitorContext) -> None:
    """One poll: health, alarm, backends, output."""
    logger = _logger(cfg)

    defect = check_api_health(cfg, context)
    old_alarm = context.alarm.alarm
    if context.alarm.update(defect, cfg.alarm_on_threshold, cfg.alarm_off_threshold):
        if context.alarm.alarm:
            logger.warning("API alarm raised: local API server is unhealthy")
        else:
            logger.info("API alarm cleared: local API server is healthy again")
        context.structured_logger.log_alarm_transition(
            API_ALARM_NAME, old_alarm, context.alarm.alarm,
            cfg.alarm_on_threshold, cfg.alarm_off_threshold)

    if cfg.enable_lb_refresh and context.membership is not None:
        refresh_backends(cfg, context)

    if cfg.node_config_output:
        if write_node_config(context.node, cfg.node_config_output):
            logger.info(f"Node configuration written to {cfg.node_config_output}")


def run_loop(cfg: Config, context: MonitorContext,
             max_consecutive_errors: int = DEFAULT_MAX_CONSECUTIVE_ERRORS) -> None:
    """
    Poll until shutdown is requested.

    Unexpected errors are logged and counted; after max_consecutive_errors in a
    row the loop gives up.
    """
    logger = _logger(cfg)
    logger.info(f"Monitor loop starting with {cfg.check_interval}s interval")

    context.structured_logger.log_lifecycle("startup", {
        "check_interval": cfg.check_interval,
        "alarm_on_threshold": cfg.alarm_on_threshold,
        "alarm_off_threshold": cfg.alarm_off_threshold,
        "lb_refresh": cfg.enable_lb_refresh,
        "cluster": context.node.cluster.name,
        "vrrp_interface": context.node.vrrp_interface,
    })

    consecutive_errors = 0
    while not shutdown_event.is_set():
        loop_start = time.time()
        context.structured_logger.set_correlation_id(f"mon-{int(loop_start)}-{str(uuid.uuid4())[:8]}")
        try:
            run_cycle(cfg, context)
            consecutive_errors = 0
        except Exception as e:
            consecutive_errors += 1
            logger.exception(f"Unexpected error in monitor loop (attempt {consecutive_errors}): {e}")
            if consecutive_errors >= max_consecutive_errors:
                logger.critical("Too many consecutive errors; exiting.")
                break

        sleep_time = max(0, cfg.check_interval - (time.time() - loop_start))
        if shutdown_event.wait(sleep_time):
            break

    context.structured_logger.log_lifecycle("shutdown", {"consecutive_errors": consecutive_errors})
    logger.info("Monitor loop exited.")


def startup(cfg: Config) -> MonitorContext:
    """
    Validate configuration, resolve the node and prepare the monitor context.

    Backends are not resolved here: the API may not be up yet during bootstrap,
    the first cycle fills them in.

    Raises:
        SystemExit: If configuration validation fails.
    """
    logger = _logger(cfg)

    errors = validate_configuration(cfg)
    if errors:
        logger.error("Configuration validation failed:")
        for e in errors:
            logger.error(f" - {e}")
        raise SystemExit(1)

    structured_logger = StructuredEventLogger(cfg.logger_name)
    node = build_node(cfg, structured_logger=structured_logger)

    membership = None
    if cfg.enable_lb_refresh:
        membership = KubernetesMembershipSource(cfg.kubeconfig_path, timeout=cfg.membership_timeout)

    breakers = {
        service: CircuitBreaker(threshold=cfg.cb_threshold, timeout=cfg.cb_timeout,
                                service_name=service, structured_logger=structured_logger)
        for service in ("api_health", "membership")
    }

    context = MonitorContext(
        node=node,
        probe=KubernetesHealthProbe(cfg.api_port, timeout=cfg.health_probe_timeout),
        membership=membership,
        structured_logger=structured_logger,
        breakers=breakers,
    )

    setup_signal_handlers()
    logger.debug(f"Initial node configuration: {json.dumps(node.to_dict(), sort_keys=True)}")
    return context
