import os
import ipaddress
from dataclasses import dataclass
from typing import Optional, Union
from dotenv import load_dotenv

# A .env file next to the process fills in unset variables
load_dotenv()


def _optional_ip(name: str) -> Optional[Union[ipaddress.IPv4Address, ipaddress.IPv6Address]]:
    """Parse an optional IP environment variable; invalid values are reported by validate_configuration."""
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return ipaddress.ip_address(raw.strip())
    except ValueError:
        return None


@dataclass
class Config:
    """
    Central configuration for the resolver CLI and the monitor daemon.

    Values are read from the environment when this module is imported.

    Attributes:
        Logging:
            - logger_name: Name the logger logs as.
            - log_level: Level name for the process logger.
            - log_file: Plain-text log file, unset for console only.
            - log_max_bytes / log_backup_count: Rotation of both log files.
            - enable_structured_console: Console shows structured events as JSON instead of text.
            - enable_structured_file / structured_log_file: JSON-lines event file.

        Sources:
            - kubeconfig_path: Kubeconfig used for the identity fallback and membership.
            - cluster_config_path: Cluster-config ConfigMap (primary identity source).
            - resolv_conf_path: resolv.conf style file with the DNS upstreams.

        VIPs and ports:
            - api_vip / ingress_vip / dns_vip: Candidate VIPs (each optional).
            - api_port / lb_port / stat_port: API, load balancer and stats ports.

        Monitor loop:
            - check_interval: Seconds between polls.
            - alarm_on_threshold / alarm_off_threshold: Consecutive observations to raise/clear the API alarm.
            - health_probe_timeout: Timeout of the local /healthz probe.
            - membership_timeout: Timeout of the control-plane membership query.
            - enable_lb_refresh: Refresh the load balancer backends every poll.
            - node_config_output: File the resolved node record is written to.

        Resilience:
            - max_retries: Retries per collaborator call.
            - initial_backoff / max_backoff: First and largest retry delay.
            - cb_threshold / cb_timeout: Failures that open a breaker, seconds it stays open.
    """
    # Logging
    logger_name: str = os.getenv('LOGGER_NAME', 'RUNTIMECFG').upper()
    log_level: str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_file: Optional[str] = os.getenv('LOG_FILE') or None
    log_max_bytes: int = int(os.getenv('LOG_MAX_BYTES', 10 * 1024 * 1024))
    log_backup_count: int = int(os.getenv('LOG_BACKUP_COUNT', 5))
    enable_structured_console: bool = os.getenv('ENABLE_STRUCTURED_CONSOLE', 'false').lower() == 'true'
    enable_structured_file: bool = os.getenv('ENABLE_STRUCTURED_FILE', 'false').lower() == 'true'
    structured_log_file: Optional[str] = os.getenv('STRUCTURED_LOG_FILE', '/var/log/runtimecfg_structured.json')

    # Sources
    kubeconfig_path: str = os.getenv('KUBECONFIG_PATH', '/etc/kubernetes/kubeconfig')
    cluster_config_path: Optional[str] = os.getenv('CLUSTER_CONFIG_PATH') or None
    resolv_conf_path: str = os.getenv('RESOLV_CONF_PATH', '/etc/resolv.conf')

    # VIPs and ports
    api_vip: Optional[Union[ipaddress.IPv4Address, ipaddress.IPv6Address]] = _optional_ip('API_VIP')
    ingress_vip: Optional[Union[ipaddress.IPv4Address, ipaddress.IPv6Address]] = _optional_ip('INGRESS_VIP')
    dns_vip: Optional[Union[ipaddress.IPv4Address, ipaddress.IPv6Address]] = _optional_ip('DNS_VIP')
    api_port: int = int(os.getenv('API_PORT', 6443))
    lb_port: int = int(os.getenv('LB_PORT', 9443))
    stat_port: int = int(os.getenv('STAT_PORT', 50000))

    # Monitor loop
    check_interval: int = int(os.getenv('CHECK_INTERVAL_SECONDS', 6))
    alarm_on_threshold: int = int(os.getenv('ALARM_ON_THRESHOLD', 3))
    alarm_off_threshold: int = int(os.getenv('ALARM_OFF_THRESHOLD', 5))
    health_probe_timeout: float = float(os.getenv('HEALTH_PROBE_TIMEOUT', 5.0))
    membership_timeout: float = float(os.getenv('MEMBERSHIP_TIMEOUT', 10.0))
    enable_lb_refresh: bool = os.getenv('ENABLE_LB_REFRESH', 'true').lower() == 'true'
    node_config_output: Optional[str] = os.getenv('NODE_CONFIG_OUTPUT') or None

    # Resilience
    max_retries: int = int(os.getenv('MAX_RETRIES', 2))
    initial_backoff: float = float(os.getenv('INITIAL_BACKOFF_SECONDS', 1.0))
    max_backoff: float = float(os.getenv('MAX_BACKOFF_SECONDS', 10.0))
    cb_threshold: int = int(os.getenv('CIRCUIT_BREAKER_THRESHOLD', 5))
    cb_timeout: int = int(os.getenv('CIRCUIT_BREAKER_TIMEOUT_SECONDS', 60))


def validate_configuration(cfg: Config) -> list[str]:
    """
    Check a Config for values the resolver or the monitor cannot work with.

    This includes:
    - Validating VIP formats and requiring at least one VIP.
    - Validating numeric and port ranges.
    - Verifying the source files exist and are readable.
    - Checking alarm and backoff constraints.

    Args:
        cfg (Config): Configuration to check.

    Returns:
        list[str]: One message per problem; empty when the configuration is usable.
    """
    errors: list[str] = []

    # VIP formats
    for name in ['API_VIP', 'INGRESS_VIP', 'DNS_VIP']:
        val = os.getenv(name)
        if val:
            try:
                ipaddress.ip_address(val.strip())
            except ValueError as e:
                errors.append(f"Invalid {name} format: {e}")

    if cfg.api_vip is None and cfg.ingress_vip is None and cfg.dns_vip is None:
        errors.append("At least one of API_VIP, INGRESS_VIP or DNS_VIP must be set")

    # Numerical ranges for environment-provided numbers
    numeric_ranges = {
        'API_PORT': (1, 65535),
        'LB_PORT': (1, 65535),
        'STAT_PORT': (1, 65535),
        'CHECK_INTERVAL_SECONDS': (1, 3600),
        'ALARM_ON_THRESHOLD': (1, 100),
        'ALARM_OFF_THRESHOLD': (1, 100),
        'HEALTH_PROBE_TIMEOUT': (0.1, 300),
        'MEMBERSHIP_TIMEOUT': (0.1, 300),
        'MAX_RETRIES': (0, 10),
        'INITIAL_BACKOFF_SECONDS': (0.1, 60),
        'MAX_BACKOFF_SECONDS': (0.1, 600),
        'CIRCUIT_BREAKER_THRESHOLD': (1, 50),
        'CIRCUIT_BREAKER_TIMEOUT_SECONDS': (1, 3600),
        'LOG_MAX_BYTES': (1024, 1073741824),  # 1 KB to 1 GB
        'LOG_BACKUP_COUNT': (1, 100),
    }

    for var, (mn, mx) in numeric_ranges.items():
        raw = os.getenv(var)
        if raw:
            try:
                val = float(raw)
                if val < mn or val > mx:
                    errors.append(f"{var} must be between {mn} and {mx}, got {val}")
            except ValueError:
                errors.append(f"{var} must be numeric, got '{raw}'")

    if cfg.max_backoff < cfg.initial_backoff:
        errors.append(f"MAX_BACKOFF_SECONDS ({cfg.max_backoff}) must be at least "
                      f"INITIAL_BACKOFF_SECONDS ({cfg.initial_backoff})")

    if len({cfg.api_port, cfg.lb_port, cfg.stat_port}) != 3:
        errors.append("API_PORT, LB_PORT and STAT_PORT must be distinct")

    # Source files
    for label, path in (('KUBECONFIG_PATH', cfg.kubeconfig_path),
                        ('RESOLV_CONF_PATH', cfg.resolv_conf_path)):
        if not path or not os.path.isfile(path):
            errors.append(f"{label} file not found: {path}")
        elif not os.access(path, os.R_OK):
            errors.append(f"{label} file not readable: {path}")

    # CLUSTER_CONFIG_PATH is not checked: a missing cluster config falls back to the kubeconfig

    if cfg.node_config_output:
        output_dir = os.path.dirname(cfg.node_config_output)
        if output_dir and not os.path.isdir(output_dir):
            errors.append(f"NODE_CONFIG_OUTPUT directory does not exist: {output_dir}")

    return errors
