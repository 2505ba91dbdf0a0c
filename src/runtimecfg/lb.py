"""
API Load Balancer Configuration

Builds the backend set haproxy balances API traffic over. Backends are the
control-plane members reported by a MembershipSource; their internal addresses
come from etcd-peer membership data but are repurposed for the API, so every
backend port is rewritten to the API port.

Ordering:
    Backends are sorted by address using plain string comparison, so
    "10.0.0.10" sorts before "10.0.0.9". Every node applies the same ordering,
    which is all the renderers need.

Error Handling:
    Membership failures propagate as MembershipQueryError. Nothing here
    retries; the monitor loop owns retry and circuit-breaking.

Kubernetes Membership:
    KubernetesMembershipSource lists nodes with the official Kubernetes client,
    built from the kubeconfig (server, CA, credentials and exec plugins are
    handled by the client):
        CoreV1Api.list_node(label_selector="node-role.kubernetes.io/master=")
"""

import ipaddress
import logging
import os
import time
from dataclasses import replace
from typing import List, Optional, Protocol, Tuple, Union

import urllib3
import yaml
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from .errors import MembershipQueryError
from .models import ApiLBConfig, Backend
from .structured_events import StructuredEventLogger, ActionResult

logger = logging.getLogger(os.getenv("LOGGER_NAME", "RUNTIMECFG"))

CONTROL_PLANE_ROLE_SELECTOR = "node-role.kubernetes.io/master="
NODE_INTERNAL_IP = "InternalIP"
ETCD_CLIENT_PORT = 2379
DEFAULT_REQUEST_TIMEOUT = 10  # seconds

FRONTEND_ADDR_IPV4 = "0.0.0.0"
FRONTEND_ADDR_IPV6 = "::"


class MembershipSource(Protocol):
    def list_members(self, role_selector: str) -> List[Tuple[str, str]]:
        """Return (host name, internal address) pairs or raise MembershipQueryError."""
        ...


def _node_internal_ip(node) -> Optional[str]:
    status = getattr(node, "status", None)
    for address in (status.addresses if status else None) or []:
        if address.type == NODE_INTERNAL_IP and address.address:
            return address.address
    return None


class KubernetesMembershipSource:
    """MembershipSource listing cluster nodes through the Kubernetes API."""

    def __init__(self, kubeconfig_path: str, timeout: Optional[float] = DEFAULT_REQUEST_TIMEOUT):
        self.kubeconfig_path = kubeconfig_path
        self.timeout = timeout

    def list_members(self, role_selector: str = CONTROL_PLANE_ROLE_SELECTOR) -> List[Tuple[str, str]]:
        try:
            api_client = config.new_client_from_config(config_file=self.kubeconfig_path)
        except (ConfigException, yaml.YAMLError, OSError, ValueError) as e:
            raise MembershipQueryError(f"Failed to get client config: {e}") from e

        try:
            v1 = client.CoreV1Api(api_client)
            nodes = v1.list_node(label_selector=role_selector, _request_timeout=self.timeout)
        except (ApiException, urllib3.exceptions.HTTPError, OSError) as e:
            logger.info(f"Failed to get control plane nodes list: {e}")
            raise MembershipQueryError(f"Listing nodes with '{role_selector}' failed: {e}") from e
        finally:
            api_client.close()

        members = []
        for node in nodes.items or []:
            name = node.metadata.name if node.metadata else ""
            internal_ip = _node_internal_ip(node)
            if internal_ip:
                members.append((name, internal_ip))
            else:
                logger.debug(f"Node {name} has no {NODE_INTERNAL_IP}, skipping")
        return members


def get_sorted_backends(source: MembershipSource,
                        role_selector: str = CONTROL_PLANE_ROLE_SELECTOR) -> List[Backend]:
    """Control-plane backends (port 0) sorted by address string."""
    members = source.list_members(role_selector)
    backends = [Backend(host=host, address=address) for host, address in members]
    return sorted(backends, key=lambda b: b.address)


def frontend_address(api_vip: Union[ipaddress.IPv4Address, ipaddress.IPv6Address, None]) -> str:
    """All-interfaces bind address matching the API VIP's family; IPv4-mapped IPv6 counts as IPv4."""
    if isinstance(api_vip, ipaddress.IPv4Address):
        return FRONTEND_ADDR_IPV4
    if isinstance(api_vip, ipaddress.IPv6Address) and api_vip.ipv4_mapped is not None:
        return FRONTEND_ADDR_IPV4
    return FRONTEND_ADDR_IPV6


def build_lb_config(source: MembershipSource,
                    api_port: int,
                    lb_port: int,
                    stat_port: int,
                    api_vip: Union[ipaddress.IPv4Address, ipaddress.IPv6Address, None],
                    structured_logger: Optional[StructuredEventLogger] = None) -> ApiLBConfig:
    """
    Assemble the API load balancer configuration.

    Args:
        source (MembershipSource): Control-plane membership collaborator.
        api_port (int): Port of the API servers; every backend gets this port.
        lb_port (int): Port haproxy listens on.
        stat_port (int): haproxy stats port.
        api_vip: The API VIP, selecting the IPv4 or IPv6 bind address.
        structured_logger (StructuredEventLogger, optional): Receives a
            lb_config_refresh event.

    Returns:
        ApiLBConfig: Backends sorted by address, ports rewritten.

    Raises:
        MembershipQueryError: Propagated from the membership source, unretried.
    """
    start_time = time.time()
    try:
        backends = get_sorted_backends(source)
    except MembershipQueryError as e:
        logger.error(f"Failed to retrieve API member information: {e}")
        if structured_logger:
            structured_logger.log_lb_config_refresh(
                [], api_port, ActionResult.FAILURE,
                duration_ms=int((time.time() - start_time) * 1000),
                error_message=str(e))
        raise

    # The member port is the etcd one, but we load balance the API
    backends = tuple(replace(b, port=api_port) for b in backends)

    lb_config = ApiLBConfig(api_port=api_port, lb_port=lb_port, stat_port=stat_port,
                            backends=backends, frontend_addr=frontend_address(api_vip))
    logger.debug(f"Config for LB configuration retrieved: {lb_config}")
    if structured_logger:
        structured_logger.log_lb_config_refresh(
            [b.address for b in backends], api_port, ActionResult.SUCCESS,
            duration_ms=int((time.time() - start_time) * 1000))
    return lb_config


def format_etcd_backends(backends) -> str:
    """Comma separated etcd client URLs, one per backend host."""
    return ",".join(f"https://{b.host.rstrip('.')}:{ETCD_CLIENT_PORT}" for b in backends)
