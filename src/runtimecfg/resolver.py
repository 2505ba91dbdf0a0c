"""
Node Configuration Assembly

Pipeline run once per resolution call:

    cluster identity -> VRRP router IDs -> hostnames -> VIP interface/netmask
        -> DNS upstreams -> (optional) API load balancer backends

The resulting Node is what the keepalived, haproxy and CoreDNS renderers
consume. Resolution is deterministic: identical inputs on an unchanged host
give an identical Node, and two nodes of the same cluster agree on the cluster
section without talking to each other.

Errors from any stage propagate unchanged; there is no retry here.
"""

import ipaddress
import logging
import os
import time
from typing import Optional, Union

from .dns import read_dns_upstreams, filter_dns_upstreams
from .hostname import short_hostname, etcd_hostname_for
from .identity import ConfigSource, resolve_cluster_identity
from .lb import MembershipSource, build_lb_config, format_etcd_backends, frontend_address
from .models import ApiLBConfig, Cluster, Node
from .network import NetworkResolver, collect_vips, resolve_node_addressing
from .structured_events import StructuredEventLogger
from .vrrp import allocate_router_ids

logger = logging.getLogger(os.getenv("LOGGER_NAME", "RUNTIMECFG"))

DEFAULT_API_PORT = 6443
DEFAULT_LB_PORT = 9443
DEFAULT_STAT_PORT = 50000

VIP = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def get_lb_config(membership_source: MembershipSource,
                  api_port: int = DEFAULT_API_PORT,
                  lb_port: int = DEFAULT_LB_PORT,
                  stat_port: int = DEFAULT_STAT_PORT,
                  api_vip: Optional[VIP] = None,
                  structured_logger: Optional[StructuredEventLogger] = None) -> ApiLBConfig:
    """Recompute the API load balancer configuration. Nothing is cached."""
    return build_lb_config(membership_source, api_port, lb_port, stat_port, api_vip,
                           structured_logger=structured_logger)


def resolve_node_config(kubeconfig_path: str,
                        config_source: Optional[ConfigSource],
                        resolv_conf_path: str,
                        network_resolver: NetworkResolver,
                        api_vip: Optional[VIP] = None,
                        ingress_vip: Optional[VIP] = None,
                        dns_vip: Optional[VIP] = None,
                        membership_source: Optional[MembershipSource] = None,
                        api_port: int = DEFAULT_API_PORT,
                        lb_port: int = DEFAULT_LB_PORT,
                        stat_port: int = DEFAULT_STAT_PORT,
                        structured_logger: Optional[StructuredEventLogger] = None,
                        log: Optional[logging.Logger] = None) -> Node:
    """
    Resolve the complete Node description.

    Args:
        kubeconfig_path (str): Kubeconfig for the identity fallback.
        config_source (ConfigSource | None): Primary identity source.
        resolv_conf_path (str): resolv.conf style file with the upstreams.
        network_resolver (NetworkResolver): Interface/address selection.
        api_vip, ingress_vip, dns_vip: Candidate VIPs, each optional.
        membership_source (MembershipSource, optional): When given, the load
            balancer backends and the etcd backend string are filled in.
        api_port, lb_port, stat_port (int): Load balancer ports.
        structured_logger (StructuredEventLogger, optional): Event sink.
        log (logging.Logger, optional): Logger for human-readable messages.

    Returns:
        Node: Immutable node record.

    Raises:
        ConfigSourceError, IdentityResolutionError: Identity could not be resolved.
        RouterIDAllocationError: No distinct router IDs could be derived.
        HostnameError: The local hostname is unavailable.
        NetworkResolutionError: No interface carries any VIP's subnet.
        DNSReadError: The resolv file is unreadable.
        MembershipQueryError: Control-plane membership could not be listed.
    """
    log = log or logger
    start_time = time.time()

    identity = resolve_cluster_identity(config_source, kubeconfig_path,
                                        structured_logger=structured_logger, log=log)
    router_ids = allocate_router_ids(identity.name)

    short_name = short_hostname(log)
    etcd_short_name = etcd_hostname_for(short_name)

    addressing = resolve_node_addressing(network_resolver, collect_vips(api_vip, ingress_vip, dns_vip))

    dns_vip_str = str(dns_vip) if dns_vip is not None else ""
    upstreams = filter_dns_upstreams(read_dns_upstreams(resolv_conf_path),
                                     addressing.non_virtual_ip, dns_vip_str)

    etcd_backends = ""
    if membership_source is not None:
        lb_config = get_lb_config(membership_source, api_port, lb_port, stat_port, api_vip,
                                  structured_logger=structured_logger)
        etcd_backends = format_etcd_backends(lb_config.backends)
    else:
        lb_config = ApiLBConfig(api_port=api_port, lb_port=lb_port, stat_port=stat_port,
                                frontend_addr=frontend_address(api_vip))

    cluster = Cluster(
        name=identity.name,
        domain=identity.domain,
        api_vip=str(api_vip) if api_vip is not None else "",
        api_virtual_router_id=router_ids.api,
        dns_vip=dns_vip_str,
        dns_virtual_router_id=router_ids.dns,
        ingress_vip=str(ingress_vip) if ingress_vip is not None else "",
        ingress_virtual_router_id=router_ids.ingress,
        vip_netmask=addressing.prefixlen,
        master_amount=identity.control_plane_replicas,
        etcd_backends=etcd_backends,
    )

    node = Node(
        cluster=cluster,
        lb_config=lb_config,
        non_virtual_ip=addressing.non_virtual_ip,
        short_hostname=short_name,
        etcd_short_hostname=etcd_short_name,
        vrrp_interface=addressing.interface,
        dns_upstreams=tuple(upstreams),
    )

    log.info(f"Resolved node {short_name} in cluster {identity.name}.{identity.domain} "
             f"(VRRP on {addressing.interface}, router IDs {tuple(router_ids)})")
    if structured_logger:
        structured_logger.log_node_config_resolved(
            identity.name, identity.domain, addressing.interface,
            router_ids._asdict(), list(upstreams),
            duration_ms=int((time.time() - start_time) * 1000))
    return node
