"""
Records produced by the resolver.

All records are frozen and hold tuples instead of lists: a Node is built once
per resolution call and handed to template renderers unchanged.
"""

import json
from dataclasses import dataclass, asdict, field
from typing import Any, Dict, Tuple


@dataclass(frozen=True)
class Cluster:
    name: str
    domain: str
    api_vip: str = ""
    api_virtual_router_id: int = 0
    dns_vip: str = ""
    dns_virtual_router_id: int = 0
    ingress_vip: str = ""
    ingress_virtual_router_id: int = 0
    vip_netmask: int = 0
    master_amount: int = 0
    etcd_backends: str = ""


@dataclass(frozen=True)
class Backend:
    host: str
    address: str
    port: int = 0


@dataclass(frozen=True)
class ApiLBConfig:
    api_port: int
    lb_port: int
    stat_port: int
    backends: Tuple[Backend, ...] = ()
    frontend_addr: str = ""


@dataclass(frozen=True)
class Node:
    cluster: Cluster
    lb_config: ApiLBConfig
    non_virtual_ip: str
    short_hostname: str
    etcd_short_hostname: str
    vrrp_interface: str
    dns_upstreams: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)
