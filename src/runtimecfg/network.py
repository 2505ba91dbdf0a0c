"""
Node Network Resolution

Finds the interface that carries the cluster VIPs and the node's own
(non-virtual) address on it. keepalived binds VRRP to that interface and the
VIPs inherit the prefix length of the node address.

Interface enumeration is a capability (NetworkResolver) so the assembly can be
exercised with fakes; PsutilNetworkResolver is the implementation used on real
hosts.
"""

import ipaddress
import logging
import os
import socket
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence, Union

import psutil

from .errors import NetworkResolutionError

logger = logging.getLogger(os.getenv("LOGGER_NAME", "RUNTIMECFG"))

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPInterface = Union[ipaddress.IPv4Interface, ipaddress.IPv6Interface]


@dataclass(frozen=True)
class InterfaceAddress:
    interface: str
    address: IPInterface


@dataclass(frozen=True)
class NodeAddressing:
    interface: str
    non_virtual_ip: str
    prefixlen: int


class NetworkResolver(Protocol):
    def resolve(self, vips: Sequence[IPAddress]) -> InterfaceAddress:
        """Return the interface and local address whose subnet holds a VIP."""
        ...


def _netmask_prefixlen(netmask: str) -> int:
    mask = ipaddress.ip_address(netmask)
    return bin(int(mask)).count("1")


def _interface_addresses(addrs) -> List[IPInterface]:
    result = []
    for addr in addrs:
        if addr.family not in (socket.AF_INET, socket.AF_INET6) or not addr.netmask:
            continue
        # IPv6 link-local addresses carry a zone suffix
        ip = addr.address.split("%", 1)[0]
        try:
            result.append(ipaddress.ip_interface(f"{ip}/{_netmask_prefixlen(addr.netmask)}"))
        except ValueError:
            logger.debug(f"Skipping unparseable interface address {addr.address}/{addr.netmask}")
    return result


class PsutilNetworkResolver:
    """NetworkResolver backed by psutil.net_if_addrs()."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def _snapshot(self) -> Dict[str, List[IPInterface]]:
        return {name: _interface_addresses(addrs)
                for name, addrs in sorted(psutil.net_if_addrs().items())}

    def resolve(self, vips: Sequence[IPAddress]) -> InterfaceAddress:
        if not vips:
            raise NetworkResolutionError("No VIP supplied to locate the VRRP interface")

        interfaces = self._snapshot()
        for vip in vips:
            for name, addresses in interfaces.items():
                for address in addresses:
                    if address.ip == vip or address.version != vip.version:
                        continue
                    if vip in address.network:
                        self.log.debug(f"VIP {vip} reachable through {name} ({address})")
                        return InterfaceAddress(interface=name, address=address)

        raise NetworkResolutionError(
            f"No interface found with a subnet containing any of {[str(v) for v in vips]}"
        )


def collect_vips(api_vip: Optional[IPAddress] = None,
                 ingress_vip: Optional[IPAddress] = None,
                 dns_vip: Optional[IPAddress] = None) -> List[IPAddress]:
    """Candidate VIPs in API, Ingress, DNS order, absent ones dropped."""
    return [vip for vip in (api_vip, ingress_vip, dns_vip) if vip is not None]


def resolve_node_addressing(resolver: NetworkResolver, vips: Sequence[IPAddress]) -> NodeAddressing:
    """
    Delegate interface selection and derive the VIP netmask.

    Raises:
        NetworkResolutionError: Propagated from the resolver when no VIP
            resolves to a local interface.
    """
    found = resolver.resolve(list(vips))
    return NodeAddressing(interface=found.interface,
                          non_virtual_ip=str(found.address.ip),
                          prefixlen=found.address.network.prefixlen)
