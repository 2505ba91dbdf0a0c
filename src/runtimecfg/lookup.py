"""
Name Service Lookups

Small helpers the renderers use to discover etcd peers and map between
control-plane host names and addresses:

    get_etcd_srv_members("ostest.example.com")
        SRV query for _etcd-server-ssl._tcp.ostest.example.com
    get_first_addr("master-0.ostest.example.com")  -> "10.0.0.10"
    get_first_host("10.0.0.10")                     -> "master-0.ostest.example.com"

SRV answers come back ordered by priority, then by descending weight. Every
failure is raised as DNSLookupError.
"""

import logging
import os
import socket
from dataclasses import dataclass
from typing import List, Optional

import dns.exception
import dns.resolver

from .errors import DNSLookupError

logger = logging.getLogger(os.getenv("LOGGER_NAME", "RUNTIMECFG"))

ETCD_SRV_SERVICE = "_etcd-server-ssl._tcp"
DEFAULT_LOOKUP_TIMEOUT = 5.0  # seconds


@dataclass(frozen=True)
class SRVMember:
    target: str
    port: int
    priority: int
    weight: int


def get_etcd_srv_members(domain: str, timeout: Optional[float] = DEFAULT_LOOKUP_TIMEOUT,
                         log: Optional[logging.Logger] = None) -> List[SRVMember]:
    """
    Look up the etcd server SRV records of a cluster domain.

    Args:
        domain (str): Cluster domain, e.g. ``<name>.<base domain>``.
        timeout (float, optional): Overall resolver lifetime in seconds.
        log (logging.Logger, optional): Logger for human-readable messages.

    Returns:
        list[SRVMember]: Targets without the trailing dot, sorted by priority
        and then by descending weight.

    Raises:
        DNSLookupError: On NXDOMAIN, an empty answer or a resolver timeout.
    """
    log = log or logger
    name = f"{ETCD_SRV_SERVICE}.{domain.rstrip('.')}"
    try:
        answers = dns.resolver.resolve(name, "SRV", lifetime=timeout)
    except dns.resolver.NXDOMAIN as e:
        raise DNSLookupError(f"SRV lookup of {name}: domain not found") from e
    except dns.resolver.NoAnswer as e:
        raise DNSLookupError(f"SRV lookup of {name}: no answer") from e
    except dns.exception.Timeout as e:
        raise DNSLookupError(f"SRV lookup of {name}: timeout") from e
    except dns.exception.DNSException as e:
        raise DNSLookupError(f"SRV lookup of {name} failed: {e}") from e

    members = [
        SRVMember(target=str(rdata.target).rstrip("."), port=rdata.port,
                  priority=rdata.priority, weight=rdata.weight)
        for rdata in answers
    ]
    members.sort(key=lambda m: (m.priority, -m.weight))
    log.debug(f"SRV members for {name}: {[m.target for m in members]}")
    return members


def get_first_addr(host: str) -> str:
    """First address ``host`` resolves to."""
    try:
        infos = socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP)
    except (socket.gaierror, UnicodeError) as e:
        raise DNSLookupError(f"Cannot resolve {host}: {e}") from e
    if not infos:
        raise DNSLookupError(f"No addresses for {host}")
    return infos[0][4][0]


def get_first_host(addr: str) -> str:
    """First name registered for ``addr`` (reverse lookup), without a trailing dot."""
    try:
        hostname = socket.gethostbyaddr(addr)[0]
    except (socket.herror, socket.gaierror) as e:
        raise DNSLookupError(f"Cannot reverse resolve {addr}: {e}") from e
    return hostname.rstrip(".")
