import logging
import os
from typing import Iterable, List, Optional

from .errors import DNSReadError

logger = logging.getLogger(os.getenv("LOGGER_NAME", "RUNTIMECFG"))

# CoreDNS forward plugin takes up to 15 upstream servers
MAX_DNS_UPSTREAMS = 15

LOOPBACK_ADDRESSES = ("127.0.0.1", "::1")


def parse_dns_upstreams(lines: Iterable[str]) -> List[str]:
    """Collect the addresses of ``nameserver`` lines, at most MAX_DNS_UPSTREAMS."""
    upstreams: List[str] = []
    for line in lines:
        fields = line.split()
        if len(fields) < 2 or fields[0] != "nameserver":
            continue
        upstreams.append(fields[1])
        if len(upstreams) >= MAX_DNS_UPSTREAMS:
            break
    return upstreams


def read_dns_upstreams(resolv_conf_path: str) -> List[str]:
    try:
        with open(resolv_conf_path, "r") as f:
            return parse_dns_upstreams(f)
    except (OSError, UnicodeDecodeError) as e:
        raise DNSReadError(f"Cannot read {resolv_conf_path}: {e}") from e


def filter_dns_upstreams(upstreams: Iterable[str],
                         non_virtual_ip: str,
                         dns_vip: Optional[str]) -> List[str]:
    """
    Drop upstreams that would make CoreDNS forward to itself.

    Removed: the node's own address, the DNS VIP and both loopback literals.
    Order of the remaining entries is preserved.
    """
    upstreams = list(upstreams)
    excluded = {non_virtual_ip, *LOOPBACK_ADDRESSES}
    if dns_vip:
        excluded.add(dns_vip)

    filtered = [u for u in upstreams if u not in excluded]
    dropped = [u for u in upstreams if u in excluded]
    if dropped:
        logger.debug(f"Filtered local DNS upstreams: {dropped}")
    return filtered
