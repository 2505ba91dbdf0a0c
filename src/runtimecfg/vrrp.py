"""
VRRP Virtual Router ID Allocation

keepalived identifies a redundancy group by its virtual router ID. Every node of
a cluster runs the resolver independently, so the IDs must be derived from data
all nodes share (the cluster name) and must come out identical everywhere
without any coordination.

The ID of a role is the Fletcher-8 checksum of "<cluster name>-<role>" plus one.
Fletcher-8 keeps both running sums modulo 15, so the checksum never exceeds
0xEE (238) and the resulting ID lies in [1, 239]. Collisions between roles are
resolved by bumping the later role:

    api      -> checksum("<name>-api") + 1
    dns      -> checksum("<name>-dns") + 1, +1 if equal to api
    ingress  -> checksum("<name>-ingress") + 1, +1 while equal to api or dns
"""

from typing import NamedTuple

from .errors import RouterIDAllocationError

MIN_ROUTER_ID = 1
MAX_ROUTER_ID = 254

ROLE_API = "api"
ROLE_DNS = "dns"
ROLE_INGRESS = "ingress"
ROLES = (ROLE_API, ROLE_DNS, ROLE_INGRESS)


class RouterIDs(NamedTuple):
    api: int
    dns: int
    ingress: int


def fletcher_checksum8(text: str) -> int:
    """
    Compute the 8-bit Fletcher checksum of the UTF-8 encoding of ``text``.

    The first sum is held in an 8-bit accumulator before it is reduced, which
    only matters for bytes above 0xF0 (multi-byte UTF-8 sequences).

    Returns:
        int: ``(sum_b << 4) | sum_a``, always within [0, 238].
    """
    sum_a = 0
    sum_b = 0
    for byte in text.encode("utf-8"):
        sum_a = ((sum_a + byte) & 0xFF) % 0xF
        sum_b = (sum_b + sum_a) % 0xF
    return (sum_b << 4) | sum_a


def router_id_for_role(cluster_name: str, role: str) -> int:
    """Raw (not yet de-duplicated) router ID of one role."""
    # 0 is not a valid vrid for keepalived
    return fletcher_checksum8(f"{cluster_name}-{role}") + 1


def allocate_router_ids(cluster_name: str) -> RouterIDs:
    """
    Derive the API, DNS and Ingress virtual router IDs for a cluster.

    Args:
        cluster_name (str): Non-empty cluster name.

    Returns:
        RouterIDs: Three pairwise distinct IDs within [1, 254].

    Raises:
        ValueError: If cluster_name is empty.
        RouterIDAllocationError: If the ingress ID would leave the valid range
            while avoiding the other two IDs.
    """
    if not cluster_name or not isinstance(cluster_name, str):
        raise ValueError("cluster_name must be a non-empty string")

    api_id = router_id_for_role(cluster_name, ROLE_API)

    dns_id = router_id_for_role(cluster_name, ROLE_DNS)
    if dns_id == api_id:
        dns_id += 1

    ingress_id = router_id_for_role(cluster_name, ROLE_INGRESS)
    while ingress_id in (api_id, dns_id):
        ingress_id += 1
        if ingress_id > MAX_ROUTER_ID:
            raise RouterIDAllocationError(
                f"No free ingress router ID for cluster '{cluster_name}' "
                f"(api={api_id}, dns={dns_id})"
            )

    for role, value in zip(ROLES, (api_id, dns_id, ingress_id)):
        if not MIN_ROUTER_ID <= value <= MAX_ROUTER_ID:
            raise RouterIDAllocationError(
                f"{role} router ID {value} for cluster '{cluster_name}' is outside "
                f"[{MIN_ROUTER_ID}, {MAX_ROUTER_ID}]"
            )

    return RouterIDs(api=api_id, dns=dns_id, ingress=ingress_id)
