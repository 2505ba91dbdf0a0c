import logging
import os
from typing import Optional, Protocol

import requests
import urllib3

from .errors import HealthProbeError

logger = logging.getLogger(os.getenv("LOGGER_NAME", "RUNTIMECFG"))

HEALTHZ_URL_TEMPLATE = "https://127.0.0.1:{port}/healthz"
HEALTHY_BODY = "ok"

# The local API server presents a certificate for its cluster names, not 127.0.0.1
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)


class HealthProbe(Protocol):
    def check(self) -> bool:
        """Return True when healthy; raise HealthProbeError when undeterminable."""
        ...


def is_kubernetes_healthy(port: int, timeout: Optional[float] = None) -> bool:
    """
    Probe the local Kubernetes API server's /healthz endpoint.

    Args:
        port (int): Local API port.
        timeout (float, optional): Request timeout in seconds. None blocks
            until the transport gives up; callers should pass one.

    Returns:
        bool: True iff the response body is exactly "ok".

    Raises:
        HealthProbeError: On transport, TLS or body decoding failures.
    """
    url = HEALTHZ_URL_TEMPLATE.format(port=port)
    try:
        r = requests.get(url, verify=False, timeout=timeout)
        body = r.content.decode("utf-8")
    except requests.exceptions.RequestException as e:
        raise HealthProbeError(f"Health probe of {url} failed: {e}") from e
    except UnicodeDecodeError as e:
        raise HealthProbeError(f"Health probe of {url} returned an undecodable body: {e}") from e

    healthy = body == HEALTHY_BODY
    logger.debug(f"Health probe {url}: status={r.status_code} healthy={healthy}")
    return healthy


class KubernetesHealthProbe:
    """HealthProbe for the local API server."""

    def __init__(self, port: int, timeout: Optional[float] = None):
        self.port = port
        self.timeout = timeout

    @property
    def endpoint(self) -> str:
        return HEALTHZ_URL_TEMPLATE.format(port=self.port)

    def check(self) -> bool:
        return is_kubernetes_healthy(self.port, self.timeout)
