"""
Cluster Identity Resolution

The cluster name and base domain drive the VRRP router IDs and the DNS records
served for the cluster, so every node has to arrive at the same values.

Sources, tried strictly in this order:

1. Cluster config document: a ConfigMap whose ``data["install-config"]`` entry
   is itself a YAML document carrying ``metadata.name``, ``baseDomain`` and
   ``controlPlane.replicas``.
2. Kubeconfig fallback: the server URL of the current context's cluster, whose
   hostname has the form ``api.<name>.<domain...>``.

The fallback is consulted only when the primary source raises
ConfigSourceError. Any other error (including a malformed API hostname in the
fallback) goes straight to the caller.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Tuple
from urllib.parse import urlsplit

import yaml
from kubernetes.config import kube_config
from kubernetes.config.config_exception import ConfigException

from .errors import ConfigSourceError, IdentityResolutionError
from .structured_events import StructuredEventLogger, ActionResult

logger = logging.getLogger(os.getenv("LOGGER_NAME", "RUNTIMECFG"))

INSTALL_CONFIG_KEY = "install-config"


@dataclass(frozen=True)
class ClusterInstallConfig:
    name: str
    base_domain: str
    control_plane_replicas: Optional[int] = None


@dataclass(frozen=True)
class ClusterIdentity:
    name: str
    domain: str
    control_plane_replicas: int = 0
    source: str = "cluster-config"


class ConfigSource(Protocol):
    def load(self) -> ClusterInstallConfig:
        """Return the decoded install config or raise ConfigSourceError."""
        ...


def _load_yaml_file(path: str) -> Any:
    try:
        with open(path, "r") as f:
            return yaml.safe_load(f)
    except OSError as e:
        raise ConfigSourceError(f"Cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigSourceError(f"Cannot decode {path}: {e}") from e


def parse_install_config(document: Any) -> ClusterInstallConfig:
    """
    Decode the embedded install config of a cluster-config ConfigMap.

    Args:
        document: The already decoded ConfigMap (a mapping).

    Returns:
        ClusterInstallConfig: name, base domain and control-plane replicas.

    Raises:
        ConfigSourceError: If the ConfigMap or the embedded document does not
            have the expected shape.
    """
    if not isinstance(document, dict):
        raise ConfigSourceError("Cluster config is not a mapping")

    data = document.get("data") or {}
    embedded = data.get(INSTALL_CONFIG_KEY) if isinstance(data, dict) else None
    if not embedded or not isinstance(embedded, str):
        raise ConfigSourceError(f"Cluster config has no '{INSTALL_CONFIG_KEY}' entry")

    try:
        install_config = yaml.safe_load(embedded)
    except yaml.YAMLError as e:
        raise ConfigSourceError(f"Cannot decode embedded install config: {e}") from e
    if not isinstance(install_config, dict):
        raise ConfigSourceError("Embedded install config is not a mapping")

    metadata = install_config.get("metadata") or {}
    name = metadata.get("name") if isinstance(metadata, dict) else None
    base_domain = install_config.get("baseDomain")
    if not name or not base_domain:
        raise ConfigSourceError("Install config lacks metadata.name or baseDomain")

    replicas = None
    control_plane = install_config.get("controlPlane")
    if isinstance(control_plane, dict) and control_plane.get("replicas") is not None:
        try:
            replicas = int(control_plane["replicas"])
        except (TypeError, ValueError) as e:
            raise ConfigSourceError(f"Invalid controlPlane.replicas: {control_plane['replicas']!r}") from e

    return ClusterInstallConfig(name=str(name), base_domain=str(base_domain),
                                control_plane_replicas=replicas)


class FileClusterConfigSource:
    """ConfigSource reading a cluster-config ConfigMap from a YAML file."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> ClusterInstallConfig:
        if not self.path:
            raise ConfigSourceError("No cluster config path configured")
        return parse_install_config(_load_yaml_file(self.path))


def current_cluster_server(kubeconfig_path: str) -> str:
    """
    Server URL of the cluster referenced by the kubeconfig's current context.

    Raises:
        ConfigSourceError: If the kubeconfig cannot be loaded, has no current
            context, or the referenced cluster has no server.
    """
    try:
        merger = kube_config.KubeConfigMerger(kubeconfig_path)
        if not merger.config:
            raise ConfigSourceError(f"No kubeconfig found at {kubeconfig_path}")
        loader = kube_config.KubeConfigLoader(config_dict=merger.config)
        cluster_name = loader.current_context["context"]["cluster"]
        cluster = merger.config["clusters"].get_with_name(cluster_name)["cluster"]
        server = cluster.safe_get("server")
    except ConfigException as e:
        raise ConfigSourceError(f"Invalid kubeconfig {kubeconfig_path}: {e}") from e
    except (yaml.YAMLError, OSError) as e:
        raise ConfigSourceError(f"Cannot load kubeconfig {kubeconfig_path}: {e}") from e
    except (TypeError, KeyError) as e:
        raise ConfigSourceError(f"Kubeconfig {kubeconfig_path} has an unexpected shape: {e}") from e

    if not server:
        raise ConfigSourceError("Kubeconfig cluster has no server URL")
    return server


def server_hostname(server: str) -> str:
    """
    Host part of a server URL with its original case.

    Raises:
        IdentityResolutionError: If the URL has no host.
    """
    netloc = urlsplit(server).netloc.rpartition("@")[2]
    if netloc.startswith("["):
        host = netloc[1:].partition("]")[0]
    else:
        host = netloc.partition(":")[0]
    if not host:
        raise IdentityResolutionError(f"Server URL '{server}' has no hostname")
    return host


def split_api_hostname(hostname: str) -> Tuple[str, str]:
    """
    Split ``api.<name>.<domain...>`` into (name, domain).

    Raises:
        IdentityResolutionError: If the hostname has fewer than three labels.
    """
    parts = hostname.split(".", 2)
    if len(parts) < 3 or not parts[1] or not parts[2]:
        raise IdentityResolutionError(
            f"API hostname '{hostname}' is not of the form api.<name>.<domain>"
        )
    return parts[1], parts[2]


def get_kubeconfig_cluster_name_and_domain(kubeconfig_path: str) -> Tuple[str, str]:
    server = current_cluster_server(kubeconfig_path)
    try:
        hostname = server_hostname(server)
    except ValueError as e:
        raise IdentityResolutionError(f"Cannot parse server URL '{server}': {e}") from e
    return split_api_hostname(hostname)


def resolve_cluster_identity(config_source: Optional[ConfigSource],
                             kubeconfig_path: str,
                             structured_logger: Optional[StructuredEventLogger] = None,
                             log: Optional[logging.Logger] = None) -> ClusterIdentity:
    """
    Resolve cluster name, domain and control-plane replica count.

    The primary source is always attempted first; the kubeconfig is read only
    after it failed with ConfigSourceError. A missing config source counts as
    such a failure.

    Args:
        config_source (ConfigSource | None): Primary source.
        kubeconfig_path (str): Kubeconfig used as the fallback.
        structured_logger (StructuredEventLogger, optional): Receives a
            structured event when the fallback is used.
        log (logging.Logger, optional): Logger for human-readable messages.

    Returns:
        ClusterIdentity: With ``control_plane_replicas`` 0 when unknown.

    Raises:
        ConfigSourceError: If both sources fail to load.
        IdentityResolutionError: If the fallback hostname is malformed.
    """
    log = log or logger
    primary_error = None

    if config_source is not None:
        try:
            ic = config_source.load()
            log.debug(f"Cluster identity from cluster config: {ic.name}.{ic.base_domain}")
            return ClusterIdentity(name=ic.name, domain=ic.base_domain,
                                   control_plane_replicas=ic.control_plane_replicas or 0,
                                   source="cluster-config")
        except ConfigSourceError as e:
            primary_error = e
    else:
        primary_error = ConfigSourceError("No cluster config source configured")

    log.info(f"Cluster config unavailable ({primary_error}); falling back to kubeconfig {kubeconfig_path}")
    try:
        name, domain = get_kubeconfig_cluster_name_and_domain(kubeconfig_path)
    except (ConfigSourceError, IdentityResolutionError) as e:
        if structured_logger:
            structured_logger.log_identity_fallback(kubeconfig_path, str(primary_error),
                                                    ActionResult.FAILURE, error_message=str(e))
        raise

    if structured_logger:
        structured_logger.log_identity_fallback(kubeconfig_path, str(primary_error),
                                                ActionResult.SUCCESS)
    return ClusterIdentity(name=name, domain=domain, control_plane_replicas=0, source="kubeconfig")
