import logging
import os
import socket
from typing import Optional

from .errors import HostnameError

logger = logging.getLogger(os.getenv("LOGGER_NAME", "RUNTIMECFG"))

# File whose first line replaces the hostname reported by the OS
HOSTNAME_PATH_ENV = "RUNTIMECFG_HOSTNAME_PATH"


def get_short_hostname(hostname: str) -> str:
    """Return the part of ``hostname`` before the first dot."""
    return hostname.split(".", 1)[0]


def _read_hostname_file(file_path: str, log: logging.Logger) -> str:
    try:
        with open(file_path, "r") as f:
            content = f.read()
    except OSError as e:
        log.error(f"Failed to read hostname file {file_path}: {e}")
        raise HostnameError(f"Cannot read hostname file {file_path}: {e}") from e

    hostname = content.rstrip("\n").strip()
    log.debug(f"Hostname retrieved from file {file_path}: {hostname}")
    return hostname


def short_hostname(log: Optional[logging.Logger] = None) -> str:
    """
    Return the short hostname of the node.

    The hostname comes from the file named by RUNTIMECFG_HOSTNAME_PATH when that
    variable is set, otherwise from the OS. Both failure paths raise
    HostnameError; deciding whether that is fatal is left to the caller.
    """
    log = log or logger
    file_path = os.environ.get(HOSTNAME_PATH_ENV)

    if file_path is not None:
        hostname = _read_hostname_file(file_path, log)
    else:
        try:
            hostname = socket.gethostname()
        except OSError as e:
            raise HostnameError(f"Cannot determine OS hostname: {e}") from e
        if not hostname:
            raise HostnameError("OS reported an empty hostname")
        log.debug(f"Hostname retrieved from OS: {hostname}")

    return get_short_hostname(hostname)


def etcd_hostname_for(short_name: str) -> str:
    """
    Map a control-plane short hostname to its etcd member name.

    Only the first "master" is replaced. Hosts without "master" in their name
    are not etcd members and map to the empty string.
    """
    if "master" not in short_name:
        return ""
    return short_name.replace("master", "etcd", 1)


def etcd_short_hostname(log: Optional[logging.Logger] = None) -> str:
    return etcd_hostname_for(short_hostname(log))
