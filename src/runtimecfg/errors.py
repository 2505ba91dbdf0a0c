"""
Exception hierarchy for the runtime configuration resolver.

Every error raised by the resolver derives from RuntimecfgError so callers can
decide in one place whether a failure is fatal. The original cause, when there
is one, is always chained (``raise ... from exc``).
"""


class RuntimecfgError(Exception):
    """Base class for all resolver errors."""


class ConfigSourceError(RuntimecfgError):
    """A configuration document could not be read or decoded."""


class IdentityResolutionError(RuntimecfgError):
    """The API server hostname does not have the api.<name>.<domain> shape."""


class NetworkResolutionError(RuntimecfgError):
    """No local interface carries a subnet containing any candidate VIP."""


class DNSReadError(RuntimecfgError):
    """The resolv-style file could not be read."""


class MembershipQueryError(RuntimecfgError):
    """Listing control-plane members failed."""


class HealthProbeError(RuntimecfgError):
    """The health endpoint could not be reached or its response decoded."""


class HostnameError(RuntimecfgError):
    """The local hostname could not be determined."""


class RouterIDAllocationError(RuntimecfgError):
    """No free VRRP router ID is left in the valid range."""


class DNSLookupError(RuntimecfgError):
    """A name, address or SRV lookup returned no usable answer."""
