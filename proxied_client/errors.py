"""
Exceptions raised while building clients. Both kinds are startup errors:
the process is misconfigured and should not carry on.
"""


class ProxiedClientError(Exception):
    """Base class for proxied_client errors."""


class ProxyConfigError(ProxiedClientError, ValueError):
    """Proxy endpoint, authorization or default headers failed to parse."""


class ConfigError(ProxiedClientError):
    """The configuration source is malformed."""
