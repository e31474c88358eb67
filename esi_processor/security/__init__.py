"""Security gate for include targets."""

from esi_processor.security.allowed_hosts import (
    AllowedHost,
    AllowedHosts,
    HostMatcher,
    to_origin,
)


__all__ = ["AllowedHost", "AllowedHosts", "HostMatcher", "to_origin"]
