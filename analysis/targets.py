"""
URL checks shared by the HTTP layer and the analysis runner.

Only http/https URLs with a host are accepted. In production, loopback and
private-network hosts are rejected so the auditor cannot be pointed at
internal services.
"""

import ipaddress
from urllib.parse import urlparse

from config.settings import settings
from analysis.errors import InvalidTargetError

_BLOCKED_HOSTNAMES = {"localhost", "0.0.0.0"}


def _is_internal_host(hostname: str) -> bool:
    if hostname in _BLOCKED_HOSTNAMES or hostname.endswith(".localhost"):
        return True
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return address.is_private or address.is_loopback or address.is_unspecified


def check_target_url(url: str, production: bool | None = None) -> str:
    """Return the URL unchanged, or raise InvalidTargetError."""
    production = settings.is_production if production is None else production

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise InvalidTargetError("URL must use HTTP or HTTPS protocol")
    if not parsed.hostname:
        raise InvalidTargetError("Invalid URL format")
    if production and _is_internal_host(parsed.hostname.lower()):
        raise InvalidTargetError("Invalid URL - internal/localhost URLs not allowed in production")
    return url
