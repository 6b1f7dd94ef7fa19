"""Docket endpoint validator: outbound URL safety gate.

Runs before every provider call and every remote config fetch. Only
http/https URLs are accepted, and loopback / private-network hosts are
refused unless the caller explicitly allows them (local model servers).
"""

from __future__ import annotations

import ipaddress
from urllib.parse import urlsplit

from errors import InvalidEndpoint


_ALLOWED_SCHEMES = {"http", "https"}
_BLOCKED_HOSTS = {"localhost", "127.0.0.1"}
_BLOCKED_PREFIXES = ("10.", "172.", "192.168.")


def _is_internal_host(hostname: str) -> bool:
    """True for localhost names and for IP literals in internal ranges.

    The 10/172/192.168 prefixes apply to IPv4 literals only, so public
    DNS names such as 10.example.com are not caught.
    """
    host = hostname.lower().strip("[]").rstrip(".")
    if host in _BLOCKED_HOSTS or host.endswith(".localhost"):
        return True
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        return False
    if addr.version == 4 and host.startswith(_BLOCKED_PREFIXES):
        return True
    return addr.is_loopback or addr.is_private or addr.is_unspecified or addr.is_link_local


def validate_endpoint(url: str, allow_loopback: bool = False) -> None:
    """Raise InvalidEndpoint unless url is a safe http(s) target."""
    if not isinstance(url, str) or not url.strip():
        raise InvalidEndpoint("Malformed endpoint URL", {"endpoint": url})
    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
        _port = parts.port  # ValueError on a non-numeric port
    except ValueError:
        raise InvalidEndpoint("Malformed endpoint URL", {"endpoint": url})

    scheme = (parts.scheme or "").lower()
    if scheme not in _ALLOWED_SCHEMES:
        raise InvalidEndpoint(
            f"Invalid protocol: {scheme or '(none)'}:. Only HTTPS/HTTP allowed.",
            {"endpoint": url},
        )
    if not hostname:
        raise InvalidEndpoint("Malformed endpoint URL", {"endpoint": url})

    if not allow_loopback and _is_internal_host(hostname):
        raise InvalidEndpoint(
            "Requests to localhost or internal networks are not allowed",
            {"endpoint": url},
        )
