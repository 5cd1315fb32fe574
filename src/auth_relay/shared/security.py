"""
Security utilities for the first-party OAuth relay gateway.

This module provides the origin allowlist shared by CORS negotiation and
relay redirect validation, and the fixed security header set applied to
every response.
"""

from typing import Dict, FrozenSet, Iterable, Optional
from urllib.parse import urlsplit

from .relay_models import RuntimeMode


DEFAULT_PORTS = {"http": 80, "https": 443}
ALLOWED_REDIRECT_SCHEMES = frozenset(["http", "https"])


def origin_of(url: Optional[str]) -> Optional[str]:
    """
    Extract the normalized origin of an absolute http(s) URL.

    Args:
        url: Absolute URL to inspect

    Returns:
        Optional[str]: ``scheme://host[:port]`` with scheme and host
        lowercased and default ports dropped, or None when the URL is not
        an absolute http(s) URL with a host

    Example:
        origin_of("https://App.example.com:443/cb?x=1")
        # Returns: "https://app.example.com"
    """
    if not isinstance(url, str) or not url.strip():
        return None

    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError:
        # Malformed netloc, e.g. a non-numeric or out-of-range port
        return None

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_REDIRECT_SCHEMES or not parts.hostname:
        return None

    # urlsplit keeps credentials in netloc; an origin never carries them
    if parts.username is not None or parts.password is not None:
        return None

    host = parts.hostname.lower()
    if ":" in host:
        host = f"[{host}]"

    if port is None or port == DEFAULT_PORTS[scheme]:
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


class OriginAllowlist:
    """
    Immutable set of trusted origins.

    One instance is built at startup and shared read-only by the CORS stage
    (request ``Origin`` header) and the relay (origin of the ``redirect``
    parameter), so both enforce the same trust boundary.
    """

    def __init__(self, origins: Iterable[str]):
        normalized = set()
        for origin in origins:
            cleaned = origin.strip().rstrip("/")
            if cleaned:
                normalized.add(cleaned)
        self._origins: FrozenSet[str] = frozenset(normalized)

    @property
    def origins(self) -> FrozenSet[str]:
        return self._origins

    def is_allowed(self, origin: Optional[str]) -> bool:
        """
        Check an origin against the allowlist.

        Exact string match only; no wildcard or suffix matching.

        Args:
            origin: Normalized origin (scheme + host + port)

        Returns:
            bool: True if the origin is in the allowlist
        """
        if not origin:
            return False
        return origin in self._origins

    def allows_url(self, url: Optional[str]) -> bool:
        """Check whether the origin of an absolute URL is allowlisted."""
        return self.is_allowed(origin_of(url))

    def __contains__(self, origin: object) -> bool:
        return isinstance(origin, str) and self.is_allowed(origin)

    def __iter__(self):
        return iter(sorted(self._origins))

    def __len__(self) -> int:
        return len(self._origins)

    def __repr__(self) -> str:
        return f"OriginAllowlist({sorted(self._origins)!r})"


class SecurityHeaders:
    """
    Security headers for HTTP responses.

    The set is fixed; only Strict-Transport-Security depends on the
    runtime mode.
    """

    CONTENT_SECURITY_POLICY = (
        "default-src 'self'; "
        "script-src 'self'; "
        "style-src 'self' 'unsafe-inline'; "
        "img-src 'self' data: https:; "
        "connect-src 'self'; "
        "font-src 'self'; "
        "object-src 'none'; "
        "frame-ancestors 'none';"
    )
    STRICT_TRANSPORT_SECURITY = "max-age=31536000; includeSubDomains; preload"

    @staticmethod
    def for_mode(mode: RuntimeMode) -> Dict[str, str]:
        """
        Get the security headers for a runtime mode.

        Args:
            mode: Production or development

        Returns:
            dict: Header name to value
        """
        headers = {}
        if mode.is_production:
            headers['Strict-Transport-Security'] = SecurityHeaders.STRICT_TRANSPORT_SECURITY

        headers.update({
            'X-Frame-Options': 'DENY',
            'X-Content-Type-Options': 'nosniff',
            'X-XSS-Protection': '1; mode=block',
            'Referrer-Policy': 'strict-origin-when-cross-origin',
            'Content-Security-Policy': SecurityHeaders.CONTENT_SECURITY_POLICY,
        })
        return headers
