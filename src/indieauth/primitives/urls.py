"""Profile URL and client identifier validation.

Implements the URL shape rules of IndieAuth:
https://indieauth.spec.indieweb.org/#user-profile-url
https://indieauth.spec.indieweb.org/#client-identifier

Checks run in a fixed order and the first violated rule is raised.
"""

from __future__ import annotations

import ipaddress
from urllib.parse import SplitResult, unquote, urlsplit

from indieauth.models.errors import (
    EmptyPathError,
    InvalidFragmentError,
    InvalidPathError,
    InvalidSchemeError,
    IsIPError,
    IsNonLoopbackError,
    PortIsSetError,
    URLParseError,
    UserIsSetError,
)


def _parse(url: str) -> SplitResult:
    try:
        parsed = urlsplit(url)
        # Port is parsed lazily; touch it so a bad port fails here.
        parsed.port
    except ValueError as e:
        raise URLParseError(f"Cannot parse {url!r} as a URL: {e}") from e
    return parsed


def _ip_address(host: str | None) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    if not host:
        return None
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        return None


def _check_common(parsed: SplitResult) -> None:
    if parsed.scheme not in ("http", "https"):
        raise InvalidSchemeError("scheme must be either http or https")

    path = unquote(parsed.path)
    if path == "":
        raise EmptyPathError("path must not be empty")

    # Rejects any dot, not only "." and ".." segments.
    if "." in path:
        raise InvalidPathError("path cannot contain single or double dots")

    if parsed.fragment:
        raise InvalidFragmentError("fragment must be empty")

    if parsed.username or parsed.password:
        raise UserIsSetError("user and or password must not be set")


def is_valid_profile_url(url: str) -> None:
    """Validate a user profile URL.

    Args:
        url: Profile URL to validate

    Raises:
        URLParseError: If the URL cannot be parsed
        InvalidSchemeError: If the scheme is not http or https
        EmptyPathError: If the path is empty
        InvalidPathError: If the path contains a dot
        InvalidFragmentError: If a fragment is present
        UserIsSetError: If a user or password is present
        PortIsSetError: If a port is present
        IsIPError: If the host is an IP address
    """
    parsed = _parse(url)
    _check_common(parsed)

    if parsed.port is not None:
        raise PortIsSetError("port must not be set")

    if _ip_address(parsed.hostname) is not None:
        raise IsIPError("profile cannot be ip address")


def is_valid_client_identifier(url: str) -> None:
    """Validate a client identifier.

    Same rules as profile URLs, except ports are allowed and the host may
    be a loopback IP address so local development clients work.

    Raises:
        URLParseError: If the URL cannot be parsed
        InvalidSchemeError: If the scheme is not http or https
        EmptyPathError: If the path is empty
        InvalidPathError: If the path contains a dot
        InvalidFragmentError: If a fragment is present
        UserIsSetError: If a user or password is present
        IsNonLoopbackError: If the host is a non-loopback IP address
    """
    parsed = _parse(url)
    _check_common(parsed)

    ip = _ip_address(parsed.hostname)
    if ip is not None and not ip.is_loopback:
        raise IsNonLoopbackError("client id cannot be non-loopback ip")


def canonicalize_url(url: str) -> str:
    """Canonicalize a user-entered URL.

    Adds the https scheme when no http(s) scheme is present, since
    parsing a URL without one puts the host in the path. An empty path
    becomes "/". Unparseable input is returned unchanged.
    """
    candidate = url
    if not candidate.startswith("http://") and not candidate.startswith("https://"):
        candidate = "https://" + candidate

    try:
        parsed = _parse(candidate)
    except URLParseError:
        return url

    path = parsed.path or "/"
    canonical = f"{parsed.scheme}://{parsed.netloc}{path}"
    if parsed.query:
        canonical += f"?{parsed.query}"
    if parsed.fragment:
        canonical += f"#{parsed.fragment}"
    return canonical
