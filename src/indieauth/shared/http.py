"""Outbound HTTP helpers shared by the client and the server."""

from __future__ import annotations

import httpx

from indieauth.models.errors import TransportError


def default_http_client() -> httpx.AsyncClient:
    """Build the HTTP client used when the caller does not inject one.

    Redirects are followed so links resolve against the final URL. No
    timeout is set; callers bound the work with their own deadline.
    """
    return httpx.AsyncClient(follow_redirects=True, timeout=None)


async def send_request(
    http_client: httpx.AsyncClient,
    method: str,
    url: str,
    **kwargs,
) -> httpx.Response:
    """Send a request, wrapping network failures in TransportError.

    Cancellation is not caught and aborts the request.
    """
    try:
        return await http_client.request(method, url, **kwargs)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise TransportError(f"{method} {url} failed: {e}") from e
