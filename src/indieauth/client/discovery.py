"""IndieAuth server discovery.

Finds the authorization server metadata for a profile URL as described
in https://indieauth.spec.indieweb.org/#discovery-by-clients, falling
back to the separate ``authorization_endpoint`` and ``token_endpoint``
links of the 26 November 2020 revision.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from pydantic import ValidationError

from indieauth.models.errors import (
    IndieAuthError,
    NoEndpointFoundError,
    TransportError,
)
from indieauth.models.metadata import Metadata
from indieauth.primitives.links import (
    find_html_links,
    parse_link_header,
    resolve_references,
)
from indieauth.shared.http import default_http_client, send_request

logger = logging.getLogger(__name__)

AUTHORIZATION_ENDPOINT_REL = "authorization_endpoint"
TOKEN_ENDPOINT_REL = "token_endpoint"
INDIEAUTH_METADATA_REL = "indieauth-metadata"


@dataclass(frozen=True)
class DiscoveredLinks:
    """Relations found in a single response."""

    links: dict[str, str]
    found_all: bool


class MetadataDiscovery:
    """Discovers IndieAuth endpoints and metadata for a URL.

    Endpoint discovery sends a HEAD request first and only falls back to
    GET when HEAD does not reveal every requested relation. Neither
    request is retried.
    """

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        """Initialize discovery.

        Args:
            http_client: HTTP client to send requests with. A private one
                is created (and closed by ``close``) when omitted.
        """
        self._owns_client = http_client is None
        self._http_client = http_client or default_http_client()

    async def discover_metadata(self, url: str) -> Metadata:
        """Discover the IndieAuth server metadata for a URL.

        Tries the ``indieauth-metadata`` link first. When that fails the
        legacy ``authorization_endpoint`` and ``token_endpoint`` links are
        used instead; a missing token endpoint is tolerated.

        Args:
            url: Profile or server URL

        Returns:
            Discovered server metadata

        Raises:
            NoEndpointFoundError: If no authorization endpoint is found
            TransportError: If the URL cannot be fetched at all
        """
        try:
            return await self._fetch_metadata(url)
        except IndieAuthError as e:
            logger.debug(f"Metadata discovery failed for {url}, trying legacy: {e}")

        links = await self._discover_endpoints(
            url, AUTHORIZATION_ENDPOINT_REL, TOKEN_ENDPOINT_REL
        )

        authorization_endpoint = links.get(AUTHORIZATION_ENDPOINT_REL)
        if not authorization_endpoint:
            raise NoEndpointFoundError(f"No authorization endpoint found for {url}")

        token_endpoint = links.get(TOKEN_ENDPOINT_REL, "")
        if not token_endpoint:
            logger.debug(f"No token endpoint found for {url}")

        return Metadata(
            authorization_endpoint=authorization_endpoint,
            token_endpoint=token_endpoint,
            revocation_endpoint=token_endpoint,
        )

    async def discover_link_endpoint(self, url: str, rel: str) -> str:
        """Discover the absolute URL of a single link relation.

        Raises:
            NoEndpointFoundError: If the relation is not found
            TransportError: If the URL cannot be fetched at all
        """
        links = await self._discover_endpoints(url, rel)
        if rel not in links:
            raise NoEndpointFoundError(f"No {rel} endpoint found for {url}")
        return links[rel]

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()

    async def _fetch_metadata(self, url: str) -> Metadata:
        """Fetch the metadata document linked as ``indieauth-metadata``."""
        metadata_url = await self.discover_link_endpoint(url, INDIEAUTH_METADATA_REL)

        logger.debug(f"Fetching IndieAuth metadata from: {metadata_url}")
        response = await send_request(
            self._http_client,
            "GET",
            metadata_url,
            headers={"Accept": "application/json"},
        )

        if response.status_code != 200:
            raise TransportError(
                f"Metadata request to {metadata_url}: expected 200, "
                f"got {response.status_code}"
            )

        try:
            return Metadata.model_validate_json(response.content)
        except ValidationError as e:
            raise TransportError(f"Invalid metadata from {metadata_url}: {e}") from e

    async def _discover_endpoints(self, url: str, *rels: str) -> dict[str, str]:
        """Discover several relations, preferring HEAD over GET.

        When neither request finds every relation, the partial results
        are merged with HEAD taking precedence.

        Returns:
            Mapping of relation to absolute URL for the relations found

        Raises:
            TransportError: If both requests fail
        """
        head, head_error = await self._try_discover_request("HEAD", url, rels)
        if head is not None and head.found_all:
            return head.links

        get, get_error = await self._try_discover_request("GET", url, rels)
        if get is not None and get.found_all:
            return get.links

        if head_error is not None and get_error is not None:
            raise get_error

        merged: dict[str, str] = {}
        for rel in rels:
            if head is not None and rel in head.links:
                merged[rel] = head.links[rel]
            elif get is not None and rel in get.links:
                merged[rel] = get.links[rel]
        return merged

    async def _try_discover_request(
        self, method: str, url: str, rels: tuple[str, ...]
    ) -> tuple[DiscoveredLinks | None, TransportError | None]:
        try:
            return await self._discover_request(method, url, rels), None
        except TransportError as e:
            logger.debug(f"{method} discovery request failed: {e}")
            return None, e

    async def _discover_request(
        self, method: str, url: str, rels: tuple[str, ...]
    ) -> DiscoveredLinks:
        """Extract relations from one response.

        Link headers win; the HTML body fills in relations the headers
        do not declare.
        """
        response = await send_request(self._http_client, method, url)

        if not response.is_success:
            raise TransportError(
                f"{method} {url}: unexpected status {response.status_code}"
            )

        links = parse_link_header(response.headers.get_list("link"), rels)
        if len(links) < len(rels) and response.content:
            for rel, href in find_html_links(response.content, rels).items():
                links.setdefault(rel, href)

        return DiscoveredLinks(
            links=resolve_references(str(response.url), links),
            found_all=len(links) == len(rels),
        )
