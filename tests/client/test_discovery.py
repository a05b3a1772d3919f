"""Tests for IndieAuth server discovery.

High-impact tests covering the discovery strategy:
- indieauth-metadata discovery and its legacy fallback
- HEAD before GET, and merging partial results
- Link header precedence over the HTML body
- Failure modes (missing endpoints, transport errors)
"""

import asyncio
import json

import httpx
import pytest

from indieauth.client.discovery import MetadataDiscovery
from indieauth.models.errors import NoEndpointFoundError, TransportError

PROFILE_URL = "https://user.example.com/"


def make_discovery(handler) -> MetadataDiscovery:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MetadataDiscovery(http_client)


class TestMetadataDiscovery:
    async def test_metadata_document_is_used_when_linked(self):
        # Arrange
        metadata = {
            "issuer": "https://auth.example.com/",
            "authorization_endpoint": "https://auth.example.com/auth",
            "token_endpoint": "https://auth.example.com/token",
            "code_challenge_methods_supported": ["S256"],
            "scopes_supported": ["profile", "create"],
            "some_future_field": True,
        }

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/.well-known/oauth-authorization-server":
                assert request.headers["Accept"] == "application/json"
                return httpx.Response(200, json=metadata)
            return httpx.Response(
                200,
                headers={
                    "Link": '</.well-known/oauth-authorization-server>; rel="indieauth-metadata"'
                },
            )

        discovery = make_discovery(handler)

        # Act
        result = await discovery.discover_metadata(PROFILE_URL)

        # Assert
        assert result.issuer == "https://auth.example.com/"
        assert result.authorization_endpoint == "https://auth.example.com/auth"
        assert result.token_endpoint == "https://auth.example.com/token"
        assert result.code_challenge_methods_supported == ["S256"]
        assert result.scopes_supported == ["profile", "create"]

    async def test_falls_back_to_legacy_endpoints(self):
        # Arrange
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                headers={
                    "Link": '</auth>; rel="authorization_endpoint", '
                    '</token>; rel="token_endpoint"'
                },
            )

        discovery = make_discovery(handler)

        # Act
        result = await discovery.discover_metadata(PROFILE_URL)

        # Assert
        assert result.issuer == ""
        assert result.authorization_endpoint == "https://user.example.com/auth"
        assert result.token_endpoint == "https://user.example.com/token"
        assert result.revocation_endpoint == "https://user.example.com/token"

    async def test_falls_back_when_metadata_document_is_broken(self):
        # Arrange
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/metadata":
                return httpx.Response(500)
            return httpx.Response(
                200,
                headers={
                    "Link": '</metadata>; rel="indieauth-metadata", '
                    '</auth>; rel="authorization_endpoint"'
                },
            )

        discovery = make_discovery(handler)

        # Act
        result = await discovery.discover_metadata(PROFILE_URL)

        # Assert
        assert result.authorization_endpoint == "https://user.example.com/auth"

    async def test_missing_token_endpoint_is_tolerated(self):
        # Arrange
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, headers={"Link": '</auth>; rel="authorization_endpoint"'}
            )

        discovery = make_discovery(handler)

        # Act
        result = await discovery.discover_metadata(PROFILE_URL)

        # Assert
        assert result.authorization_endpoint == "https://user.example.com/auth"
        assert result.token_endpoint == ""

    async def test_missing_authorization_endpoint_fails(self):
        # Arrange
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"Link": '</token>; rel="token_endpoint"'})

        discovery = make_discovery(handler)

        # Act & Assert
        with pytest.raises(NoEndpointFoundError):
            await discovery.discover_metadata(PROFILE_URL)

    async def test_unreachable_profile_raises_transport_error(self):
        # Arrange
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        discovery = make_discovery(handler)

        # Act & Assert
        with pytest.raises(TransportError) as exc_info:
            await discovery.discover_metadata(PROFILE_URL)

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


class TestEndpointDiscoveryStrategy:
    async def test_head_is_enough_when_it_finds_everything(self):
        # Arrange
        methods = []

        def handler(request: httpx.Request) -> httpx.Response:
            methods.append(request.method)
            return httpx.Response(
                200, headers={"Link": '</micropub>; rel="micropub"'}
            )

        discovery = make_discovery(handler)

        # Act
        url = await discovery.discover_link_endpoint(PROFILE_URL, "micropub")

        # Assert
        assert url == "https://user.example.com/micropub"
        assert methods == ["HEAD"]

    async def test_get_is_used_when_head_finds_nothing(self):
        # Arrange
        methods = []

        def handler(request: httpx.Request) -> httpx.Response:
            methods.append(request.method)
            if request.method == "HEAD":
                return httpx.Response(200)
            return httpx.Response(
                200,
                html='<html><head><link rel="micropub" href="/micropub"></head></html>',
            )

        discovery = make_discovery(handler)

        # Act
        url = await discovery.discover_link_endpoint(PROFILE_URL, "micropub")

        # Assert
        assert url == "https://user.example.com/micropub"
        assert methods == ["HEAD", "GET"]

    async def test_get_is_used_when_head_fails(self):
        # Arrange
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "HEAD":
                return httpx.Response(405)
            return httpx.Response(
                200, headers={"Link": '<https://other.example/mp>; rel="micropub"'}
            )

        discovery = make_discovery(handler)

        # Act
        url = await discovery.discover_link_endpoint(PROFILE_URL, "micropub")

        # Assert
        assert url == "https://other.example/mp"

    async def test_partial_results_are_merged_with_head_first(self):
        # Arrange
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "HEAD":
                return httpx.Response(
                    200, headers={"Link": '</head-auth>; rel="authorization_endpoint"'}
                )
            return httpx.Response(
                200,
                html=(
                    '<link rel="authorization_endpoint" href="/get-auth">'
                    '<a rel="nothing" href="/x">x</a>'
                ),
            )

        discovery = make_discovery(handler)

        # Act
        links = await discovery._discover_endpoints(
            PROFILE_URL, "authorization_endpoint", "token_endpoint"
        )

        # Assert
        assert links == {"authorization_endpoint": "https://user.example.com/head-auth"}

    async def test_missing_relation_is_filled_from_get(self):
        # Arrange
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "HEAD":
                return httpx.Response(
                    200, headers={"Link": '</auth>; rel="authorization_endpoint"'}
                )
            return httpx.Response(200, html='<link rel="token_endpoint" href="/token">')

        discovery = make_discovery(handler)

        # Act
        result = await discovery.discover_metadata(PROFILE_URL)

        # Assert
        assert result.authorization_endpoint == "https://user.example.com/auth"
        assert result.token_endpoint == "https://user.example.com/token"

    async def test_header_wins_over_body_in_same_response(self):
        # Arrange
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                headers={"Link": '</from-header>; rel="authorization_endpoint"'},
                html=(
                    '<link rel="authorization_endpoint" href="/from-body">'
                    '<link rel="token_endpoint" href="/token">'
                ),
            )

        discovery = make_discovery(handler)

        # Act
        result = await discovery.discover_metadata(PROFILE_URL)

        # Assert
        assert result.authorization_endpoint == "https://user.example.com/from-header"
        assert result.token_endpoint == "https://user.example.com/token"

    async def test_relative_links_resolve_against_final_url(self):
        # Arrange
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/":
                return httpx.Response(
                    301, headers={"Location": "https://user.example.com/people/me"}
                )
            return httpx.Response(
                200, headers={"Link": '<auth>; rel="authorization_endpoint"'}
            )

        http_client = httpx.AsyncClient(
            transport=httpx.MockTransport(handler), follow_redirects=True
        )
        discovery = MetadataDiscovery(http_client)

        # Act
        result = await discovery.discover_metadata(PROFILE_URL)

        # Assert
        assert result.authorization_endpoint == "https://user.example.com/people/auth"

    async def test_both_requests_failing_raises_transport_error(self):
        # Arrange
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        discovery = make_discovery(handler)

        # Act & Assert
        with pytest.raises(TransportError):
            await discovery.discover_link_endpoint(PROFILE_URL, "micropub")

    async def test_relation_not_found_raises_no_endpoint(self):
        # Arrange
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, html="<html></html>")

        discovery = make_discovery(handler)

        # Act & Assert
        with pytest.raises(NoEndpointFoundError):
            await discovery.discover_link_endpoint(PROFILE_URL, "micropub")


class TestCancellation:
    @staticmethod
    def hanging_handler(requests: list, started: asyncio.Event):
        async def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request.method)
            started.set()
            await asyncio.sleep(10)
            return httpx.Response(200)

        return handler

    async def test_cancellation_aborts_the_request(self):
        # Arrange
        requests = []
        started = asyncio.Event()
        discovery = make_discovery(self.hanging_handler(requests, started))

        # Act
        task = asyncio.create_task(discovery.discover_metadata(PROFILE_URL))
        await started.wait()
        task.cancel()

        # Assert
        with pytest.raises(asyncio.CancelledError):
            await task
        assert requests == ["HEAD"]

    async def test_caller_deadline_propagates_without_fallback(self):
        # Arrange
        requests = []
        discovery = make_discovery(self.hanging_handler(requests, asyncio.Event()))

        # Act & Assert
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(discovery.discover_metadata(PROFILE_URL), 0.05)

        assert requests == ["HEAD"]


class TestClientLifecycle:
    async def test_injected_client_is_not_closed(self):
        # Arrange
        http_client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200))
        )
        discovery = MetadataDiscovery(http_client)

        # Act
        await discovery.close()

        # Assert
        assert not http_client.is_closed

    async def test_own_client_is_closed(self):
        # Arrange
        discovery = MetadataDiscovery()

        # Act
        await discovery.close()

        # Assert
        assert discovery._http_client.is_closed


def test_metadata_json_unknown_fields_are_ignored():
    from indieauth.models.metadata import Metadata

    metadata = Metadata.model_validate_json(
        json.dumps({"issuer": "https://a.example/", "unknown": 1})
    )

    assert metadata.issuer == "https://a.example/"
    assert metadata.token_endpoint == ""
