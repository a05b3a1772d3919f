"""IndieAuth authorization server request handling.

Parses authorization requests and validates the later code exchange
against them, including PKCE (RFC 7636). Storing requests under the
issued code, and minting tokens, is left to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlsplit

import httpx
import mf2py
from starlette.requests import Request

from indieauth.models.errors import (
    CodeChallengeFailedError,
    IdentifierError,
    InvalidClientIdentifierError,
    InvalidCodeChallengeMethodError,
    InvalidGrantTypeError,
    InvalidRedirectURIError,
    InvalidResponseTypeError,
    NoApplicationMetadataError,
    NoMatchClientIDError,
    NoMatchRedirectURIError,
    PKCERequiredError,
    TransportError,
    WrongCodeChallengeLengthError,
    WrongCodeVerifierLengthError,
)
from indieauth.models.flow import AuthenticationRequest
from indieauth.models.metadata import ApplicationMetadata
from indieauth.primitives.pkce import (
    is_valid_code_challenge_method,
    is_valid_code_length,
    validate_code_challenge,
)
from indieauth.primitives.urls import is_valid_client_identifier
from indieauth.server.http import request_params
from indieauth.shared.http import default_http_client, send_request

logger = logging.getLogger(__name__)

APPLICATION_TYPES = ("h-app", "h-x-app")  # h-x-app for legacy support


def _get(params: Mapping[str, Any], key: str) -> str:
    """Get a single parameter value, "" when absent."""
    value = params.get(key)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    return value or ""


def _get_all(params: Mapping[str, Any], key: str) -> list[str]:
    """Get every value of a repeated parameter."""
    if hasattr(params, "getlist"):
        return list(params.getlist(key))

    value = params.get(key)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _host(url: str) -> str:
    """Host (with port) of a URL, without user info."""
    return urlsplit(url).netloc.rpartition("@")[2]


class IndieAuthServer:
    """IndieAuth authorization server logic.

    Parameters are read from any mapping: a plain dict, a dict of lists,
    or a starlette ``FormData``/``QueryParams``. See also
    ``parse_authorization_request`` for starlette requests.
    """

    def __init__(
        self,
        require_pkce: bool = True,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the server.

        Args:
            require_pkce: Reject requests that do not use PKCE
            http_client: HTTP client for application metadata discovery.
                A private one is created on first use (and closed by
                ``close``) when omitted.
        """
        self.require_pkce = require_pkce

        self._http_client = http_client
        self._owns_client = False

    def _client(self) -> httpx.AsyncClient:
        # Built on first use; parsing and exchange validation never send requests.
        if self._http_client is None:
            self._http_client = default_http_client()
            self._owns_client = True
        return self._http_client

    # ================================
    # Authorization request
    # ================================

    def parse_authorization(self, params: Mapping[str, Any]) -> AuthenticationRequest:
        """Parse and validate an authorization request.

        Args:
            params: Request parameters (response_type, client_id,
                redirect_uri, state, code_challenge, code_challenge_method,
                scope or scopes)

        Returns:
            AuthenticationRequest: Store it under the code you issue

        Raises:
            InvalidResponseTypeError: If response_type is not "code"
            InvalidClientIdentifierError: If client_id is invalid
            InvalidRedirectURIError: If redirect_uri is on another host
            WrongCodeChallengeLengthError: If code_challenge is not 43-128 long
            InvalidCodeChallengeMethodError: If the method is unsupported
            PKCERequiredError: If PKCE is required and missing
        """
        # Default to "code" for legacy clients.
        response_type = _get(params, "response_type") or "code"
        if response_type != "code":
            raise InvalidResponseTypeError("response_type must be code")

        client_id = _get(params, "client_id")
        try:
            is_valid_client_identifier(client_id)
        except IdentifierError as e:
            raise InvalidClientIdentifierError(f"invalid client_id: {e}") from e

        redirect_uri = _get(params, "redirect_uri")
        self._validate_redirect_uri(client_id, redirect_uri)

        code_challenge = _get(params, "code_challenge")
        code_challenge_method = ""
        if code_challenge:
            if not is_valid_code_length(code_challenge):
                raise WrongCodeChallengeLengthError(
                    "code_challenge length must be between 43 and 128 characters long"
                )

            code_challenge_method = _get(params, "code_challenge_method")
            if not is_valid_code_challenge_method(code_challenge_method):
                raise InvalidCodeChallengeMethodError(
                    "code_challenge_method not supported"
                )
        elif self.require_pkce:
            raise PKCERequiredError(
                "code_challenge and code_challenge_method are required"
            )

        scope = _get(params, "scope")
        if scope:
            scopes = scope.split()
        else:
            scopes = _get_all(params, "scopes")

        logger.debug(f"Parsed authorization request from {client_id}")
        return AuthenticationRequest(
            redirect_uri=redirect_uri,
            client_id=client_id,
            scopes=tuple(scopes),
            state=_get(params, "state"),
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
        )

    def _validate_redirect_uri(self, client_id: str, redirect_uri: str) -> None:
        try:
            redirect_host = _host(redirect_uri)
        except ValueError as e:
            raise InvalidRedirectURIError(f"invalid redirect uri: {e}") from e

        # TODO: a redirect URI on another host needs redirect URL discovery
        # on the client_id: https://indieauth.spec.indieweb.org/#redirect-url
        if redirect_host != _host(client_id):
            raise InvalidRedirectURIError(
                "redirect uri has different host from client id"
            )

    # ================================
    # Code exchange
    # ================================

    def validate_token_exchange(
        self, auth_request: AuthenticationRequest, params: Mapping[str, Any]
    ) -> None:
        """Validate a code exchange against the stored authorization request.

        Used both for the profile URL response and for the token
        response; the caller decides whether to mint a token afterwards.

        Args:
            auth_request: Request stored under the code being redeemed
            params: Exchange request parameters (grant_type, client_id,
                redirect_uri, code, code_verifier)

        Raises:
            InvalidGrantTypeError: If grant_type is not "authorization_code"
            NoMatchClientIDError: If client_id differs
            NoMatchRedirectURIError: If redirect_uri differs
            PKCERequiredError: If PKCE is required and was not used
            WrongCodeVerifierLengthError: If code_verifier is not 43-128 long
            WrongCodeChallengeLengthError: If the stored challenge is not 43-128 long
            InvalidCodeChallengeMethodError: If the stored method is unsupported
            CodeChallengeFailedError: If the verifier does not match
        """
        grant_type = _get(params, "grant_type") or "authorization_code"
        if grant_type != "authorization_code":
            raise InvalidGrantTypeError("grant_type must be authorization_code")

        if _get(params, "client_id") != auth_request.client_id:
            raise NoMatchClientIDError("client_id differs")

        if _get(params, "redirect_uri") != auth_request.redirect_uri:
            raise NoMatchRedirectURIError("redirect_uri differs")

        if not auth_request.code_challenge:
            if self.require_pkce:
                raise PKCERequiredError("code_challenge was not used")
            return

        code_verifier = _get(params, "code_verifier")
        if not is_valid_code_length(code_verifier):
            raise WrongCodeVerifierLengthError(
                "code_verifier length must be between 43 and 128 characters long"
            )

        if not is_valid_code_length(auth_request.code_challenge):
            raise WrongCodeChallengeLengthError(
                "code_challenge length must be between 43 and 128 characters long"
            )

        if not is_valid_code_challenge_method(auth_request.code_challenge_method):
            raise InvalidCodeChallengeMethodError("code_challenge_method not supported")

        if not validate_code_challenge(
            auth_request.code_challenge_method,
            auth_request.code_challenge,
            code_verifier,
        ):
            raise CodeChallengeFailedError("code challenge failed")

    # ================================
    # Starlette requests
    # ================================

    async def parse_authorization_request(self, request: Request) -> AuthenticationRequest:
        """Parse the authorization request carried by a starlette request."""
        return self.parse_authorization(await request_params(request))

    async def validate_token_exchange_request(
        self, auth_request: AuthenticationRequest, request: Request
    ) -> None:
        """Validate the code exchange carried by a starlette request."""
        self.validate_token_exchange(auth_request, await request_params(request))

    # ================================
    # Application metadata
    # ================================

    async def discover_application_metadata(self, client_id: str) -> ApplicationMetadata:
        """Fetch the h-app (or h-x-app) details of a client.

        Only the first application microformat with any information is
        used. Servers can show it on the authorization page.

        Raises:
            IdentifierError: If client_id is not a valid client identifier
            TransportError: If the page cannot be fetched or is not HTML
            NoApplicationMetadataError: If no application details are found
        """
        is_valid_client_identifier(client_id)

        logger.debug(f"Fetching application metadata from {client_id}")
        response = await send_request(
            self._client(),
            "GET",
            client_id,
            headers={"Accept": "text/html"},
        )

        if response.status_code != 200:
            raise TransportError(
                f"Application metadata request: expected 200, "
                f"got {response.status_code}"
            )

        content_type = response.headers.get("content-type", "")
        if "text/html" not in content_type:
            raise TransportError(
                f"Application metadata: expected text/html, got {content_type!r}"
            )

        data = mf2py.parse(doc=response.text, url=str(response.url))

        for item in data.get("items", []):
            if not any(typ in APPLICATION_TYPES for typ in item.get("type", [])):
                continue

            properties = item.get("properties", {})
            application = ApplicationMetadata(
                name=_first_string_property(properties, "name"),
                url=_first_string_property(properties, "url"),
                logo=_first_string_property(properties, "logo")
                or _first_string_property(properties, "photo"),
                summary=_first_string_property(properties, "summary"),
                author=_first_string_property(properties, "author"),
            )

            if application != ApplicationMetadata():
                return application

        raise NoApplicationMetadataError(
            "application metadata (h-app, h-x-app) not found"
        )

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()
            self._http_client = None
            self._owns_client = False


def _first_string_property(properties: Mapping[str, Any], key: str) -> str:
    """First non-empty value of a microformat property.

    Values are either plain strings or objects with a ``value`` member
    (e.g. images with alt text, embedded h-cards).
    """
    for value in properties.get(key, []):
        if isinstance(value, str) and value:
            return value
        if isinstance(value, dict):
            nested = value.get("value")
            if isinstance(nested, str) and nested:
                return nested
    return ""
