"""IndieAuth client for signing users in with their profile URL.

Coordinates discovery, the authorization redirect, callback validation
and the code exchange. The caller keeps the returned ``AuthInfo``
between the redirect and the callback.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Mapping
from urllib.parse import parse_qs, urlsplit

import httpx
from pydantic import ValidationError

from indieauth.client.discovery import MetadataDiscovery
from indieauth.models.errors import (
    CodeNotFoundError,
    InvalidIssuerError,
    InvalidStateError,
    NoEndpointFoundError,
    StateNotFoundError,
    TokenExchangeError,
    TransportError,
)
from indieauth.models.flow import AuthInfo, AuthorizationRequest, Profile
from indieauth.models.metadata import Metadata
from indieauth.models.tokens import TokenRequest, TokenResponse
from indieauth.primitives.pkce import new_state, new_verifier, s256_challenge
from indieauth.shared.http import default_http_client, send_request

logger = logging.getLogger(__name__)

FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


def profile_from_token(token: TokenResponse) -> Profile | None:
    """Build a profile from the extra members of a token response.

    Returns:
        The profile, or None when the response carries no ``me``
    """
    me = token.extra("me")
    if not isinstance(me, str) or not me:
        return None

    details = token.extra("profile")
    if not isinstance(details, dict):
        return Profile(me=me)

    return Profile.model_validate(
        {
            "me": me,
            "profile": {
                key: details[key]
                for key in ("name", "url", "photo", "email")
                if isinstance(details.get(key), str)
            },
        }
    )


class IndieAuthClient:
    """IndieAuth client for a website that signs users in.

    An example flow:

        info, url = await client.authenticate("https://user.example/", "profile")
        # store info, redirect the user to url
        code = client.validate_callback(info, callback_url)
        token = await client.get_token(info, code)
    """

    def __init__(
        self,
        client_id: str,
        redirect_url: str,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the client.

        Args:
            client_id: This application's client identifier URL
            redirect_url: Where the authorization server sends users back
            http_client: HTTP client to send requests with. A private one
                is created (and closed by ``close``) when omitted.
        """
        self.client_id = client_id
        self.redirect_url = redirect_url

        self._owns_client = http_client is None
        self._http_client = http_client or default_http_client()
        self.discovery = MetadataDiscovery(self._http_client)

    async def discover_metadata(self, url: str) -> Metadata:
        """Discover the IndieAuth server metadata for a URL."""
        return await self.discovery.discover_metadata(url)

    async def authenticate(self, profile: str, scope: str) -> tuple[AuthInfo, str]:
        """Start authenticating a user.

        Discovers the user's authorization server, generates a state and
        an S256 code challenge, and builds the authorization URL.

        Args:
            profile: URL the user entered
            scope: Space separated scopes to request

        Returns:
            Tuple of (auth_info, authorization_url)
            - auth_info: Store this until the callback arrives
            - authorization_url: Redirect the user here

        Raises:
            NoEndpointFoundError: If no authorization endpoint is found
            TransportError: If discovery fails
            RandomSourceError: If secure random data is unavailable
        """
        logger.debug(f"Starting authentication for {profile}")
        metadata = await self.discovery.discover_metadata(profile)

        state = new_state()
        code_verifier = new_verifier()

        auth_request = AuthorizationRequest(
            authorization_endpoint=metadata.authorization_endpoint,
            client_id=self.client_id,
            redirect_uri=self.redirect_url,
            state=state,
            code_challenge=s256_challenge(code_verifier),
            scope=scope,
        )

        info = AuthInfo(
            metadata=metadata,
            me=profile,
            state=state,
            code_verifier=code_verifier,
        )

        logger.info(f"Generated authorization URL for {profile}")
        return info, auth_request.build_authorization_url()

    def validate_callback(
        self, info: AuthInfo, callback: str | Mapping[str, str]
    ) -> str:
        """Validate the authorization callback and return the code.

        The issuer is compared with the one from the server metadata.
        Servers on the older revision send no issuer and advertise none,
        which counts as a match.

        Args:
            info: Auth info stored by ``authenticate``
            callback: Full callback URL, or its query parameters

        Returns:
            The authorization code

        Raises:
            CodeNotFoundError: If the callback has no code
            StateNotFoundError: If the callback has no state
            InvalidStateError: If the state does not match
            InvalidIssuerError: If the issuer does not match
        """
        params = _callback_params(callback)

        code = params.get("code", "")
        if not code:
            raise CodeNotFoundError("Callback missing code parameter")

        state = params.get("state", "")
        if not state:
            raise StateNotFoundError("Callback missing state parameter")

        if not secrets.compare_digest(state.encode(), info.state.encode()):
            raise InvalidStateError("State parameter mismatch")

        if params.get("iss", "") != info.metadata.issuer:
            raise InvalidIssuerError("Issuer does not match server metadata")

        return code

    async def get_token(self, info: AuthInfo, code: str) -> TokenResponse:
        """Exchange the authorization code for an access token.

        The response may carry ``me``, ``profile`` and ``scope``; see
        ``profile_from_token``.

        Raises:
            NoEndpointFoundError: If the server has no token endpoint
            TokenExchangeError: If the token endpoint refuses the code
            TransportError: If the request or its response is broken
        """
        if not info.metadata.token_endpoint:
            raise NoEndpointFoundError("Server has no token endpoint")

        token_request = self._token_request(info.metadata.token_endpoint, info, code)
        response = await self._post(token_request)
        try:
            token = TokenResponse.model_validate(_json_body(response))
        except ValidationError as e:
            raise TransportError(f"Invalid token response format: {e}") from e

        if not response.is_success or token.refused:
            logger.warning(
                f"Token exchange failed with {response.status_code}: "
                f"{token.error} - {token.error_description}"
            )
            raise TokenExchangeError(
                f"Token exchange failed with {response.status_code}: {token.error}",
                error=token.error,
                error_description=token.error_description,
            )

        if not token.granted:
            raise TokenExchangeError("Token response missing required access_token")

        logger.info("Token exchange successful")
        return token

    async def fetch_profile(self, info: AuthInfo, code: str) -> Profile:
        """Exchange the authorization code for the profile URL response.

        Redeems the code at the authorization endpoint, so no access
        token is issued. The code is consumed.

        Raises:
            TransportError: If the request fails or the server refuses it
        """
        token_request = self._token_request(
            info.metadata.authorization_endpoint, info, code
        )
        response = await self._post(token_request)

        if response.status_code != 200:
            raise TransportError(
                f"Profile request: expected 200, got {response.status_code}"
            )

        try:
            return Profile.model_validate_json(response.content)
        except ValidationError as e:
            raise TransportError(f"Invalid profile response: {e}") from e

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()

    def _token_request(self, endpoint: str, info: AuthInfo, code: str) -> TokenRequest:
        return TokenRequest(
            endpoint=endpoint,
            code=code,
            redirect_uri=self.redirect_url,
            client_id=self.client_id,
            code_verifier=info.code_verifier,
        )

    async def _post(self, token_request: TokenRequest) -> httpx.Response:
        logger.debug(f"Redeeming authorization code at {token_request.endpoint}")
        return await send_request(
            self._http_client,
            "POST",
            token_request.endpoint,
            data=token_request.to_form_data(),
            headers=FORM_HEADERS,
        )


def _callback_params(callback: str | Mapping[str, str]) -> Mapping[str, str]:
    if not isinstance(callback, str):
        return callback

    query = parse_qs(urlsplit(callback).query)
    return {key: values[0] for key, values in query.items() if values}


def _json_body(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError as e:
        raise TransportError(
            f"Expected JSON from {response.request.url}, got: {e}"
        ) from e

    if not isinstance(data, dict):
        raise TransportError(f"Expected a JSON object from {response.request.url}")
    return data
