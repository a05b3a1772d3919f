"""Authorization flow models for IndieAuth.

Contains the server-side authentication request and the client-side
state that must survive the redirect round trip.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field, field_validator

from indieauth.models.metadata import Metadata
from indieauth.primitives.pkce import is_valid_code_length


@dataclass(frozen=True)
class AuthenticationRequest:
    """Validated authorization request received by the server.

    The caller stores it under the authorization code it issues and
    hands it back when the code is exchanged.
    """

    redirect_uri: str
    client_id: str
    scopes: tuple[str, ...] = ()
    state: str = ""
    code_challenge: str = ""
    code_challenge_method: str = ""


class AuthInfo(BaseModel):
    """Client state for one authentication attempt.

    Must be persisted by the caller (e.g. in a cookie, via
    ``model_dump_json``) until the callback arrives, then discarded.
    """

    model_config = ConfigDict(frozen=True)

    metadata: Metadata
    me: str
    state: str
    code_verifier: str

    @field_validator("code_verifier")
    @classmethod
    def validate_code_verifier(cls, v: str) -> str:
        if not is_valid_code_length(v):
            raise ValueError("code_verifier must be 43-128 characters")
        return v


class ProfileDetails(BaseModel):
    name: str = ""
    url: str = ""
    photo: str = ""
    email: str = ""


class Profile(BaseModel):
    """Profile URL response returned after a successful authentication."""

    me: str
    profile: ProfileDetails = Field(default_factory=ProfileDetails)


@dataclass(frozen=True)
class AuthorizationRequest:
    """Authorization request parameters sent by the client."""

    authorization_endpoint: str
    client_id: str
    redirect_uri: str
    state: str
    code_challenge: str
    code_challenge_method: str = "S256"
    scope: str | None = None

    def build_authorization_url(self) -> str:
        """Build the complete authorization URL."""
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "state": self.state,
        }

        if self.scope:
            params["scope"] = self.scope

        params["code_challenge_method"] = self.code_challenge_method
        params["code_challenge"] = self.code_challenge

        separator = "&" if "?" in self.authorization_endpoint else "?"
        return f"{self.authorization_endpoint}{separator}{urlencode(params)}"
