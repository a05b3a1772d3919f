"""Token exchange models for IndieAuth.

Contains the form-encoded code exchange request and the token endpoint
response, which may carry provider extras such as ``me`` and ``profile``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict


@dataclass(frozen=True)
class TokenRequest:
    """Authorization code exchange request (RFC 6749 Section 4.1.3).

    Sent to the token endpoint to get an access token, or to the
    authorization endpoint to only get the profile URL response.
    """

    # Required fields first
    endpoint: str
    code: str
    redirect_uri: str
    client_id: str
    code_verifier: str  # RFC 7636 PKCE

    grant_type: str = "authorization_code"

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request.

        Returns:
            Dictionary suitable for httpx data parameter
        """
        return {
            "grant_type": self.grant_type,
            "code": self.code,
            "redirect_uri": self.redirect_uri,
            "client_id": self.client_id,
            "code_verifier": self.code_verifier,
        }


class TokenResponse(BaseModel):
    """Token endpoint response body, granted or refused.

    Unknown members are kept so provider extras such as ``me`` and
    ``profile`` stay reachable through ``extra``.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None
    scope: str | None = None

    # Set when the endpoint refuses the code (RFC 6749 Section 5.2)
    error: str | None = None
    error_description: str | None = None

    @property
    def refused(self) -> bool:
        return bool(self.error)

    @property
    def granted(self) -> bool:
        """True when the response carries an access token and no error."""
        return not self.refused and bool(self.access_token)

    def extra(self, key: str) -> Any:
        """Get any member of the response, including unknown ones."""
        if key in type(self).model_fields:
            return getattr(self, key)
        return (self.model_extra or {}).get(key)
