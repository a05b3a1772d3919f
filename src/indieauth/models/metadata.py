"""Discovery-related models for IndieAuth server and application metadata.

Contains the server metadata document fetched from the
``indieauth-metadata`` link and the application details parsed from a
client's h-app microformat.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Metadata(BaseModel):
    """IndieAuth server metadata.

    Snapshot of the endpoints and capabilities of an authorization
    server. Every field is optional: servers on the older protocol
    revision only advertise the authorization and token endpoints.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    issuer: str = ""
    authorization_endpoint: str = ""
    token_endpoint: str = ""
    introspection_endpoint: str = ""
    introspection_endpoint_auth_methods_supported: list[str] = Field(
        default_factory=list
    )
    revocation_endpoint: str = ""
    revocation_endpoint_auth_methods_supported: list[str] = Field(
        default_factory=list
    )
    scopes_supported: list[str] = Field(default_factory=list)
    response_types_supported: list[str] = Field(default_factory=list)
    grant_types_supported: list[str] = Field(default_factory=list)
    service_documentation: list[str] = Field(default_factory=list)
    code_challenge_methods_supported: list[str] = Field(default_factory=list)
    authorization_response_iss_parameter_supported: bool = False
    userinfo_endpoint: str = ""

    @model_validator(mode="before")
    @classmethod
    def drop_null_members(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data

    @field_validator("service_documentation", mode="before")
    @classmethod
    def wrap_single_document(cls, v: Any) -> Any:
        # Usually a single URL, sometimes a list of them.
        if isinstance(v, str):
            return [v]
        return v


@dataclass(frozen=True)
class ApplicationMetadata:
    """Client application details from an h-app (or h-x-app) microformat.

    Useful to show the user which application asks for access.
    """

    name: str = ""
    url: str = ""
    logo: str = ""
    summary: str = ""
    author: str = ""
