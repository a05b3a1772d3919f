"""Exception hierarchy for IndieAuth errors.

Every failure mode has its own exception type so callers and tests can
check the kind of error instead of its message. Errors are grouped by
how a server is expected to surface them.
"""

from __future__ import annotations


class IndieAuthError(Exception):
    """Base exception for all IndieAuth related errors."""

    error_code = "invalid_request"


# ================================
# Protocol violations
# ================================


class ProtocolError(IndieAuthError):
    """Raised when a request breaks the protocol rules."""

    pass


class InvalidResponseTypeError(ProtocolError):
    """Raised when response_type is present and is not "code"."""

    pass


class InvalidGrantTypeError(ProtocolError):
    """Raised when grant_type is present and is not "authorization_code"."""

    pass


class InvalidCodeChallengeMethodError(ProtocolError):
    """Raised when the code challenge method is not supported."""

    pass


class WrongCodeChallengeLengthError(ProtocolError):
    """Raised when a code challenge is not 43-128 characters long."""

    pass


class WrongCodeVerifierLengthError(ProtocolError):
    """Raised when a code verifier is not 43-128 characters long."""

    pass


class InvalidClientIdentifierError(ProtocolError):
    """Raised when client_id is not a valid client identifier.

    The violated URL rule is available as ``__cause__``.
    """

    pass


class InvalidRedirectURIError(ProtocolError):
    """Raised when redirect_uri does not belong to the client."""

    pass


# ================================
# Mismatches
# ================================


class MismatchError(IndieAuthError):
    """Raised when a value does not match the one from earlier in the flow.

    Indicates a tampered or misrouted flow.
    """

    error_code = "invalid_grant"


class NoMatchClientIDError(MismatchError):
    """Raised when client_id differs from the authorization request."""

    pass


class NoMatchRedirectURIError(MismatchError):
    """Raised when redirect_uri differs from the authorization request."""

    pass


class CodeChallengeFailedError(MismatchError):
    """Raised when the code verifier does not match the code challenge."""

    pass


class InvalidStateError(MismatchError):
    """Raised when the callback state does not match the stored state."""

    pass


class InvalidIssuerError(MismatchError):
    """Raised when the callback issuer does not match the server metadata."""

    pass


# ================================
# Policy
# ================================


class PolicyError(IndieAuthError):
    """Raised when server configuration rejects a request."""

    pass


class PKCERequiredError(PolicyError):
    """Raised when PKCE is required but no code challenge was sent."""

    pass


# ================================
# Identifier validation
# ================================


class IdentifierError(IndieAuthError):
    """Raised when a profile URL or client identifier is malformed."""

    pass


class URLParseError(IdentifierError):
    """Raised when the value cannot be parsed as a URL."""

    pass


class InvalidSchemeError(IdentifierError):
    """Raised when the scheme is neither http nor https."""

    pass


class EmptyPathError(IdentifierError):
    """Raised when the URL has no path."""

    pass


class InvalidPathError(IdentifierError):
    """Raised when the path contains single or double dots."""

    pass


class InvalidFragmentError(IdentifierError):
    """Raised when the URL has a fragment."""

    pass


class UserIsSetError(IdentifierError):
    """Raised when the URL has a user and/or password."""

    pass


class PortIsSetError(IdentifierError):
    """Raised when a profile URL has a port."""

    pass


class IsIPError(IdentifierError):
    """Raised when a profile URL host is an IP address."""

    pass


class IsNonLoopbackError(IdentifierError):
    """Raised when a client identifier host is a non-loopback IP address."""

    pass


# ================================
# Discovery
# ================================


class DiscoveryError(IndieAuthError):
    """Raised when discovery does not find what was asked for."""

    pass


class NoEndpointFoundError(DiscoveryError):
    """Raised when no endpoint can be found for a target URL."""

    pass


class NoApplicationMetadataError(DiscoveryError):
    """Raised when no h-app or h-x-app microformat is found."""

    pass


# ================================
# Transport
# ================================


class TransportError(IndieAuthError):
    """Raised when an outbound request fails.

    Covers network errors, unexpected status codes and bodies that
    cannot be decoded. Never retried.
    """

    pass


class TokenExchangeError(TransportError):
    """Raised when the token endpoint refuses an authorization code."""

    def __init__(
        self,
        message: str,
        error: str | None = None,
        error_description: str | None = None,
    ):
        super().__init__(message)
        self.error = error
        self.error_description = error_description


# ================================
# Client callback
# ================================


class CallbackError(IndieAuthError):
    """Raised when the authorization callback is incomplete."""

    pass


class CodeNotFoundError(CallbackError):
    """Raised when the callback has no code parameter."""

    pass


class StateNotFoundError(CallbackError):
    """Raised when the callback has no state parameter."""

    pass


class RandomSourceError(IndieAuthError):
    """Raised when the system random source cannot produce bytes."""

    pass
