"""PKCE (Proof Key for Code Exchange) primitives.

Implements RFC 7636 code verifier generation and code challenge
verification for the "plain" and "S256" methods. Shared by the client,
which generates the verifier, and the server, which checks it.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

from indieauth.models.errors import RandomSourceError

CODE_CHALLENGE_METHODS = ("plain", "S256")

# RFC 7636 Section 4.1 and 4.2
MIN_CODE_LENGTH = 43
MAX_CODE_LENGTH = 128


def _random_token(size: int) -> str:
    try:
        data = secrets.token_bytes(size)
    except (OSError, NotImplementedError) as e:
        raise RandomSourceError(f"Failed to read random bytes: {e}") from e
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def new_verifier() -> str:
    """Generate a new code verifier.

    64 bytes of random data become 86 characters after base64url
    encoding, inside the 43-128 range required by RFC 7636 Section 4.1.

    Raises:
        RandomSourceError: If the system random source fails
    """
    return _random_token(64)


def new_state() -> str:
    """Generate a new state parameter.

    OAuth 2.0 requires state to be printable ASCII (RFC 6749 Appendix
    A.5), so base64url fits.

    Raises:
        RandomSourceError: If the system random source fails
    """
    return _random_token(64)


def s256_challenge(verifier: str) -> str:
    """Compute the S256 code challenge for a code verifier.

    RFC 7636 Section 4.2:
        code_challenge = BASE64URL-ENCODE(SHA256(ASCII(code_verifier)))

    Always 43 characters since the digest has a fixed size.
    """
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def is_valid_code_challenge_method(method: str) -> bool:
    """Check whether the code challenge method is supported."""
    return method in CODE_CHALLENGE_METHODS


def is_valid_code_length(value: str) -> bool:
    """Check the RFC 7636 length bounds for a challenge or verifier."""
    return MIN_CODE_LENGTH <= len(value) <= MAX_CODE_LENGTH


def validate_code_challenge(method: str, challenge: str, verifier: str) -> bool:
    """Validate a code challenge against its code verifier.

    The caller is responsible for rejecting challenges and verifiers
    outside the 43-128 length range before calling this. Unknown methods
    never match.

    Args:
        method: Code challenge method, "plain" or "S256"
        challenge: Code challenge sent in the authorization request
        verifier: Code verifier sent in the exchange request

    Returns:
        True if the verifier proves the challenge
    """
    # RFC 7636 Section 4.6
    if method == "plain":
        return verifier == challenge
    if method == "S256":
        return s256_challenge(verifier) == challenge
    return False
