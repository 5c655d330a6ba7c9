"""Request binding and redirect checks for the web server flow.

The state value ties a redirect to the authorization request that caused
it, and doubles as the id persisted PKCE material is bound to.
"""

from __future__ import annotations

import secrets
from urllib.parse import urlparse

from oauthflow.models.errors import ConfigurationError, StateValidationError
from oauthflow.models.flow import AuthorizationResponse

# 24 random bytes encode to 32 URL-safe characters
STATE_BYTES = 24

LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


def generate_state() -> str:
    """Return a fresh, unguessable state value for an authorization request."""
    return secrets.token_urlsafe(STATE_BYTES)


def check_redirect_state(expected: str, response: AuthorizationResponse) -> None:
    """Ensure a redirect belongs to the request that issued ``expected``.

    Checked before the redirect's code or error is looked at, so a forged
    error redirect is rejected the same way as a forged code.

    Raises:
        StateValidationError: If the redirect has no state or a different one
    """
    if not response.state:
        raise StateValidationError("Authorization redirect missing state parameter")
    if not secrets.compare_digest(expected, response.state):
        raise StateValidationError("State parameter mismatch - possible CSRF attack")


def require_redirect_uri(uri: str) -> str:
    """Check a configured redirect URI, returning it unchanged.

    HTTPS is required except for loopback callbacks. Fragments are refused
    since the authorization server appends the code to the query.

    Raises:
        ConfigurationError: With the reason the URI is refused
    """
    try:
        parsed = urlparse(uri)
        hostname = parsed.hostname
    except ValueError as e:
        raise ConfigurationError(f"Malformed redirect URI {uri!r}: {e}") from e

    if not hostname:
        raise ConfigurationError(f"Redirect URI has no host: {uri!r}")
    if parsed.fragment:
        raise ConfigurationError(f"Redirect URI must not contain a fragment: {uri!r}")
    if parsed.scheme == "https":
        return uri
    if parsed.scheme == "http" and hostname in LOOPBACK_HOSTS:
        return uri
    raise ConfigurationError(f"Redirect URI must be HTTPS or loopback: {uri!r}")
