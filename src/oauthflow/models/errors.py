"""Exception hierarchy for the authorization code and JWT-bearer flows.

Every failure a caller can see is one of these types, so callers can decide
between retrying the same step and restarting from authorization.
"""

from __future__ import annotations


class OAuth2Error(Exception):
    """Base exception for all flow errors."""

    pass


class ConfigurationError(OAuth2Error):
    """Raised when required platform settings are missing or invalid."""

    pass


class BackendError(OAuth2Error):
    """Raised when the authorization backend or resource server fails.

    Network failures, 5xx responses and unparseable payloads land here.
    The same step can be retried.
    """

    pass


class JwtBearerError(BackendError):
    """Raised when the JWT-bearer grant cannot be completed."""

    pass


class ExchangeError(OAuth2Error):
    """Raised when the authorization server rejects a code exchange.

    Covers verifier mismatch, expired codes and codes that were already
    used. Retrying with the same code will not help; restart authorization.
    """

    pass


class ValidationError(OAuth2Error):
    """Raised when a required input is missing or malformed."""

    pass


class FlowStateError(OAuth2Error):
    """Raised when an operation is called from the wrong flow step."""

    pass


class TokenError(OAuth2Error):
    """Raised when a token endpoint response cannot be parsed."""

    pass


class PKCEError(OAuth2Error):
    """Raised when PKCE material generation fails."""

    pass


class AuthorizationCallbackError(OAuth2Error):
    """Raised when the authorization redirect is malformed or reports an error.

    This indicates the authorization server sent back an error or an
    unusable redirect, not that our redirect handling failed.
    """

    pass


class StateValidationError(AuthorizationCallbackError):
    """Raised when the redirect's state parameter doesn't match the request.

    Either the state is missing or it differs from the one we sent, which
    could indicate a CSRF attack or a redirect from a stale request.
    """

    pass
