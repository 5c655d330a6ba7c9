"""Token models for the authorization code and JWT-bearer grants.

Contains the in-memory token set, the token endpoint request/response
models, and the identity snapshot fetched with an access token.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

JWT_BEARER_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"


@dataclass
class TokenSet:
    """Tokens held for the remainder of a session.

    Secrets are excluded from repr so the set can appear in log output and
    tracebacks without leaking. Never persisted.
    """

    access_token: str = field(repr=False)
    instance_url: str
    token_type: str = "Bearer"
    id_url: str | None = None  # Identity URL
    issued_at: float | None = None  # Unix timestamp
    scope: str | None = None
    refresh_token: str | None = field(default=None, repr=False)

    def masked_access_token(self, visible: int = 10) -> str:
        """Return a prefix of the access token for display."""
        return f"{self.access_token[:visible]}..."


@dataclass(frozen=True)
class IdentitySnapshot:
    """Informational record returned by the resource server."""

    data: dict[str, Any]
    fetched_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class TokenRequest:
    """Authorization code exchange request (RFC 6749 Section 4.1.3).

    Includes the PKCE code_verifier (RFC 7636) when the flow used PKCE.
    """

    # Required fields first
    token_endpoint: str
    code: str = field(repr=False)
    redirect_uri: str
    client_id: str

    # Optional fields with defaults last
    code_verifier: str | None = field(default=None, repr=False)
    client_secret: str | None = field(default=None, repr=False)
    grant_type: str = "authorization_code"

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request.

        Token requests must use form encoding, not JSON (RFC 6749 Section 4.1.3).

        Returns:
            Dictionary suitable for httpx data parameter
        """
        data = {
            "grant_type": self.grant_type,
            "code": self.code,
            "redirect_uri": self.redirect_uri,
            "client_id": self.client_id,
        }

        if self.client_secret:
            data["client_secret"] = self.client_secret
        if self.code_verifier:
            data["code_verifier"] = self.code_verifier

        return data


@dataclass(frozen=True)
class JwtBearerTokenRequest:
    """JWT-bearer grant request (RFC 7523 Section 2.1)."""

    token_endpoint: str
    assertion: str = field(repr=False)
    grant_type: str = JWT_BEARER_GRANT_TYPE

    def to_form_data(self) -> dict[str, str]:
        return {"grant_type": self.grant_type, "assertion": self.assertion}


class TokenResponse(BaseModel):
    """Token endpoint response (RFC 6749 Section 5).

    Represents both successful responses (Section 5.1, plus the platform's
    instance_url, id and issued_at fields) and error responses (Section 5.2).
    """

    # Success response fields
    access_token: str | None = None
    token_type: str = "Bearer"
    instance_url: str | None = None
    id: str | None = None
    issued_at: str | None = None  # Milliseconds since epoch, as a string
    signature: str | None = None
    scope: str | None = None
    refresh_token: str | None = None

    # Error response fields
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    def is_success(self) -> bool:
        """Check if token response indicates success."""
        return self.error is None and self.access_token is not None

    def is_error(self) -> bool:
        """Check if token response indicates an error."""
        return self.error is not None

    def describe_error(self) -> str:
        if self.error_description:
            return f"{self.error}: {self.error_description}"
        return self.error or "unknown_error"

    def to_token_set(self) -> TokenSet:
        """Convert a successful token response to a TokenSet.

        Raises:
            ValueError: If the response is an error or lacks instance_url
        """
        if not self.is_success():
            raise ValueError("Cannot convert error response to TokenSet")
        if not self.instance_url:
            raise ValueError("Token response missing instance_url")

        issued_at = None
        if self.issued_at:
            issued_at = int(self.issued_at) / 1000

        return TokenSet(
            access_token=self.access_token,
            instance_url=self.instance_url,
            token_type=self.token_type,
            id_url=self.id,
            issued_at=issued_at,
            scope=self.scope,
            refresh_token=self.refresh_token,
        )
