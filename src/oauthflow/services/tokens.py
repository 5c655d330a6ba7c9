"""Token endpoint client.

Implements RFC 6749 token endpoint interactions for the authorization code
grant (with the RFC 7636 code_verifier) and the RFC 7523 JWT-bearer grant.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError as ResponseValidationError

from oauthflow.models.errors import TokenError
from oauthflow.models.tokens import (
    JwtBearerTokenRequest,
    TokenRequest,
    TokenResponse,
)

logger = logging.getLogger(__name__)

FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


class OAuth2TokenManager:
    """Manages token endpoint requests.

    Handles:
    - Authorization code to access token exchange (RFC 6749 Section 4.1.3)
    - PKCE code verification (RFC 7636)
    - JWT-bearer assertion grants (RFC 7523)

    Uses application/x-www-form-urlencoded encoding as required by RFC 6749.
    Both success and OAuth error responses come back as TokenResponse; only
    transport and parsing failures raise.
    """

    def __init__(self, timeout: float = 30.0, http_client: httpx.AsyncClient | None = None):
        """Initialize token manager.

        Args:
            timeout: HTTP request timeout in seconds
            http_client: Optional shared client; one is created if omitted
        """
        self.timeout = timeout
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def exchange_code_for_token(
        self, token_request: TokenRequest
    ) -> TokenResponse:
        """Exchange authorization code for access token.

        Args:
            token_request: Token exchange request parameters

        Returns:
            TokenResponse: Token response (success or error)

        Raises:
            TokenError: If token exchange fails due to network/parsing issues
        """
        logger.debug(f"Exchanging authorization code at {token_request.token_endpoint}")

        form_data = token_request.to_form_data()

        # Log request details (without sensitive data)
        logger.debug(
            f"Token request: grant_type={form_data['grant_type']}, "
            f"client_id={form_data['client_id']}, "
            f"pkce={'code_verifier' in form_data}"
        )

        return await self._post(token_request.token_endpoint, form_data, "token exchange")

    async def exchange_jwt_assertion(
        self, token_request: JwtBearerTokenRequest
    ) -> TokenResponse:
        """Exchange a signed JWT assertion for an access token.

        Args:
            token_request: JWT-bearer request parameters

        Returns:
            TokenResponse: Token response (success or error)

        Raises:
            TokenError: If the request fails due to network/parsing issues
        """
        logger.debug(f"Requesting JWT-bearer token at {token_request.token_endpoint}")
        return await self._post(
            token_request.token_endpoint, token_request.to_form_data(), "JWT-bearer grant"
        )

    async def _post(
        self, token_endpoint: str, form_data: dict[str, str], action: str
    ) -> TokenResponse:
        try:
            response = await self._http_client.post(
                token_endpoint,
                data=form_data,
                headers=FORM_HEADERS,
            )

            # Both success and error responses are JSON
            return await self._parse_token_response(response)

        except TokenError:
            raise
        except httpx.HTTPError as e:
            raise TokenError(f"HTTP error during {action}: {e}") from e
        except Exception as e:
            raise TokenError(f"Unexpected error during {action}: {e}") from e

    async def _parse_token_response(self, response: httpx.Response) -> TokenResponse:
        """Parse token endpoint response into TokenResponse.

        Handles both successful responses (200) and error responses (400+)
        according to RFC 6749 Section 5.

        Raises:
            TokenError: If response cannot be parsed
        """
        try:
            response_data = response.json()
        except ValueError as e:
            raise TokenError(
                f"Token endpoint returned non-JSON response "
                f"(HTTP {response.status_code}): {e}"
            ) from e

        if not isinstance(response_data, dict):
            raise TokenError("Token endpoint returned unexpected payload")

        try:
            token_response = TokenResponse(**response_data)
        except ResponseValidationError as e:
            raise TokenError(f"Invalid token response format: {e}") from e

        if response.status_code == 200:
            if not token_response.access_token:
                raise TokenError("Token response missing required access_token")
            logger.info("Token request successful")
            return token_response

        if response.status_code >= 500 or not token_response.error:
            raise TokenError(
                f"Token endpoint failed with HTTP {response.status_code}: "
                f"{token_response.describe_error()}"
            )

        logger.warning(
            f"Token request rejected with {response.status_code}: "
            f"{token_response.describe_error()}"
        )
        return token_response

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()
