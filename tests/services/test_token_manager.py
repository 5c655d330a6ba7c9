"""Tests for token endpoint requests.

High-impact tests covering the token exchange flow:
- Successful authorization code to token exchange
- PKCE verifier and client secret handling
- OAuth error responses and HTTP failures
- JWT-bearer assertion grants
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from oauthflow.models.errors import TokenError
from oauthflow.models.tokens import (
    JWT_BEARER_GRANT_TYPE,
    JwtBearerTokenRequest,
    TokenRequest,
)
from oauthflow.services.tokens import OAuth2TokenManager

TOKEN_ENDPOINT = "https://login.example.com/services/oauth2/token"


def mock_response(status_code: int, payload) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    return response


class TestTokenExchange:
    """Test authorization code to access token exchange."""

    def setup_method(self):
        # Arrange
        self.token_manager = OAuth2TokenManager(http_client=AsyncMock())
        self.code_verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"

    async def test_successful_token_exchange_with_all_fields(self):
        """Test successful token exchange with complete response."""
        # Arrange
        token_request = TokenRequest(
            token_endpoint=TOKEN_ENDPOINT,
            code="aPrx-auth-code",
            redirect_uri="https://app.example.com/callback",
            client_id="client-456",
            client_secret="secret-789",
            code_verifier=self.code_verifier,
        )
        self.token_manager._http_client.post.return_value = mock_response(
            200,
            {
                "access_token": "00Dxx!access",
                "instance_url": "https://example.my.salesforce.com",
                "id": "https://login.example.com/id/00Dxx/005xx",
                "token_type": "Bearer",
                "issued_at": "1700000000000",
                "signature": "sig",
            },
        )

        # Act
        token_response = await self.token_manager.exchange_code_for_token(token_request)

        # Assert
        assert token_response.is_success()
        assert token_response.access_token == "00Dxx!access"
        assert token_response.instance_url == "https://example.my.salesforce.com"

        # Verify HTTP request was made correctly
        self.token_manager._http_client.post.assert_awaited_once()
        call_args = self.token_manager._http_client.post.call_args
        assert call_args[0][0] == TOKEN_ENDPOINT

        form_data = call_args[1]["data"]
        assert form_data == {
            "grant_type": "authorization_code",
            "code": "aPrx-auth-code",
            "redirect_uri": "https://app.example.com/callback",
            "client_id": "client-456",
            "client_secret": "secret-789",
            "code_verifier": self.code_verifier,
        }

        # Must use form encoding, not JSON
        headers = call_args[1]["headers"]
        assert headers["Content-Type"] == "application/x-www-form-urlencoded"
        assert headers["Accept"] == "application/json"
        assert "json" not in call_args[1]

    async def test_exchange_without_pkce_omits_verifier(self):
        # Arrange
        token_request = TokenRequest(
            token_endpoint=TOKEN_ENDPOINT,
            code="aPrx-auth-code",
            redirect_uri="https://app.example.com/callback",
            client_id="client-456",
        )
        self.token_manager._http_client.post.return_value = mock_response(
            200, {"access_token": "tok", "instance_url": "https://inst"}
        )

        # Act
        await self.token_manager.exchange_code_for_token(token_request)

        # Assert
        form_data = self.token_manager._http_client.post.call_args[1]["data"]
        assert "code_verifier" not in form_data
        assert "client_secret" not in form_data

    async def test_oauth_error_response_is_returned(self):
        """invalid_grant comes back as an error TokenResponse, not an exception."""
        # Arrange
        token_request = TokenRequest(
            token_endpoint=TOKEN_ENDPOINT,
            code="expired-code",
            redirect_uri="https://app.example.com/callback",
            client_id="client-456",
            code_verifier=self.code_verifier,
        )
        self.token_manager._http_client.post.return_value = mock_response(
            400,
            {"error": "invalid_grant", "error_description": "invalid code verifier"},
        )

        # Act
        token_response = await self.token_manager.exchange_code_for_token(token_request)

        # Assert
        assert token_response.is_error()
        assert token_response.error == "invalid_grant"
        assert token_response.error_description == "invalid code verifier"

    async def test_success_without_access_token_raises(self):
        token_request = TokenRequest(
            token_endpoint=TOKEN_ENDPOINT,
            code="code",
            redirect_uri="https://app.example.com/callback",
            client_id="client-456",
        )
        self.token_manager._http_client.post.return_value = mock_response(
            200, {"instance_url": "https://inst"}
        )

        with pytest.raises(TokenError):
            await self.token_manager.exchange_code_for_token(token_request)


class TestHttpErrors:
    """Test HTTP-level errors and network issues."""

    def setup_method(self):
        # Arrange
        self.token_manager = OAuth2TokenManager(http_client=AsyncMock())
        self.token_request = TokenRequest(
            token_endpoint=TOKEN_ENDPOINT,
            code="auth-code-123",
            redirect_uri="https://app.example.com/callback",
            client_id="client-456",
        )

    async def test_network_error_raises_token_error(self):
        # Arrange
        self.token_manager._http_client.post.side_effect = httpx.ConnectError(
            "Connection failed"
        )

        # Act & Assert
        with pytest.raises(TokenError) as exc_info:
            await self.token_manager.exchange_code_for_token(self.token_request)

        assert "Connection failed" in str(exc_info.value)

    async def test_non_json_response_raises_token_error(self):
        # Arrange: HTML error page instead of JSON
        response = MagicMock()
        response.status_code = 503
        response.json.side_effect = ValueError("Not valid JSON")
        self.token_manager._http_client.post.return_value = response

        # Act & Assert
        with pytest.raises(TokenError):
            await self.token_manager.exchange_code_for_token(self.token_request)

    async def test_server_error_raises_token_error(self):
        self.token_manager._http_client.post.return_value = mock_response(
            500, {"error": "server_error"}
        )

        with pytest.raises(TokenError):
            await self.token_manager.exchange_code_for_token(self.token_request)


class TestJwtBearerGrant:
    async def test_assertion_is_form_encoded(self):
        # Arrange
        token_manager = OAuth2TokenManager(http_client=AsyncMock())
        token_manager._http_client.post.return_value = mock_response(
            200, {"access_token": "tok", "instance_url": "https://inst"}
        )

        # Act
        token_response = await token_manager.exchange_jwt_assertion(
            JwtBearerTokenRequest(token_endpoint=TOKEN_ENDPOINT, assertion="a.b.c")
        )

        # Assert
        assert token_response.is_success()
        form_data = token_manager._http_client.post.call_args[1]["data"]
        assert form_data == {"grant_type": JWT_BEARER_GRANT_TYPE, "assertion": "a.b.c"}


async def test_close_closes_http_client():
    http_client = AsyncMock()
    token_manager = OAuth2TokenManager(http_client=http_client)

    await token_manager.close()

    http_client.aclose.assert_awaited_once()
