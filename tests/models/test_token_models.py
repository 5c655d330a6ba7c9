import pytest

from oauthflow.models.tokens import TokenRequest, TokenResponse, TokenSet


class TestTokenResponse:
    def test_success_converts_to_token_set(self):
        # Arrange
        response = TokenResponse(
            access_token="00Dxx!token",
            instance_url="https://example.my.salesforce.com",
            id="https://login.salesforce.com/id/00Dxx/005xx",
            issued_at="1700000000000",
            token_type="Bearer",
            signature="sig",
            scope="api refresh_token",
            refresh_token="5Aep-refresh",
        )

        # Act
        tokens = response.to_token_set()

        # Assert
        assert response.is_success()
        assert tokens.access_token == "00Dxx!token"
        assert tokens.instance_url == "https://example.my.salesforce.com"
        assert tokens.id_url == "https://login.salesforce.com/id/00Dxx/005xx"
        assert tokens.issued_at == 1700000000.0
        assert tokens.refresh_token == "5Aep-refresh"

    def test_error_response_cannot_convert(self):
        response = TokenResponse(
            error="invalid_grant", error_description="authentication failure"
        )

        assert response.is_error()
        assert response.describe_error() == "invalid_grant: authentication failure"
        with pytest.raises(ValueError):
            response.to_token_set()

    def test_missing_instance_url_cannot_convert(self):
        with pytest.raises(ValueError):
            TokenResponse(access_token="tok").to_token_set()


class TestTokenSet:
    def test_repr_hides_secrets(self):
        tokens = TokenSet(
            access_token="secret-access", instance_url="https://inst", refresh_token="secret-refresh"
        )

        assert "secret-access" not in repr(tokens)
        assert "secret-refresh" not in repr(tokens)
        assert "https://inst" in repr(tokens)

    def test_masking(self):
        tokens = TokenSet(access_token="0123456789abcdef", instance_url="https://inst")

        assert tokens.masked_access_token() == "0123456789..."


class TestTokenRequest:
    def test_form_data_omits_absent_optionals(self):
        request = TokenRequest(
            token_endpoint="https://login.example.com/services/oauth2/token",
            code="code-1",
            redirect_uri="https://app.example.com/callback",
            client_id="client-123",
        )

        assert request.to_form_data() == {
            "grant_type": "authorization_code",
            "code": "code-1",
            "redirect_uri": "https://app.example.com/callback",
            "client_id": "client-123",
        }
