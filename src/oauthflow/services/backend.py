"""Authorization backend: the collaborator that owns PKCE generation,
authorization URL construction, code exchange and resource calls.

The controller only depends on the AuthorizationBackend protocol.
HttpAuthorizationBackend implements it for the platform's web server flow.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from oauthflow.config import PlatformConfig
from oauthflow.models.errors import (
    BackendError,
    ExchangeError,
    PKCEError,
    TokenError,
)
from oauthflow.models.flow import AuthorizationRequest
from oauthflow.models.security import PkceMaterial
from oauthflow.models.tokens import TokenRequest, TokenSet
from oauthflow.primitives.pkce import PKCEManager
from oauthflow.services.resources import ResourceClient
from oauthflow.services.security import generate_state, require_redirect_uri
from oauthflow.services.tokens import OAuth2TokenManager

logger = logging.getLogger(__name__)


class AuthorizationBackend(Protocol):
    """Operations the flow controller delegates.

    Implementations raise BackendError for transient failures and
    ExchangeError when the authorization server rejects a grant.
    """

    async def generate_challenge(self) -> PkceMaterial: ...

    async def build_authorization_url(
        self,
        use_pkce: bool,
        code_challenge: str,
        code_challenge_method: str,
        state: str | None = None,
    ) -> str: ...

    async def exchange_code(
        self, code: str, code_verifier: str | None = None
    ) -> TokenSet: ...

    async def fetch_resource(
        self, access_token: str, instance_url: str
    ) -> dict[str, Any]: ...

    async def create_record(
        self,
        access_token: str,
        instance_url: str,
        sobject: str,
        fields: dict[str, Any],
    ) -> str: ...


class HttpAuthorizationBackend:
    """Web server flow backend talking to the platform over HTTP."""

    def __init__(
        self,
        config: PlatformConfig,
        token_manager: OAuth2TokenManager | None = None,
        resource_client: ResourceClient | None = None,
    ):
        require_redirect_uri(config.redirect_uri)

        self.config = config
        self._pkce_manager = PKCEManager(method=config.pkce_method)
        self._token_manager = token_manager or OAuth2TokenManager(timeout=config.timeout)
        self._resources = resource_client or ResourceClient(
            config.api_version, timeout=config.timeout
        )

    async def generate_challenge(self) -> PkceMaterial:
        try:
            material = self._pkce_manager.generate_material()
        except PKCEError as e:
            raise BackendError(str(e)) from e

        logger.debug(
            f"Generated PKCE material (method={material.code_challenge_method.value})"
        )
        return material

    async def build_authorization_url(
        self,
        use_pkce: bool,
        code_challenge: str,
        code_challenge_method: str,
        state: str | None = None,
    ) -> str:
        if use_pkce and not code_challenge:
            raise BackendError("PKCE requested without a code challenge")

        request = AuthorizationRequest(
            authorization_endpoint=self.config.authorization_endpoint,
            client_id=self.config.client_id,
            redirect_uri=self.config.redirect_uri,
            state=state or generate_state(),
            scope=self.config.scope,
            code_challenge=code_challenge if use_pkce else None,
            code_challenge_method=code_challenge_method if use_pkce else None,
        )
        return request.build_authorization_url()

    async def exchange_code(
        self, code: str, code_verifier: str | None = None
    ) -> TokenSet:
        token_request = TokenRequest(
            token_endpoint=self.config.token_endpoint,
            code=code,
            redirect_uri=self.config.redirect_uri,
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            code_verifier=code_verifier,
        )

        try:
            token_response = await self._token_manager.exchange_code_for_token(
                token_request
            )
        except TokenError as e:
            raise BackendError(str(e)) from e

        if not token_response.is_success():
            raise ExchangeError(
                f"Token exchange failed: {token_response.describe_error()}"
            )

        try:
            return token_response.to_token_set()
        except ValueError as e:
            raise BackendError(f"Unusable token response: {e}") from e

    async def fetch_resource(
        self, access_token: str, instance_url: str
    ) -> dict[str, Any]:
        return await self._resources.get_limits(access_token, instance_url)

    async def create_record(
        self,
        access_token: str,
        instance_url: str,
        sobject: str,
        fields: dict[str, Any],
    ) -> str:
        return await self._resources.create_record(
            access_token, instance_url, sobject, fields
        )

    async def close(self) -> None:
        """Close all service connections."""
        await self._token_manager.close()
        await self._resources.close()
