"""JWT-bearer grant (RFC 7523) for server-to-server access.

Signs an RS256 assertion for a pre-authorized user and exchanges it at the
token endpoint. No browser redirect and no PKCE are involved.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

import jwt

from oauthflow.config import PlatformConfig
from oauthflow.models.errors import BackendError, ConfigurationError, JwtBearerError, TokenError
from oauthflow.models.tokens import JwtBearerTokenRequest, TokenSet
from oauthflow.services.resources import ResourceClient
from oauthflow.services.tokens import OAuth2TokenManager

logger = logging.getLogger(__name__)

ALGORITHM = "RS256"
ASSERTION_TTL_SECONDS = 300  # Platform rejects assertions valid longer than 5 minutes


def load_private_key(path: str | Path) -> bytes:
    """Read a PEM-encoded private key from disk."""
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise ConfigurationError(f"Cannot read private key {path}: {e}") from e


class JwtBearerFlow:
    """Obtains tokens with a signed JWT assertion.

    Claims: iss is the connected app's client id, sub the username, aud the
    login URL, exp five minutes out.
    """

    def __init__(
        self,
        config: PlatformConfig,
        private_key: Any,
        username: str | None = None,
        token_manager: OAuth2TokenManager | None = None,
        resource_client: ResourceClient | None = None,
    ):
        self.config = config
        self.username = username or config.jwt_username
        if not self.username:
            raise ConfigurationError("JWT-bearer flow requires a username")

        self._private_key = private_key
        self._token_manager = token_manager or OAuth2TokenManager(timeout=config.timeout)
        self._resources = resource_client or ResourceClient(
            config.api_version, timeout=config.timeout
        )

    @classmethod
    def from_config(cls, config: PlatformConfig) -> JwtBearerFlow:
        """Create a flow using the key file named in the config."""
        if not config.jwt_private_key_path:
            raise ConfigurationError("OAUTHFLOW_JWT_PRIVATE_KEY_PATH is not set")
        return cls(config, load_private_key(config.jwt_private_key_path))

    def build_assertion(self, now: float | None = None) -> str:
        """Build and sign the JWT assertion."""
        issued = int(time.time() if now is None else now)
        payload = {
            "iss": self.config.client_id,
            "sub": self.username,
            "aud": self.config.login_url,
            "exp": issued + ASSERTION_TTL_SECONDS,
        }

        try:
            return jwt.encode(payload, self._private_key, algorithm=ALGORITHM)
        except (jwt.PyJWTError, ValueError, TypeError) as e:
            raise JwtBearerError(f"Failed to sign JWT assertion: {e}") from e

    async def request_token(self) -> TokenSet:
        """Exchange a fresh assertion for a TokenSet.

        Raises:
            JwtBearerError: If signing, the request or the grant fails
        """
        token_request = JwtBearerTokenRequest(
            token_endpoint=self.config.token_endpoint,
            assertion=self.build_assertion(),
        )

        try:
            token_response = await self._token_manager.exchange_jwt_assertion(
                token_request
            )
        except TokenError as e:
            raise JwtBearerError(str(e)) from e

        if not token_response.is_success():
            raise JwtBearerError(
                f"JWT-bearer grant rejected: {token_response.describe_error()}"
            )

        try:
            tokens = token_response.to_token_set()
        except ValueError as e:
            raise JwtBearerError(f"Unusable token response: {e}") from e

        logger.info(f"Obtained access token for {self.username} via JWT-bearer grant")
        return tokens

    async def fetch_record(
        self, tokens: TokenSet, sobject: str, record_id: str
    ) -> dict[str, Any]:
        """Fetch a record with a token obtained from this flow."""
        try:
            return await self._resources.get_record(
                tokens.access_token, tokens.instance_url, sobject, record_id
            )
        except BackendError as e:
            raise JwtBearerError(str(e)) from e

    async def close(self) -> None:
        await self._token_manager.close()
        await self._resources.close()
