"""Platform settings for the authorization flows.

Values come from OAUTHFLOW_* environment variables; a .env file in the
working directory is loaded first if present.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from oauthflow.models.errors import ConfigurationError
from oauthflow.models.security import CodeChallengeMethod

logger = logging.getLogger(__name__)

ENV_PREFIX = "OAUTHFLOW_"

DEFAULT_LOGIN_URL = "https://login.salesforce.com"
DEFAULT_API_VERSION = "59.0"


@dataclass(frozen=True)
class PlatformConfig:
    """Connected app and endpoint settings for one identity platform."""

    client_id: str
    redirect_uri: str
    login_url: str = DEFAULT_LOGIN_URL
    client_secret: str | None = None
    scope: str | None = "api refresh_token"
    api_version: str = DEFAULT_API_VERSION
    timeout: float = 30.0

    pkce_method: CodeChallengeMethod = CodeChallengeMethod.S256
    pkce_max_age: float = 600.0  # Seconds persisted PKCE material stays usable

    # JWT-bearer grant
    jwt_username: str | None = None
    jwt_private_key_path: str | None = None

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.login_url.rstrip('/')}/services/oauth2/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.login_url.rstrip('/')}/services/oauth2/token"

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> PlatformConfig:
        """Load settings from the environment.

        Args:
            dotenv_path: Optional explicit .env file to load

        Raises:
            ConfigurationError: If a required value is missing or malformed
        """
        load_dotenv(dotenv_path)

        def get(name: str, default: str | None = None) -> str | None:
            value = os.getenv(f"{ENV_PREFIX}{name}")
            return value if value not in (None, "") else default

        client_id = get("CLIENT_ID")
        redirect_uri = get("REDIRECT_URI")
        missing = [
            f"{ENV_PREFIX}{name}"
            for name, value in (("CLIENT_ID", client_id), ("REDIRECT_URI", redirect_uri))
            if value is None
        ]
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

        try:
            timeout = float(get("TIMEOUT", "30"))
            pkce_max_age = float(get("PKCE_MAX_AGE", "600"))
            pkce_method = CodeChallengeMethod(get("PKCE_METHOD", "S256"))
        except ValueError as e:
            raise ConfigurationError(f"Invalid setting: {e}") from e

        config = cls(
            client_id=client_id,
            redirect_uri=redirect_uri,
            login_url=get("LOGIN_URL", DEFAULT_LOGIN_URL),
            client_secret=get("CLIENT_SECRET"),
            scope=get("SCOPE", "api refresh_token"),
            api_version=get("API_VERSION", DEFAULT_API_VERSION),
            timeout=timeout,
            pkce_method=pkce_method,
            pkce_max_age=pkce_max_age,
            jwt_username=get("JWT_USERNAME"),
            jwt_private_key_path=get("JWT_PRIVATE_KEY_PATH"),
        )
        logger.debug(f"Loaded platform config for {config.login_url}")
        return config
