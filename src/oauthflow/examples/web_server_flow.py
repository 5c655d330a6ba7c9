"""
Walk through the web server (authorization code) flow from a terminal.

Prints the authorization URL, then asks for the URL the browser was
redirected to. Set OAUTHFLOW_CLIENT_ID and OAUTHFLOW_REDIRECT_URI (and
OAUTHFLOW_CLIENT_SECRET if the connected app requires it). Pass --pkce to
use PKCE.
"""

import asyncio
import json
import logging
import sys

from oauthflow.config import PlatformConfig
from oauthflow.controller import AuthorizationFlowController
from oauthflow.models.errors import OAuth2Error
from oauthflow.services.backend import HttpAuthorizationBackend
from oauthflow.services.storage import FileSessionStore


class TerminalAuthorizationHandler:
    """Prints the authorization URL and reads the redirect URL from stdin."""

    async def handle_authorization(self, auth_url: str) -> str:
        print(f"\nOpen this URL in your browser:\n\n  {auth_url}\n")
        return await asyncio.to_thread(input, "Paste the redirect URL: ")


async def main() -> int:
    config = PlatformConfig.from_env()
    backend = HttpAuthorizationBackend(config)
    controller = AuthorizationFlowController(
        backend,
        FileSessionStore(".oauthflow"),
        session_id="terminal",
        use_pkce="--pkce" in sys.argv,
        pkce_max_age=config.pkce_max_age,
    )

    try:
        identity = await controller.authenticate(TerminalAuthorizationHandler())
    except OAuth2Error as e:
        print(f"\n{controller.status}")
        logging.debug(f"Flow failed: {e!r}")
        return 1
    finally:
        await backend.close()

    print(f"\nAccess token: {controller.tokens.masked_access_token()}")
    print(f"Instance URL: {controller.tokens.instance_url}\n")
    print(json.dumps(identity.data, indent=2))
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    sys.exit(asyncio.run(main()))
