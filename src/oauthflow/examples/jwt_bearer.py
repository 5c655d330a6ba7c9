"""
Obtain an access token with the JWT-bearer grant and fetch one record.

Needs OAUTHFLOW_CLIENT_ID, OAUTHFLOW_REDIRECT_URI, OAUTHFLOW_JWT_USERNAME
(a user pre-authorized for the connected app) and
OAUTHFLOW_JWT_PRIVATE_KEY_PATH (PEM key matching the app's certificate).

Usage: python -m oauthflow.examples.jwt_bearer <Account id>
"""

import asyncio
import json
import logging
import sys

from oauthflow.config import PlatformConfig
from oauthflow.models.errors import OAuth2Error
from oauthflow.services.jwt_bearer import JwtBearerFlow


async def main(record_id: str) -> int:
    config = PlatformConfig.from_env()
    flow = JwtBearerFlow.from_config(config)

    try:
        tokens = await flow.request_token()
        print(f"\nAccess token: {tokens.masked_access_token()}")

        record = await flow.fetch_record(tokens, "Account", record_id)
        print(f"\nSample API call succeeded:\n{json.dumps(record, indent=2)}")
    except OAuth2Error as e:
        print(f"\nError: {e}")
        return 1
    finally:
        await flow.close()

    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)
    sys.exit(asyncio.run(main(sys.argv[1])))
