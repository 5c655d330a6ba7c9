"""Resource server (REST API) client used once an access token is held."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from oauthflow.models.errors import BackendError

logger = logging.getLogger(__name__)


class ResourceClient:
    """Calls versioned REST endpoints on the platform instance.

    All failures raise BackendError carrying the platform's error details.
    """

    def __init__(
        self,
        api_version: str,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_version = api_version
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    def data_url(self, instance_url: str, path: str) -> str:
        return (
            f"{instance_url.rstrip('/')}/services/data/v{self.api_version}/"
            f"{path.lstrip('/')}"
        )

    async def get_limits(self, access_token: str, instance_url: str) -> dict[str, Any]:
        """Fetch the org limits record."""
        return await self._request("GET", access_token, instance_url, "limits")

    async def get_record(
        self, access_token: str, instance_url: str, sobject: str, record_id: str
    ) -> dict[str, Any]:
        """Fetch a single record by id."""
        return await self._request(
            "GET", access_token, instance_url, f"sobjects/{sobject}/{record_id}"
        )

    async def create_record(
        self,
        access_token: str,
        instance_url: str,
        sobject: str,
        fields: dict[str, Any],
    ) -> str:
        """Create a record and return its id."""
        result = await self._request(
            "POST", access_token, instance_url, f"sobjects/{sobject}/", json=fields
        )
        if not result.get("success", True) or "id" not in result:
            raise BackendError(f"Failed to create {sobject}: {result.get('errors')}")

        logger.info(f"Created {sobject} record {result['id']}")
        return result["id"]

    async def _request(
        self,
        method: str,
        access_token: str,
        instance_url: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = self.data_url(instance_url, path)
        logger.debug(f"{method} {url}")

        try:
            response = await self._http_client.request(
                method,
                url,
                json=json,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as e:
            raise BackendError(f"HTTP error calling {path}: {e}") from e

        if response.status_code >= 400:
            raise BackendError(
                f"{method} {path} failed ({response.status_code}): "
                f"{self._describe_error(response)}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise BackendError(f"Invalid JSON from {path}: {e}") from e

        if not isinstance(data, dict):
            raise BackendError(f"Unexpected payload from {path}")
        return data

    @staticmethod
    def _describe_error(response: httpx.Response) -> str:
        """Extract error details from a REST error response.

        The platform reports errors as a list of {message, errorCode} objects.
        """
        try:
            data = response.json()
        except ValueError:
            return response.text or "No description provided"

        if isinstance(data, list):
            parts = [
                f"{item.get('errorCode', 'UNKNOWN')}: {item.get('message', '')}"
                for item in data
                if isinstance(item, dict)
            ]
            if parts:
                return "; ".join(parts)
        if isinstance(data, dict) and "error" in data:
            return f"{data['error']}: {data.get('error_description', '')}"
        return str(data)

    async def close(self) -> None:
        await self._http_client.aclose()
