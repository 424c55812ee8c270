"""
Sales API Client

Handles all HTTP requests to the spreadsheet-backed sales API.
Reads use GET with an `action` query parameter and return a JSON envelope
`{success, data, error?}`; mutations are fire-and-forget POSTs.
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from app.config import settings
from app.models.schemas import MutationResult

logger = logging.getLogger(__name__)


class SalesApiError(Exception):
    """Base error for remote sales API calls"""


class SalesApiTransportError(SalesApiError):
    """Network failure, HTTP error status or unparseable response"""


class SalesApiLogicalError(SalesApiError):
    """API answered with success=false; message is the server's error verbatim"""


class SalesApiClient:
    """Client for the sales spreadsheet API"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url if base_url is not None else settings.sales_api_url
        self.timeout = timeout if timeout is not None else settings.sales_api_timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        # Apps Script web apps answer through a redirect
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport
        )

    def _ensure_url(self) -> str:
        if not self.base_url:
            raise SalesApiTransportError("SALES_API_URL is not configured")
        return self.base_url

    async def fetch(self, action: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET an action and return the raw envelope"""
        url = self._ensure_url()
        query = {"action": action}
        if params:
            query.update({k: v for k, v in params.items() if v is not None})

        try:
            async with self._client() as client:
                response = await client.get(url, params=query)
                response.raise_for_status()
                envelope = response.json()
        except httpx.HTTPError as e:
            raise SalesApiTransportError(f"{action}: {e}") from e
        except ValueError as e:
            raise SalesApiTransportError(f"{action}: invalid JSON response") from e

        if not isinstance(envelope, dict):
            raise SalesApiTransportError(f"{action}: unexpected response shape")
        return envelope

    async def fetch_data(
        self,
        action: str,
        params: Optional[Dict[str, Any]] = None,
        default_error: str = "データ取得に失敗しました"
    ) -> Any:
        """GET an action and return `data`, raising on success=false"""
        envelope = await self.fetch(action, params)
        if not envelope.get("success"):
            raise SalesApiLogicalError(envelope.get("error") or default_error)
        return envelope.get("data")

    async def post_mutation(self, payload: Dict[str, Any]) -> MutationResult:
        """
        Fire-and-forget POST.

        The backend's response is not readable, so the result is always
        optimistically accepted; callers verify by re-fetching.
        """
        url = self._ensure_url()
        action = payload.get("action", "")

        try:
            async with self._client() as client:
                await client.post(
                    url,
                    content=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
                    headers={"Content-Type": "text/plain"}
                )
        except httpx.HTTPError as e:
            raise SalesApiTransportError(f"{action}: {e}") from e

        logger.info(f"[Sales API] Sent mutation {action}")
        return MutationResult(action=action, accepted=True)


# Singleton instance
_sales_api_client: Optional[SalesApiClient] = None


def get_sales_api_client() -> SalesApiClient:
    """Get or create sales API client instance"""
    global _sales_api_client
    if _sales_api_client is None:
        _sales_api_client = SalesApiClient()
    return _sales_api_client
