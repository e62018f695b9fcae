"""Shared async HTTP plumbing for the embedding and completion clients."""
import logging
from typing import Optional

import httpx

from .config import Settings
from .errors import RequestFailed, RequestTimeout

logger = logging.getLogger(__name__)


class HTTPClient:
    """Base class for clients that POST JSON to a configured endpoint.

    An ``httpx.AsyncClient`` may be injected and shared between clients; it
    is then never closed here. Without one, ``async with`` opens a client for
    the block, and bare calls use a short-lived client per request.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = client
        self._owns_client = False

    async def __aenter__(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.request_timeout)
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
            self._owns_client = False

    def _auth_header(self) -> dict:
        if self.settings.api_key:
            return {"Authorization": f"Bearer {self.settings.api_key}"}
        return {}

    async def post_json(self, url: str, payload: dict) -> httpx.Response:
        """POST ``payload`` as JSON to ``url`` and return the raw response.

        Raises:
            RequestTimeout: If the request exceeds ``settings.request_timeout``.
            RequestFailed: If the connection fails or another transport error occurs.
        """
        headers = {"Content-Type": "application/json"}
        headers.update(self._auth_header())
        timeout = self.settings.request_timeout

        logger.debug("POST %s", url)
        try:
            if self._client is not None:
                return await self._client.post(url, json=payload, headers=headers, timeout=timeout)
            async with httpx.AsyncClient(timeout=timeout) as client:
                return await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException:
            logger.error("Request to %s timed out after %ss", url, timeout)
            raise RequestTimeout(url, timeout) from None
        except httpx.RequestError as e:
            reason = str(e) or type(e).__name__
            logger.error("Request to %s failed: %s", url, reason)
            raise RequestFailed(url, reason) from e
