"""Download an image over HTTP and base64-encode it."""

from __future__ import annotations

import base64
import logging

import httpx

logger = logging.getLogger(__name__)


class HttpUrlConverter:
    """``IUrlConverter`` over a shared ``httpx.AsyncClient``.

    Transport and HTTP status errors are logged and reported as ``None``;
    the command handler turns that into a ``ProviderError``.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._timeout = timeout_seconds
        self._client = client
        self._owns_client = client is None

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def convert_url_to_base64(self, url: str) -> str | None:
        if self._client is None:
            await self.start()
        assert self._client is not None
        try:
            logger.info("Downloading image from %s", url)
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Image download failed for %s: %s", url, exc)
            return None
        if not response.content:
            logger.warning("Empty body downloading %s", url)
            return None
        return base64.b64encode(response.content).decode("ascii")
