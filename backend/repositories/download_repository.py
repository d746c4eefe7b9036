from __future__ import annotations

import logging

import httpx

from models.constants import DEFAULT_CONTENT_TYPE, REQUEST_TIMEOUT_SECONDS
from models.errors import DownloadFailedError
from models.job import Artifact

logger = logging.getLogger(__name__)


class ArtifactFetcher:
    def __init__(
        self,
        *,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(timeout=timeout, follow_redirects=True, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch(self, url: str) -> Artifact:
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            raise DownloadFailedError(f"Failed to download audio: {type(exc).__name__}") from exc

        if not response.is_success:
            raise DownloadFailedError(f"Failed to download audio: HTTP {response.status_code}")

        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        if not content_type or content_type == "application/octet-stream":
            content_type = DEFAULT_CONTENT_TYPE

        logger.info("Downloaded audio size: %d bytes", len(response.content))
        return Artifact(data=response.content, content_type=content_type)
