from __future__ import annotations

import httpx
import pytest

from models.errors import DownloadFailedError
from repositories.download_repository import ArtifactFetcher
from test_support import MP3_BYTES

pytestmark = pytest.mark.anyio


async def test_fetch_returns_bytes_and_content_type() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == "https://vendor/x.mp3"
        return httpx.Response(200, content=MP3_BYTES, headers={"content-type": "audio/mpeg; charset=binary"})

    fetcher = ArtifactFetcher(transport=httpx.MockTransport(handler))
    artifact = await fetcher.fetch("https://vendor/x.mp3")
    await fetcher.aclose()

    assert artifact.data == MP3_BYTES
    assert artifact.content_type == "audio/mpeg"


async def test_generic_content_type_defaults_to_mpeg() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        return httpx.Response(200, content=MP3_BYTES, headers={"content-type": "application/octet-stream"})

    fetcher = ArtifactFetcher(transport=httpx.MockTransport(handler))
    artifact = await fetcher.fetch("https://vendor/x.mp3")
    await fetcher.aclose()

    assert artifact.content_type == "audio/mpeg"


async def test_redirects_are_followed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/x.mp3":
            return httpx.Response(302, headers={"location": "https://cdn.vendor/real.mp3"})
        return httpx.Response(200, content=MP3_BYTES, headers={"content-type": "audio/wav"})

    fetcher = ArtifactFetcher(transport=httpx.MockTransport(handler))
    artifact = await fetcher.fetch("https://vendor/x.mp3")
    await fetcher.aclose()

    assert artifact.content_type == "audio/wav"


async def test_http_error_status_raises_download_failed() -> None:
    fetcher = ArtifactFetcher(transport=httpx.MockTransport(lambda request: httpx.Response(404)))

    with pytest.raises(DownloadFailedError, match="HTTP 404"):
        await fetcher.fetch("https://vendor/missing.mp3")
    await fetcher.aclose()


async def test_transport_error_raises_download_failed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection reset", request=request)

    fetcher = ArtifactFetcher(transport=httpx.MockTransport(handler))

    with pytest.raises(DownloadFailedError, match="ConnectError"):
        await fetcher.fetch("https://vendor/x.mp3")
    await fetcher.aclose()
