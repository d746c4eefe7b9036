from __future__ import annotations

import asyncio
import logging
import secrets
import time

from models.constants import (
    CONTENT_TYPE_EXTENSIONS,
    MUSIC_KEY_STEM,
    STORAGE_KEY_PREFIX,
    STORE_BACKOFF_SECONDS,
    STORE_MAX_ATTEMPTS,
)
from models.errors import BlobStorageError, PersistFailedError
from models.job import Artifact, StoredArtifact
from repositories.blob_repository import BlobStorage
from services.polling import Sleep, retry_async

logger = logging.getLogger(__name__)


def build_storage_key(
    content_type: str, *, prefix: str = STORAGE_KEY_PREFIX, stem: str = MUSIC_KEY_STEM
) -> str:
    # Random suffix is required: completions within the same millisecond are possible.
    extension = CONTENT_TYPE_EXTENSIONS.get(content_type)
    if extension is None:
        extension = "png" if content_type.startswith("image/") else "mp3"
    return f"{prefix}/{stem}_{int(time.time() * 1000)}_{secrets.token_hex(6)}.{extension}"


class ArtifactStore:
    def __init__(
        self,
        storage: BlobStorage,
        *,
        max_attempts: int = STORE_MAX_ATTEMPTS,
        backoff_seconds: float = STORE_BACKOFF_SECONDS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.storage = storage
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    async def store(
        self,
        artifact: Artifact,
        *,
        prefix: str = STORAGE_KEY_PREFIX,
        stem: str = MUSIC_KEY_STEM,
        label: str = "Track",
    ) -> StoredArtifact:
        """Upload ``artifact`` under a fresh key; ``label`` names it in the failure message."""
        file_path = build_storage_key(artifact.content_type, prefix=prefix, stem=stem)

        async def upload() -> None:
            await self.storage.upload(file_path, artifact.data, artifact.content_type)

        try:
            await retry_async(
                upload,
                attempts=self.max_attempts,
                backoff_seconds=self.backoff_seconds,
                retry_on=BlobStorageError,
                description=f"Upload of {file_path}",
                sleep=self._sleep,
            )
        except BlobStorageError as exc:
            raise PersistFailedError(f"{label} was generated but could not be saved: {exc}") from exc

        logger.info("Uploaded to storage: %s", file_path)
        return StoredArtifact(file_path=file_path, public_url=self.storage.get_public_url(file_path))

    async def discard(self, file_path: str) -> bool:
        try:
            await self.storage.delete(file_path)
        except BlobStorageError as exc:
            logger.warning("Could not delete stored file %s: %s", file_path, exc)
            return False
        logger.info("Deleted stored file %s", file_path)
        return True
