"""S3-compatible blob storage (Cloudflare R2, Supabase storage, MinIO, AWS).

boto3 is synchronous, so every call is pushed onto a worker thread to keep
the event loop free while an upload is in flight.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from models.errors import BlobStorageError


class BlobStorage(Protocol):
    async def upload(self, path: str, data: bytes, content_type: str) -> None: ...

    def get_public_url(self, path: str) -> str: ...

    async def delete(self, path: str) -> None: ...


class S3BlobStorage:
    def __init__(
        self,
        bucket: str,
        *,
        access_key_id: str,
        secret_access_key: str,
        endpoint_url: str | None = None,
        region_name: str = "auto",
        public_base_url: str | None = None,
        client: Any | None = None,
    ) -> None:
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.public_base_url = public_base_url
        self.s3_client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region_name,
        )

    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self.s3_client.put_object,
                Bucket=self.bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise BlobStorageError(f"Upload of {path} failed: {exc}") from exc

    def get_public_url(self, path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{path}"
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket}/{path}"
        return f"https://{self.bucket}.s3.amazonaws.com/{path}"

    async def delete(self, path: str) -> None:
        try:
            await asyncio.to_thread(self.s3_client.delete_object, Bucket=self.bucket, Key=path)
        except (BotoCoreError, ClientError) as exc:
            raise BlobStorageError(f"Delete of {path} failed: {exc}") from exc
