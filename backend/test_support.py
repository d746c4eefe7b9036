"""In-memory collaborators used by the test-suite."""

from __future__ import annotations

import asyncio
from typing import Any
from uuid import UUID

from models.errors import BlobStorageError, DownloadFailedError, RecordFailedError
from models.job import Artifact, RemoteTask, RemoteTaskPhase, TaskHandle
from models.records import GeneratedMusic
from models.settings import Settings

MP3_BYTES = b"ID3" + b"\x00" * 64


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "kie_api_key": "kie-test-key",
        "storage_access_key_id": "storage-id",
        "storage_secret_access_key": "storage-secret",
        "storage_public_base_url": "https://cdn.example.com",
        "poll_interval_seconds": 0.001,
        "max_poll_attempts": 50,
    }
    values.update(overrides)
    return Settings(**values)


def pending(task_id: str = "T1", vendor_status: str = "PENDING") -> RemoteTask:
    return RemoteTask(task_id=task_id, phase=RemoteTaskPhase.PENDING, vendor_status=vendor_status)


def processing(task_id: str = "T1") -> RemoteTask:
    return RemoteTask(task_id=task_id, phase=RemoteTaskPhase.PROCESSING, vendor_status="TEXT_SUCCESS")


def succeeded(
    url: str = "https://vendor/x.mp3", duration: float | None = 42, task_id: str = "T1"
) -> RemoteTask:
    return RemoteTask(
        task_id=task_id,
        phase=RemoteTaskPhase.SUCCESS,
        result_url=url,
        duration_seconds=duration,
        vendor_status="SUCCESS",
    )


def failed(task_id: str = "T1") -> RemoteTask:
    return RemoteTask(task_id=task_id, phase=RemoteTaskPhase.FAILED, vendor_status="GENERATE_AUDIO_FAILED")


class FakeTaskClient:
    def __init__(
        self,
        statuses: list[RemoteTask] | None = None,
        *,
        task_id: str = "T1",
        start_error: Exception | None = None,
        start_gate: asyncio.Event | None = None,
    ) -> None:
        self.statuses = list(statuses or [])
        self.task_id = task_id
        self.start_error = start_error
        self.start_gate = start_gate
        self.started: list[tuple[str, dict[str, Any] | None]] = []
        self.status_calls = 0

    async def start(self, prompt: str, options: dict[str, Any] | None = None) -> TaskHandle:
        self.started.append((prompt, options))
        if self.start_gate is not None:
            await self.start_gate.wait()
        if self.start_error is not None:
            raise self.start_error
        return TaskHandle(task_id=self.task_id)

    async def status(self, handle: TaskHandle) -> RemoteTask:
        self.status_calls += 1
        if self.statuses:
            return self.statuses.pop(0)
        return pending(handle.task_id)


class FakeFetcher:
    def __init__(self, data: bytes = MP3_BYTES, *, failures: int = 0) -> None:
        self.data = data
        self.failures = failures
        self.urls: list[str] = []

    async def fetch(self, url: str) -> Artifact:
        self.urls.append(url)
        if self.failures > 0:
            self.failures -= 1
            raise DownloadFailedError("Failed to download audio: HTTP 502")
        return Artifact(data=self.data, content_type="audio/mpeg")


class FakeBlobStorage:
    def __init__(self, *, upload_failures: int = 0, delete_fails: bool = False) -> None:
        self.upload_failures = upload_failures
        self.delete_fails = delete_fails
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.upload_attempts: list[str] = []
        self.deleted: list[str] = []

    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        self.upload_attempts.append(path)
        if self.upload_failures > 0:
            self.upload_failures -= 1
            raise BlobStorageError(f"Upload of {path} failed: simulated outage")
        self.objects[path] = (data, content_type)

    def get_public_url(self, path: str) -> str:
        return f"https://cdn.example.com/{path}"

    async def delete(self, path: str) -> None:
        if self.delete_fails:
            raise BlobStorageError(f"Delete of {path} failed: simulated outage")
        self.deleted.append(path)
        self.objects.pop(path, None)


class FakeRecordStore:
    def __init__(self, *, insert_fails: bool = False) -> None:
        self.insert_fails = insert_fails
        self.rows: dict[UUID, GeneratedMusic] = {}
        self.insert_calls = 0

    async def insert(self, record: GeneratedMusic) -> GeneratedMusic:
        self.insert_calls += 1
        if self.insert_fails:
            raise RecordFailedError("Failed to save the generated track")
        self.rows[record.id] = record
        return record

    async def list_records(self, limit: int) -> list[GeneratedMusic]:
        rows = sorted(self.rows.values(), key=lambda row: row.created_at, reverse=True)
        return rows[:limit]

    async def get(self, record_id: UUID) -> GeneratedMusic | None:
        return self.rows.get(record_id)

    async def delete_by_id(self, record_id: UUID) -> GeneratedMusic | None:
        return self.rows.pop(record_id, None)


class RecordingSleep:
    """Replacement for ``asyncio.sleep`` that records delays but only yields to the loop."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)
