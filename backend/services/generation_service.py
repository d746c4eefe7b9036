from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from models.constants import DEFAULT_SESSION_ID
from models.errors import ConfigurationError, TaskNotFoundError
from models.job import StatusSnapshot
from models.schemas import GenerateRequestBody, record_to_payload
from models.settings import Settings, load_settings
from repositories.blob_repository import S3BlobStorage
from repositories.download_repository import ArtifactFetcher
from repositories.kie_repository import KieTaskClient
from repositories.record_repository import RecordRepository, create_record_engine
from services.artifact_store import ArtifactStore
from services.orchestrator import JobOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class GenerationRuntime:
    settings: Settings
    task_client: Any
    fetcher: Any
    artifact_store: ArtifactStore
    record_repository: Any
    orchestrators: OrderedDict[str, JobOrchestrator] = field(default_factory=OrderedDict)


runtime: GenerationRuntime | None = None


def configure(
    settings: Settings,
    *,
    task_client: Any,
    fetcher: Any,
    artifact_store: ArtifactStore,
    record_repository: Any,
) -> GenerationRuntime:
    global runtime
    runtime = GenerationRuntime(
        settings=settings,
        task_client=task_client,
        fetcher=fetcher,
        artifact_store=artifact_store,
        record_repository=record_repository,
    )
    return runtime


def require_runtime() -> GenerationRuntime:
    if runtime is None:
        raise ConfigurationError("Generation service is not started")
    return runtime


async def startup(settings: Settings | None = None) -> None:
    settings = settings or load_settings()
    storage = S3BlobStorage(
        settings.storage_bucket,
        access_key_id=settings.storage_access_key_id,
        secret_access_key=settings.storage_secret_access_key,
        endpoint_url=settings.storage_endpoint_url,
        region_name=settings.storage_region,
        public_base_url=settings.storage_public_base_url,
    )
    record_repository = RecordRepository(create_record_engine(settings.database_url))
    await record_repository.init_schema()
    configure(
        settings,
        task_client=KieTaskClient(
            settings.kie_api_key,
            settings.kie_api_base,
            model=settings.kie_model,
            timeout=settings.request_timeout_seconds,
        ),
        fetcher=ArtifactFetcher(timeout=settings.request_timeout_seconds),
        artifact_store=ArtifactStore(storage),
        record_repository=record_repository,
    )
    logger.info(
        "Generation service started (poll every %.1fs, at most %d polls)",
        settings.poll_interval_seconds,
        settings.max_poll_attempts,
    )


async def shutdown() -> None:
    global runtime
    current = runtime
    if current is None:
        return
    runtime = None
    for orchestrator in list(current.orchestrators.values()):
        await orchestrator.aclose()
    for collaborator in (current.task_client, current.fetcher, current.record_repository):
        aclose = getattr(collaborator, "aclose", None)
        if aclose is not None:
            await aclose()


def get_orchestrator(session_id: str = DEFAULT_SESSION_ID) -> JobOrchestrator:
    current = require_runtime()
    orchestrator = current.orchestrators.get(session_id)
    if orchestrator is None:
        orchestrator = JobOrchestrator(
            current.task_client,
            current.fetcher,
            current.artifact_store,
            current.record_repository,
            poll_interval=current.settings.poll_interval_seconds,
            max_poll_attempts=current.settings.max_poll_attempts,
        )
        current.orchestrators[session_id] = orchestrator
        _evict_idle_sessions(current, keep=session_id)
    current.orchestrators.move_to_end(session_id)
    return orchestrator


def _evict_idle_sessions(current: GenerationRuntime, *, keep: str) -> None:
    # Least recently used first; sessions with a running job or a live watcher stay.
    excess = len(current.orchestrators) - current.settings.max_sessions
    for session_id, orchestrator in list(current.orchestrators.items()):
        if excess <= 0:
            break
        if session_id == keep or not orchestrator.is_idle or orchestrator.channel.watcher_count:
            continue
        del current.orchestrators[session_id]
        excess -= 1
        logger.info("Evicted idle session %s", session_id)


def _find_outcome(task_id: str, session_id: str) -> StatusSnapshot | None:
    current = require_runtime()
    own = current.orchestrators.get(session_id)
    if own is not None:
        snapshot = own.outcome(task_id)
        if snapshot is not None:
            return snapshot
    for other_session, orchestrator in current.orchestrators.items():
        if other_session == session_id:
            continue
        snapshot = orchestrator.outcome(task_id)
        if snapshot is not None:
            return snapshot
    return None


async def start_generation(
    body: GenerateRequestBody, session_id: str = DEFAULT_SESSION_ID
) -> dict[str, str | None]:
    snapshot = await get_orchestrator(session_id).start(body)
    return {"taskId": snapshot.task_id, "status": snapshot.phase.public_status, "prompt": snapshot.prompt}


def get_generation_status(
    task_id: str, session_id: str = DEFAULT_SESSION_ID, prompt: str | None = None
) -> dict[str, Any]:
    snapshot = _find_outcome(task_id, session_id)
    if snapshot is None:
        raise TaskNotFoundError("Task not found")
    payload = snapshot.to_payload()
    if payload["prompt"] is None:
        payload["prompt"] = prompt
    return payload


async def cancel_generation(session_id: str = DEFAULT_SESSION_ID) -> dict[str, bool]:
    orchestrator = require_runtime().orchestrators.get(session_id)
    cancelled = orchestrator is not None and await orchestrator.cancel()
    return {"cancelled": cancelled}


async def list_library(limit: int) -> dict[str, list[dict[str, object]]]:
    records = await require_runtime().record_repository.list_records(limit)
    return {"music": [record_to_payload(record) for record in records]}


async def delete_library_item(record_id: UUID) -> dict[str, bool]:
    current = require_runtime()
    record = await current.record_repository.delete_by_id(record_id)
    if record is not None:
        logger.info("Deleted track %s (%s)", record_id, record.file_path)
        await current.artifact_store.discard(record.file_path)
    for orchestrator in current.orchestrators.values():
        orchestrator.forget_record(record_id)
    return {"success": True}
