"""Job orchestration: start a remote task, poll it, then download, store and record the track.

One orchestrator runs at most one job at a time. State lives on the instance
(``JobState``), so independent orchestrators (one per session) never interfere.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, Protocol
from uuid import UUID

from models.constants import (
    DEFAULT_DURATION_SECONDS,
    DOWNLOAD_BACKOFF_SECONDS,
    DOWNLOAD_MAX_ATTEMPTS,
    MAX_POLL_ATTEMPTS,
    OUTCOME_HISTORY_SIZE,
    POLL_INTERVAL_SECONDS,
)
from models.errors import (
    BusyError,
    CancelledGenerationError,
    DownloadFailedError,
    GenerationError,
    GenerationTimeoutError,
    RecordFailedError,
    VendorReportedFailureError,
)
from models.job import (
    Artifact,
    JobPhase,
    JobState,
    RemoteTask,
    RemoteTaskPhase,
    StatusSnapshot,
    StoredArtifact,
    TaskHandle,
)
from models.records import GeneratedMusic
from models.schemas import GenerateRequestBody, record_to_payload
from services.polling import PollDeadlineExceeded, Sleep, poll_until, retry_async
from services.status_channel import StatusChannel

logger = logging.getLogger(__name__)


class TaskClient(Protocol):
    async def start(self, prompt: str, options: dict[str, Any] | None = None) -> TaskHandle: ...

    async def status(self, handle: TaskHandle) -> RemoteTask: ...


class Fetcher(Protocol):
    async def fetch(self, url: str) -> Artifact: ...


class ArtifactSink(Protocol):
    async def store(self, artifact: Artifact) -> StoredArtifact: ...

    async def discard(self, file_path: str) -> bool: ...


class RecordStore(Protocol):
    async def insert(self, record: GeneratedMusic) -> GeneratedMusic: ...

    async def delete_by_id(self, record_id: UUID) -> GeneratedMusic | None: ...


class JobOrchestrator:
    def __init__(
        self,
        task_client: TaskClient,
        fetcher: Fetcher,
        artifact_store: ArtifactSink,
        record_store: RecordStore,
        *,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_poll_attempts: int = MAX_POLL_ATTEMPTS,
        download_attempts: int = DOWNLOAD_MAX_ATTEMPTS,
        download_backoff_seconds: float = DOWNLOAD_BACKOFF_SECONDS,
        channel: StatusChannel | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.task_client = task_client
        self.fetcher = fetcher
        self.artifact_store = artifact_store
        self.record_store = record_store
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.download_attempts = download_attempts
        self.download_backoff_seconds = download_backoff_seconds
        self.channel = channel or StatusChannel()
        self.state = JobState()
        self._sleep = sleep
        self._clock = clock
        self._poll_task: asyncio.Task[None] | None = None
        self._persisting_generation: int | None = None
        self._outcomes: OrderedDict[str, StatusSnapshot] = OrderedDict()

    @property
    def phase(self) -> JobPhase:
        return self.state.phase

    @property
    def is_idle(self) -> bool:
        return self.state.phase is JobPhase.IDLE

    def snapshot(self) -> StatusSnapshot:
        state = self.state
        elapsed = 0.0 if state.started_at is None else self._clock() - state.started_at
        return StatusSnapshot(
            phase=state.phase,
            task_id=state.task_id,
            prompt=state.prompt,
            elapsed_seconds=elapsed,
            poll_attempts=state.poll_attempts,
            record=state.record,
            error=state.error,
            reason=state.reason,
            retryable=state.retryable,
        )

    def outcome(self, task_id: str) -> StatusSnapshot | None:
        """Current snapshot when ``task_id`` is the running job, else its retained terminal snapshot."""
        if not self.is_idle and self.state.task_id == task_id:
            return self.snapshot()
        return self._outcomes.get(task_id)

    async def start(self, request: GenerateRequestBody) -> StatusSnapshot:
        # Claim the machine before the first await so a concurrent start sees STARTING.
        if not self.is_idle:
            raise BusyError("A generation is already in progress")

        state = self.state
        state.reset()
        state.generation += 1
        generation = state.generation
        state.phase = JobPhase.STARTING
        state.prompt = request.prompt
        state.options = request.vendor_options()
        state.started_at = self._clock()
        self._publish()

        logger.info("Generating music for prompt: %s", request.prompt)
        try:
            handle = await self.task_client.start(request.prompt, state.options)
        except asyncio.CancelledError:
            if self._is_current(generation):
                self._finish_failed(CancelledGenerationError("Generation was cancelled"))
            raise
        except Exception as exc:
            if self._is_current(generation):
                self._finish_failed(exc)
            raise

        if not self._is_current(generation):
            logger.info("Discarding task %s started for a cancelled generation", handle.task_id)
            raise CancelledGenerationError("Generation was cancelled")

        state.task_id = handle.task_id
        state.phase = JobPhase.PENDING
        snapshot = self._publish()
        self._poll_task = asyncio.create_task(self._run(generation, handle))
        return snapshot

    async def cancel(self) -> bool:
        """Stop the running job and return to IDLE; ``False`` when nothing was running.

        The vendor task itself keeps running remotely; its result is discarded.
        """
        if self.is_idle:
            return False

        generation = self.state.generation
        task = self._poll_task
        persisting = self._persisting_generation == generation
        self.state.generation += 1
        if task is not None and not task.done() and not persisting:
            task.cancel()

        logger.info("Cancelled generation for task %s", self.state.task_id)
        self._finish_failed(CancelledGenerationError("Generation was cancelled"))

        if task is not None:
            await asyncio.wait([task])
        return True

    async def wait(self) -> StatusSnapshot:
        task = self._poll_task
        if task is not None:
            await asyncio.wait([task])
        return self.channel.latest

    async def aclose(self) -> None:
        if not self.is_idle:
            await self.cancel()

    def forget_record(self, record_id: UUID | str) -> None:
        """Drop every reference to a deleted record so it is never served again."""
        record_key = str(record_id)
        if self.state.record is not None and self.state.record.get("id") == record_key:
            self.state.record = None
        for task_id, snapshot in list(self._outcomes.items()):
            if snapshot.record is not None and snapshot.record.get("id") == record_key:
                self._outcomes[task_id] = snapshot.without_record()
        latest = self.channel.latest
        if latest.record is not None and latest.record.get("id") == record_key:
            self.channel.latest = latest.without_record()

    def _is_current(self, generation: int) -> bool:
        return self.state.generation == generation and not self.is_idle

    def _publish(self) -> StatusSnapshot:
        snapshot = self.snapshot()
        self.channel.publish(snapshot)
        return snapshot

    def _remember(self, snapshot: StatusSnapshot) -> None:
        if snapshot.task_id is None:
            return
        self._outcomes[snapshot.task_id] = snapshot
        self._outcomes.move_to_end(snapshot.task_id)
        while len(self._outcomes) > OUTCOME_HISTORY_SIZE:
            self._outcomes.popitem(last=False)

    def _finish(self, phase: JobPhase) -> None:
        self.state.phase = phase
        snapshot = self._publish()
        self._remember(snapshot)
        self.state.reset()

    def _finish_failed(self, exc: BaseException) -> None:
        if isinstance(exc, GenerationError):
            reason, retryable = exc.reason, exc.retryable
        else:
            reason, retryable = GenerationError.reason, False
        self.state.error = str(exc) or reason
        self.state.reason = reason
        self.state.retryable = retryable
        logger.error(
            "Generation for task %s failed (%s): %s",
            self.state.task_id,
            reason,
            self.state.error,
        )
        self._finish(JobPhase.FAILED)

    def _on_poll(self, generation: int, remote: RemoteTask, attempt: int) -> None:
        if not self._is_current(generation):
            return
        logger.info(
            "Polling attempt %d for %s: %s",
            attempt,
            remote.task_id,
            remote.vendor_status or remote.phase.value,
        )
        self.state.poll_attempts = attempt
        if remote.phase is RemoteTaskPhase.PROCESSING:
            self.state.phase = JobPhase.PROCESSING
        self._publish()

    async def _run(self, generation: int, handle: TaskHandle) -> None:
        deadline = self.poll_interval * self.max_poll_attempts if self.poll_interval > 0 else None
        try:
            remote = await poll_until(
                lambda: self.task_client.status(handle),
                lambda result: result.phase.is_terminal or not self._is_current(generation),
                interval=self.poll_interval,
                max_attempts=self.max_poll_attempts,
                deadline_seconds=deadline,
                on_result=lambda result, attempt: self._on_poll(generation, result, attempt),
                sleep=self._sleep,
                clock=self._clock,
            )
            if not self._is_current(generation):
                return
            if remote.phase is RemoteTaskPhase.FAILED:
                raise VendorReportedFailureError("Music generation failed")

            record = await self._finalize(generation, remote)
            if record is None or not self._is_current(generation):
                return
            self.state.record = record_to_payload(record)
            logger.info("Saved generated track %s for task %s", record.id, handle.task_id)
            self._finish(JobPhase.SUCCESS)
        except PollDeadlineExceeded as exc:
            if self._is_current(generation):
                self._finish_failed(
                    GenerationTimeoutError(f"Generation timed out after {exc.attempts} status checks")
                )
        except GenerationError as exc:
            if self._is_current(generation):
                self._finish_failed(exc)
        except Exception as exc:  # pragma: no cover - safety net
            logger.exception("Unexpected generation error: %s: %s", type(exc).__name__, exc)
            if self._is_current(generation):
                self._finish_failed(exc)

    async def _finalize(self, generation: int, remote: RemoteTask) -> GeneratedMusic | None:
        if self.state.finalized:
            return None
        self.state.finalized = True
        self.state.phase = JobPhase.PROCESSING
        self._publish()

        if not remote.result_url:
            raise VendorReportedFailureError("No audio URL in response")
        result_url = remote.result_url

        logger.info("Music generated, downloading from: %s", result_url)
        artifact = await retry_async(
            lambda: self.fetcher.fetch(result_url),
            attempts=self.download_attempts,
            backoff_seconds=self.download_backoff_seconds,
            retry_on=DownloadFailedError,
            description=f"Download of {result_url}",
            sleep=self._sleep,
        )
        if not self._is_current(generation):
            return None

        prompt = self.state.prompt or ""
        duration = remote.duration_seconds or DEFAULT_DURATION_SECONDS

        # From here on a cancel no longer interrupts the task; stale work is rolled back instead.
        self._persisting_generation = generation
        try:
            stored = await self.artifact_store.store(artifact)
            if not self._is_current(generation):
                await self._discard_orphan(stored.file_path)
                return None

            try:
                record = await self.record_store.insert(
                    GeneratedMusic(
                        prompt=prompt,
                        file_path=stored.file_path,
                        file_url=stored.public_url,
                        duration_seconds=int(round(duration)),
                    )
                )
            except RecordFailedError:
                await self._discard_orphan(stored.file_path)
                raise

            if not self._is_current(generation):
                await self._undo_record(record, stored)
                return None
            return record
        finally:
            if self._persisting_generation == generation:
                self._persisting_generation = None

    async def _discard_orphan(self, file_path: str) -> None:
        if not await self.artifact_store.discard(file_path):
            logger.warning("Orphaned stored file needs manual cleanup: %s", file_path)

    async def _undo_record(self, record: GeneratedMusic, stored: StoredArtifact) -> None:
        try:
            await self.record_store.delete_by_id(record.id)
        except RecordFailedError as exc:
            logger.warning("Orphaned record %s for cancelled generation: %s", record.id, exc)
        await self._discard_orphan(stored.file_path)
