from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from models.constants import DEFAULT_CONTENT_TYPE


class RemoteTaskPhase(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (RemoteTaskPhase.SUCCESS, RemoteTaskPhase.FAILED)


class JobPhase(str, Enum):
    IDLE = "IDLE"
    STARTING = "STARTING"
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobPhase.SUCCESS, JobPhase.FAILED)

    @property
    def public_status(self) -> str:
        # Callers only ever see the four vendor-shaped statuses.
        if self in (JobPhase.IDLE, JobPhase.STARTING):
            return JobPhase.PENDING.value
        return self.value


@dataclass(frozen=True)
class TaskHandle:
    task_id: str


@dataclass(frozen=True)
class RemoteTask:
    task_id: str
    phase: RemoteTaskPhase
    result_url: str | None = None
    duration_seconds: float | None = None
    vendor_status: str | None = None


@dataclass(frozen=True)
class Artifact:
    data: bytes
    content_type: str = DEFAULT_CONTENT_TYPE


@dataclass(frozen=True)
class StoredArtifact:
    file_path: str
    public_url: str


@dataclass(frozen=True)
class StatusSnapshot:
    phase: JobPhase
    task_id: str | None = None
    prompt: str | None = None
    elapsed_seconds: float = 0.0
    poll_attempts: int = 0
    record: dict[str, Any] | None = None
    error: str | None = None
    reason: str | None = None
    retryable: bool = False

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "taskId": self.task_id,
            "status": self.phase.public_status,
            "prompt": self.prompt,
            "elapsedSeconds": round(self.elapsed_seconds, 3),
            "pollAttempts": self.poll_attempts,
        }
        if self.record is not None:
            payload["music"] = self.record
        if self.error is not None:
            payload["error"] = self.error
            payload["reason"] = self.reason
            payload["retryable"] = self.retryable
        return payload

    def without_record(self) -> "StatusSnapshot":
        return replace(self, record=None)


@dataclass
class JobState:
    """Mutable state of the single job an orchestrator owns at a time.

    ``generation`` is bumped on every start and cancel; async work captures it
    before awaiting and drops its result when the value has moved on.
    """

    phase: JobPhase = JobPhase.IDLE
    generation: int = 0
    task_id: str | None = None
    prompt: str | None = None
    started_at: float | None = None
    poll_attempts: int = 0
    record: dict[str, Any] | None = None
    error: str | None = None
    reason: str | None = None
    retryable: bool = False
    finalized: bool = False
    options: dict[str, Any] = field(default_factory=dict)

    def reset(self) -> None:
        self.phase = JobPhase.IDLE
        self.task_id = None
        self.prompt = None
        self.started_at = None
        self.poll_attempts = 0
        self.record = None
        self.error = None
        self.reason = None
        self.retryable = False
        self.finalized = False
        self.options = {}
