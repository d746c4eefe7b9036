from __future__ import annotations

import logging
from typing import Any

import httpx

from models.constants import (
    DEFAULT_KIE_API_BASE,
    GENERATE_PATH,
    RECORD_INFO_PATH,
    REQUEST_TIMEOUT_SECONDS,
)
from models.errors import InvalidRequestError, UpstreamUnavailableError
from models.job import RemoteTask, RemoteTaskPhase, TaskHandle

logger = logging.getLogger(__name__)

VENDOR_STATUS_PHASES: dict[str, RemoteTaskPhase] = {
    "PENDING": RemoteTaskPhase.PENDING,
    "PROCESSING": RemoteTaskPhase.PROCESSING,
    "TEXT_SUCCESS": RemoteTaskPhase.PROCESSING,
    "FIRST_SUCCESS": RemoteTaskPhase.PROCESSING,
    "SUCCESS": RemoteTaskPhase.SUCCESS,
    "FAILED": RemoteTaskPhase.FAILED,
    "CREATE_TASK_FAILED": RemoteTaskPhase.FAILED,
    "GENERATE_AUDIO_FAILED": RemoteTaskPhase.FAILED,
    "CALLBACK_EXCEPTION": RemoteTaskPhase.FAILED,
    "SENSITIVE_WORD_ERROR": RemoteTaskPhase.FAILED,
}

# Envelope/HTTP codes meaning the prompt itself was refused.
REJECTED_PROMPT_CODES = frozenset({400, 413, 422})


def map_vendor_status(status: object) -> RemoteTaskPhase:
    if not isinstance(status, str):
        return RemoteTaskPhase.PENDING
    return VENDOR_STATUS_PHASES.get(status.strip().upper(), RemoteTaskPhase.PENDING)


def extract_track(data: dict[str, Any]) -> dict[str, Any]:
    response = data.get("response")
    tracks = response.get("sunoData") if isinstance(response, dict) else None
    if isinstance(tracks, list) and tracks and isinstance(tracks[0], dict):
        return tracks[0]
    return {}


def _parse_duration(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and value > 0:
        return float(value)
    if isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return None
        return parsed if parsed > 0 else None
    return None


class KieTaskClient:
    """Start and inspect music generation tasks on the Kie.ai API.

    Neither call retries; the orchestrator owns retry and polling policy.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_KIE_API_BASE,
        *,
        model: str | None = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.model = model
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def start(self, prompt: str, options: dict[str, Any] | None = None) -> TaskHandle:
        payload: dict[str, Any] = {
            "prompt": prompt,
            "customMode": False,
            "instrumental": True,
        }
        if self.model:
            payload["model"] = self.model
        payload.update(options or {})

        try:
            response = await self._client.post(GENERATE_PATH, json=payload)
        except httpx.HTTPError as exc:
            logger.error("Kie generate request failed: %s: %s", type(exc).__name__, exc)
            raise UpstreamUnavailableError("Music service is unreachable") from exc

        if response.status_code in REJECTED_PROMPT_CODES:
            logger.error("Kie rejected prompt: %s %s", response.status_code, response.text)
            raise InvalidRequestError(f"Prompt was rejected by the music service ({response.status_code})")
        if not response.is_success:
            logger.error("Kie generate error: %s %s", response.status_code, response.text)
            raise UpstreamUnavailableError(f"Music service error: {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamUnavailableError("Music service returned an invalid response") from exc
        if not isinstance(body, dict):
            raise UpstreamUnavailableError("Music service returned an invalid response")

        code = body.get("code")
        message = body.get("msg") or "Failed to start generation"
        if code in REJECTED_PROMPT_CODES:
            raise InvalidRequestError(str(message))
        if code != 200:
            raise UpstreamUnavailableError(str(message))

        data = body.get("data")
        task_id = data.get("taskId") if isinstance(data, dict) else None
        if not isinstance(task_id, str) or not task_id:
            raise UpstreamUnavailableError(f"Missing taskId in response: {body}")

        logger.info("Started Kie task %s", task_id)
        return TaskHandle(task_id=task_id)

    async def status(self, handle: TaskHandle) -> RemoteTask:
        pending = RemoteTask(task_id=handle.task_id, phase=RemoteTaskPhase.PENDING)

        try:
            response = await self._client.get(RECORD_INFO_PATH, params={"taskId": handle.task_id})
        except httpx.HTTPError as exc:
            logger.warning("Status check for %s failed: %s: %s", handle.task_id, type(exc).__name__, exc)
            return pending

        if not response.is_success:
            logger.warning("Status check for %s returned %s", handle.task_id, response.status_code)
            return pending

        try:
            body = response.json()
        except ValueError:
            logger.warning("Status check for %s returned invalid JSON", handle.task_id)
            return pending
        if not isinstance(body, dict) or body.get("code") != 200:
            return pending

        data = body.get("data")
        if not isinstance(data, dict):
            return pending

        vendor_status = data.get("status")
        phase = map_vendor_status(vendor_status)
        if phase is not RemoteTaskPhase.SUCCESS:
            return RemoteTask(
                task_id=handle.task_id,
                phase=phase,
                vendor_status=vendor_status if isinstance(vendor_status, str) else None,
            )

        track = extract_track(data)
        result_url = track.get("audioUrl") or track.get("sourceAudioUrl")
        return RemoteTask(
            task_id=handle.task_id,
            phase=phase,
            result_url=result_url if isinstance(result_url, str) and result_url else None,
            duration_seconds=_parse_duration(track.get("duration")),
            vendor_status=vendor_status,
        )
