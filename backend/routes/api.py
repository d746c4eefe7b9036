from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncGenerator
from typing import Annotated, Any, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Header, HTTPException, Query, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from models.constants import (
    DEFAULT_LIBRARY_LIMIT,
    DEFAULT_SESSION_ID,
    INVALID_PAYLOAD_ERROR,
    MAX_LIBRARY_LIMIT,
)
from models.errors import (
    AIGatewayError,
    BusyError,
    CancelledGenerationError,
    ConfigurationError,
    GenerationError,
    InvalidRequestError,
    PersistFailedError,
    RecordFailedError,
    TaskNotFoundError,
)
from models.schemas import (
    GenerateRequestBody,
    GenerateThumbnailRequestBody,
    PromptSuggestionRequestBody,
)
from services import generation_service, prompt_service, thumbnail_service

router = APIRouter()

SessionId = Annotated[str, Header(alias="X-Session-Id")]

START_ERROR_STATUS_CODES: dict[type[GenerationError], int] = {
    InvalidRequestError: 400,
    BusyError: 409,
    CancelledGenerationError: 409,
}


def generation_http_exception(exc: GenerationError, status_code: int) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"error": str(exc), "reason": exc.reason, "retryable": exc.retryable},
    )


@router.post("/generate")
async def post_generate(
    response: Response,
    action: str = Query(default="generate"),
    body: Optional[GenerateRequestBody] = Body(default=None),
    session_id: SessionId = DEFAULT_SESSION_ID,
) -> dict[str, Any]:
    if action == "cancel":
        return await generation_service.cancel_generation(session_id)
    if action != "generate":
        raise HTTPException(status_code=400, detail=f"Unknown action: {action}")
    if body is None:
        raise HTTPException(status_code=400, detail="Prompt is required")

    try:
        accepted = await generation_service.start_generation(body, session_id)
    except GenerationError as exc:
        status_code = START_ERROR_STATUS_CODES.get(type(exc), 500)
        raise generation_http_exception(exc, status_code) from exc
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    response.status_code = 202
    return accepted


@router.get("/generate")
async def get_generate(
    action: str = Query(default="status"),
    task_id: Optional[str] = Query(default=None, alias="taskId"),
    prompt: Optional[str] = Query(default=None),
    session_id: SessionId = DEFAULT_SESSION_ID,
) -> dict[str, Any]:
    if action != "status":
        raise HTTPException(status_code=400, detail=f"Unknown action: {action}")
    if not task_id:
        raise HTTPException(status_code=400, detail="taskId is required")

    try:
        return generation_service.get_generation_status(task_id, session_id, prompt)
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


async def event_stream(session_id: str) -> AsyncGenerator[str, None]:
    orchestrator = generation_service.get_orchestrator(session_id)
    async for snapshot in orchestrator.channel.subscribe():
        payload = json.dumps(snapshot.to_payload())
        yield f"event: status\ndata: {payload}\n\n"
        await asyncio.sleep(0)


@router.get("/generate/events")
async def get_generate_events(session_id: SessionId = DEFAULT_SESSION_ID) -> StreamingResponse:
    try:
        generation_service.require_runtime()
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return StreamingResponse(event_stream(session_id), media_type="text/event-stream")


@router.get("/library")
async def get_library(
    limit: int = Query(default=DEFAULT_LIBRARY_LIMIT, ge=1, le=MAX_LIBRARY_LIMIT),
) -> dict[str, Any]:
    try:
        return await generation_service.list_library(limit)
    except RecordFailedError as exc:
        raise generation_http_exception(exc, 500) from exc


@router.delete("/library/{record_id}")
async def delete_library_item(record_id: UUID) -> dict[str, bool]:
    try:
        return await generation_service.delete_library_item(record_id)
    except RecordFailedError as exc:
        raise generation_http_exception(exc, 500) from exc


@router.post("/generate-prompt")
async def post_generate_prompt(body: PromptSuggestionRequestBody) -> dict[str, str]:
    try:
        return await prompt_service.suggest_prompt(body)
    except AIGatewayError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.post("/generate-thumbnail")
async def post_generate_thumbnail(body: GenerateThumbnailRequestBody) -> dict[str, object]:
    try:
        return await thumbnail_service.generate_thumbnail(body)
    except AIGatewayError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    except PersistFailedError as exc:
        raise generation_http_exception(exc, 500) from exc
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


async def handle_validation_error(_request: Any, _exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": INVALID_PAYLOAD_ERROR})


async def handle_http_exception(_request: Any, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content=exc.detail)
    detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(status_code=exc.status_code, content={"error": detail})
