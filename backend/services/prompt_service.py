from __future__ import annotations

import logging

from models.constants import DEFAULT_PROMPT_SUGGESTION_INPUT, PROMPT_SUGGESTION_SYSTEM_PROMPT
from models.errors import AIGatewayError
from models.schemas import PromptSuggestionRequestBody
from repositories import llm_repository
from services import generation_service

logger = logging.getLogger(__name__)


def build_user_input(body: PromptSuggestionRequestBody) -> str:
    parts: list[str] = []
    if body.title and body.title.strip():
        parts.append(f"Title: {body.title.strip()}")
    if body.style and body.style.strip():
        parts.append(f"Style: {body.style.strip()}")
    if body.lyrics and body.lyrics.strip():
        parts.append(f"Lyrics/Mood: {body.lyrics.strip()}")
    return "\n".join(parts) or DEFAULT_PROMPT_SUGGESTION_INPUT


def build_messages(body: PromptSuggestionRequestBody) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": PROMPT_SUGGESTION_SYSTEM_PROMPT},
        {"role": "user", "content": build_user_input(body)},
    ]


async def suggest_prompt(body: PromptSuggestionRequestBody) -> dict[str, str]:
    settings = generation_service.require_runtime().settings
    if not settings.llm_api_key:
        raise AIGatewayError("LLM_API_KEY is not configured")

    user_input = build_user_input(body)
    logger.info("Generating music prompt for: %s", user_input)
    prompt = await llm_repository.request_chat_completion(
        settings.llm_api_url,
        settings.llm_api_key,
        build_messages(body),
        model=settings.llm_model,
        timeout=settings.request_timeout_seconds,
    )
    logger.info("Generated prompt: %s", prompt)
    return {"prompt": prompt}
