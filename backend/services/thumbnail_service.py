from __future__ import annotations

import logging

from models.constants import (
    DEFAULT_THUMBNAIL_STYLE,
    THUMBNAIL_KEY_PREFIX,
    THUMBNAIL_KEY_STEM,
    THUMBNAIL_PROMPT_TEMPLATE,
)
from models.errors import AIGatewayError
from models.schemas import GenerateThumbnailRequestBody
from repositories import llm_repository
from services import generation_service

logger = logging.getLogger(__name__)


def build_thumbnail_prompt(body: GenerateThumbnailRequestBody) -> str:
    if body.prompt:
        return body.prompt
    if body.title:
        return THUMBNAIL_PROMPT_TEMPLATE.format(title=body.title, style=body.style or DEFAULT_THUMBNAIL_STYLE)
    raise AIGatewayError("Prompt or title is required", 400)


async def generate_thumbnail(body: GenerateThumbnailRequestBody) -> dict[str, object]:
    thumbnail_prompt = build_thumbnail_prompt(body)
    current = generation_service.require_runtime()
    settings = current.settings
    if not settings.llm_api_key:
        raise AIGatewayError("LLM_API_KEY is not configured")

    logger.info("Generating thumbnail with prompt: %s", thumbnail_prompt)
    image = await llm_repository.request_image_completion(
        settings.llm_api_url,
        settings.llm_api_key,
        thumbnail_prompt,
        model=settings.llm_image_model,
        timeout=settings.request_timeout_seconds,
    )
    stored = await current.artifact_store.store(
        image,
        prefix=THUMBNAIL_KEY_PREFIX,
        stem=THUMBNAIL_KEY_STEM,
        label="Thumbnail",
    )
    logger.info("Thumbnail saved: %s", stored.public_url)
    return {"success": True, "imageUrl": stored.public_url, "filePath": stored.file_path}
