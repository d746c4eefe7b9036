from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Any

import httpx

from models.constants import LLM_MAX_TOKENS, LLM_TEMPERATURE, REQUEST_TIMEOUT_SECONDS
from models.errors import AIGatewayError
from models.job import Artifact

logger = logging.getLogger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:(image/[\w.+-]+);base64,(.*)$", re.DOTALL)


async def _post_completion(
    api_url: str,
    api_key: str,
    payload: dict[str, Any],
    *,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None,
) -> httpx.Response:
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.post(
                api_url,
                json=payload,
                headers={"Authorization": f"Bearer {api_key}"},
            )
    except httpx.HTTPError as exc:
        logger.error("AI gateway request failed: %s: %s", type(exc).__name__, exc)
        raise AIGatewayError("AI gateway is unreachable") from exc

    if response.status_code == 429:
        raise AIGatewayError("Rate limit exceeded. Please try again in a moment.", 429)
    if response.status_code == 402:
        raise AIGatewayError("Credits insufficient. Please top up your AI credits.", 402)
    if not response.is_success:
        logger.error("AI gateway error: %s %s", response.status_code, response.text)
        raise AIGatewayError(f"AI gateway error: {response.status_code}")
    return response


async def request_chat_completion(
    api_url: str,
    api_key: str,
    messages: list[dict[str, str]],
    *,
    model: str,
    timeout: float = REQUEST_TIMEOUT_SECONDS,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    payload: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": LLM_MAX_TOKENS,
        "temperature": LLM_TEMPERATURE,
    }
    response = await _post_completion(api_url, api_key, payload, timeout=timeout, transport=transport)

    try:
        body = response.json()
        content = body["choices"][0]["message"]["content"]
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        raise AIGatewayError("No prompt generated") from exc

    if not isinstance(content, str) or not content.strip():
        raise AIGatewayError("No prompt generated")
    return content.strip()


def decode_image_data_url(data_url: str) -> Artifact:
    """Turn a ``data:image/...;base64,...`` URL into image bytes."""
    match = DATA_URL_PATTERN.match(data_url.strip())
    if match is None:
        raise AIGatewayError("No image generated")
    content_type, encoded = match.groups()
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise AIGatewayError("No image generated") from exc
    if not data:
        raise AIGatewayError("No image generated")
    return Artifact(data=data, content_type=content_type)


async def request_image_completion(
    api_url: str,
    api_key: str,
    prompt: str,
    *,
    model: str,
    timeout: float = REQUEST_TIMEOUT_SECONDS,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Artifact:
    payload: dict[str, Any] = {
        "model": model,
        "messages": [{"role": "user", "content": prompt}],
        "modalities": ["image", "text"],
    }
    response = await _post_completion(api_url, api_key, payload, timeout=timeout, transport=transport)

    try:
        body = response.json()
        image_url = body["choices"][0]["message"]["images"][0]["image_url"]["url"]
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        raise AIGatewayError("No image generated") from exc

    if not isinstance(image_url, str):
        raise AIGatewayError("No image generated")
    artifact = decode_image_data_url(image_url)
    logger.info("Generated image size: %d bytes", len(artifact.data))
    return artifact
