"""Environment-driven configuration.

Required secrets are checked together so a misconfigured deployment reports
every missing variable at once instead of failing on the first request.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from models.constants import (
    DEFAULT_DATABASE_URL,
    DEFAULT_KIE_API_BASE,
    DEFAULT_KIE_MODEL,
    DEFAULT_LLM_API_URL,
    DEFAULT_LLM_IMAGE_MODEL,
    DEFAULT_LLM_MODEL,
    DEFAULT_STORAGE_BUCKET,
    DEFAULT_STORAGE_REGION,
    MAX_POLL_ATTEMPTS,
    MAX_SESSIONS,
    POLL_INTERVAL_SECONDS,
    REQUEST_TIMEOUT_SECONDS,
)
from models.errors import ConfigurationError

REQUIRED_ENV_VARS = ("KIE_API_KEY", "STORAGE_ACCESS_KEY_ID", "STORAGE_SECRET_ACCESS_KEY")


class Settings(BaseModel):
    kie_api_key: str
    kie_api_base: str = DEFAULT_KIE_API_BASE
    kie_model: str = DEFAULT_KIE_MODEL

    storage_access_key_id: str
    storage_secret_access_key: str
    storage_endpoint_url: Optional[str] = None
    storage_region: str = DEFAULT_STORAGE_REGION
    storage_bucket: str = DEFAULT_STORAGE_BUCKET
    storage_public_base_url: Optional[str] = None

    database_url: str = DEFAULT_DATABASE_URL

    poll_interval_seconds: float = Field(default=POLL_INTERVAL_SECONDS, gt=0)
    max_poll_attempts: int = Field(default=MAX_POLL_ATTEMPTS, gt=0)
    request_timeout_seconds: float = Field(default=REQUEST_TIMEOUT_SECONDS, gt=0)
    max_sessions: int = Field(default=MAX_SESSIONS, gt=0)

    llm_api_key: Optional[str] = None
    llm_api_url: str = DEFAULT_LLM_API_URL
    llm_model: str = DEFAULT_LLM_MODEL
    llm_image_model: str = DEFAULT_LLM_IMAGE_MODEL

    @field_validator("kie_api_base", "storage_endpoint_url", "storage_public_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.rstrip("/")


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    if environ is None:
        load_dotenv()
        environ = os.environ

    missing = [name for name in REQUIRED_ENV_VARS if not environ.get(name, "").strip()]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    values = {
        name.lower(): value
        for name, value in environ.items()
        if name.lower() in Settings.model_fields and value.strip()
    }
    try:
        return Settings(**values)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(part) for part in error["loc"]).upper() for error in exc.errors())
        raise ConfigurationError(f"Invalid configuration values: {fields}") from exc
