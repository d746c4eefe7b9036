from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator


class GenerateRequestBody(BaseModel):
    prompt: StrictStr
    style: Optional[StrictStr] = None
    instrumental: StrictBool = True
    model: Optional[StrictStr] = None

    @field_validator("prompt")
    @classmethod
    def validate_non_empty_prompt(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Value must be a non-empty string.")
        return trimmed

    @field_validator("style")
    @classmethod
    def validate_style_if_provided(cls, value: str | None) -> str | None:
        if value is None:
            return None
        trimmed = value.strip()
        return trimmed or None

    def vendor_options(self) -> dict[str, object]:
        options: dict[str, object] = {"instrumental": self.instrumental}
        if self.model is not None:
            options["model"] = self.model
        if self.style is not None:
            options["style"] = self.style
        return options


class PromptSuggestionRequestBody(BaseModel):
    title: Optional[StrictStr] = None
    style: Optional[StrictStr] = None
    lyrics: Optional[StrictStr] = None


class GenerateThumbnailRequestBody(BaseModel):
    prompt: Optional[StrictStr] = None
    title: Optional[StrictStr] = None
    style: Optional[StrictStr] = None

    @field_validator("prompt", "title", "style")
    @classmethod
    def blank_as_missing(cls, value: str | None) -> str | None:
        if value is None:
            return None
        trimmed = value.strip()
        return trimmed or None


class GeneratedMusicOut(BaseModel):
    id: UUID
    prompt: str
    file_url: str = Field(alias="fileUrl")
    file_path: str = Field(alias="filePath")
    duration_seconds: int = Field(alias="durationSeconds")
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


def record_to_payload(record: object) -> dict[str, object]:
    return GeneratedMusicOut.model_validate(record).model_dump(mode="json", by_alias=True)
