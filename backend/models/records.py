from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, ClassVar
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlmodel import Column, Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GeneratedMusic(SQLModel, table=True):
    """Durable metadata row for one successfully generated track."""

    __tablename__: ClassVar[Any] = "generated_music"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    prompt: str
    file_url: str
    file_path: str = Field(index=True)
    duration_seconds: int
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(sa.DateTime(timezone=True), nullable=False, index=True),
    )
