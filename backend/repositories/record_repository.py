from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel, col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from models.errors import RecordFailedError
from models.records import GeneratedMusic

logger = logging.getLogger(__name__)


def normalize_database_url(database_url: str) -> str:
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://") and not database_url.startswith("sqlite+aiosqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


def create_record_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(normalize_database_url(database_url), echo=False, pool_pre_ping=True)


class RecordRepository:
    """Store of generated track metadata; the source of truth for the library."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine

    def _session(self) -> AsyncSession:
        return AsyncSession(self.engine, expire_on_commit=False)

    async def init_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def aclose(self) -> None:
        await self.engine.dispose()

    async def insert(self, record: GeneratedMusic) -> GeneratedMusic:
        try:
            async with self._session() as session:
                session.add(record)
                await session.commit()
                await session.refresh(record)
        except SQLAlchemyError as exc:
            logger.error("Database insert error: %s: %s", type(exc).__name__, exc)
            raise RecordFailedError("Failed to save the generated track") from exc
        return record

    async def list_records(self, limit: int) -> list[GeneratedMusic]:
        statement = (
            select(GeneratedMusic).order_by(col(GeneratedMusic.created_at).desc()).limit(limit)
        )
        try:
            async with self._session() as session:
                result = await session.exec(statement)
                return list(result.all())
        except SQLAlchemyError as exc:
            logger.error("Database select error: %s: %s", type(exc).__name__, exc)
            raise RecordFailedError("Failed to load the music library") from exc

    async def get(self, record_id: UUID) -> GeneratedMusic | None:
        try:
            async with self._session() as session:
                return await session.get(GeneratedMusic, record_id)
        except SQLAlchemyError as exc:
            logger.error("Database select error: %s: %s", type(exc).__name__, exc)
            raise RecordFailedError("Failed to load the track") from exc

    async def delete_by_id(self, record_id: UUID) -> GeneratedMusic | None:
        """Delete a row, returning it, or ``None`` when it was already gone."""
        try:
            async with self._session() as session:
                record = await session.get(GeneratedMusic, record_id)
                if record is None:
                    return None
                await session.delete(record)
                await session.commit()
                return record
        except SQLAlchemyError as exc:
            logger.error("Database delete error: %s: %s", type(exc).__name__, exc)
            raise RecordFailedError("Failed to delete the track") from exc
