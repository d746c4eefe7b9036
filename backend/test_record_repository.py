from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

import pytest

from models.records import GeneratedMusic
from repositories.record_repository import (
    RecordRepository,
    create_record_engine,
    normalize_database_url,
)

pytestmark = pytest.mark.anyio


@pytest.fixture
async def repository(tmp_path: Path):  # noqa: ANN201
    repo = RecordRepository(create_record_engine(f"sqlite:///{tmp_path / 'music.db'}"))
    await repo.init_schema()
    yield repo
    await repo.aclose()


def make_record(prompt: str, minutes_ago: int = 0) -> GeneratedMusic:
    return GeneratedMusic(
        prompt=prompt,
        file_url=f"https://cdn.example.com/generated/{prompt}.mp3",
        file_path=f"generated/{prompt}.mp3",
        duration_seconds=60,
        created_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    )


class TestNormalizeDatabaseUrl:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("postgres://u:p@db/music", "postgresql+asyncpg://u:p@db/music"),
            ("postgresql://u:p@db/music", "postgresql+asyncpg://u:p@db/music"),
            ("sqlite:///./music.db", "sqlite+aiosqlite:///./music.db"),
            ("sqlite+aiosqlite:///./music.db", "sqlite+aiosqlite:///./music.db"),
            ("postgresql+asyncpg://u:p@db/music", "postgresql+asyncpg://u:p@db/music"),
        ],
    )
    def test_sync_urls_are_switched_to_async_drivers(self, url: str, expected: str) -> None:
        assert normalize_database_url(url) == expected


class TestRecordRepository:
    async def test_insert_then_get(self, repository: RecordRepository) -> None:
        record = await repository.insert(make_record("lofi"))

        loaded = await repository.get(record.id)

        assert loaded is not None
        assert loaded.prompt == "lofi"
        assert loaded.file_path == "generated/lofi.mp3"
        assert loaded.duration_seconds == 60

    async def test_list_is_newest_first_and_limited(self, repository: RecordRepository) -> None:
        await repository.insert(make_record("oldest", minutes_ago=30))
        await repository.insert(make_record("newest", minutes_ago=0))
        await repository.insert(make_record("middle", minutes_ago=10))

        records = await repository.list_records(limit=2)

        assert [record.prompt for record in records] == ["newest", "middle"]

    async def test_delete_is_idempotent(self, repository: RecordRepository) -> None:
        record = await repository.insert(make_record("gone"))

        deleted = await repository.delete_by_id(record.id)
        deleted_again = await repository.delete_by_id(record.id)

        assert deleted is not None
        assert deleted.file_path == "generated/gone.mp3"
        assert deleted_again is None
        assert await repository.get(record.id) is None
        assert await repository.list_records(limit=50) == []

    async def test_unknown_id_returns_none(self, repository: RecordRepository) -> None:
        assert await repository.get(uuid4()) is None
        assert await repository.delete_by_id(uuid4()) is None
