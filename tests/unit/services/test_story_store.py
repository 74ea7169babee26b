"""Unit tests for the StoryStore service."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from storydb.errors import RequiredFieldMissing, UnsupportedDialectError
from storydb.models.record import RowRecord
from storydb.models.tables import ChapterRecord, StoryRecord
from storydb.services.story_store import StoryStore, create_async_engine_from_path

MAY_FIRST = datetime(2023, 5, 1, tzinfo=timezone.utc)


def _make_story(story_id: int, title: str = "A story") -> StoryRecord:
    return StoryRecord(id=story_id, title=title, created_at=MAY_FIRST)


def _make_chapter(
    chapter_id: int,
    story_id: int,
    position: int,
    title: str | None = None,
    text: str = "Some chapter text.",
) -> ChapterRecord:
    return ChapterRecord(
        id=chapter_id,
        story_id=story_id,
        position=position,
        title=title,
        text=text,
        created_at=datetime(2023, 5, position, 12, 0, tzinfo=timezone.utc),
    )


async def _seed(engine: AsyncEngine, *records: Any) -> None:
    async with AsyncSession(engine) as session:
        session.add_all(records)
        await session.commit()


@pytest.fixture
def async_engine() -> AsyncEngine:
    """Create an in-memory async SQLite engine for testing."""
    return create_async_engine_from_path(":memory:")


@pytest.fixture
async def store(async_engine: AsyncEngine) -> StoryStore:
    """Create a StoryStore with initialized schema."""
    store = StoryStore(engine=async_engine)
    await store.initialize_schema()
    return store


class TestStoryStoreListing:
    """Tests for listing stories through the aggregate query."""

    async def test_empty_database_lists_nothing(self, store: StoryStore) -> None:
        assert await store.list_stories() == []

    async def test_lists_story_with_chapters(self, store: StoryStore, async_engine: AsyncEngine) -> None:
        await _seed(
            async_engine,
            _make_story(1, "First"),
            _make_chapter(10, 1, 1, title="Opening", text="Once upon a time"),
            _make_chapter(11, 1, 2),
        )

        stories = await store.list_stories()

        assert len(stories) == 1
        story = stories[0]
        assert story.id == 1
        assert story.title == "First"
        assert story.created_at == MAY_FIRST
        chapters = story.chapters_by_position()
        assert [chapter.id for chapter in chapters] == [10, 11]
        assert chapters[0].title == "Opening"
        assert chapters[0].text == "Once upon a time"
        assert chapters[1].title is None
        assert chapters[1].created_at == datetime(2023, 5, 2, 12, 0, tzinfo=timezone.utc)

    async def test_chapters_carry_their_story_id(self, store: StoryStore, async_engine: AsyncEngine) -> None:
        await _seed(
            async_engine,
            _make_story(1),
            _make_story(2),
            _make_chapter(10, 1, 1),
            _make_chapter(20, 2, 1),
            _make_chapter(21, 2, 2),
        )

        stories = await store.list_stories()

        assert [story.id for story in stories] == [1, 2]
        for story in stories:
            assert all(chapter.story_id == story.id for chapter in story.chapters)
        assert sorted(chapter.id for chapter in stories[1].chapters) == [20, 21]

    async def test_story_without_chapters_has_empty_list(
        self, store: StoryStore, async_engine: AsyncEngine
    ) -> None:
        await _seed(async_engine, _make_story(1), _make_story(2), _make_chapter(20, 2, 1))

        stories = await store.list_stories()

        assert stories[0].chapters == ()
        assert len(stories[1].chapters) == 1

    async def test_rows_expose_aggregated_chapters_column(
        self, store: StoryStore, async_engine: AsyncEngine
    ) -> None:
        await _seed(async_engine, _make_story(1), _make_chapter(10, 1, 1))

        rows = await store.fetch_story_rows()

        assert len(rows) == 1
        record = RowRecord(rows[0])
        assert record.int("id") == 1
        assert record.timestamp("created_at") == MAY_FIRST
        children = record.nested_records("chapters")
        assert children is not None
        assert [child.int("id") for child in children] == [10]


    async def test_non_utc_timestamps_keep_their_instant(
        self, store: StoryStore, async_engine: AsyncEngine
    ) -> None:
        plus_five = timezone(timedelta(hours=5))
        created_at = datetime(2023, 5, 1, 12, 0, tzinfo=plus_five)
        chapter = ChapterRecord(
            id=10,
            story_id=1,
            position=1,
            text="Some chapter text.",
            created_at=datetime(2023, 5, 2, 9, 30, tzinfo=plus_five),
        )
        await _seed(async_engine, StoryRecord(id=1, title="Offset", created_at=created_at), chapter)

        stories = await store.list_stories()

        assert stories[0].created_at == created_at
        assert stories[0].created_at == datetime(2023, 5, 1, 7, 0, tzinfo=timezone.utc)
        assert stories[0].chapters[0].created_at == datetime(2023, 5, 2, 4, 30, tzinfo=timezone.utc)

class TestStoryStoreFailures:
    """Tests for decode and dialect failures."""

    async def test_decode_failure_aborts_listing(self, store: StoryStore, monkeypatch: pytest.MonkeyPatch) -> None:
        rows = [
            {"id": 1, "title": "Fine", "created_at": MAY_FIRST, "chapters": "[]"},
            {
                "id": 2,
                "title": "Broken",
                "created_at": MAY_FIRST,
                "chapters": '[{"id": 20, "story_id": 2, "position": 1, "created_at": "2023-05-01T00:00:00Z"}]',
            },
        ]

        async def fake_fetch_story_rows() -> list[dict[str, Any]]:
            return rows

        monkeypatch.setattr(store, "fetch_story_rows", fake_fetch_story_rows)

        with pytest.raises(RequiredFieldMissing) as exc_info:
            await store.list_stories()

        assert exc_info.value.field == "text"

    async def test_null_chapter_text_in_database_fails(self) -> None:
        engine = create_async_engine_from_path(":memory:")
        async with engine.begin() as conn:
            await conn.execute(text("CREATE TABLE stories (id INTEGER PRIMARY KEY, title TEXT, created_at TEXT)"))
            await conn.execute(
                text(
                    "CREATE TABLE chapters (id INTEGER PRIMARY KEY, story_id INTEGER, title TEXT,"
                    " text TEXT, position INTEGER, created_at TEXT)"
                )
            )
            await conn.execute(text("INSERT INTO stories VALUES (1, 'T', '2023-05-01 00:00:00')"))
            await conn.execute(text("INSERT INTO chapters VALUES (10, 1, NULL, NULL, 1, '2023-05-01 00:00:00')"))

        async with StoryStore(engine=engine) as store:
            with pytest.raises(RequiredFieldMissing) as exc_info:
                await store.list_stories()

        assert exc_info.value.field == "text"

    async def test_unsupported_dialect_raises(self) -> None:
        engine = SimpleNamespace(dialect=SimpleNamespace(name="mysql"))
        store = StoryStore(engine=engine)  # type: ignore[arg-type]

        with pytest.raises(UnsupportedDialectError, match="mysql"):
            await store.fetch_story_rows()


class TestStoryStoreQuerySelection:
    """Tests for choosing the aggregate query by dialect."""

    def _store_for(self, dialect: str) -> StoryStore:
        engine = SimpleNamespace(dialect=SimpleNamespace(name=dialect))
        return StoryStore(engine=engine)  # type: ignore[arg-type]

    def test_postgresql_aggregates_with_json_agg(self) -> None:
        sql = str(self._store_for("postgresql")._story_query())

        assert "json_agg(c ORDER BY c.position)" in sql
        assert "'[]'::json" in sql
        assert "json_group_array" not in sql

    def test_sqlite_aggregates_with_json_group_array(self) -> None:
        sql = str(self._store_for("sqlite")._story_query())

        assert "json_group_array" in sql
        assert "strftime('%Y-%m-%dT%H:%M:%fZ', s.created_at)" in sql
        assert "json_agg" not in sql
