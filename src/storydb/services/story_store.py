"""Story store that reads stories with their chapters in a single query.

Each story row carries its chapters as a JSON array aggregated by the
database, so one round trip returns the whole hierarchy. Rows are decoded
through :class:`~storydb.models.record.RowRecord`, which hands the aggregated
column over to JSON-backed records for the chapter decoder.

Uses SQLAlchemy's native async support. The engine, and with it the
connection pool, is injected rather than created here.
"""

from typing import Any

import structlog
from sqlalchemy import TextClause, text
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel

from storydb.errors import DecodeError, UnsupportedDialectError
from storydb.models.enums import SqlDialect
from storydb.models.record import map_records
from storydb.models.story import Story
from storydb.models.tables import ChapterRecord, StoryRecord  # noqa: F401

_POSTGRESQL_STORIES_QUERY = text(
    """
    SELECT
        s.id,
        s.title,
        s.created_at,
        COALESCE(
            ( SELECT json_agg(c ORDER BY c.position)
              FROM chapters c
              WHERE c.story_id = s.id
            ),
            '[]'::json
        ) AS chapters
    FROM stories s
    ORDER BY s.id
    """
)

# SQLite stores timestamps as naive UTC text, so they are re-emitted as
# ISO-8601 with a Z offset. json_group_array has no ORDER BY before 3.44;
# the ordered subquery feeds it rows in position order instead.
_SQLITE_STORIES_QUERY = text(
    """
    SELECT
        s.id,
        s.title,
        strftime('%Y-%m-%dT%H:%M:%fZ', s.created_at) AS created_at,
        COALESCE(agg.chapters, '[]') AS chapters
    FROM stories s
    LEFT JOIN (
        SELECT
            c.story_id,
            json_group_array(
                json_object(
                    'id', c.id,
                    'story_id', c.story_id,
                    'title', c.title,
                    'text', c.text,
                    'position', c.position,
                    'created_at', strftime('%Y-%m-%dT%H:%M:%fZ', c.created_at)
                )
            ) AS chapters
        FROM (SELECT * FROM chapters ORDER BY story_id, position) c
        GROUP BY c.story_id
    ) agg ON agg.story_id = s.id
    ORDER BY s.id
    """
)

_STORY_QUERIES: dict[str, TextClause] = {
    SqlDialect.POSTGRESQL: _POSTGRESQL_STORIES_QUERY,
    SqlDialect.SQLITE: _SQLITE_STORIES_QUERY,
}


class StoryStore:
    """Lists stories, each decoded together with its aggregated chapters.

    Accepts an AsyncEngine via dependency injection. Every query checks a
    connection out of the engine's pool for its own duration only.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._engine = engine
        self._logger = logger or structlog.get_logger(__name__)

    async def __aenter__(self) -> "StoryStore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def initialize_schema(self) -> None:
        """Create the stories and chapters tables if they don't exist."""
        async with self._engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        self._logger.info("story_store_initialized")

    async def fetch_story_rows(self) -> list[Row[Any]]:
        """Run the aggregate story query and return its rows.

        Each row has ``id``, ``title``, ``created_at`` and ``chapters``, the
        latter a JSON array of chapter objects in position order.

        Raises:
            UnsupportedDialectError: If the engine's dialect has no query.
        """
        query = self._story_query()
        async with self._engine.connect() as conn:
            result = await conn.execute(query)
            rows = list(result.all())
        self._logger.debug("story_rows_fetched", row_count=len(rows))
        return rows

    async def list_stories(self) -> list[Story]:
        """Fetch and decode every story.

        The first row that fails to decode aborts the whole listing.

        Returns:
            Stories in query order.

        Raises:
            DecodeError: If any row or nested chapter cannot be decoded.
        """
        rows = await self.fetch_story_rows()
        try:
            stories = map_records(rows, Story.from_record)
        except DecodeError as e:
            self._logger.error(
                "story_decode_failed",
                field=e.field,
                kind=e.kind.value,
                error=str(e),
            )
            raise
        self._logger.info(
            "stories_listed",
            story_count=len(stories),
            chapter_count=sum(len(story.chapters) for story in stories),
        )
        return stories

    async def close(self) -> None:
        """Dispose of the engine's connection pool."""
        await self._engine.dispose()

    def _story_query(self) -> TextClause:
        dialect = self._engine.dialect.name
        query = _STORY_QUERIES.get(dialect)
        if query is None:
            raise UnsupportedDialectError(f"no story query for dialect '{dialect}'")
        return query


def create_async_engine_from_path(db_path: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine for the given SQLite database path.

    Args:
        db_path: Path to SQLite database file, or ":memory:" for in-memory.

    Returns:
        AsyncEngine instance configured for aiosqlite.
    """
    return create_async_engine(f"sqlite+aiosqlite:///{db_path}")
