"""SQLModel table definitions for the story schema.

The aggregate story query reads these tables; nothing in this package writes
to them. They exist so a local SQLite database (or a test fixture) can be
created with the exact columns the query expects:

- ``stories``: ``id``, ``title``, ``created_at``
- ``chapters``: ``id``, ``story_id``, ``title``, ``text``, ``position``,
  ``created_at``, with ``(story_id, position)`` unique.

Chapter ``title`` is nullable; every other column is required. Timestamps are
stored in UTC, since SQLite keeps only the wall-clock part of a datetime.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Column, DateTime, Text, UniqueConstraint
from sqlalchemy.engine import Dialect
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel


class UTCDateTime(TypeDecorator[datetime]):
    """Timezone-aware datetime column normalized to UTC on the way in.

    Naive values are taken to be UTC already. Values read back without an
    offset get UTC attached.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None or value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime | None:
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class StoryRecord(SQLModel, table=True):
    """SQLModel table for stories."""

    __tablename__ = "stories"

    id: int | None = Field(default=None, primary_key=True)
    title: str
    created_at: datetime = Field(sa_column=Column(UTCDateTime(timezone=True), nullable=False))


class ChapterRecord(SQLModel, table=True):
    """SQLModel table for chapters, ordered within a story by ``position``."""

    __tablename__ = "chapters"
    __table_args__ = (UniqueConstraint("story_id", "position"),)

    id: int | None = Field(default=None, primary_key=True)
    story_id: int = Field(index=True, foreign_key="stories.id")
    title: str | None = None
    text: str = Field(sa_column=Column(Text, nullable=False))
    position: int
    created_at: datetime = Field(sa_column=Column(UTCDateTime(timezone=True), nullable=False))
