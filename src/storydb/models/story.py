from datetime import datetime

from pydantic import field_validator

from storydb.errors import RequiredFieldMissing
from storydb.models.base import EntityModel, ensure_timezone_aware
from storydb.models.chapter import Chapter
from storydb.models.record import Record


class Story(EntityModel):
    """A story with the chapters aggregated into its row.

    ``chapters`` keeps the order of the aggregated JSON array. Use
    :meth:`chapters_by_position` when display order matters.
    """

    id: int
    title: str
    chapters: tuple[Chapter, ...] = ()
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _validate_created_at(cls, value: datetime) -> datetime:
        return ensure_timezone_aware(value)

    def chapters_by_position(self) -> list[Chapter]:
        return sorted(self.chapters, key=lambda chapter: chapter.position)

    @classmethod
    def from_record(cls, record: Record) -> "Story":
        """Decode a story row and each chapter of its ``chapters`` column.

        Raises:
            RequiredFieldMissing: If ``id``, ``title``, ``created_at`` or
                ``chapters`` is absent, or a chapter lacks a required field.
            DecodeError: If any field cannot be coerced or parsed.
        """
        story_id = record.int("id")
        if story_id is None:
            raise RequiredFieldMissing("id")
        title = record.string("title")
        if title is None:
            raise RequiredFieldMissing("title")
        chapter_records = record.nested_records("chapters")
        if chapter_records is None:
            raise RequiredFieldMissing("chapters")
        chapters = tuple(Chapter.from_record(r) for r in chapter_records)
        created_at = record.timestamp("created_at")
        if created_at is None:
            raise RequiredFieldMissing("created_at")
        return cls(id=story_id, title=title, chapters=chapters, created_at=created_at)


def decode_story(record: Record) -> Story:
    return Story.from_record(record)


__all__ = ["Story", "decode_story"]
