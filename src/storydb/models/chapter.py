from datetime import datetime
from typing import Any

from pydantic import field_validator

from storydb.errors import RequiredFieldMissing
from storydb.models.base import EntityModel, ensure_timezone_aware
from storydb.models.record import Record

TEXT_PREVIEW_LENGTH = 140


class Chapter(EntityModel):
    id: int
    position: int
    story_id: int
    title: str | None = None
    text: str
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _validate_created_at(cls, value: datetime) -> datetime:
        return ensure_timezone_aware(value)

    @property
    def display_title(self) -> str:
        """The title, or ``Chapter <position>`` when the chapter has none."""
        if self.title is None:
            return f"Chapter {self.position}"
        return self.title

    def __str__(self) -> str:
        return f'{self.display_title}: "{self.text[:TEXT_PREVIEW_LENGTH]}"'

    @classmethod
    def from_record(cls, record: Record) -> "Chapter":
        """Decode a chapter, failing on the first missing required field."""
        return cls(
            id=_required(record.int("id"), "id"),
            story_id=_required(record.int("story_id"), "story_id"),
            title=record.string("title"),
            text=_required(record.string("text"), "text"),
            position=_required(record.int("position"), "position"),
            created_at=_required(record.timestamp("created_at"), "created_at"),
        )


def decode_chapter(record: Record) -> Chapter:
    return Chapter.from_record(record)


def _required(value: Any, field: str) -> Any:
    if value is None:
        raise RequiredFieldMissing(field)
    return value


__all__ = ["Chapter", "decode_chapter"]
