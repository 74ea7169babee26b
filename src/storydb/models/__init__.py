from storydb.models.chapter import Chapter, decode_chapter
from storydb.models.enums import SqlDialect
from storydb.models.record import JsonRecord, Record, RowRecord, map_records
from storydb.models.story import Story, decode_story

__all__ = [
    "Chapter",
    "JsonRecord",
    "Record",
    "RowRecord",
    "SqlDialect",
    "Story",
    "decode_chapter",
    "decode_story",
    "map_records",
]
