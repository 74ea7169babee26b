from datetime import datetime

from pydantic import BaseModel, ConfigDict


class EntityModel(BaseModel):
    """Base class for immutable entities decoded from records."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


def ensure_timezone_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        raise ValueError("datetime must be timezone-aware")
    return dt
