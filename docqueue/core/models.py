from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field

MONGO_INT32_MAX = 2147483647


def to_datetime(seconds: float) -> datetime:
    """Converts epoch seconds to a UTC datetime clamped to [0, MONGO_INT32_MAX]."""
    return datetime.fromtimestamp(
        min(max(seconds, 0), MONGO_INT32_MAX), tz=timezone.utc
    )


# resetTimestamp of a message nobody holds a lease on
RESET_SENTINEL = to_datetime(MONGO_INT32_MAX)


class QueuedDocument(BaseModel):
    """Stored shape of a message, minus the store-assigned _id."""

    model_config = ConfigDict(populate_by_name=True)

    payload: Dict[str, Any]
    running: bool = False
    reset_timestamp: datetime = Field(default=RESET_SENTINEL, alias="resetTimestamp")
    earliest_get: datetime = Field(alias="earliestGet")
    priority: float = 0.0
    created: datetime

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
