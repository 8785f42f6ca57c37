"""Timer record and request models."""

import math
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, computed_field
from pydantic.alias_generators import to_camel

from .config import MAX_STORED_INTEGER
from .errors import DURATION_TOO_LARGE, FRACTIONAL_DURATION, INVALID_DURATION, InvalidArgument

# Fields callers may change; id and the audit timestamps are store-owned
MUTABLE_FIELDS = (
    "duration",
    "start_time",
    "is_active",
    "remaining_time",
    "is_notification_mode",
)


class TimerStatus(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    EXPIRED = "expired"


class Timer(BaseModel):
    """A persisted countdown.

    ``start_time`` is epoch milliseconds; ``created_at`` and ``updated_at``
    are epoch seconds. While ``is_active`` is true the live remaining time is
    derived from ``start_time``, otherwise ``remaining_time`` is authoritative.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    duration: int
    start_time: int
    is_active: bool
    remaining_time: int
    is_notification_mode: bool
    created_at: int
    updated_at: int

    @computed_field
    @property
    def status(self) -> TimerStatus:
        if self.is_active:
            return TimerStatus.RUNNING
        if self.is_notification_mode:
            return TimerStatus.EXPIRED
        if 0 <= self.remaining_time < self.duration:
            return TimerStatus.PAUSED
        return TimerStatus.IDLE

    def mutable_fields(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in MUTABLE_FIELDS}

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class TimerPatch(BaseModel):
    """Body of the generic partial update. Only type checks apply."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, strict=True, extra="ignore"
    )

    duration: int | None = None
    start_time: int | None = None
    is_active: bool | None = None
    remaining_time: int | None = None
    is_notification_mode: bool | None = None

    @classmethod
    def parse(cls, body: Any) -> dict[str, Any]:
        """Validate a raw JSON body into a dict of the fields it sets."""
        if not isinstance(body, dict):
            raise InvalidArgument("Request body must be a JSON object.")
        try:
            patch = cls.model_validate(body)
        except ValidationError as e:
            raise InvalidArgument(f"Invalid timer fields: {e.error_count()} error(s)") from e
        return patch.model_dump(exclude_none=True)


def validate_duration(value: Any) -> int:
    """Return ``value`` as whole seconds or raise InvalidArgument."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgument(INVALID_DURATION)
    if not math.isfinite(value) or value <= 0:
        raise InvalidArgument(INVALID_DURATION)
    if value != int(value):
        raise InvalidArgument(FRACTIONAL_DURATION)
    if value > MAX_STORED_INTEGER:
        raise InvalidArgument(DURATION_TOO_LARGE)
    return int(value)
