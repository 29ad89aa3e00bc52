"""Base model for rows coming from the photo backend.

Every row model inherits from :class:`WallBaseModel` which provides:

* frozen instances, so an admitted item can never be mutated in place.
* A ``model_validator(mode="before")`` that strips empty sentinel values
  (``""``, NaN) so the field default is used.
* A ``raw`` dict that captures the original payload.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def parse_wall_timestamp(value: Any) -> datetime | None:
    """Convert an epoch number (seconds **or** milliseconds) or ISO string to a UTC datetime.

    Naive datetimes are assumed to be UTC. Returns ``None`` for ``None``.
    """
    if value is None:
        return value
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return _from_epoch(float(text))
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    try:
        ts = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"unsupported timestamp {value!r}") from exc
    return _from_epoch(ts)


def _from_epoch(ts: float) -> datetime:
    """Epoch seconds or milliseconds to UTC; out-of-range values raise ``ValueError``."""
    if not math.isfinite(ts):
        raise ValueError(f"timestamp must be finite, got {ts}")
    if ts >= _MS_THRESHOLD:
        ts /= 1000.0
    try:
        return datetime.fromtimestamp(ts, tz=UTC)
    except (OverflowError, OSError) as exc:
        raise ValueError(f"timestamp {ts} is out of range") from exc


WallTimestamp = Annotated[datetime, BeforeValidator(parse_wall_timestamp)]
"""Annotated type that coerces epoch numbers and ISO strings to UTC datetimes."""


class WallBaseModel(BaseModel):
    """Base for backend row models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True, repr=False)
    """Original backend row."""

    @model_validator(mode="before")
    @classmethod
    def _clean_values(cls, values: Any) -> Any:
        """Strip empty sentinel values and stash the raw payload."""
        if not isinstance(values, dict):
            return values
        original = dict(values)

        cleaned: dict[str, Any] = {}
        for key, value in original.items():
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            cleaned[key] = value

        # Keep an explicit raw= from the caller.
        if "raw" not in values:
            cleaned["raw"] = original
        return cleaned
