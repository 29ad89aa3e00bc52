"""Normalized membership events.

Both ingestion paths (push feed and snapshot polling) convert their inputs
into these events. Only the state/store layer is allowed to apply them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from photowall.models.item import Item


class IngestionSource(StrEnum):
    PUSH = "push"
    POLL = "poll"
    LOCAL = "local"


class EventKind(StrEnum):
    INSERT = "insert"
    REMOVE = "remove"
    UPDATE = "update"
    SNAPSHOT = "snapshot"


class WallEvent(BaseModel):
    """A normalized membership change to apply to the wall store.

    ``insert`` and ``update`` carry ``item``; ``remove`` needs only
    ``item_id``; ``snapshot`` carries the full polled membership in ``items``.
    """

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    source: IngestionSource
    item_id: str | None = None
    item: Item | None = None
    items: tuple[Item, ...] = ()
    epoch: int | None = Field(
        default=None,
        description="Supervisor epoch the event was produced in, if any.",
    )
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("observed_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @model_validator(mode="after")
    def _check_shape(self) -> WallEvent:
        if self.kind in (EventKind.INSERT, EventKind.UPDATE):
            if self.item is None:
                raise ValueError(f"{self.kind} event requires an item")
            if self.item_id is None:
                object.__setattr__(self, "item_id", self.item.id)
        elif self.kind == EventKind.REMOVE:
            if self.item_id is None and self.item is not None:
                object.__setattr__(self, "item_id", self.item.id)
            if not self.item_id:
                raise ValueError("remove event requires an item_id")
        return self

    @classmethod
    def insert(cls, item: Item, *, source: IngestionSource, epoch: int | None = None) -> WallEvent:
        return cls(kind=EventKind.INSERT, source=source, item=item, epoch=epoch)

    @classmethod
    def update(cls, item: Item, *, source: IngestionSource, epoch: int | None = None) -> WallEvent:
        return cls(kind=EventKind.UPDATE, source=source, item=item, epoch=epoch)

    @classmethod
    def remove(cls, item_id: str, *, source: IngestionSource, epoch: int | None = None) -> WallEvent:
        return cls(kind=EventKind.REMOVE, source=source, item_id=item_id, epoch=epoch)

    @classmethod
    def snapshot(
        cls,
        items: tuple[Item, ...] | list[Item],
        *,
        source: IngestionSource = IngestionSource.POLL,
        epoch: int | None = None,
    ) -> WallEvent:
        return cls(kind=EventKind.SNAPSHOT, source=source, items=tuple(items), epoch=epoch)
