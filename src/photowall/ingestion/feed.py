"""Change-feed ingestion helpers.

Translates decoded feed messages into normalized :class:`WallEvent` objects.
Two payload shapes are accepted:

* database change records: ``{"eventType": "INSERT", "new": {...}, "old": {...}}``,
  optionally wrapped in ``{"payload": {...}}``
* compact records: ``{"type": "insert", "item": {...}}`` / ``{"type": "remove", "id": "..."}``
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from photowall.exceptions import WallPayloadError
from photowall.models.item import Item
from photowall.state.events import EventKind, IngestionSource, WallEvent

_KIND_ALIASES: dict[str, EventKind] = {
    "insert": EventKind.INSERT,
    "created": EventKind.INSERT,
    "update": EventKind.UPDATE,
    "updated": EventKind.UPDATE,
    "delete": EventKind.REMOVE,
    "deleted": EventKind.REMOVE,
    "remove": EventKind.REMOVE,
}


def _unwrap(payload: dict[str, Any]) -> dict[str, Any]:
    inner = payload.get("payload")
    if isinstance(inner, dict) and ("eventType" in inner or "type" in inner):
        return inner
    return payload


def _kind_of(record: dict[str, Any]) -> EventKind:
    raw_kind = record.get("eventType") or record.get("type")
    if not isinstance(raw_kind, str):
        raise WallPayloadError("Feed record has no event type")
    kind = _KIND_ALIASES.get(raw_kind.strip().lower())
    if kind is None:
        raise WallPayloadError(f"Unsupported feed event type {raw_kind!r}")
    return kind


def _row_of(record: dict[str, Any], *keys: str) -> dict[str, Any] | None:
    for key in keys:
        row = record.get(key)
        if isinstance(row, dict) and row:
            return row
    return None


def build_event_from_feed(
    payload: dict[str, Any],
    *,
    epoch: int | None = None,
    source: IngestionSource = IngestionSource.PUSH,
) -> WallEvent:
    """Build a wall event from a decoded feed payload.

    Raises :class:`WallPayloadError` when the payload cannot be normalized.
    """
    record = _unwrap(payload)
    kind = _kind_of(record)

    if kind == EventKind.REMOVE:
        row = _row_of(record, "old", "item", "record")
        item_id = row.get("id") if row is not None else record.get("id")
        if item_id is None or not str(item_id).strip():
            raise WallPayloadError("Remove record has no id")
        return WallEvent.remove(str(item_id).strip(), source=source, epoch=epoch)

    row = _row_of(record, "new", "item", "record")
    if row is None:
        raise WallPayloadError(f"{kind} record has no row")
    try:
        item = Item.model_validate(row)
    except ValidationError as exc:
        raise WallPayloadError(f"{kind} record row is invalid: {exc.error_count()} error(s)") from exc

    if kind == EventKind.INSERT:
        return WallEvent.insert(item, source=source, epoch=epoch)
    return WallEvent.update(item, source=source, epoch=epoch)
