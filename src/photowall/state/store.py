"""Versioned in-memory wall store.

This is the only component allowed to merge membership events. Readers
never touch the live dict: every admitted mutation publishes a fresh
immutable :class:`WallSnapshot`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType

from photowall.models.item import Item
from photowall.state.events import EventKind, WallEvent
from photowall.state.policy import dedupe_items, diff_snapshot

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class WallSnapshot:
    """Consistent read-only view of the store at one version."""

    items: Mapping[str, Item] = field(default_factory=lambda: MappingProxyType({}))
    version: int = 0
    last_synced_at: datetime | None = None

    def __len__(self) -> int:
        return len(self.items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self.items

    def __iter__(self) -> Iterator[Item]:
        return iter(self.items.values())

    @property
    def ids(self) -> frozenset[str]:
        return frozenset(self.items)


class WallStateStore:
    """Membership store for one displayed collection.

    Given the same sequence of :class:`WallEvent` objects the store produces
    the same snapshots. Insert and remove are idempotent; a snapshot event
    reconciles to set equality with the polled membership.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._items: dict[str, Item] = {}
        self._version = 0
        self._last_synced_at: datetime | None = None
        self._snapshot = WallSnapshot()

    @property
    def version(self) -> int:
        return self._version

    @property
    def last_synced_at(self) -> datetime | None:
        return self._last_synced_at

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def get(self, item_id: str) -> Item | None:
        return self._items.get(item_id)

    def snapshot(self) -> WallSnapshot:
        """Latest published snapshot. Safe to hand to other tasks."""
        return self._snapshot

    def apply(self, event: WallEvent) -> bool:
        """Apply a normalized event.

        Returns ``True`` when the membership changed (and ``version`` was bumped).
        """
        if event.kind == EventKind.INSERT:
            changed = self._insert(event)
        elif event.kind == EventKind.REMOVE:
            changed = self._remove(event)
        elif event.kind == EventKind.UPDATE:
            changed = self._update(event)
        else:
            changed = self._reconcile(event)

        if changed:
            self._version += 1
        if changed or event.kind == EventKind.SNAPSHOT:
            self._publish()
        return changed

    def _insert(self, event: WallEvent) -> bool:
        assert event.item is not None  # noqa: S101
        if event.item.id in self._items:
            _logger.debug("Duplicate insert ignored id=%s source=%s", event.item.id, event.source)
            return False
        self._items[event.item.id] = event.item
        return True

    def _remove(self, event: WallEvent) -> bool:
        assert event.item_id is not None  # noqa: S101
        if self._items.pop(event.item_id, None) is None:
            _logger.debug("Remove of absent id=%s ignored source=%s", event.item_id, event.source)
            return False
        return True

    def _update(self, event: WallEvent) -> bool:
        assert event.item is not None  # noqa: S101
        existing = self._items.get(event.item.id)
        if existing is None:
            # Update for an item whose insert was never seen.
            _logger.debug("Update for unknown id=%s applied as insert", event.item.id)
        elif existing.same_content(event.item):
            return False
        self._items[event.item.id] = event.item
        return True

    def _reconcile(self, event: WallEvent) -> bool:
        target = dedupe_items(event.items)
        diff = diff_snapshot(self._items, target)
        self._last_synced_at = self._clock()
        if diff.is_empty:
            return False

        # Build the next membership fully before swapping it in.
        updated = dict(self._items)
        for item_id in diff.removes:
            del updated[item_id]
        for item in diff.inserts:
            updated[item.id] = item
        for item in diff.replaces:
            updated[item.id] = item
        self._items = updated

        _logger.debug(
            "Snapshot reconciled inserts=%d removes=%d replaces=%d size=%d",
            len(diff.inserts),
            len(diff.removes),
            len(diff.replaces),
            len(updated),
        )
        return True

    def _publish(self) -> None:
        self._snapshot = WallSnapshot(
            items=MappingProxyType(dict(self._items)),
            version=self._version,
            last_synced_at=self._last_synced_at,
        )
