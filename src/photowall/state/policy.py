"""Deterministic membership merge policy.

This module intentionally contains *no* payload parsing. The ingestion
boundary is responsible for producing validated :class:`Item` objects.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from photowall.models.item import Item


@dataclass(frozen=True, slots=True)
class SnapshotDiff:
    """Changes needed to bring a membership to set equality with a snapshot."""

    inserts: tuple[Item, ...] = ()
    removes: tuple[str, ...] = ()
    replaces: tuple[Item, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.inserts or self.removes or self.replaces)


def dedupe_items(items: Iterable[Item]) -> dict[str, Item]:
    """Index items by id; the first occurrence of an id wins."""
    indexed: dict[str, Item] = {}
    for item in items:
        indexed.setdefault(item.id, item)
    return indexed


def diff_snapshot(current: Mapping[str, Item], target: Mapping[str, Item]) -> SnapshotDiff:
    """Symmetric difference between the stored and the polled membership.

    Ids present on both sides whose fields differ are reported as replaces.
    Output order is sorted by id so the batch is reproducible.
    """
    inserts = tuple(target[item_id] for item_id in sorted(target.keys() - current.keys()))
    removes = tuple(sorted(current.keys() - target.keys()))
    replaces = tuple(
        target[item_id]
        for item_id in sorted(current.keys() & target.keys())
        if not current[item_id].same_content(target[item_id])
    )
    return SnapshotDiff(inserts=inserts, removes=removes, replaces=replaces)


def is_stale_epoch(event_epoch: int | None, current_epoch: int) -> bool:
    """Events tagged with an older supervisor epoch must be discarded."""
    return event_epoch is not None and event_epoch != current_epoch
