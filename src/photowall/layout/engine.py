"""Per-tick layout computation.

Runs on the render cadence and only reads :class:`WallSnapshot` objects, so
it never observes a partially applied mutation.
"""

from __future__ import annotations

import logging

from photowall.layout.allocator import SlotAllocator, SlotAssignment
from photowall.layout.patterns import get_pattern
from photowall.models.layout import LayoutCell, PatternSettings, placeholder_id
from photowall.state.store import WallSnapshot

_logger = logging.getLogger(__name__)


class LayoutEngine:
    """Owns the slot allocator and projects slots through the active pattern."""

    def __init__(self, settings: PatternSettings | None = None, *, free_order_seed: int | None = None) -> None:
        self._settings = settings or PatternSettings()
        self._allocator = SlotAllocator(self._settings.photo_count, free_order_seed=free_order_seed)
        self._assignment = self._allocator.snapshot()
        self._last_version: int | None = None

    @property
    def settings(self) -> PatternSettings:
        return self._settings

    @property
    def assignment(self) -> SlotAssignment:
        """Slot table computed on the most recent tick."""
        return self._assignment

    def update_settings(self, settings: PatternSettings) -> None:
        if settings.photo_count != self._settings.photo_count:
            self._allocator.resize(settings.photo_count)
            self._last_version = None
        if settings.animation_pattern != self._settings.animation_pattern:
            _logger.debug("Pattern switch %s -> %s", self._settings.animation_pattern, settings.animation_pattern)
        self._settings = settings

    def compute(
        self,
        snapshot: WallSnapshot,
        elapsed: float,
        settings: PatternSettings | None = None,
    ) -> tuple[LayoutCell, ...]:
        """Cells for every slot, ordered by slot index.

        Empty slots carry the reserved ``placeholder-<slot>`` id. Passing
        *settings* is equivalent to calling :meth:`update_settings` first.
        """
        if settings is not None and settings != self._settings:
            self.update_settings(settings)
        settings = self._settings
        if snapshot.version != self._last_version:
            self._assignment = self._allocator.reconcile(snapshot)
            self._last_version = snapshot.version

        capacity = self._assignment.capacity
        pattern = get_pattern(settings.animation_pattern)
        placements = pattern.place_all(capacity, settings.animation_time(elapsed), settings)
        by_slot = self._assignment.by_slot()

        cells: list[LayoutCell] = []
        for slot, placement in enumerate(placements):
            item_id = by_slot.get(slot)
            item = snapshot.items.get(item_id) if item_id is not None else None
            cells.append(
                LayoutCell(
                    item_id=item_id if item is not None else placeholder_id(slot),
                    slot_index=slot,
                    position=placement.position,
                    rotation=placement.rotation,
                    item=item,
                )
            )
        return tuple(cells)
