"""Stable slot allocation.

Maps an unordered, churning membership onto ``[0, capacity)`` so that an
item keeps its slot for as long as it stays a member and the slot stays in
range. Only unassigned items draw from the free list, oldest first with
ties broken by id, so two processes that share the prior table and the
membership compute the same assignment.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from photowall.exceptions import LayoutContractError
from photowall.models.item import Item

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotAssignment:
    """Immutable copy of the slot table."""

    capacity: int = 0
    assigned: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    free: tuple[int, ...] = ()

    def slot_of(self, item_id: str) -> int | None:
        return self.assigned.get(item_id)

    def by_slot(self) -> dict[int, str]:
        """Inverse mapping slot index -> item id."""
        return {slot: item_id for item_id, slot in self.assigned.items()}


class SlotAllocator:
    """Owns one slot table and mutates it incrementally.

    Parameters
    ----------
    capacity : int
        Number of addressable slots.
    free_order_seed : int or None
        When set, the free list is rebuilt as a seeded permutation instead of
        ascending order. The permutation is reproducible for a given seed.
    """

    def __init__(self, capacity: int, *, free_order_seed: int | None = None) -> None:
        if capacity < 0:
            raise ValueError(f"capacity must be >= 0, got {capacity}")
        self._capacity = capacity
        self._seed = free_order_seed
        self._assigned: dict[str, int] = {}
        self._free: list[int] = []
        self._busy = False
        self._rebuild_free()

    @property
    def capacity(self) -> int:
        return self._capacity

    def snapshot(self) -> SlotAssignment:
        return SlotAssignment(
            capacity=self._capacity,
            assigned=MappingProxyType(dict(self._assigned)),
            free=tuple(self._free),
        )

    def resize(self, new_capacity: int) -> None:
        """Change the slot count, evicting out-of-range assignments."""
        if new_capacity < 0:
            raise ValueError(f"capacity must be >= 0, got {new_capacity}")
        if new_capacity == self._capacity:
            return
        with self._exclusive("resize"):
            _logger.debug("Slot capacity change %d -> %d", self._capacity, new_capacity)
            self._capacity = new_capacity
            self._evict_out_of_range()
            self._rebuild_free()

    def reconcile(self, items: Iterable[Item]) -> SlotAssignment:
        """Bring the table in line with the current membership.

        Never raises for capacity exhaustion: items left over once the free
        list is empty simply have no slot.
        """
        with self._exclusive("reconcile"):
            members: dict[str, Item] = {}
            for item in items:
                members.setdefault(item.id, item)

            freed = [slot for item_id, slot in self._assigned.items() if item_id not in members]
            if freed:
                self._assigned = {k: v for k, v in self._assigned.items() if k in members}
                self._release(freed)
            self._evict_out_of_range()

            pending = sorted(
                (item for item_id, item in members.items() if item_id not in self._assigned),
                key=lambda item: item.order_key,
            )
            for placed, item in enumerate(pending):
                if not self._free:
                    _logger.debug("Slots exhausted; %d item(s) left unplaced", len(pending) - placed)
                    break
                self._assigned[item.id] = self._free.pop(0)

            return self.snapshot()

    def _evict_out_of_range(self) -> None:
        evicted = [item_id for item_id, slot in self._assigned.items() if slot >= self._capacity]
        for item_id in evicted:
            del self._assigned[item_id]
        # Out-of-range slots never return to the free list.
        self._free = [slot for slot in self._free if slot < self._capacity]

    def _release(self, slots: list[int]) -> None:
        in_range = [slot for slot in slots if slot < self._capacity]
        if self._seed is None:
            self._free = sorted(self._free + in_range)
        else:
            # Keep the seeded order of existing entries; freed slots are
            # placed back at their position in the full permutation.
            order = self._permutation()
            rank = {slot: i for i, slot in enumerate(order)}
            self._free = sorted(self._free + in_range, key=rank.__getitem__)

    def _rebuild_free(self) -> None:
        occupied = set(self._assigned.values())
        self._free = [slot for slot in self._permutation() if slot not in occupied]

    def _permutation(self) -> list[int]:
        order = list(range(self._capacity))
        if self._seed is not None:
            random.Random(self._seed).shuffle(order)
        return order

    def _exclusive(self, operation: str) -> _Exclusive:
        return _Exclusive(self, operation)


class _Exclusive:
    """Guard that turns interleaved resize/reconcile calls into a contract error."""

    def __init__(self, allocator: SlotAllocator, operation: str) -> None:
        self._allocator = allocator
        self._operation = operation

    def __enter__(self) -> None:
        if self._allocator._busy:  # noqa: SLF001
            raise LayoutContractError(f"{self._operation} called while the slot table is being mutated")
        self._allocator._busy = True  # noqa: SLF001

    def __exit__(self, *exc: object) -> None:
        self._allocator._busy = False  # noqa: SLF001
