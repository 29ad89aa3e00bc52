"""Pattern strategy interface.

A pattern turns a slot index into a :class:`Placement` for a given pattern
time. Patterns are stateless: they never see allocator or store state, so
the same ``(slot_index, capacity, time, settings)`` always yields the same
placement.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import ClassVar

from photowall.exceptions import LayoutContractError
from photowall.models.layout import PatternSettings, Placement, Vec3


class Pattern(ABC):
    """Base class for slot placement strategies."""

    name: ClassVar[str]

    def place(self, slot_index: int, capacity: int, time: float, settings: PatternSettings) -> Placement:
        """Placement of one slot at pattern time *time*.

        Raises :class:`LayoutContractError` when *slot_index* is outside
        ``[0, capacity)`` or *time* is negative or not finite.
        """
        check_contract(slot_index, capacity, time)
        return self._place(slot_index, capacity, time, settings)

    def place_all(self, capacity: int, time: float, settings: PatternSettings) -> list[Placement]:
        """Placements for every slot, indexed by slot."""
        if capacity <= 0:
            return []
        check_contract(0, capacity, time)
        return [self._place(i, capacity, time, settings) for i in range(capacity)]

    @abstractmethod
    def _place(self, slot_index: int, capacity: int, time: float, settings: PatternSettings) -> Placement: ...


def check_contract(slot_index: int, capacity: int, time: float) -> None:
    if not 0 <= slot_index < capacity:
        raise LayoutContractError(f"slot index {slot_index} outside [0, {capacity})")
    if not math.isfinite(time) or time < 0:
        raise LayoutContractError(f"pattern time must be finite and non-negative, got {time}")


def grid_shape(capacity: int, aspect_ratio: float = 1.0) -> tuple[int, int]:
    """Columns and rows of a grid holding *capacity* cells."""
    columns = max(1, math.ceil(math.sqrt(capacity * aspect_ratio)))
    rows = max(1, math.ceil(capacity / columns))
    return columns, rows


def facing(x: float, z: float) -> float:
    """Yaw that turns a photo at ``(x, z)`` towards the origin's far side."""
    return math.atan2(x, z)


def vec(x: float, y: float, z: float) -> Vec3:
    return Vec3(float(x), float(y), float(z))
