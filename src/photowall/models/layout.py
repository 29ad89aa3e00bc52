"""Layout value types and pattern settings."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from photowall.models.item import Item

#: Prefix of the reserved ids used for empty slots.
PLACEHOLDER_PREFIX = "placeholder-"

#: Hard ceiling on the slot count, as enforced by the scene settings.
MAX_PHOTO_COUNT = 500


def placeholder_id(slot_index: int) -> str:
    """Stable id for an empty slot."""
    return f"{PLACEHOLDER_PREFIX}{slot_index}"


def is_placeholder_id(item_id: str) -> bool:
    return item_id.startswith(PLACEHOLDER_PREFIX)


class Vec3(NamedTuple):
    x: float
    y: float
    z: float

    def is_finite(self) -> bool:
        return all(math.isfinite(c) for c in self)

    def distance_to(self, other: Vec3) -> float:
        return math.dist(self, other)


ZERO = Vec3(0.0, 0.0, 0.0)


@dataclass(frozen=True, slots=True)
class Placement:
    """Position and orientation (Euler XYZ, radians) of one slot."""

    position: Vec3
    rotation: Vec3 = ZERO


@dataclass(frozen=True, slots=True)
class LayoutCell:
    """One slot of the rendered wall, filled or empty."""

    item_id: str
    slot_index: int
    position: Vec3
    rotation: Vec3
    item: Item | None = None

    @property
    def is_placeholder(self) -> bool:
        return self.item is None


class PatternSettings(BaseModel):
    """Scene settings that drive slot count and pattern placement.

    camelCase keys from stored collection settings map onto the
    snake_case fields automatically.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    animation_pattern: str = "grid"
    animation_speed: float = Field(default=50.0, ge=0.0, le=100.0)
    animation_enabled: bool = True
    photo_count: int = Field(default=50, ge=0, le=MAX_PHOTO_COUNT)
    photo_size: float = Field(default=6.0, gt=0.0)
    photo_spacing: float = Field(default=0.0, ge=0.0)
    photo_rotation: bool = True
    wall_height: float = 0.0
    grid_aspect_ratio: float = Field(default=1.77778, gt=0.0)
    floor_size: float = Field(default=200.0, gt=0.0)

    def animation_time(self, elapsed: float) -> float:
        """Scale wall-clock seconds into pattern time."""
        if not self.animation_enabled:
            return 0.0
        return max(0.0, elapsed) * (self.animation_speed / 50.0)
