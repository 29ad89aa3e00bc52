"""Photos drifting up and down across the whole floor."""

from __future__ import annotations

import math

from photowall.layout.patterns.base import Pattern, vec
from photowall.models.layout import ZERO, PatternSettings, Placement

RISE_SPEED = 8.0
START_HEIGHT = -40.0
MAX_HEIGHT = 300.0
CYCLE_HEIGHT = MAX_HEIGHT - START_HEIGHT


def _base_position(slot_index: int, floor_size: float) -> tuple[float, float, float]:
    """Fixed per-slot anchor ``(x, z, phase)`` spread edge to edge over the floor."""
    half = floor_size / 2
    x = math.sin(slot_index * 2.73 + 1.123) * half
    z = math.cos(slot_index * 3.37 + 2.456) * half
    phase = (slot_index * 0.211) % 1.0
    return x, z, phase


def _triangle(distance: float, span: float) -> float:
    """Fold an unbounded travel distance into ``[0, span]`` without jumps."""
    folded = distance % (2 * span)
    return folded if folded <= span else 2 * span - folded


class FloatPattern(Pattern):
    name = "float"

    def _place(self, slot_index: int, capacity: int, time: float, settings: PatternSettings) -> Placement:
        base_x, base_z, phase = _base_position(slot_index, settings.floor_size)
        animated = settings.animation_enabled

        if animated:
            travelled = time * RISE_SPEED + phase * 2 * CYCLE_HEIGHT
            y = START_HEIGHT + _triangle(travelled, CYCLE_HEIGHT)
            y += math.sin(time * 2 + slot_index * 0.3) * 0.4
        else:
            y = START_HEIGHT + phase * CYCLE_HEIGHT

        x, z = base_x, base_z
        if animated:
            drift = max(1.5, settings.floor_size * 0.01)
            x += math.sin(time * 0.3 + slot_index * 0.5) * drift
            z += math.cos(time * 0.24 + slot_index * 0.7) * drift

        if not settings.photo_rotation:
            return Placement(position=vec(x, y, z), rotation=ZERO)

        wobble_x = math.sin(time * 0.5 + slot_index * 0.2) * 0.03 if animated else 0.0
        wobble_z = math.cos(time * 0.4 + slot_index * 0.3) * 0.03 if animated else 0.0
        return Placement(position=vec(x, y, z), rotation=vec(wobble_x, math.atan2(-x, -z), wobble_z))
