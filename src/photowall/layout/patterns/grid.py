"""Flat photo wall."""

from __future__ import annotations

import math

from photowall.layout.patterns.base import Pattern, grid_shape, vec
from photowall.models.layout import ZERO, PatternSettings, Placement


class GridPattern(Pattern):
    name = "grid"

    def _place(self, slot_index: int, capacity: int, time: float, settings: PatternSettings) -> Placement:
        columns, _rows = grid_shape(capacity, settings.grid_aspect_ratio)
        size = settings.photo_size
        gap = settings.photo_spacing

        if gap == 0:
            # Solid wall: columns overlap edge to edge, rows barely overlap.
            horizontal = size * 0.5
            vertical = size * 0.99
        else:
            horizontal = vertical = size + gap * size * 0.01

        col = slot_index % columns
        row = slot_index // columns
        x = col * horizontal - (columns - 1) * horizontal / 2
        y = settings.wall_height + row * vertical
        z = 0.0

        t = time if settings.animation_enabled else 0.0
        if settings.animation_enabled:
            intensity = max(gap * size * 0.3, 0.1)
            z += math.sin(t * 0.5 + col * 0.3) * intensity
            y += math.cos(t * 0.5 + row * 0.3) * intensity
            y = max(y, settings.wall_height)

        if not settings.photo_rotation:
            return Placement(position=vec(x, y, z), rotation=ZERO)
        rotation = vec(
            math.sin(t * 0.3 + col * 0.1) * 0.05,
            math.atan2(x, z + 10),
            math.cos(t * 0.3 + row * 0.1) * 0.05,
        )
        return Placement(position=vec(x, y, z), rotation=rotation)
