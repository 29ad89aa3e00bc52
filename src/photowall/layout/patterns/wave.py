"""Square sheet of photos with a radial wave rolling through it."""

from __future__ import annotations

import math

from photowall.layout.patterns.base import Pattern, grid_shape, vec
from photowall.models.layout import ZERO, PatternSettings, Placement

AMPLITUDE = 15.0
FREQUENCY = 0.3


class WavePattern(Pattern):
    name = "wave"

    def _place(self, slot_index: int, capacity: int, time: float, settings: PatternSettings) -> Placement:
        columns, rows = grid_shape(capacity)
        spacing = settings.photo_size * (1 + settings.photo_spacing)
        col = slot_index % columns
        row = slot_index // columns

        x = (col - columns / 2) * spacing
        z = (row - rows / 2) * spacing
        distance = math.hypot(x, z)
        phase = time * 2

        y = settings.wall_height
        if settings.animation_enabled:
            y += math.sin(distance * FREQUENCY - phase) * AMPLITUDE
            y += math.sin(phase * 0.5) * (distance * 0.1)

        if not settings.photo_rotation:
            return Placement(position=vec(x, y, z), rotation=ZERO)
        rotation = vec(
            math.sin(phase * 0.5 + distance * 0.1) * 0.1,
            math.atan2(x, z),
            math.cos(phase * 0.5 + distance * 0.1) * 0.1,
        )
        return Placement(position=vec(x, y, z), rotation=rotation)
