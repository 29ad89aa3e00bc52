"""Tornado funnel: narrow at the floor, wide at the top, with a few outer orbits."""

from __future__ import annotations

import math

from photowall.layout.patterns.base import Pattern, vec
from photowall.models.layout import PatternSettings, Placement

BASE_RADIUS = 3.0
TOP_RADIUS = 30.0
MAX_HEIGHT = 40.0
ROTATION_SPEED = 0.8
ORBITAL_SHARE = 0.2
VERTICAL_BIAS = 0.7


def _seeds(slot_index: int) -> tuple[float, float, float]:
    """Three stable pseudo-random values in ``[0, 1]`` for a slot."""
    return (
        math.sin(slot_index * 0.73) * 0.5 + 0.5,
        math.cos(slot_index * 1.37) * 0.5 + 0.5,
        math.sin(slot_index * 2.11) * 0.5 + 0.5,
    )


class SpiralPattern(Pattern):
    name = "spiral"

    def _place(self, slot_index: int, capacity: int, time: float, settings: PatternSettings) -> Placement:
        seed_orbit, seed_height, seed_radius = _seeds(slot_index)
        animated = settings.animation_enabled
        t = time * 2

        orbital = seed_orbit < ORBITAL_SHARE
        height = seed_height**VERTICAL_BIAS
        y = settings.wall_height + height * MAX_HEIGHT
        funnel = BASE_RADIUS + (TOP_RADIUS - BASE_RADIUS) * height

        wobble = 0.0
        if orbital:
            radius = funnel * (1.5 + seed_radius * 0.8)
            offset = seed_radius * math.pi * 2
            if animated:
                wobble = math.sin(t * 2 + slot_index) * 3
        else:
            radius = funnel * (0.8 + seed_radius * 0.4)
            offset = 0.0

        # Slower rotation near the floor.
        speed_factor = 0.3 + height * 0.7
        angle = slot_index * 0.5 + offset
        if animated:
            angle += t * ROTATION_SPEED * speed_factor

        x = math.cos(angle) * radius
        z = math.sin(angle) * radius
        if animated:
            turbulence = 2.0 if orbital else 1.0
            x += math.sin(t * 3 + y * 0.1 + slot_index) * turbulence
            z += math.cos(t * 2.5 + y * 0.1 + slot_index * 1.3) * turbulence

        position = vec(x, y + wobble, z)
        if not settings.photo_rotation:
            return Placement(position=position, rotation=vec(height * 0.3, angle, 0.0))

        tilt = 0.2 if orbital else 0.1
        rotation = vec(
            math.sin(t * 1.5 + slot_index * 0.3) * tilt if animated else 0.0,
            math.atan2(x, z),
            math.cos(t * 1.2 + slot_index * 0.4) * tilt if animated else 0.0,
        )
        return Placement(position=position, rotation=rotation)
