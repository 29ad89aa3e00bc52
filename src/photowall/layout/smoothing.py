"""Presentation-side motion filter.

Eases displayed cells toward their pattern targets. Large jumps (pattern
switches, a photo recycling through the float band) are snapped instead of
interpolated. Purely cosmetic: the pattern output stays deterministic.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from photowall.models.layout import LayoutCell, Vec3

POSITION_SMOOTHING = 0.1
ROTATION_SMOOTHING = 0.1
TELEPORT_THRESHOLD = 30.0


def _lerp(current: Vec3, target: Vec3, factor: float) -> Vec3:
    return Vec3(*(c + (t - c) * factor for c, t in zip(current, target, strict=True)))


@dataclass(slots=True)
class _Displayed:
    position: Vec3
    rotation: Vec3


class MotionSmoother:
    def __init__(
        self,
        *,
        position_smoothing: float = POSITION_SMOOTHING,
        rotation_smoothing: float = ROTATION_SMOOTHING,
        teleport_threshold: float = TELEPORT_THRESHOLD,
    ) -> None:
        if not 0 < position_smoothing <= 1 or not 0 < rotation_smoothing <= 1:
            raise ValueError("smoothing factors must be in (0, 1]")
        self._position_smoothing = position_smoothing
        self._rotation_smoothing = rotation_smoothing
        self._teleport_threshold = teleport_threshold
        self._displayed: dict[str, _Displayed] = {}

    def reset(self) -> None:
        """Forget displayed state so the next frame snaps (e.g. on pattern switch)."""
        self._displayed.clear()

    def step(self, cells: Iterable[LayoutCell]) -> list[LayoutCell]:
        """Return *cells* with positions eased from the previous frame."""
        out: list[LayoutCell] = []
        seen: set[str] = set()
        for cell in cells:
            seen.add(cell.item_id)
            shown = self._displayed.get(cell.item_id)
            if shown is None or shown.position.distance_to(cell.position) > self._teleport_threshold:
                shown = _Displayed(position=cell.position, rotation=cell.rotation)
            else:
                shown = _Displayed(
                    position=_lerp(shown.position, cell.position, self._position_smoothing),
                    rotation=_lerp(shown.rotation, cell.rotation, self._rotation_smoothing),
                )
            self._displayed[cell.item_id] = shown
            out.append(
                LayoutCell(
                    item_id=cell.item_id,
                    slot_index=cell.slot_index,
                    position=shown.position,
                    rotation=shown.rotation,
                    item=cell.item,
                )
            )

        for stale in self._displayed.keys() - seen:
            del self._displayed[stale]
        return out
