"""Data models for photowall."""

from photowall.models._base import WallBaseModel, WallTimestamp, parse_wall_timestamp
from photowall.models.item import Item
from photowall.models.layout import (
    MAX_PHOTO_COUNT,
    PLACEHOLDER_PREFIX,
    ZERO,
    LayoutCell,
    PatternSettings,
    Placement,
    Vec3,
    is_placeholder_id,
    placeholder_id,
)

__all__ = [
    "MAX_PHOTO_COUNT",
    "PLACEHOLDER_PREFIX",
    "ZERO",
    "Item",
    "LayoutCell",
    "PatternSettings",
    "Placement",
    "Vec3",
    "WallBaseModel",
    "WallTimestamp",
    "is_placeholder_id",
    "parse_wall_timestamp",
    "placeholder_id",
]
