"""Pattern registry.

Patterns are looked up by name; unknown names fall back to ``grid`` so a
collection with stale or mistyped settings still renders.
"""

from __future__ import annotations

import logging

from photowall.layout.patterns.base import Pattern, check_contract, grid_shape
from photowall.layout.patterns.floating import FloatPattern
from photowall.layout.patterns.grid import GridPattern
from photowall.layout.patterns.spiral import SpiralPattern
from photowall.layout.patterns.wave import WavePattern

_logger = logging.getLogger(__name__)

DEFAULT_PATTERN = GridPattern.name

_REGISTRY: dict[str, Pattern] = {}


def register_pattern(pattern: Pattern) -> None:
    """Register (or replace) a pattern under its ``name``."""
    _REGISTRY[pattern.name] = pattern


def get_pattern(name: str | None) -> Pattern:
    key = (name or "").strip().lower()
    pattern = _REGISTRY.get(key)
    if pattern is None:
        _logger.debug("Unknown pattern %r; using %s", name, DEFAULT_PATTERN)
        return _REGISTRY[DEFAULT_PATTERN]
    return pattern


def available_patterns() -> tuple[str, ...]:
    return tuple(sorted(_REGISTRY))


for _pattern in (GridPattern(), FloatPattern(), WavePattern(), SpiralPattern()):
    register_pattern(_pattern)

__all__ = [
    "DEFAULT_PATTERN",
    "FloatPattern",
    "GridPattern",
    "Pattern",
    "SpiralPattern",
    "WavePattern",
    "available_patterns",
    "check_contract",
    "get_pattern",
    "grid_shape",
    "register_pattern",
]
