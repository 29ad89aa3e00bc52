"""Layout layer: stable slot allocation and time-parameterized patterns."""

from photowall.layout.allocator import SlotAllocator, SlotAssignment
from photowall.layout.engine import LayoutEngine
from photowall.layout.patterns import available_patterns, get_pattern, register_pattern
from photowall.layout.smoothing import MotionSmoother

__all__ = [
    "LayoutEngine",
    "MotionSmoother",
    "SlotAllocator",
    "SlotAssignment",
    "available_patterns",
    "get_pattern",
    "register_pattern",
]
