"""photowall - Live photo wall synchronization and slot layout engine."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("photowall")
except PackageNotFoundError:
    __version__ = "0+local"
from photowall.config import WallConfig
from photowall.exceptions import (
    LayoutContractError,
    WallConfigError,
    WallError,
    WallFeedError,
    WallPayloadError,
    WallTransportError,
)
from photowall.layout import LayoutEngine, MotionSmoother, SlotAllocator, SlotAssignment
from photowall.models import Item, LayoutCell, PatternSettings, Placement, Vec3
from photowall.state.events import EventKind, IngestionSource, WallEvent
from photowall.state.store import WallSnapshot, WallStateStore
from photowall.supervisor import ConnectionState, ConnectionStatus, ReconciliationSupervisor
from photowall.wall import LiveWall

__all__ = [
    "__version__",
    "ConnectionState",
    "ConnectionStatus",
    "EventKind",
    "IngestionSource",
    "Item",
    "LayoutCell",
    "LayoutContractError",
    "LayoutEngine",
    "LiveWall",
    "MotionSmoother",
    "PatternSettings",
    "Placement",
    "ReconciliationSupervisor",
    "SlotAllocator",
    "SlotAssignment",
    "Vec3",
    "WallConfig",
    "WallConfigError",
    "WallError",
    "WallEvent",
    "WallFeedError",
    "WallPayloadError",
    "WallSnapshot",
    "WallStateStore",
    "WallTransportError",
]
