"""High-level live wall facade."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import aiohttp

from photowall._feed import ChangeFeed, MqttChangeFeed
from photowall._transport import RestSnapshotReader, SnapshotSource
from photowall.config import WallConfig
from photowall.layout.engine import LayoutEngine
from photowall.layout.smoothing import MotionSmoother
from photowall.models.layout import LayoutCell, PatternSettings
from photowall.state.events import IngestionSource, WallEvent
from photowall.state.store import WallSnapshot, WallStateStore
from photowall.supervisor import ConnectionState, ConnectionStatus, ReconciliationSupervisor

_logger = logging.getLogger(__name__)


class LiveWall:
    """Async client for one live photo wall.

    Usage::

        async with LiveWall(config, "collage-42") as wall:
            cells = wall.current_layout(elapsed)

    Parameters
    ----------
    config : WallConfig
        Backend and timing configuration.
    collection_id : str
        Collection displayed on this wall.
    settings : PatternSettings, optional
        Initial layout settings.
    session : aiohttp.ClientSession, optional
        Shared HTTP session. Created and closed by the wall when omitted.
    feed : ChangeFeed, optional
        Push transport override. Defaults to :class:`MqttChangeFeed` when
        ``config.push_enabled``.
    snapshots : SnapshotSource, optional
        Snapshot reader override. Defaults to :class:`RestSnapshotReader`.
    free_order_seed : int, optional
        Seed for the permutation freed slots are reused in.
    on_change : callable, optional
        Invoked with the new snapshot after each admitted mutation.
    on_status : callable, optional
        Invoked with the new :class:`ConnectionStatus` on every change.
    """

    def __init__(
        self,
        config: WallConfig,
        collection_id: str,
        *,
        settings: PatternSettings | None = None,
        session: aiohttp.ClientSession | None = None,
        feed: ChangeFeed | None = None,
        snapshots: SnapshotSource | None = None,
        free_order_seed: int | None = None,
        on_change: Callable[[WallSnapshot], None] | None = None,
        on_status: Callable[[ConnectionStatus], None] | None = None,
    ) -> None:
        if not collection_id.strip():
            raise ValueError("collection_id must be non-empty")
        self._config = config
        self._collection_id = collection_id
        self._external_session = session is not None
        self._http_session = session
        self._feed = feed
        self._snapshots = snapshots
        self._on_change = on_change
        self._on_status = on_status

        self._store = WallStateStore()
        self._engine = LayoutEngine(settings, free_order_seed=free_order_seed)
        self._smoother = MotionSmoother()
        self._supervisor: ReconciliationSupervisor | None = None

    async def __aenter__(self) -> LiveWall:
        await self.async_start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.async_close()

    async def async_start(self) -> None:
        """Open transports and start synchronizing."""
        if self._supervisor is not None:
            return
        snapshots = self._snapshots
        if snapshots is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            snapshots = RestSnapshotReader(self._config, self._http_session)
        feed = self._feed
        if feed is None and self._config.push_enabled:
            feed = MqttChangeFeed(self._config)

        self._supervisor = ReconciliationSupervisor(
            self._collection_id,
            config=self._config,
            store=self._store,
            snapshots=snapshots,
            feed=feed,
            on_change=self._on_change,
            on_status=self._on_status,
        )
        _logger.debug(
            "Starting wall collection=%s push=%s",
            self._collection_id,
            feed is not None,
        )
        await self._supervisor.start()

    async def async_close(self) -> None:
        """Stop synchronizing and release owned resources."""
        supervisor = self._supervisor
        self._supervisor = None
        if supervisor is not None:
            await supervisor.stop()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    @property
    def collection_id(self) -> str:
        return self._collection_id

    @property
    def settings(self) -> PatternSettings:
        return self._engine.settings

    @property
    def store(self) -> WallStateStore:
        return self._store

    def snapshot(self) -> WallSnapshot:
        """Return the latest published snapshot of the collection."""
        return self._store.snapshot()

    def current_layout(self, elapsed: float) -> tuple[LayoutCell, ...]:
        """Return exactly ``photo_count`` target cells for *elapsed* seconds."""
        return self._engine.compute(self._store.snapshot(), elapsed)

    def smoothed_layout(self, elapsed: float) -> list[LayoutCell]:
        """Return :meth:`current_layout` passed through the motion smoother."""
        return self._smoother.step(self.current_layout(elapsed))

    def update_settings(self, settings: PatternSettings) -> None:
        if settings.animation_pattern != self._engine.settings.animation_pattern:
            # Pattern switches snap instead of gliding across the scene.
            self._smoother.reset()
        self._engine.update_settings(settings)

    def status(self) -> ConnectionStatus:
        if self._supervisor is None:
            return ConnectionStatus()
        return self._supervisor.status()

    def connection_status(self) -> ConnectionState:
        """Return live, degraded or disconnected for status indicators."""
        state = self.status().state
        if state == ConnectionState.CONNECTING:
            return ConnectionState.DISCONNECTED
        return state

    # ------------------------------------------------------------------
    # Local mutations
    # ------------------------------------------------------------------

    def remove_item(self, item_id: str) -> None:
        """Drop *item_id* locally ahead of the backend confirming the delete."""
        if self._supervisor is None:
            raise RuntimeError("LiveWall is not started")
        self._supervisor.submit(WallEvent.remove(item_id, source=IngestionSource.LOCAL))

    async def drain(self) -> None:
        """Wait until every queued mutation has been applied."""
        if self._supervisor is not None:
            await self._supervisor.drain()
