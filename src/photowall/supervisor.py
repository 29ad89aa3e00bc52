"""Reconciliation supervisor.

Owns one change-feed subscription, one polling fallback, and the serialized
mutation queue in front of a :class:`WallStateStore`.

Connection state machine::

    disconnected --start()--> connecting --subscribed--> live
    connecting/live --error | closed | grace timeout--> degraded (polling)
    degraded --subscribed--> live (polling stops)
    any --stop()--> disconnected

Transport faults never escape as exceptions; they only move the state
machine. Everything that reaches the store is tagged with the epoch it was
produced in, and events from an older epoch are discarded.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
from collections.abc import Callable
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from photowall._feed import ChangeFeed, FeedHandle, FeedMessage, FeedStatus, threadsafe_callbacks
from photowall._transport import SnapshotSource
from photowall.config import WallConfig
from photowall.exceptions import WallPayloadError
from photowall.ingestion.feed import build_event_from_feed
from photowall.state.events import IngestionSource, WallEvent
from photowall.state.policy import is_stale_epoch
from photowall.state.store import WallSnapshot, WallStateStore

_logger = logging.getLogger(__name__)


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    LIVE = "live"
    DEGRADED = "degraded"


class ConnectionStatus(BaseModel):
    """Point-in-time view of the supervisor's connection state."""

    model_config = ConfigDict(frozen=True)

    state: ConnectionState = ConnectionState.DISCONNECTED
    polling_active: bool = False
    unavailable: bool = False
    consecutive_poll_failures: int = 0
    last_error: str | None = None
    epoch: int = 0


class ReconciliationSupervisor:
    """Keeps one collection's store eventually consistent with the backend.

    Parameters
    ----------
    collection_id : str
        Collection whose membership is mirrored.
    config : WallConfig
        Timing and threshold settings.
    store : WallStateStore
        Store owned (and exclusively mutated) by this supervisor.
    snapshots : SnapshotSource
        Full-membership reader used by the polling fallback.
    feed : ChangeFeed or None
        Push transport. ``None`` runs in poll-only mode.
    initial_snapshot : bool
        Read one snapshot on start so a live wall does not start empty.
    on_change : callable, optional
        Called with the new snapshot after every admitted mutation.
    on_status : callable, optional
        Called with the new :class:`ConnectionStatus` on every change.
    """

    def __init__(
        self,
        collection_id: str,
        *,
        config: WallConfig,
        store: WallStateStore,
        snapshots: SnapshotSource,
        feed: ChangeFeed | None = None,
        initial_snapshot: bool = True,
        on_change: Callable[[WallSnapshot], None] | None = None,
        on_status: Callable[[ConnectionStatus], None] | None = None,
    ) -> None:
        self._collection_id = collection_id
        self._config = config
        self._store = store
        self._snapshots = snapshots
        self._feed = feed
        self._initial_snapshot = initial_snapshot
        self._on_change = on_change
        self._on_status_cb = on_status

        self._state = ConnectionState.DISCONNECTED
        self._epoch = 0
        self._attempts = 0
        self._live_attempt: int | None = None
        self._poll_failures = 0
        self._last_error: str | None = None
        self._handle: FeedHandle | None = None
        self._queue: asyncio.Queue[WallEvent] | None = None
        self._consumer_task: asyncio.Task[None] | None = None
        self._grace_task: asyncio.Task[None] | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._bootstrap_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def collection_id(self) -> str:
        return self._collection_id

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def polling_active(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def status(self) -> ConnectionStatus:
        return ConnectionStatus(
            state=self._state,
            polling_active=self.polling_active,
            unavailable=self._poll_failures >= self._config.poll_failure_threshold,
            consecutive_poll_failures=self._poll_failures,
            last_error=self._last_error,
            epoch=self._epoch,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to the feed; no-op unless disconnected."""
        if self._state != ConnectionState.DISCONNECTED:
            return
        self._epoch += 1
        epoch = self._epoch
        self._poll_failures = 0
        self._last_error = None
        self._queue = asyncio.Queue()
        self._consumer_task = asyncio.create_task(self._consume(self._queue))
        self._set_state(ConnectionState.CONNECTING)

        if self._feed is None:
            self._degrade(epoch, "push feed disabled")
            return

        if self._initial_snapshot:
            self._bootstrap_task = asyncio.create_task(self._poll_once(epoch, bootstrap=True))
        self._grace_task = asyncio.create_task(self._grace_timer(epoch))
        await self._subscribe(epoch)

    async def stop(self) -> None:
        """Tear down: cancel timers and polling, release the feed handle."""
        if self._state == ConnectionState.DISCONNECTED and self._consumer_task is None:
            return
        # Bumping the epoch first invalidates anything still in flight.
        self._epoch += 1
        self._live_attempt = None
        tasks = [self._grace_task, self._poll_task, self._bootstrap_task, self._consumer_task]
        self._grace_task = self._poll_task = self._bootstrap_task = self._consumer_task = None
        self._queue = None
        for task in tasks:
            if task is not None:
                task.cancel()
        for task in tasks:
            if task is not None:
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        handle = self._handle
        self._handle = None
        if handle is not None:
            await asyncio.get_running_loop().run_in_executor(None, self._release_handle, handle)
        self._set_state(ConnectionState.DISCONNECTED)

    def submit(self, event: WallEvent) -> None:
        """Queue a locally originated event for serialized application."""
        if self._queue is None:
            _logger.debug("Event submitted while stopped; dropped kind=%s", event.kind)
            return
        if event.epoch is None:
            event = event.model_copy(update={"epoch": self._epoch})
        self._queue.put_nowait(event)

    async def drain(self) -> None:
        """Wait until every queued event has been applied."""
        queue = self._queue
        if queue is not None:
            await queue.join()

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    async def _subscribe(self, epoch: int) -> None:
        feed = self._feed
        assert feed is not None  # noqa: S101
        loop = asyncio.get_running_loop()
        # Callbacks of an abandoned attempt must not drive the state machine.
        self._attempts += 1
        attempt = self._live_attempt = self._attempts
        on_message, on_status = threadsafe_callbacks(
            loop,
            functools.partial(self._on_feed_message, epoch, attempt),
            functools.partial(self._on_feed_status, epoch, attempt),
        )
        future = loop.run_in_executor(None, feed.subscribe, self._collection_id, on_message, on_status)
        try:
            handle = await asyncio.wait_for(asyncio.shield(future), self._config.subscribe_timeout)
        except TimeoutError:
            if self._live_attempt == attempt:
                self._live_attempt = None
            future.add_done_callback(self._release_late_handle)
            self._degrade(epoch, "subscribe timed out")
            return
        except Exception as exc:
            _logger.debug("Feed subscribe failed", exc_info=True)
            self._degrade(epoch, f"subscribe failed: {exc}")
            return

        if epoch != self._epoch:
            # Torn down while subscribing.
            await loop.run_in_executor(None, self._release_handle, handle)
            return
        self._handle = handle

    def _release_late_handle(self, future: asyncio.Future[FeedHandle]) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        _logger.debug("Releasing feed handle that arrived after the subscribe timeout")
        asyncio.get_running_loop().run_in_executor(None, self._release_handle, future.result())

    def _release_handle(self, handle: FeedHandle) -> None:
        """Unsubscribe *handle*; runs in an executor since paho joins its network thread."""
        if self._feed is None:
            return
        try:
            self._feed.unsubscribe(handle)
        except Exception:
            _logger.debug("Feed unsubscribe failed topic=%s", handle.topic, exc_info=True)

    async def _grace_timer(self, epoch: int) -> None:
        await asyncio.sleep(self._config.subscribe_grace_period)
        if epoch == self._epoch and self._state == ConnectionState.CONNECTING:
            self._degrade(epoch, "feed not live within grace period")

    def _on_feed_status(self, epoch: int, attempt: int, status: FeedStatus, detail: str | None) -> None:
        if epoch != self._epoch or attempt != self._live_attempt:
            _logger.debug("Ignoring feed status=%s from abandoned subscription", status)
            return
        _logger.debug("Feed status=%s detail=%s collection=%s", status, detail, self._collection_id)
        if status == FeedStatus.SUBSCRIBED:
            self._go_live(epoch)
        elif status in (FeedStatus.ERROR, FeedStatus.CLOSED):
            self._degrade(epoch, f"feed {status}" + (f": {detail}" if detail else ""))

    def _on_feed_message(self, epoch: int, attempt: int, message: FeedMessage) -> None:
        if epoch != self._epoch or attempt != self._live_attempt or self._queue is None:
            return
        try:
            event = build_event_from_feed(message.payload, epoch=epoch, source=IngestionSource.PUSH)
        except WallPayloadError:
            _logger.debug("Dropping malformed feed message topic=%s", message.topic, exc_info=True)
            return
        self._queue.put_nowait(event)

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def _go_live(self, epoch: int) -> None:
        if epoch != self._epoch or self._state == ConnectionState.DISCONNECTED:
            return
        self._cancel_task("_grace_task")
        self._cancel_task("_poll_task")
        self._last_error = None
        self._set_state(ConnectionState.LIVE)

    def _degrade(self, epoch: int, reason: str) -> None:
        if epoch != self._epoch or self._state == ConnectionState.DISCONNECTED:
            return
        self._last_error = reason
        self._cancel_task("_grace_task")
        if self._state != ConnectionState.DEGRADED:
            _logger.warning("Wall %s degraded (%s); polling every %.1fs", self._collection_id, reason, self._config.poll_interval)
        if not self.polling_active:
            self._poll_task = asyncio.create_task(self._poll_loop(epoch))
        self._set_state(ConnectionState.DEGRADED, force=True)

    def _set_state(self, state: ConnectionState, *, force: bool = False) -> None:
        if state == self._state and not force:
            return
        previous = self._state
        self._state = state
        if previous != state:
            _logger.debug("Wall %s connection %s -> %s", self._collection_id, previous, state)
        self._emit_status()

    def _emit_status(self) -> None:
        if self._on_status_cb is None:
            return
        try:
            self._on_status_cb(self.status())
        except Exception:
            _logger.debug("on_status callback failed", exc_info=True)

    def _cancel_task(self, attr: str) -> None:
        task: asyncio.Task[None] | None = getattr(self, attr)
        setattr(self, attr, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def _poll_loop(self, epoch: int) -> None:
        while epoch == self._epoch:
            await self._poll_once(epoch)
            await asyncio.sleep(self._config.poll_interval)

    async def _poll_once(self, epoch: int, *, bootstrap: bool = False) -> None:
        """Read one snapshot and queue it.

        A failed *bootstrap* read is only logged; the poll loop that follows
        a degradation is what counts failures.
        """
        try:
            items = await asyncio.wait_for(
                self._snapshots.read_snapshot(self._collection_id),
                self._config.poll_timeout,
            )
        except TimeoutError:
            self._record_poll_failure(epoch, "snapshot read timed out", bootstrap=bootstrap)
            return
        except Exception as exc:
            _logger.debug("Snapshot read failed collection=%s", self._collection_id, exc_info=True)
            self._record_poll_failure(epoch, f"snapshot read failed: {exc}", bootstrap=bootstrap)
            return

        if epoch != self._epoch or self._queue is None:
            _logger.debug("Discarding snapshot from stale epoch=%d", epoch)
            return
        if self._poll_failures and not bootstrap:
            self._poll_failures = 0
            self._emit_status()
        self._queue.put_nowait(WallEvent.snapshot(items, source=IngestionSource.POLL, epoch=epoch))

    def _record_poll_failure(self, epoch: int, reason: str, *, bootstrap: bool = False) -> None:
        if epoch != self._epoch:
            return
        if bootstrap:
            _logger.debug("Initial snapshot read failed for %s: %s", self._collection_id, reason)
            return
        self._poll_failures += 1
        self._last_error = reason
        if self._poll_failures == self._config.poll_failure_threshold:
            _logger.warning(
                "Wall %s unavailable after %d failed polls (%s); keeping last known state",
                self._collection_id,
                self._poll_failures,
                reason,
            )
        else:
            _logger.debug("Poll failure %d for %s: %s", self._poll_failures, self._collection_id, reason)
        self._emit_status()

    # ------------------------------------------------------------------
    # Serialized mutation
    # ------------------------------------------------------------------

    async def _consume(self, queue: asyncio.Queue[WallEvent]) -> None:
        while True:
            event = await queue.get()
            try:
                if is_stale_epoch(event.epoch, self._epoch):
                    _logger.debug("Discarding %s event from stale epoch=%s", event.kind, event.epoch)
                    continue
                if self._store.apply(event) and self._on_change is not None:
                    try:
                        self._on_change(self._store.snapshot())
                    except Exception:
                        _logger.debug("on_change callback failed", exc_info=True)
            finally:
                queue.task_done()
