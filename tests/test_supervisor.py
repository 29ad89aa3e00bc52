from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from photowall._feed import FeedHandle, FeedMessage, FeedStatus, OnMessage, OnStatus
from photowall.config import WallConfig
from photowall.exceptions import WallFeedError, WallTransportError
from photowall.models.item import Item
from photowall.state.events import IngestionSource, WallEvent
from photowall.state.store import WallSnapshot, WallStateStore
from photowall.supervisor import ConnectionState, ConnectionStatus, ReconciliationSupervisor

_T0 = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def _item(item_id: str, offset: int = 0) -> Item:
    return Item(id=item_id, location_ref=f"https://cdn.example/{item_id}.jpg", created_at=_T0 + timedelta(seconds=offset))


def _row(item: Item) -> dict[str, str]:
    return {"id": item.id, "url": item.location_ref, "created_at": item.created_at.isoformat()}


def _config(**kwargs: float) -> WallConfig:
    values: dict = {
        "base_url": "https://db.example",
        "subscribe_grace_period": 0.05,
        "subscribe_timeout": 1.0,
        "poll_interval": 0.02,
        "poll_timeout": 0.5,
        "poll_failure_threshold": 2,
    }
    values.update(kwargs)
    return WallConfig(**values)


async def _wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


class _FakeFeed:
    """In-memory change feed; tests drive status and messages by hand."""

    def __init__(self, *, fail: bool = False) -> None:
        self._fail = fail
        self.on_message: OnMessage | None = None
        self.on_status: OnStatus | None = None
        self.subscribed: list[str] = []
        self.released: list[FeedHandle] = []

    def subscribe(self, collection_id: str, on_message: OnMessage, on_status: OnStatus) -> FeedHandle:
        if self._fail:
            raise WallFeedError("broker unreachable")
        self.subscribed.append(collection_id)
        self.on_message = on_message
        self.on_status = on_status
        on_status(FeedStatus.CONNECTING, None)
        return FeedHandle(collection_id=collection_id, topic=f"t/{collection_id}")

    def unsubscribe(self, handle: FeedHandle) -> None:
        handle.closed = True
        self.released.append(handle)

    def status(self, status: FeedStatus, detail: str | None = None) -> None:
        assert self.on_status is not None
        self.on_status(status, detail)

    def push(self, payload: dict) -> None:
        assert self.on_message is not None
        self.on_message(FeedMessage(collection_id="c1", topic="t/c1", payload=payload))


class _FakeSnapshotSource:
    def __init__(self, items: list[Item] | None = None) -> None:
        self.items = list(items or [])
        self.error: Exception | None = None
        self.hang = False
        self.calls = 0

    async def read_snapshot(self, collection_id: str) -> list[Item]:
        self.calls += 1
        if self.hang:
            await asyncio.Event().wait()
        if self.error is not None:
            raise self.error
        return list(self.items)


def _supervisor(
    store: WallStateStore,
    source: _FakeSnapshotSource,
    feed: _FakeFeed | None,
    **kwargs: object,
) -> ReconciliationSupervisor:
    config = kwargs.pop("config", None) or _config()
    return ReconciliationSupervisor(
        "c1",
        config=config,  # type: ignore[arg-type]
        store=store,
        snapshots=source,
        feed=feed,
        initial_snapshot=False,
        **kwargs,  # type: ignore[arg-type]
    )


@pytest.mark.asyncio
async def test_unconfirmed_subscription_degrades_and_polls() -> None:
    store = WallStateStore()
    source = _FakeSnapshotSource([_item("a"), _item("b", 1)])
    feed = _FakeFeed()
    supervisor = _supervisor(store, source, feed)

    await supervisor.start()
    assert supervisor.state in (ConnectionState.CONNECTING, ConnectionState.DEGRADED)

    await _wait_for(lambda: supervisor.state == ConnectionState.DEGRADED)
    await _wait_for(lambda: store.snapshot().ids == frozenset({"a", "b"}))
    assert supervisor.status().polling_active
    assert source.calls >= 1

    await supervisor.stop()


@pytest.mark.asyncio
async def test_snapshot_removes_item_only_seen_through_push() -> None:
    store = WallStateStore()
    source = _FakeSnapshotSource([])
    feed = _FakeFeed()
    supervisor = _supervisor(store, source, feed, config=_config(subscribe_grace_period=5.0))

    await supervisor.start()
    feed.status(FeedStatus.SUBSCRIBED)
    await _wait_for(lambda: supervisor.state == ConnectionState.LIVE)

    feed.push({"eventType": "INSERT", "new": _row(_item("x"))})
    await _wait_for(lambda: "x" in store)
    assert source.calls == 0

    feed.status(FeedStatus.CLOSED, "network")
    await _wait_for(lambda: supervisor.state == ConnectionState.DEGRADED)
    await _wait_for(lambda: "x" not in store)
    assert supervisor.status().last_error == "feed closed: network"

    await supervisor.stop()


@pytest.mark.asyncio
async def test_going_live_stops_polling() -> None:
    store = WallStateStore()
    source = _FakeSnapshotSource([_item("a")])
    feed = _FakeFeed()
    supervisor = _supervisor(store, source, feed)

    await supervisor.start()
    await _wait_for(lambda: supervisor.state == ConnectionState.DEGRADED and source.calls >= 2)

    feed.status(FeedStatus.SUBSCRIBED)
    await _wait_for(lambda: supervisor.state == ConnectionState.LIVE)
    await asyncio.sleep(0.01)
    assert not supervisor.status().polling_active
    calls = source.calls
    await asyncio.sleep(0.1)
    assert source.calls == calls
    assert "a" in store

    await supervisor.stop()


@pytest.mark.asyncio
async def test_subscribe_failure_degrades_immediately() -> None:
    store = WallStateStore()
    source = _FakeSnapshotSource([_item("a")])
    supervisor = _supervisor(store, source, _FakeFeed(fail=True), config=_config(subscribe_grace_period=5.0))

    await supervisor.start()
    assert supervisor.state == ConnectionState.DEGRADED
    await _wait_for(lambda: "a" in store)
    await supervisor.stop()


@pytest.mark.asyncio
async def test_poll_failures_keep_state_and_surface_unavailable() -> None:
    store = WallStateStore()
    source = _FakeSnapshotSource([_item("a")])
    supervisor = _supervisor(store, source, None)

    await supervisor.start()
    await _wait_for(lambda: "a" in store)

    source.error = WallTransportError("HTTP 503", status_code=503, endpoint="/rest/v1/photos")
    await _wait_for(lambda: supervisor.status().unavailable)
    status = supervisor.status()
    assert status.consecutive_poll_failures >= 2
    assert status.state == ConnectionState.DEGRADED
    assert "a" in store

    source.error = None
    source.items = [_item("a"), _item("b", 1)]
    await _wait_for(lambda: "b" in store)
    assert supervisor.status().consecutive_poll_failures == 0
    assert not supervisor.status().unavailable

    await supervisor.stop()


@pytest.mark.asyncio
async def test_poll_timeout_counts_as_failure() -> None:
    store = WallStateStore()
    source = _FakeSnapshotSource([_item("a")])
    source.hang = True
    supervisor = _supervisor(store, source, None, config=_config(poll_timeout=0.02))

    await supervisor.start()
    await _wait_for(lambda: supervisor.status().consecutive_poll_failures >= 1)
    assert supervisor.status().last_error == "snapshot read timed out"
    assert len(store) == 0
    await supervisor.stop()


@pytest.mark.asyncio
async def test_stop_releases_feed_and_discards_in_flight_poll() -> None:
    store = WallStateStore()
    source = _FakeSnapshotSource([_item("a")])
    source.hang = True
    feed = _FakeFeed()
    supervisor = _supervisor(store, source, feed)

    await supervisor.start()
    await _wait_for(lambda: source.calls >= 1)
    epoch = supervisor.epoch

    await supervisor.stop()
    assert supervisor.state == ConnectionState.DISCONNECTED
    assert supervisor.epoch == epoch + 1
    assert not supervisor.status().polling_active
    assert len(feed.released) == 1

    # Late callbacks from the old subscription are ignored.
    feed.status(FeedStatus.SUBSCRIBED)
    feed.push({"eventType": "INSERT", "new": _row(_item("late"))})
    await asyncio.sleep(0.02)
    assert supervisor.state == ConnectionState.DISCONNECTED
    assert len(store) == 0

    await supervisor.stop()
    assert len(feed.released) == 1


@pytest.mark.asyncio
async def test_events_from_a_stale_epoch_are_dropped() -> None:
    store = WallStateStore()
    supervisor = _supervisor(store, _FakeSnapshotSource(), _FakeFeed(), config=_config(subscribe_grace_period=5.0))

    await supervisor.start()
    supervisor.submit(WallEvent.insert(_item("old"), source=IngestionSource.POLL, epoch=supervisor.epoch - 1))
    supervisor.submit(WallEvent.insert(_item("new"), source=IngestionSource.LOCAL))
    await supervisor.drain()

    assert store.snapshot().ids == frozenset({"new"})
    await supervisor.stop()


@pytest.mark.asyncio
async def test_restart_after_stop() -> None:
    store = WallStateStore()
    source = _FakeSnapshotSource([_item("a")])
    feed = _FakeFeed()
    supervisor = _supervisor(store, source, feed, config=_config(subscribe_grace_period=5.0))

    await supervisor.start()
    await supervisor.stop()
    await supervisor.start()
    feed.status(FeedStatus.SUBSCRIBED)
    await _wait_for(lambda: supervisor.state == ConnectionState.LIVE)
    assert feed.subscribed == ["c1", "c1"]
    await supervisor.stop()


@pytest.mark.asyncio
async def test_malformed_push_messages_are_ignored() -> None:
    store = WallStateStore()
    feed = _FakeFeed()
    supervisor = _supervisor(store, _FakeSnapshotSource(), feed, config=_config(subscribe_grace_period=5.0))

    await supervisor.start()
    feed.status(FeedStatus.SUBSCRIBED)
    feed.push({"eventType": "INSERT", "new": {"id": "no-url"}})
    feed.push({"eventType": "INSERT", "new": _row(_item("ok"))})
    await _wait_for(lambda: "ok" in store)
    assert len(store) == 1
    await supervisor.stop()


@pytest.mark.asyncio
async def test_callbacks_report_changes_and_status() -> None:
    store = WallStateStore()
    feed = _FakeFeed()
    changes: list[WallSnapshot] = []
    statuses: list[ConnectionStatus] = []
    supervisor = _supervisor(
        store,
        _FakeSnapshotSource(),
        feed,
        config=_config(subscribe_grace_period=5.0),
        on_change=changes.append,
        on_status=statuses.append,
    )

    await supervisor.start()
    feed.status(FeedStatus.SUBSCRIBED)
    feed.push({"eventType": "INSERT", "new": _row(_item("a"))})
    feed.push({"eventType": "INSERT", "new": _row(_item("a"))})
    feed.push({"eventType": "DELETE", "old": {"id": "a"}})
    await _wait_for(lambda: len(changes) == 2)
    await supervisor.stop()

    assert [len(snapshot) for snapshot in changes] == [1, 0]
    assert [status.state for status in statuses] == [
        ConnectionState.CONNECTING,
        ConnectionState.LIVE,
        ConnectionState.DISCONNECTED,
    ]


@pytest.mark.asyncio
async def test_initial_snapshot_populates_live_wall() -> None:
    store = WallStateStore()
    source = _FakeSnapshotSource([_item("a")])
    supervisor = ReconciliationSupervisor(
        "c1",
        config=_config(subscribe_grace_period=5.0),
        store=store,
        snapshots=source,
        feed=_FakeFeed(),
    )

    await supervisor.start()
    await _wait_for(lambda: "a" in store)
    assert source.calls == 1
    assert supervisor.state == ConnectionState.CONNECTING
    await supervisor.stop()


class _SlowFeed(_FakeFeed):
    """Feed whose subscribe call blocks past the subscribe timeout, then confirms."""

    def __init__(self, delay: float) -> None:
        super().__init__()
        self._delay = delay

    def subscribe(self, collection_id: str, on_message: OnMessage, on_status: OnStatus) -> FeedHandle:
        time.sleep(self._delay)
        on_status(FeedStatus.SUBSCRIBED, None)
        payload = {"eventType": "INSERT", "new": _row(_item("late"))}
        on_message(FeedMessage(collection_id=collection_id, topic=f"t/{collection_id}", payload=payload))
        self.subscribed.append(collection_id)
        return FeedHandle(collection_id=collection_id, topic=f"t/{collection_id}")


@pytest.mark.asyncio
async def test_subscribe_timeout_ignores_the_abandoned_subscription() -> None:
    store = WallStateStore()
    source = _FakeSnapshotSource([_item("a")])
    feed = _SlowFeed(0.2)
    supervisor = _supervisor(store, source, feed, config=_config(subscribe_timeout=0.05, subscribe_grace_period=5.0))

    await supervisor.start()
    assert supervisor.state == ConnectionState.DEGRADED
    assert supervisor.status().last_error == "subscribe timed out"

    await _wait_for(lambda: len(feed.released) == 1)
    await asyncio.sleep(0.05)

    assert feed.released[0].closed
    assert supervisor.state == ConnectionState.DEGRADED
    assert supervisor.status().polling_active
    assert "late" not in store
    await _wait_for(lambda: "a" in store)

    await supervisor.stop()
    assert len(feed.released) == 1


@pytest.mark.asyncio
async def test_failed_initial_snapshot_is_not_a_poll_failure() -> None:
    store = WallStateStore()
    source = _FakeSnapshotSource()
    source.error = WallTransportError("HTTP 500", status_code=500)
    supervisor = ReconciliationSupervisor(
        "c1",
        config=_config(subscribe_grace_period=5.0, poll_failure_threshold=1),
        store=store,
        snapshots=source,
        feed=_FakeFeed(),
    )

    await supervisor.start()
    await _wait_for(lambda: source.calls == 1)
    await asyncio.sleep(0.01)

    status = supervisor.status()
    assert status.consecutive_poll_failures == 0
    assert not status.unavailable
    assert status.state == ConnectionState.CONNECTING
    await supervisor.stop()
