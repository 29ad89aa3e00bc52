"""Internal change-feed transport: protocol, payload decoding, and MQTT runtime."""

from __future__ import annotations

import asyncio
import json
import logging
import ssl
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol, cast

import paho.mqtt.client as mqtt

from photowall._redact import redact_for_log
from photowall.config import WallConfig
from photowall.exceptions import WallFeedError, WallPayloadError


class FeedStatus(StrEnum):
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    ERROR = "error"
    CLOSED = "closed"


@dataclass(frozen=True)
class FeedMessage:
    """Decoded change-feed message."""

    collection_id: str
    topic: str
    payload: dict[str, Any]


@dataclass
class FeedHandle:
    """Opaque subscription handle returned by :meth:`ChangeFeed.subscribe`."""

    collection_id: str
    topic: str
    client: Any = None
    closed: bool = False
    extra: dict[str, Any] = field(default_factory=dict)


OnMessage = Callable[[FeedMessage], None]
OnStatus = Callable[[FeedStatus, str | None], None]


class ChangeFeed(Protocol):
    """Push transport interface consumed by the supervisor.

    Callbacks may be invoked from any thread; the supervisor marshals them
    onto its own loop. ``unsubscribe`` must be idempotent and safe for a
    subscription that never completed.
    """

    def subscribe(self, collection_id: str, on_message: OnMessage, on_status: OnStatus) -> FeedHandle: ...

    def unsubscribe(self, handle: FeedHandle) -> None: ...


def decode_feed_payload(payload: bytes) -> dict[str, Any]:
    """Parse a feed payload into a JSON object."""
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise WallPayloadError(f"Feed payload is not JSON: {payload[:64]!r}") from exc
    if not isinstance(parsed, dict):
        raise WallPayloadError("Feed payload decoded to non-object JSON")
    return parsed


class MqttChangeFeed:
    """Threaded paho-mqtt change feed, one client per subscription."""

    def __init__(
        self,
        config: WallConfig,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._logger = logger or logging.getLogger(__name__)

    def subscribe(self, collection_id: str, on_message: OnMessage, on_status: OnStatus) -> FeedHandle:
        """Start connecting; status and messages arrive via the callbacks."""
        config = self._config
        if not config.broker_host:
            raise WallFeedError("No broker configured")

        topic = config.topic_for(collection_id)
        handle = FeedHandle(collection_id=collection_id, topic=topic)
        self._logger.debug(
            "Feed subscribe requested host=%s port=%s topic=%s auth=%s",
            config.broker_host,
            config.broker_port,
            topic,
            redact_for_log({"username": config.broker_username, "password": config.broker_password}),
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if config.broker_username:
            client.username_pw_set(config.broker_username, config.broker_password)
        if config.broker_tls:
            client.tls_set(cert_reqs=ssl.CERT_REQUIRED)

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.is_failure:
                self._logger.warning("Feed connect failed: %s", reason_code)
                on_status(FeedStatus.ERROR, str(reason_code))
                return
            self._logger.debug("Feed connected reason=%s; subscribing topic=%s", reason_code, topic)
            c.subscribe(topic, qos=1)

        def on_subscribe(
            _c: mqtt.Client,
            _userdata: Any,
            _mid: int,
            reason_codes: list[Any],
            _properties: Any,
        ) -> None:
            if any(rc.is_failure for rc in reason_codes):
                self._logger.warning("Feed subscribe rejected topic=%s reasons=%s", topic, reason_codes)
                on_status(FeedStatus.ERROR, "subscribe rejected")
                return
            on_status(FeedStatus.SUBSCRIBED, None)

        def on_message_cb(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                payload = decode_feed_payload(msg.payload)
            except WallPayloadError:
                self._logger.debug("Feed payload parse failure topic=%s", msg.topic, exc_info=True)
                return
            on_message(FeedMessage(collection_id=collection_id, topic=msg.topic, payload=payload))

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if handle.closed:
                return
            self._logger.debug("Feed disconnected: %s", reason_code)
            on_status(FeedStatus.CLOSED, str(reason_code))

        client.on_connect = on_connect
        client.on_subscribe = on_subscribe
        client.on_message = on_message_cb
        client.on_disconnect = on_disconnect

        on_status(FeedStatus.CONNECTING, None)
        try:
            client.connect_async(config.broker_host, config.broker_port, keepalive=config.mqtt_keepalive)
            client.loop_start()
        except (OSError, ValueError) as exc:
            raise WallFeedError(f"Feed connect to {config.broker_host} failed: {exc}") from exc

        handle.client = client
        self._logger.debug("Feed network loop started")
        return handle

    def unsubscribe(self, handle: FeedHandle) -> None:
        """Disconnect and stop the network loop. Safe to call repeatedly."""
        if handle.closed:
            return
        handle.closed = True
        client = handle.client
        handle.client = None
        if client is None:
            return
        try:
            self._logger.debug("Feed disconnect requested topic=%s", handle.topic)
            client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("Feed network loop stopped")


def threadsafe_callbacks(
    loop: asyncio.AbstractEventLoop,
    on_message: OnMessage,
    on_status: OnStatus,
) -> tuple[OnMessage, OnStatus]:
    """Wrap feed callbacks so they always run on *loop*."""

    def _message(message: FeedMessage) -> None:
        if not loop.is_closed():
            loop.call_soon_threadsafe(on_message, message)

    def _status(status: FeedStatus, detail: str | None) -> None:
        if not loop.is_closed():
            loop.call_soon_threadsafe(on_status, status, detail)

    return _message, _status
