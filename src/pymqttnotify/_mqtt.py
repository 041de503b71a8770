"""Internal MQTT event source built on paho-mqtt.

paho runs its network loop (including automatic reconnects) on its own
thread. Callbacks translate protocol events into :class:`MqttEvent`
values and hand them to the asyncio loop, where a session polls them one
at a time with :meth:`PahoEventSource.next_event`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol, cast

import paho.mqtt.client as mqtt

from pymqttnotify._constants import RECONNECT_MAX_DELAY_S, RECONNECT_MIN_DELAY_S
from pymqttnotify.config import BrokerConfig
from pymqttnotify.exceptions import BrokerSubscribeError, BrokerTransportError

QOS_AT_MOST_ONCE = 0


class MqttEventKind(StrEnum):
    CONNECTED = "connected"
    PUBLISH = "publish"
    ERROR = "error"
    OTHER = "other"


@dataclass(frozen=True)
class MqttEvent:
    """A normalized protocol event."""

    kind: MqttEventKind
    topic: str = ""
    payload: bytes = b""
    detail: str = ""

    @classmethod
    def connected(cls, detail: str = "") -> MqttEvent:
        return cls(MqttEventKind.CONNECTED, detail=detail)

    @classmethod
    def publish(cls, topic: str, payload: bytes) -> MqttEvent:
        return cls(MqttEventKind.PUBLISH, topic=topic, payload=payload)

    @classmethod
    def error(cls, detail: str) -> MqttEvent:
        return cls(MqttEventKind.ERROR, detail=detail)

    @classmethod
    def other(cls, detail: str) -> MqttEvent:
        return cls(MqttEventKind.OTHER, detail=detail)


class MqttEventSource(Protocol):
    """What a broker session needs from a connection.

    Having a protocol here lets tests drive a session with a scripted,
    bounded sequence of events instead of a network connection.
    """

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...

    async def next_event(self) -> MqttEvent:
        ...

    async def subscribe(self, topics: Sequence[str], qos: int = QOS_AT_MOST_ONCE) -> None:
        """Subscribe to all *topics* and wait for the broker's acknowledgement.

        Raises :class:`BrokerSubscribeError` if the broker refuses any of
        them, :class:`BrokerTransportError` if the connection drops first.
        """
        ...


class PahoEventSource:
    """Threaded paho-mqtt client that feeds events onto an asyncio queue."""

    def __init__(
        self,
        name: str,
        config: BrokerConfig,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._name = name
        self._config = config
        self._logger = logger or logging.getLogger(__name__)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[MqttEvent] = asyncio.Queue()
        self._client: mqtt.Client | None = None
        self._pending_subacks: dict[int, asyncio.Future[list[Any]]] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._client is not None:
            raise RuntimeError(f"{self._name}: MQTT client already started")
        self._loop = asyncio.get_running_loop()
        config = self._config
        self._logger.debug(
            "%s: MQTT start requested host=%s port=%s client_id=%s",
            self._name,
            config.hostname,
            config.port,
            config.client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            protocol=mqtt.MQTTv311,
        )
        client.enable_logger(self._logger)
        client.username_pw_set(config.username, config.password)
        if config.tls:
            client.tls_set()
        client.reconnect_delay_set(min_delay=RECONNECT_MIN_DELAY_S, max_delay=RECONNECT_MAX_DELAY_S)

        client.on_connect = self._on_connect
        client.on_connect_fail = self._on_connect_fail
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        client.on_subscribe = self._on_subscribe

        # connect_async + loop_start retries the first connection too.
        client.connect_async(config.hostname, config.port, keepalive=config.keepalive)
        client.loop_start()
        self._client = client
        self._logger.debug("%s: MQTT network loop started", self._name)

    async def stop(self) -> None:
        client = self._client
        self._client = None
        self._fail_pending(BrokerTransportError("client stopped", broker=self._name))
        if client is None:
            return
        loop = self._loop or asyncio.get_running_loop()
        try:
            client.disconnect()
        finally:
            await loop.run_in_executor(None, client.loop_stop)
            self._logger.debug("%s: MQTT network loop stopped", self._name)

    # ------------------------------------------------------------------
    # Session-facing API
    # ------------------------------------------------------------------

    async def next_event(self) -> MqttEvent:
        return await self._queue.get()

    async def subscribe(self, topics: Sequence[str], qos: int = QOS_AT_MOST_ONCE) -> None:
        client = self._client
        loop = self._loop
        if client is None or loop is None:
            raise BrokerTransportError("client not started", broker=self._name)
        if not topics:
            return

        result, mid = client.subscribe([(topic, qos) for topic in topics])
        if result == mqtt.MQTT_ERR_NO_CONN:
            raise BrokerTransportError("connection lost before SUBSCRIBE was sent", broker=self._name)
        if result != mqtt.MQTT_ERR_SUCCESS or mid is None:
            raise BrokerSubscribeError(
                f"SUBSCRIBE rejected by client: {mqtt.error_string(result)}",
                broker=self._name,
                topics=topics,
            )

        # The SUBACK callback is delivered through call_soon_threadsafe, so it
        # cannot run before this future is registered.
        waiter: asyncio.Future[list[Any]] = loop.create_future()
        self._pending_subacks[mid] = waiter
        try:
            reason_codes = await waiter
        finally:
            self._pending_subacks.pop(mid, None)

        refused = [topic for topic, code in zip(topics, reason_codes) if getattr(code, "is_failure", False)]
        if refused:
            raise BrokerSubscribeError(
                f"broker refused subscription to {', '.join(refused)}",
                broker=self._name,
                topics=refused,
            )

    # ------------------------------------------------------------------
    # paho callbacks (network thread)
    # ------------------------------------------------------------------

    def _emit(self, event: MqttEvent) -> None:
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    def _on_connect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if reason_code.is_failure:
            self._emit(MqttEvent.error(f"connection refused: {reason_code}"))
            return
        self._emit(MqttEvent.connected(str(reason_code)))

    def _on_connect_fail(self, _client: mqtt.Client, _userdata: Any) -> None:
        self._emit(MqttEvent.error("connection attempt failed"))

    def _on_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _disconnect_flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if self._loop is not None:
            self._loop.call_soon_threadsafe(
                self._fail_pending,
                BrokerTransportError(f"disconnected: {reason_code}", broker=self._name),
            )
        if self._client is None:
            self._emit(MqttEvent.other(f"disconnected on request: {reason_code}"))
            return
        self._emit(MqttEvent.error(f"disconnected: {reason_code}"))

    def _on_message(self, _client: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        self._emit(MqttEvent.publish(msg.topic, bytes(msg.payload)))

    def _on_subscribe(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        mid: int,
        reason_code_list: list[Any],
        _properties: Any,
    ) -> None:
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._resolve_suback, mid, list(reason_code_list))

    # ------------------------------------------------------------------
    # Loop-side helpers
    # ------------------------------------------------------------------

    def _resolve_suback(self, mid: int, reason_codes: list[Any]) -> None:
        waiter = self._pending_subacks.get(mid)
        if waiter is None:
            self._queue.put_nowait(MqttEvent.other(f"unexpected SUBACK mid={mid}"))
            return
        if not waiter.done():
            waiter.set_result(reason_codes)

    def _fail_pending(self, exc: BrokerTransportError) -> None:
        for waiter in self._pending_subacks.values():
            if not waiter.done():
                waiter.set_exception(exc)
