"""One long-lived subscription session per broker."""

from __future__ import annotations

import asyncio
import logging
from typing import NoReturn

from pymqttnotify._constants import DEFAULT_BACKOFF_S
from pymqttnotify._mqtt import QOS_AT_MOST_ONCE, MqttEvent, MqttEventKind, MqttEventSource
from pymqttnotify.dispatcher import Dispatcher
from pymqttnotify.exceptions import BrokerTransportError

_logger = logging.getLogger(__name__)


class BrokerSession:
    """Own one broker connection for the lifetime of the process.

    :meth:`run` never returns. It is left only by cancellation or by a
    fatal :class:`~pymqttnotify.exceptions.BrokerSubscribeError`. Every
    ``ERROR`` event is logged and followed by a ``backoff`` second pause;
    a SUBSCRIBE cut short by a disconnect is only logged, since that
    disconnect arrives as its own ``ERROR`` event.
    """

    def __init__(
        self,
        name: str,
        source: MqttEventSource,
        dispatcher: Dispatcher,
        *,
        backoff: float = DEFAULT_BACKOFF_S,
    ) -> None:
        self._name = name
        self._source = source
        self._dispatcher = dispatcher
        self._backoff = backoff
        self._running = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def is_running(self) -> bool:
        return self._running

    async def run(self) -> NoReturn:
        if self._running:
            raise RuntimeError(f"{self._name}: session already running")
        self._running = True
        try:
            await self._source.start()
            while True:
                try:
                    event = await self._source.next_event()
                    await self.handle_event(event)
                except BrokerTransportError as exc:
                    # The disconnect behind this also queues an ERROR event,
                    # which does the backing off.
                    _logger.warning("%s: Subscription interrupted: %s", self._name, exc)
        finally:
            self._running = False
            await self._source.stop()

    async def handle_event(self, event: MqttEvent) -> None:
        """Process a single protocol event.

        Raises
        ------
        BrokerTransportError
            The connection dropped while re-subscribing (transient).
        BrokerSubscribeError
            The broker refused a subscription (fatal for this session).
        """
        if event.kind is MqttEventKind.CONNECTED:
            topics = self._dispatcher.subscriptions
            _logger.info("%s: Connected; subscribing to %d monitored topic(s)", self._name, len(topics))
            await self._source.subscribe(topics, qos=QOS_AT_MOST_ONCE)
            _logger.debug("%s: Subscribed to %s", self._name, ", ".join(topics))
        elif event.kind is MqttEventKind.PUBLISH:
            payload = event.payload.decode("utf-8", errors="replace")
            _logger.debug("%s: MQTT publish: %s -> %s", self._name, event.topic, payload)
            await self._dispatcher.on_message(event.topic, payload)
        elif event.kind is MqttEventKind.ERROR:
            await self._back_off(event.detail)
        else:
            _logger.debug("%s: MQTT event: %s", self._name, event.detail)

    async def _back_off(self, detail: str) -> None:
        _logger.warning("%s: MQTT error: %s; retrying in %.1fs", self._name, detail, self._backoff)
        await asyncio.sleep(self._backoff)
