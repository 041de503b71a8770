"""Wire configuration into broker sessions and run them side by side."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable

from pymqttnotify._constants import DEFAULT_BACKOFF_S
from pymqttnotify._mqtt import MqttEventSource, PahoEventSource
from pymqttnotify.config import AppConfig, BrokerConfig
from pymqttnotify.dispatcher import Dispatcher, Rule
from pymqttnotify.exceptions import MqttNotifyConfigError, SessionsTerminatedError
from pymqttnotify.notify import NotificationKind, NotificationSink
from pymqttnotify.policies import AppliancePolicy, FloodPolicy, MailboxPolicy
from pymqttnotify.session import BrokerSession
from pymqttnotify.topics import parse_patterns

_logger = logging.getLogger(__name__)

SourceFactory = Callable[[str, BrokerConfig], MqttEventSource]


def _paho_source(name: str, config: BrokerConfig) -> MqttEventSource:
    return PahoEventSource(name, config, logger=logging.getLogger(f"{__package__}.mqtt.{name}"))


def build_dispatchers(config: AppConfig, sink: NotificationSink) -> dict[str, Dispatcher]:
    """Create one dispatcher per configured broker, keyed by broker name."""
    dispatchers: dict[str, Dispatcher] = {}

    if config.mqtt.local is not None:
        rules: list[Rule] = []
        if config.flood is not None:
            rules.append(Rule(NotificationKind.FLOOD, parse_patterns(config.flood.topics), FloodPolicy()))
        if config.appliance is not None:
            rules.append(
                Rule(NotificationKind.APPLIANCE_DONE, parse_patterns(config.appliance.topics), AppliancePolicy())
            )
        dispatchers["local"] = Dispatcher("local", rules, sink)

    if config.mqtt.ttn is not None and config.mailbox is not None:
        rule = Rule(NotificationKind.MAILBOX, parse_patterns(config.mailbox.topics), MailboxPolicy())
        dispatchers["ttn"] = Dispatcher("ttn", [rule], sink)

    return dispatchers


class Supervisor:
    """Run every broker session concurrently and independently.

    A session that dies (a refused subscription) is logged and the others
    keep running. :meth:`run` only returns by raising, once no session is
    left.
    """

    def __init__(self, sessions: Iterable[BrokerSession]) -> None:
        self._sessions: dict[str, BrokerSession] = {}
        for session in sessions:
            if session.name in self._sessions:
                raise MqttNotifyConfigError(f"duplicate broker session {session.name!r}")
            self._sessions[session.name] = session
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        sink: NotificationSink,
        *,
        source_factory: SourceFactory = _paho_source,
        backoff: float = DEFAULT_BACKOFF_S,
    ) -> Supervisor:
        brokers = {"local": config.mqtt.local, "ttn": config.mqtt.ttn}
        sessions = []
        for name, dispatcher in build_dispatchers(config, sink).items():
            broker_config = brokers[name]
            assert broker_config is not None  # noqa: S101
            sessions.append(BrokerSession(name, source_factory(name, broker_config), dispatcher, backoff=backoff))
        return cls(sessions)

    @property
    def sessions(self) -> dict[str, BrokerSession]:
        return dict(self._sessions)

    async def run(self) -> None:
        if not self._sessions:
            raise MqttNotifyConfigError("no broker sessions configured")
        if self._tasks:
            raise RuntimeError("Supervisor already running")

        self._tasks = {
            name: asyncio.create_task(session.run(), name=f"mqtt-session-{name}")
            for name, session in self._sessions.items()
        }
        _logger.info("Started %d broker session(s): %s", len(self._tasks), ", ".join(self._tasks))

        failures: dict[str, BaseException] = {}
        pending = set(self._tasks.values())
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    name = task.get_name().removeprefix("mqtt-session-")
                    if task.cancelled():
                        _logger.warning("%s: session cancelled", name)
                        continue
                    exc = task.exception()
                    if exc is not None:
                        failures[name] = exc
                        _logger.error("%s: session terminated: %s", name, exc)
        finally:
            await self.stop()

        raise SessionsTerminatedError("all broker sessions have terminated", failures=failures)

    async def stop(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
