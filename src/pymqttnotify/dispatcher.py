"""Route inbound messages through topic rules to the notification sink."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from pymqttnotify.notify import NotificationIntent, NotificationKind, NotificationSink
from pymqttnotify.policies import Policy
from pymqttnotify.topics import TopicPattern, matches

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rule:
    """Bind a topic pattern set to the policy that decides on its messages."""

    kind: NotificationKind
    patterns: tuple[TopicPattern, ...]
    policy: Policy


class Dispatcher:
    """Per-session message handler.

    Owns every rule (and therefore every piece of policy state) for one
    broker session. :meth:`on_message` is the only entry point and never
    raises.
    """

    def __init__(self, broker: str, rules: Iterable[Rule], sink: NotificationSink) -> None:
        self._broker = broker
        self._rules = tuple(rules)
        self._sink = sink

    @property
    def broker(self) -> str:
        return self._broker

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    @property
    def subscriptions(self) -> list[str]:
        """Every topic filter across all rules, de-duplicated, in rule order."""
        seen: dict[str, None] = {}
        for rule in self._rules:
            for pattern in rule.patterns:
                seen.setdefault(pattern.text, None)
        return list(seen)

    async def on_message(self, topic: str, payload: str) -> list[NotificationIntent]:
        """Evaluate every matching rule and notify for each one that fires."""
        fired: list[NotificationIntent] = []
        for rule in self._rules:
            if not matches(topic, rule.patterns):
                continue
            try:
                should_notify = rule.policy.evaluate(topic, payload)
            except Exception:
                _logger.exception("%s: %s policy failed on %s", self._broker, rule.kind.value, topic)
                continue
            if not should_notify:
                continue

            intent = NotificationIntent(kind=rule.kind, topic=topic)
            fired.append(intent)
            _logger.info("%s: notifying %s event (%s)", self._broker, intent.kind.value, topic)
            try:
                await self._sink.send(intent.body, intent.urgency, intent.sound)
            except Exception as exc:
                _logger.error("%s: could not send push notification: %s", self._broker, exc)
        return fired
