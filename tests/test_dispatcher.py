from __future__ import annotations

import json

import pytest

from pymqttnotify.dispatcher import Dispatcher, Rule
from pymqttnotify.exceptions import NotificationSendError
from pymqttnotify.notify import NotificationIntent, NotificationKind, Sound, Urgency
from pymqttnotify.policies import AppliancePolicy, FloodPolicy, MailboxPolicy
from pymqttnotify.topics import parse_patterns


class _RecordingSink:
    def __init__(self) -> None:
        self.sent: list[tuple[str, Urgency, Sound]] = []

    async def send(self, body: str, urgency: Urgency, sound: Sound) -> None:
        self.sent.append((body, urgency, sound))


class _FailingSink:
    def __init__(self) -> None:
        self.calls = 0

    async def send(self, body: str, urgency: Urgency, sound: Sound) -> None:
        self.calls += 1
        raise NotificationSendError("network down")


class _ExplodingPolicy:
    def evaluate(self, topic: str, payload: str) -> bool:
        raise RuntimeError("boom")


def _local_dispatcher(sink: object) -> Dispatcher:
    return Dispatcher(
        "local",
        [
            Rule(NotificationKind.FLOOD, parse_patterns(["leak/+", "home/#"]), FloodPolicy()),
            Rule(NotificationKind.APPLIANCE_DONE, parse_patterns(["freemdu/+/state", "home/#"]), AppliancePolicy()),
        ],
        sink,  # type: ignore[arg-type]
    )


def test_subscriptions_are_deduplicated_in_rule_order() -> None:
    dispatcher = _local_dispatcher(_RecordingSink())

    assert dispatcher.subscriptions == ["leak/+", "home/#", "freemdu/+/state"]


@pytest.mark.asyncio
async def test_flood_notification_uses_high_urgency_and_siren() -> None:
    sink = _RecordingSink()
    dispatcher = _local_dispatcher(sink)

    fired = await dispatcher.on_message("leak/cellar", "true")

    assert fired == [NotificationIntent(NotificationKind.FLOOD, "leak/cellar")]
    assert sink.sent == [("Flood event on leak/cellar", Urgency.HIGH, Sound.SIREN)]


@pytest.mark.asyncio
async def test_non_matching_topic_does_not_notify() -> None:
    sink = _RecordingSink()
    dispatcher = _local_dispatcher(sink)

    assert await dispatcher.on_message("kitchen/leak/sensor", "true") == []
    assert sink.sent == []


@pytest.mark.asyncio
async def test_replay_fires_flood_again_but_not_appliance() -> None:
    sink = _RecordingSink()
    dispatcher = _local_dispatcher(sink)

    for _ in range(2):
        await dispatcher.on_message("leak/cellar", "true")
        await dispatcher.on_message("freemdu/washer/state", "ProgramFinished")

    kinds = [body.split(" ")[0] for body, _urgency, _sound in sink.sent]
    assert kinds == ["Flood", "Appliance", "Flood"]


@pytest.mark.asyncio
async def test_overlapping_rules_can_both_evaluate_one_message() -> None:
    sink = _RecordingSink()
    dispatcher = _local_dispatcher(sink)

    # "home/#" belongs to both rules; only the appliance policy fires here.
    fired = await dispatcher.on_message("home/washer", "ProgramFinished")
    assert [intent.kind for intent in fired] == [NotificationKind.APPLIANCE_DONE]

    fired = await dispatcher.on_message("home/washer", "true")
    assert [intent.kind for intent in fired] == [NotificationKind.FLOOD]


@pytest.mark.asyncio
async def test_sink_failure_is_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    sink = _FailingSink()
    dispatcher = _local_dispatcher(sink)

    fired = await dispatcher.on_message("leak/cellar", "true")

    assert len(fired) == 1
    assert sink.calls == 1
    assert "could not send push notification" in caplog.text


@pytest.mark.asyncio
async def test_policy_failure_is_contained_to_its_rule() -> None:
    sink = _RecordingSink()
    dispatcher = Dispatcher(
        "local",
        [
            Rule(NotificationKind.APPLIANCE_DONE, parse_patterns(["leak/+"]), _ExplodingPolicy()),
            Rule(NotificationKind.FLOOD, parse_patterns(["leak/+"]), FloodPolicy()),
        ],
        sink,
    )

    fired = await dispatcher.on_message("leak/cellar", "true")

    assert [intent.kind for intent in fired] == [NotificationKind.FLOOD]


@pytest.mark.asyncio
async def test_bad_mailbox_payload_does_not_block_next_message() -> None:
    sink = _RecordingSink()
    dispatcher = Dispatcher(
        "ttn",
        [Rule(NotificationKind.MAILBOX, parse_patterns(["v3/+/devices/+/up"]), MailboxPolicy())],
        sink,
    )
    good = json.dumps({"uplink_message": {"decoded_payload": {"DOOR_OPEN_STATUS": 1}}})

    assert await dispatcher.on_message("v3/app/devices/mailbox/up", "�{broken") == []
    fired = await dispatcher.on_message("v3/app/devices/mailbox/up", good)

    assert fired == [NotificationIntent(NotificationKind.MAILBOX, "v3/app/devices/mailbox/up")]
    assert sink.sent == [("Mailbox opened (v3/app/devices/mailbox/up)", Urgency.NORMAL, Sound.DEFAULT)]
