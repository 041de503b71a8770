"""Per-sensor decision policies.

Each policy turns a ``(topic, payload)`` pair into a yes/no "notify"
decision. Policies never raise for bad payloads; a payload that cannot be
interpreted is logged and treated as "no event".
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pymqttnotify._constants import APPLIANCE_DONE_TOKEN, DOOR_OPEN_VALUE, FLOOD_TOKEN

_logger = logging.getLogger(__name__)


class Policy(Protocol):
    """Structural interface shared by all decision policies."""

    def evaluate(self, topic: str, payload: str) -> bool:
        ...


class FloodPolicy:
    """Fire on every ``"true"`` payload. Stateless, no debounce."""

    def evaluate(self, topic: str, payload: str) -> bool:
        return payload == FLOOD_TOKEN


# ---------------------------------------------------------------------------
# Mailbox (TTN uplink)
# ---------------------------------------------------------------------------


class _UplinkMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    decoded_payload: dict[str, Any] = Field(default_factory=dict)


class _UplinkEnvelope(BaseModel):
    """Minimal Pydantic envelope for TTN v3 uplink messages."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    uplink_message: _UplinkMessage


def door_open_status(payload: str) -> int | None:
    """Return ``uplink_message.decoded_payload.DOOR_OPEN_STATUS`` if integral.

    Returns ``None`` when the field is absent or its value is not a JSON
    integer. Floats such as ``1.0`` count as absent.

    Raises
    ------
    pydantic.ValidationError
        If *payload* is not JSON or does not look like an uplink envelope.
    """
    envelope = _UplinkEnvelope.model_validate_json(payload)
    value = envelope.uplink_message.decoded_payload.get("DOOR_OPEN_STATUS")
    # bool is an int subclass; True must not read as 1 here.
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


class MailboxPolicy:
    """Fire when a TTN door sensor reports ``DOOR_OPEN_STATUS == 1``."""

    def evaluate(self, topic: str, payload: str) -> bool:
        try:
            status = door_open_status(payload)
        except ValidationError as exc:
            _logger.warning("Could not parse door sensor payload on %s: %s", topic, exc.errors()[0]["msg"])
            return False
        if status is None:
            _logger.debug("Door sensor payload on %s carries no DOOR_OPEN_STATUS", topic)
            return False
        return status == DOOR_OPEN_VALUE


# ---------------------------------------------------------------------------
# Appliance completion (edge-triggered)
# ---------------------------------------------------------------------------


class ApplianceState(StrEnum):
    ARMED = "armed"
    NOTIFIED = "notified"


class AppliancePolicy:
    """Edge-triggered completion detector with one state machine per topic.

    ``ARMED`` + completion token -> ``NOTIFIED``, fire.
    ``NOTIFIED`` + completion token -> no change, no fire.
    Any other payload -> ``ARMED``, no fire.

    Only ``NOTIFIED`` topics are stored; a topic without an entry is ``ARMED``.
    """

    def __init__(self, completion_token: str = APPLIANCE_DONE_TOKEN) -> None:
        self._completion_token = completion_token
        self._states: dict[str, ApplianceState] = {}

    def state_for(self, topic: str) -> ApplianceState:
        return self._states.get(topic, ApplianceState.ARMED)

    def evaluate(self, topic: str, payload: str) -> bool:
        if payload != self._completion_token:
            self._states.pop(topic, None)
            return False
        if self.state_for(topic) is ApplianceState.NOTIFIED:
            _logger.debug("Appliance on %s still finished; suppressing repeat", topic)
            return False
        self._states[topic] = ApplianceState.NOTIFIED
        return True
