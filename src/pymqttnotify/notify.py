"""Notification intents and the sinks that deliver them."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

import aiohttp

from pymqttnotify._constants import PUSHOVER_API_URL, PUSHOVER_TIMEOUT_S
from pymqttnotify.exceptions import NotificationSendError

_logger = logging.getLogger(__name__)


class NotificationKind(StrEnum):
    FLOOD = "flood"
    MAILBOX = "mailbox"
    APPLIANCE_DONE = "appliance_done"


class Urgency(StrEnum):
    NORMAL = "normal"
    HIGH = "high"


class Sound(StrEnum):
    DEFAULT = "default"
    SIREN = "siren"


_BODIES: dict[NotificationKind, str] = {
    NotificationKind.FLOOD: "Flood event on {topic}",
    NotificationKind.MAILBOX: "Mailbox opened ({topic})",
    NotificationKind.APPLIANCE_DONE: "Appliance program finished ({topic})",
}


@dataclass(frozen=True)
class NotificationIntent:
    """A decision to notify, produced by the dispatcher. Fire-and-forget."""

    kind: NotificationKind
    topic: str

    @property
    def body(self) -> str:
        return _BODIES[self.kind].format(topic=self.topic)

    @property
    def urgency(self) -> Urgency:
        return Urgency.HIGH if self.kind is NotificationKind.FLOOD else Urgency.NORMAL

    @property
    def sound(self) -> Sound:
        return Sound.SIREN if self.kind is NotificationKind.FLOOD else Sound.DEFAULT


class NotificationSink(Protocol):
    """Structural sink interface.

    Implementations must be safe to call from several sessions running on
    the same event loop, and should raise :class:`NotificationSendError`
    on delivery failure.
    """

    async def send(self, body: str, urgency: Urgency, sound: Sound) -> None:
        ...


class PushoverSink:
    """Deliver notifications through the Pushover message API."""

    def __init__(
        self,
        *,
        user: str,
        token: str,
        http_session: aiohttp.ClientSession,
        url: str = PUSHOVER_API_URL,
        timeout: float = PUSHOVER_TIMEOUT_S,
    ) -> None:
        self._user = user
        self._token = token
        self._http = http_session
        self._url = url
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def _build_form(self, body: str, urgency: Urgency, sound: Sound) -> dict[str, str]:
        form = {
            "token": self._token,
            "user": self._user,
            "message": body,
            "priority": "1" if urgency is Urgency.HIGH else "0",
        }
        if sound is not Sound.DEFAULT:
            form["sound"] = sound.value
        return form

    async def send(self, body: str, urgency: Urgency, sound: Sound) -> None:
        form = self._build_form(body, urgency, sound)
        _logger.info("Sending notification: %s", body)

        try:
            async with self._http.post(self._url, data=form, timeout=self._timeout) as resp:
                text = await resp.text()
                status = resp.status
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise NotificationSendError(f"Pushover request failed: {exc}") from exc

        try:
            result: Any = json.loads(text)
        except json.JSONDecodeError:
            result = None

        if status != 200 or not isinstance(result, dict) or result.get("status") != 1:
            errors = result.get("errors") if isinstance(result, dict) else None
            detail = "; ".join(map(str, errors)) if isinstance(errors, list) and errors else text[:200]
            raise NotificationSendError(f"Pushover rejected message (HTTP {status}): {detail}", status_code=status)

        _logger.debug("Notification sent: request=%s", result.get("request"))


class LogSink:
    """Log notifications instead of delivering them (``--dry-run``)."""

    async def send(self, body: str, urgency: Urgency, sound: Sound) -> None:
        _logger.warning("[dry-run] %s (urgency=%s, sound=%s)", body, urgency.value, sound.value)
