"""Custom exception hierarchy for pymqttnotify."""

from __future__ import annotations

from collections.abc import Sequence


class MqttNotifyError(Exception):
    """Base exception for all pymqttnotify errors."""


class MqttNotifyConfigError(MqttNotifyError):
    """Invalid or missing configuration."""

    def __init__(self, message: str, *, path: str = "") -> None:
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class BrokerTransportError(MqttNotifyError):
    """Transient MQTT failure (connection refused or lost, protocol error).

    Sessions recover from these locally with a fixed backoff; they never
    escape :meth:`BrokerSession.run`.
    """

    def __init__(self, message: str, *, broker: str = "") -> None:
        self.broker = broker
        super().__init__(message)


class BrokerSubscribeError(MqttNotifyError):
    """The broker refused a subscription.

    This is a configuration problem, not a transient one, so it terminates
    the owning session instead of being retried.
    """

    def __init__(
        self,
        message: str,
        *,
        broker: str = "",
        topics: Sequence[str] = (),
    ) -> None:
        self.broker = broker
        self.topics = tuple(topics)
        super().__init__(message)


class NotificationSendError(MqttNotifyError):
    """Push notification delivery failed (network, non-200, rejected)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class SessionsTerminatedError(MqttNotifyError):
    """Every broker session has stopped; nothing is left to supervise."""

    def __init__(self, message: str, *, failures: dict[str, BaseException] | None = None) -> None:
        self.failures = dict(failures or {})
        super().__init__(message)
