"""pymqttnotify - Push notifications for MQTT sensor events."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pymqttnotify")
except PackageNotFoundError:
    __version__ = "0+local"
from pymqttnotify.config import AppConfig, BrokerConfig, PushoverConfig, SensorConfig
from pymqttnotify.dispatcher import Dispatcher, Rule
from pymqttnotify.exceptions import (
    BrokerSubscribeError,
    BrokerTransportError,
    MqttNotifyConfigError,
    MqttNotifyError,
    NotificationSendError,
    SessionsTerminatedError,
)
from pymqttnotify.notify import (
    LogSink,
    NotificationIntent,
    NotificationKind,
    NotificationSink,
    PushoverSink,
    Sound,
    Urgency,
)
from pymqttnotify.policies import AppliancePolicy, ApplianceState, FloodPolicy, MailboxPolicy
from pymqttnotify.session import BrokerSession
from pymqttnotify.supervisor import Supervisor, build_dispatchers
from pymqttnotify.topics import TopicPattern, matches

__all__ = [
    "__version__",
    "AppConfig",
    "AppliancePolicy",
    "ApplianceState",
    "BrokerConfig",
    "BrokerSession",
    "BrokerSubscribeError",
    "BrokerTransportError",
    "Dispatcher",
    "FloodPolicy",
    "LogSink",
    "MailboxPolicy",
    "MqttNotifyConfigError",
    "MqttNotifyError",
    "NotificationIntent",
    "NotificationKind",
    "NotificationSendError",
    "NotificationSink",
    "PushoverConfig",
    "PushoverSink",
    "Rule",
    "SensorConfig",
    "SessionsTerminatedError",
    "Sound",
    "Supervisor",
    "TopicPattern",
    "Urgency",
    "build_dispatchers",
    "matches",
]
