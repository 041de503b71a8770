"""Configuration for pymqttnotify.

The configuration is a TOML file::

    [mqtt.local]
    hostname = "broker.lan"
    username = "notify"
    password = "secret"
    client_id = "mqtt-notify"

    [flood]
    topics = ["zigbee2mqtt/+/water_leak"]

    [pushover]
    user = "..."
    token = "..."

Sensors are bound to brokers: ``flood`` and ``appliance`` listen on
``mqtt.local``, ``mailbox`` listens on ``mqtt.ttn``. A broker without any
sensor, or a sensor without its broker, is a configuration error.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from pymqttnotify._constants import (
    DEFAULT_KEEPALIVE_S,
    DEFAULT_MQTT_PORT,
    ENV_PUSHOVER_TOKEN,
    ENV_PUSHOVER_USER,
)
from pymqttnotify.exceptions import MqttNotifyConfigError
from pymqttnotify.topics import validate_filter

_STRICT = ConfigDict(frozen=True, extra="forbid")


class BrokerConfig(BaseModel):
    """Connection parameters for one MQTT broker.

    Parameters
    ----------
    hostname : str
        Broker host name or address.
    port : int
        Broker TCP port. Defaults to 1883.
    username : str
        MQTT user name.
    password : str
        MQTT password.
    client_id : str
        MQTT client identifier. Must be unique per broker.
    keepalive : int
        MQTT keep-alive interval in seconds. Defaults to 30.
    tls : bool
        Connect with TLS using the system CA bundle.
    """

    model_config = _STRICT

    hostname: str = Field(min_length=1)
    port: int = Field(default=DEFAULT_MQTT_PORT, ge=1, le=65535)
    username: str
    password: str
    client_id: str = Field(min_length=1)
    keepalive: int = Field(default=DEFAULT_KEEPALIVE_S, gt=0)
    tls: bool = False


class BrokersConfig(BaseModel):
    model_config = _STRICT

    local: BrokerConfig | None = None
    ttn: BrokerConfig | None = None


class SensorConfig(BaseModel):
    """Topic filters watched for one sensor kind."""

    model_config = _STRICT

    topics: list[str] = Field(min_length=1)

    @field_validator("topics")
    @classmethod
    def _validate_filters(cls, value: list[str]) -> list[str]:
        for text in value:
            validate_filter(text)
        return value


class PushoverConfig(BaseModel):
    model_config = _STRICT

    user: str = Field(min_length=1)
    token: str = Field(min_length=1)


class AppConfig(BaseModel):
    """Complete, validated application configuration."""

    model_config = _STRICT

    mqtt: BrokersConfig
    flood: SensorConfig | None = None
    mailbox: SensorConfig | None = None
    appliance: SensorConfig | None = None
    pushover: PushoverConfig

    @model_validator(mode="after")
    def _check_bindings(self) -> AppConfig:
        local, ttn = self.mqtt.local, self.mqtt.ttn
        if local is None and ttn is None:
            raise ValueError("no MQTT broker configured (expected [mqtt.local] and/or [mqtt.ttn])")
        if local is not None and self.flood is None and self.appliance is None:
            raise ValueError("[mqtt.local] is configured but neither [flood] nor [appliance] is")
        if ttn is not None and self.mailbox is None:
            raise ValueError("[mqtt.ttn] is configured but [mailbox] is not")
        if local is None and (self.flood is not None or self.appliance is not None):
            raise ValueError("[flood] and [appliance] require [mqtt.local]")
        if ttn is None and self.mailbox is not None:
            raise ValueError("[mailbox] requires [mqtt.ttn]")
        return self

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, path: str = "") -> AppConfig:
        """Validate a parsed configuration mapping.

        ``MQTTNOTIFY_PUSHOVER_USER`` and ``MQTTNOTIFY_PUSHOVER_TOKEN``
        override the corresponding ``[pushover]`` values when set.
        """
        merged = dict(data)
        pushover = dict(merged.get("pushover") or {})
        for env_key, field_name in ((ENV_PUSHOVER_USER, "user"), (ENV_PUSHOVER_TOKEN, "token")):
            val = os.environ.get(env_key)
            if val is not None:
                pushover[field_name] = val
        if pushover:
            merged["pushover"] = pushover

        try:
            return cls.model_validate(merged)
        except ValidationError as exc:
            raise MqttNotifyConfigError(_format_validation_error(exc), path=path) from exc

    @classmethod
    def from_file(cls, path: str | Path) -> AppConfig:
        """Load and validate the TOML configuration at *path*."""
        config_path = Path(path)
        try:
            with config_path.open("rb") as fh:
                data = tomllib.load(fh)
        except OSError as exc:
            raise MqttNotifyConfigError(f"opening failed: {exc.strerror or exc}", path=str(config_path)) from exc
        except tomllib.TOMLDecodeError as exc:
            raise MqttNotifyConfigError(f"invalid TOML: {exc}", path=str(config_path)) from exc
        return cls.from_dict(data, path=str(config_path))


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error["loc"])
        message = error["msg"].removeprefix("Value error, ")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)
