from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import paho.mqtt.client as mqtt
import pytest

from pymqttnotify._mqtt import MqttEventKind, PahoEventSource
from pymqttnotify.config import BrokerConfig
from pymqttnotify.exceptions import BrokerSubscribeError, BrokerTransportError


class _Code:
    """Stand-in for paho's ReasonCode."""

    def __init__(self, value: int) -> None:
        self.value = value

    @property
    def is_failure(self) -> bool:
        return self.value >= 0x80

    def __str__(self) -> str:
        return f"rc={self.value}"


class _FakePahoClient:
    def __init__(self, result: int = mqtt.MQTT_ERR_SUCCESS, mid: int = 7) -> None:
        self.result = result
        self.mid = mid
        self.requests: list[list[tuple[str, int]]] = []
        self.disconnected = False
        self.loop_stopped = False

    def subscribe(self, topics: list[tuple[str, int]]) -> tuple[int, int]:
        self.requests.append(topics)
        return self.result, self.mid

    def disconnect(self) -> None:
        self.disconnected = True

    def loop_stop(self) -> None:
        self.loop_stopped = True


@dataclass
class _Message:
    topic: str
    payload: bytes


def _source(client: Any) -> PahoEventSource:
    config = BrokerConfig(hostname="broker.lan", username="u", password="p", client_id="test")
    source = PahoEventSource("local", config)
    # Bypass start(); the helpers under test only need a loop and a client.
    source._loop = asyncio.get_running_loop()  # type: ignore[attr-defined]
    source._client = client  # type: ignore[attr-defined]
    return source


@pytest.mark.asyncio
async def test_subscribe_waits_for_suback() -> None:
    client = _FakePahoClient()
    source = _source(client)

    task = asyncio.create_task(source.subscribe(["leak/+", "freemdu/#"]))
    await asyncio.sleep(0)
    assert not task.done()

    source._on_subscribe(client, None, 7, [_Code(0), _Code(0)], None)  # type: ignore[arg-type]
    await asyncio.wait_for(task, timeout=1.0)

    assert client.requests == [[("leak/+", 0), ("freemdu/#", 0)]]


@pytest.mark.asyncio
async def test_refused_topic_raises_subscribe_error() -> None:
    client = _FakePahoClient()
    source = _source(client)

    task = asyncio.create_task(source.subscribe(["leak/+", "secret/#"]))
    await asyncio.sleep(0)
    source._on_subscribe(client, None, 7, [_Code(0), _Code(0x80)], None)  # type: ignore[arg-type]

    with pytest.raises(BrokerSubscribeError) as excinfo:
        await asyncio.wait_for(task, timeout=1.0)
    assert excinfo.value.topics == ("secret/#",)
    assert excinfo.value.broker == "local"


@pytest.mark.asyncio
async def test_disconnect_while_waiting_for_suback_is_transient() -> None:
    client = _FakePahoClient()
    source = _source(client)

    task = asyncio.create_task(source.subscribe(["leak/+"]))
    await asyncio.sleep(0)
    source._on_disconnect(client, None, None, _Code(0x80), None)  # type: ignore[arg-type]

    with pytest.raises(BrokerTransportError):
        await asyncio.wait_for(task, timeout=1.0)
    event = await asyncio.wait_for(source.next_event(), timeout=1.0)
    assert event.kind is MqttEventKind.ERROR


@pytest.mark.asyncio
async def test_subscribe_without_connection_is_transient() -> None:
    source = _source(_FakePahoClient(result=mqtt.MQTT_ERR_NO_CONN))

    with pytest.raises(BrokerTransportError):
        await source.subscribe(["leak/+"])


@pytest.mark.asyncio
async def test_callbacks_become_events() -> None:
    client = _FakePahoClient()
    source = _source(client)

    source._on_connect(client, None, None, _Code(0), None)  # type: ignore[arg-type]
    source._on_connect(client, None, None, _Code(0x87), None)  # type: ignore[arg-type]
    source._on_connect_fail(client, None)  # type: ignore[arg-type]
    source._on_message(client, None, _Message("leak/cellar", b"true"))  # type: ignore[arg-type]

    events = [await asyncio.wait_for(source.next_event(), timeout=1.0) for _ in range(4)]

    assert [e.kind for e in events] == [
        MqttEventKind.CONNECTED,
        MqttEventKind.ERROR,
        MqttEventKind.ERROR,
        MqttEventKind.PUBLISH,
    ]
    assert events[3].topic == "leak/cellar"
    assert events[3].payload == b"true"


@pytest.mark.asyncio
async def test_stop_disconnects_and_joins_network_thread() -> None:
    client = _FakePahoClient()
    source = _source(client)

    await source.stop()

    assert client.disconnected
    assert client.loop_stopped


class _RecordingPahoClient:
    """Records how start() configures a paho client."""

    instances: list[_RecordingPahoClient] = []

    def __init__(self, **kwargs: Any) -> None:
        self.init_kwargs = kwargs
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []
        _RecordingPahoClient.instances.append(self)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("on_"):
            raise AttributeError(name)

        def record(*args: Any, **kwargs: Any) -> None:
            self.calls.append((name, args, kwargs))

        return record

    def called(self, name: str) -> list[tuple[tuple[Any, ...], dict[str, Any]]]:
        return [(args, kwargs) for call, args, kwargs in self.calls if call == name]


@pytest.mark.asyncio
@pytest.mark.parametrize("tls", [False, True])
async def test_start_configures_paho_client(monkeypatch: pytest.MonkeyPatch, tls: bool) -> None:
    _RecordingPahoClient.instances = []
    monkeypatch.setattr(mqtt, "Client", _RecordingPahoClient)
    config = BrokerConfig(
        hostname="broker.lan",
        port=8883,
        username="notify",
        password="secret",
        client_id="mqtt-notify",
        tls=tls,
    )
    source = PahoEventSource("local", config)

    await source.start()

    (client,) = _RecordingPahoClient.instances
    assert client.init_kwargs == {
        "callback_api_version": mqtt.CallbackAPIVersion.VERSION2,
        "client_id": "mqtt-notify",
        "protocol": mqtt.MQTTv311,
    }
    assert client.called("username_pw_set") == [(("notify", "secret"), {})]
    assert len(client.called("tls_set")) == (1 if tls else 0)
    assert client.called("reconnect_delay_set") == [((), {"min_delay": 1, "max_delay": 30})]
    assert client.called("connect_async") == [(("broker.lan", 8883), {"keepalive": 30})]
    assert [name for name, _args, _kwargs in client.calls][-2:] == ["connect_async", "loop_start"]
    assert client.on_connect == source._on_connect  # type: ignore[attr-defined]
    assert client.on_connect_fail == source._on_connect_fail  # type: ignore[attr-defined]
    assert client.on_disconnect == source._on_disconnect  # type: ignore[attr-defined]
    assert client.on_message == source._on_message  # type: ignore[attr-defined]
    assert client.on_subscribe == source._on_subscribe  # type: ignore[attr-defined]

    with pytest.raises(RuntimeError, match="already started"):
        await source.start()

    await source.stop()
    assert client.called("disconnect")
    assert client.called("loop_stop")

    # paho reports the requested disconnect after stop(); that is not an error.
    source._on_disconnect(client, None, None, _Code(0), None)  # type: ignore[arg-type]
    event = await asyncio.wait_for(source.next_event(), timeout=1.0)
    assert event.kind is MqttEventKind.OTHER
