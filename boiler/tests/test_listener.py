"""
Unit tests for the MQTT transport listener.

Tests verify:
- A valid message is normalized and passed to the reading handler with
  the active device id.
- A malformed message is dropped and counted; the subscription continues.
- A failing reading handler does not stop the subscription.
- The connection state machine drives the health transport flag.
- A dropped connection is retried after the fixed reconnect interval.
- Out-of-range numbers and unexpected errors never end the run loop.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-012)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import aiomqtt
import pytest

from boiler.src.health import HealthMonitor
from boiler.src.listener import ConnectionState, TransportListener, make_client_id
from boiler.tests.factories import BASE_TS, DEVICE_ID

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_VALID = json.dumps({"temp_ida": 60, "temp_retorno": 45, "potencia_kW": 10}).encode()


class _FakeClient:
    """Async context manager mimicking the subset of aiomqtt.Client used."""

    def __init__(
        self,
        payloads: list[bytes],
        *,
        connect_error: bool = False,
        drop_error: bool = False,
    ) -> None:
        self._payloads = payloads
        self._connect_error = connect_error
        self._drop_error = drop_error
        self.subscribed: list[str] = []

    async def __aenter__(self) -> _FakeClient:
        if self._connect_error:
            raise aiomqtt.MqttError("connection refused")
        return self

    async def __aexit__(self, *exc: object) -> bool:
        return False

    async def subscribe(self, topic: str) -> None:
        self.subscribed.append(topic)

    @property
    def messages(self):  # noqa: ANN201
        return self._iterate()

    async def _iterate(self):  # noqa: ANN202
        for payload in self._payloads:
            yield SimpleNamespace(payload=payload)
        if self._drop_error:
            raise aiomqtt.MqttError("connection lost")


def _make_listener(
    clients: list[_FakeClient],
    *,
    on_reading: MagicMock | None = None,
    health: HealthMonitor | None = None,
) -> tuple[TransportListener, MagicMock, AsyncMock]:
    on_reading = on_reading or MagicMock()
    sleep = AsyncMock(side_effect=[None] * (len(clients) - 1) + [asyncio.CancelledError()])
    listener = TransportListener(
        host="broker.test",
        port=8000,
        topic="site/boiler",
        on_reading=on_reading,
        device_id=lambda: DEVICE_ID,
        health=health or HealthMonitor(),
        reconnect_interval_s=5.0,
        clock=lambda: BASE_TS,
        sleep=sleep,
        client_factory=MagicMock(side_effect=clients),
    )
    return listener, on_reading, sleep


# ---------------------------------------------------------------------------
# Message handling
# ---------------------------------------------------------------------------


class TestHandleMessage:
    def test_valid_message_dispatched(self) -> None:
        listener, on_reading, _ = _make_listener([])

        reading = listener.handle_message(_VALID)

        assert reading is not None
        assert reading.device_id == DEVICE_ID
        assert reading.observed_at == BASE_TS
        assert reading.power_kw == 10.0
        on_reading.assert_called_once_with(reading)

    def test_malformed_message_dropped(self) -> None:
        listener, on_reading, _ = _make_listener([])

        assert listener.handle_message(b"{not json") is None
        assert listener.dropped_messages == 1
        on_reading.assert_not_called()

    def test_handler_error_does_not_raise(self) -> None:
        on_reading = MagicMock(side_effect=RuntimeError("boom"))
        listener, _, _ = _make_listener([], on_reading=on_reading)

        assert listener.handle_message(_VALID) is not None

    def test_message_recorded_in_health(self) -> None:
        health = HealthMonitor()
        listener, _, _ = _make_listener([], health=health)

        listener.handle_message(b"garbage")

        assert health.snapshot()["last_message_ts"] is not None


# ---------------------------------------------------------------------------
# Connection lifecycle
# ---------------------------------------------------------------------------


class TestRun:
    @pytest.mark.asyncio
    async def test_subscribes_and_consumes(self) -> None:
        client = _FakeClient([_VALID, b"oops", _VALID])
        health = HealthMonitor()
        states: list[ConnectionState] = []
        listener: TransportListener

        def record(reading: object) -> None:
            states.append(listener.state)

        listener, _, _ = _make_listener(
            [client], on_reading=MagicMock(side_effect=record), health=health
        )

        with pytest.raises(asyncio.CancelledError):
            await listener.run()

        assert client.subscribed == ["site/boiler"]
        assert states == [ConnectionState.CONNECTED, ConnectionState.CONNECTED]
        assert listener.dropped_messages == 1
        assert listener.state is ConnectionState.DISCONNECTED
        assert health.transport_connected is False

    @pytest.mark.asyncio
    async def test_reconnects_after_fixed_interval(self) -> None:
        first = _FakeClient([_VALID], drop_error=True)
        refused = _FakeClient([], connect_error=True)
        third = _FakeClient([_VALID])
        listener, on_reading, sleep = _make_listener([first, refused, third])

        with pytest.raises(asyncio.CancelledError):
            await listener.run()

        assert on_reading.call_count == 2
        assert [c.args[0] for c in sleep.await_args_list] == [5.0, 5.0, 5.0]
        assert third.subscribed == ["site/boiler"]

    @pytest.mark.asyncio
    async def test_health_flag_follows_connection(self) -> None:
        health = HealthMonitor()
        seen: list[bool] = []
        client = _FakeClient([_VALID])
        listener, _, _ = _make_listener(
            [client],
            on_reading=MagicMock(side_effect=lambda r: seen.append(health.transport_connected)),
            health=health,
        )

        with pytest.raises(asyncio.CancelledError):
            await listener.run()

        assert seen == [True]
        assert health.transport_connected is False

    @pytest.mark.asyncio
    async def test_out_of_range_numbers_do_not_stop_consumption(self) -> None:
        huge_int = b'{"potencia_kW": 1' + b"0" * 400 + b"}"
        too_many_digits = b'{"potencia_kW": 1' + b"0" * 5000 + b"}"
        client = _FakeClient([huge_int, too_many_digits, _VALID])
        listener, on_reading, _ = _make_listener([client])

        with pytest.raises(asyncio.CancelledError):
            await listener.run()

        powers = [c.args[0].power_kw for c in on_reading.call_args_list]
        assert powers == [0.0, 10.0]
        assert listener.dropped_messages == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_reconnects(self) -> None:
        broken = _FakeClient([_VALID])
        broken.subscribe = AsyncMock(side_effect=RuntimeError("unexpected"))  # type: ignore[method-assign]
        healthy = _FakeClient([_VALID])
        listener, on_reading, sleep = _make_listener([broken, healthy])

        with pytest.raises(asyncio.CancelledError):
            await listener.run()

        assert on_reading.call_count == 1
        assert sleep.await_count == 2
        assert healthy.subscribed == ["site/boiler"]


def test_client_id_format() -> None:
    client_id = make_client_id()

    assert client_id.startswith("dashboard_")
    assert len(client_id) == len("dashboard_") + 8
