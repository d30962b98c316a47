"""
MQTT transport listener for boiler telemetry.

Connects to the broker with ``aiomqtt``, subscribes to the sensor topic,
and feeds every message through the normalizer to the session.  Designed
to be robust:

- Connection state machine:
  DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED | RECONNECTING.
- A transport error flips the health flag and the listener reconnects after
  a fixed interval; there is no custom backoff beyond that.
- A malformed message is logged and dropped; it never stops the
  subscription.  Any other error in a connection's lifetime is logged and
  handled like a dropped connection.
- The reading handler is called synchronously and must not block;
  persistence happens in background tasks owned by the writer.

CHANGELOG:
- 2026-10-17: Unexpected errors no longer end the run loop (STORY-016)
- 2026-10-17: Initial creation (STORY-012)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

import aiomqtt

from boiler.src.errors import ParseError, TransportError
from boiler.src.normalizer import normalize

if TYPE_CHECKING:
    from boiler.src.health import HealthMonitor
    from boiler.src.models import CanonicalReading

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_INTERVAL_S: float = 5.0
DEFAULT_CONNECT_TIMEOUT_S: float = 10.0


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def make_client_id() -> str:
    """Return a random client id in the dashboard's naming scheme."""
    return f"dashboard_{secrets.token_hex(4)}"


class TransportListener:
    """Subscribes to the sensor topic and hands readings to the session.

    Args:
        host: Broker hostname.
        port: Broker port.
        topic: Topic carrying the sensor JSON.
        on_reading: Called with each normalized reading.
        device_id: Returns the device id to stamp on readings.
        health: Health monitor whose transport flag this listener drives.
        transport: ``tcp`` or ``websockets``.
        websocket_path: Path used with the websockets transport.
        reconnect_interval_s: Fixed delay between reconnect attempts.
        connect_timeout_s: Bound on a single connect attempt.
        client_id: MQTT client identifier; random when omitted.
        clock: Returns the timestamp stamped on readings.
        sleep: Awaitable sleep, injectable for tests.
        client_factory: Builds the async MQTT client context manager;
            defaults to :class:`aiomqtt.Client`.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int,
        topic: str,
        on_reading: Callable[[CanonicalReading], None],
        device_id: Callable[[], str],
        health: HealthMonitor,
        transport: str = "websockets",
        websocket_path: str | None = "/mqtt",
        reconnect_interval_s: float = DEFAULT_RECONNECT_INTERVAL_S,
        connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
        client_id: str | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        client_factory: Callable[[], aiomqtt.Client] | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._topic = topic
        self._on_reading = on_reading
        self._device_id = device_id
        self._health = health
        self._transport = transport
        self._websocket_path = websocket_path
        self._reconnect_interval_s = reconnect_interval_s
        self._connect_timeout_s = connect_timeout_s
        self._client_id = client_id or make_client_id()
        self._clock = clock
        self._sleep = sleep
        self._client_factory = client_factory or self._default_client
        self._state = ConnectionState.DISCONNECTED
        self._dropped = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def dropped_messages(self) -> int:
        """Number of malformed messages dropped so far."""
        return self._dropped

    def handle_message(self, payload: object) -> CanonicalReading | None:
        """Normalize one payload and pass it to the reading handler.

        Returns:
            The reading, or ``None`` when the payload was dropped.
        """
        self._health.record_message()
        try:
            reading = normalize(
                payload,  # type: ignore[arg-type]
                device_id=self._device_id(),
                observed_at=self._clock(),
            )
        except ParseError as exc:
            self._dropped += 1
            logger.warning("Dropping malformed message on %s: %s", self._topic, exc)
            return None

        try:
            self._on_reading(reading)
        except Exception:
            logger.error("Reading handler failed", exc_info=True)
        return reading

    async def run(self) -> None:
        """Connect, consume, and reconnect until cancelled."""
        first_attempt = True
        try:
            while True:
                self._set_state(
                    ConnectionState.CONNECTING
                    if first_attempt
                    else ConnectionState.RECONNECTING
                )
                first_attempt = False
                try:
                    await self._consume()
                    logger.warning("MQTT message stream ended")
                except TransportError as exc:
                    logger.warning(
                        "MQTT connection lost (%s), reconnecting in %.1fs",
                        exc,
                        self._reconnect_interval_s,
                    )
                except Exception:
                    logger.error(
                        "MQTT listener iteration failed, reconnecting in %.1fs",
                        self._reconnect_interval_s,
                        exc_info=True,
                    )
                self._set_state(ConnectionState.DISCONNECTED)
                await self._sleep(self._reconnect_interval_s)
        finally:
            self._set_state(ConnectionState.DISCONNECTED)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _default_client(self) -> aiomqtt.Client:
        return aiomqtt.Client(
            hostname=self._host,
            port=self._port,
            identifier=self._client_id,
            transport=self._transport,
            websocket_path=self._websocket_path if self._transport == "websockets" else None,
            timeout=self._connect_timeout_s,
        )

    async def _consume(self) -> None:
        """Run one connection's lifetime.

        Raises:
            TransportError: When the broker connection fails or drops.
        """
        try:
            async with self._client_factory() as client:
                self._set_state(ConnectionState.CONNECTED)
                logger.info("Connected to MQTT broker %s:%d", self._host, self._port)
                await client.subscribe(self._topic)
                logger.info("Subscribed to topic %s", self._topic)
                async for message in client.messages:
                    self.handle_message(message.payload)
        except aiomqtt.MqttError as exc:
            raise TransportError(str(exc)) from exc

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self._state:
            logger.debug("Transport state %s -> %s", self._state, state)
        self._state = state
        self._health.set_transport_connected(state is ConnectionState.CONNECTED)
