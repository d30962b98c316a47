"""
Ambient weather for the temperature-swing alerts.

``WeatherClient`` wraps the two OpenWeatherMap calls the pipeline needs
(direct geocoding and current weather) over ``httpx``.  Both return
``None`` when the API key is missing or the call fails for any reason;
nothing here raises into the caller.

``WeatherMonitor`` periodically turns the condominium address into
coordinates, fetches current weather, keeps a short ambient temperature
series for the alert evaluator, and best-effort persists each observation.

CHANGELOG:
- 2026-10-17: Treat out-of-range readings as unavailable (STORY-017)
- 2026-10-17: Initial creation (STORY-011)

TODO:
- None
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import httpx

from boiler.src.errors import ExternalServiceUnavailable, QueryError, TransientWriteError
from boiler.src.models import WeatherObservation

if TYPE_CHECKING:
    from boiler.src.store import ReadingStore

logger = logging.getLogger(__name__)

WEATHER_API_URL = "https://api.openweathermap.org/data/2.5/weather"
GEOCODING_API_URL = "https://api.openweathermap.org/geo/1.0/direct"
_DEFAULT_TIMEOUT_S = 10.0
_SERIES_LENGTH = 2


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lon: float


class WeatherClient:
    """OpenWeatherMap client.

    Args:
        api_key: OpenWeatherMap API key. Empty disables every call.
        timeout_s: Per-request timeout in seconds.
    """

    def __init__(self, api_key: str, timeout_s: float = _DEFAULT_TIMEOUT_S) -> None:
        self._api_key = api_key
        self._timeout_s = timeout_s

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def geocode(self, address: str) -> Coordinates | None:
        """Return the coordinates of *address*, or ``None`` if unavailable."""
        if not self.enabled:
            logger.warning("WEATHER_API_KEY not set, skipping geocoding")
            return None

        data = await self._get_json(
            GEOCODING_API_URL,
            {"q": address, "limit": 1, "appid": self._api_key},
        )
        if not data:
            return None
        try:
            return Coordinates(lat=float(data[0]["lat"]), lon=float(data[0]["lon"]))
        except (KeyError, IndexError, TypeError, ValueError):
            logger.warning("Unexpected geocoding response for '%s'", address)
            return None

    async def current_weather(self, lat: float, lon: float) -> WeatherObservation | None:
        """Return current weather at the coordinates, or ``None`` if unavailable."""
        if not self.enabled:
            logger.warning("WEATHER_API_KEY not set, skipping weather fetch")
            return None

        data = await self._get_json(
            WEATHER_API_URL,
            {
                "lat": lat,
                "lon": lon,
                "appid": self._api_key,
                "units": "metric",
            },
        )
        if data is None:
            return None
        try:
            main = data["main"]
            weather = data.get("weather") or [{}]
            return WeatherObservation(
                temperature=float(main["temp"]),
                humidity=float(main.get("humidity", 0.0)),
                pressure=float(main.get("pressure", 0.0)),
                wind_speed=float((data.get("wind") or {}).get("speed", 0.0)),
                description=str(weather[0].get("description", "")),
                observed_at=datetime.now(tz=UTC),
            )
        except (KeyError, IndexError, TypeError, ValueError, OverflowError, AttributeError):
            logger.warning("Unexpected weather response: %s", data)
            return None

    async def _get_json(self, url: str, params: dict) -> object | None:
        try:
            return await self._request(url, params)
        except ExternalServiceUnavailable as exc:
            logger.warning("Weather API unavailable: %s", exc)
            return None

    async def _request(self, url: str, params: dict) -> object:
        """GET *url* and decode the JSON body.

        Raises:
            ExternalServiceUnavailable: On network errors, non-200 status
                or an undecodable body.
        """
        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                response = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise ExternalServiceUnavailable(f"network error: {exc}") from exc

        if response.status_code != 200:
            raise ExternalServiceUnavailable(f"HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise ExternalServiceUnavailable("invalid JSON body") from exc


class WeatherMonitor:
    """Keeps the recent ambient temperature series for one condominium.

    Args:
        client: The weather API client.
        store: Store used to seed and persist observations.
        condominium_id: Condominium whose address is monitored.
        address: Street address to geocode.
    """

    def __init__(
        self,
        client: WeatherClient,
        store: ReadingStore,
        condominium_id: str,
        address: str,
    ) -> None:
        self._client = client
        self._store = store
        self._condominium_id = condominium_id
        self._address = address
        self._coordinates: Coordinates | None = None
        self._series: deque[float] = deque(maxlen=_SERIES_LENGTH)
        self._available = False
        self._latest: WeatherObservation | None = None

    @property
    def available(self) -> bool:
        """True when the last refresh reached the weather service."""
        return self._available

    @property
    def latest(self) -> WeatherObservation | None:
        return self._latest

    def ambient_temperatures(self) -> list[float] | None:
        """Ambient series, oldest first, or ``None`` while unavailable."""
        if not self._available:
            return None
        return list(self._series)

    async def seed(self) -> None:
        """Prime the series with the most recent persisted observations."""
        try:
            rows = await self._store.fetch_recent_weather(
                self._condominium_id, _SERIES_LENGTH
            )
        except QueryError as exc:
            logger.warning("Could not load weather history: %s", exc)
            return
        for row in reversed(rows):
            self._series.append(row.temperature)

    async def refresh(self) -> WeatherObservation | None:
        """Fetch current weather and append it to the series.

        Returns:
            The new observation, or ``None`` when the service is
            unavailable (the monitor then reports ``available`` False).
        """
        if not self._address:
            self._available = False
            return None

        if self._coordinates is None:
            self._coordinates = await self._client.geocode(self._address)
            if self._coordinates is None:
                self._available = False
                return None

        observation = await self._client.current_weather(
            self._coordinates.lat, self._coordinates.lon
        )
        if observation is None:
            self._available = False
            return None

        self._series.append(observation.temperature)
        self._latest = observation
        self._available = True
        try:
            await self._store.insert_weather(self._condominium_id, observation)
        except TransientWriteError as exc:
            logger.warning("Could not persist weather observation: %s", exc)
        return observation
