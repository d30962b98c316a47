"""
Pipeline configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
Broker, store, alert and weather settings all come from environment
variables or a .env file; thresholds themselves live in the store.

CHANGELOG:
- 2026-10-17: Add weather and health file settings (STORY-011)
- 2026-10-17: Initial creation (STORY-001)

TODO:
- None
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings

_VALID_TRANSPORTS = ("tcp", "websockets")


class PipelineSettings(BaseSettings):
    """Configuration for one boiler telemetry session.

    Required variables must be set; optional variables default to the
    values the dashboard has always used.

    Attributes:
        database_url: SQLAlchemy async URL of the durable store.
        device_id: Boiler controller to follow at startup.
        condominium_id: Condominium that owns the device (threshold scope).
        mqtt_host: Broker hostname.
        mqtt_port: Broker port (8000 for websockets on the public broker).
        mqtt_transport: ``tcp`` or ``websockets``.
        mqtt_websocket_path: Websocket path on the broker.
        mqtt_topic: Topic carrying sensor JSON.
        mqtt_reconnect_interval_s: Fixed delay between reconnect attempts.
        mqtt_connect_timeout_s: Upper bound on a single connect attempt.
        window_capacity: Readings kept in the rolling window.
        history_load_limit: Rows loaded from the store on session start.
        sample_interval_s: Assumed seconds between two sensor samples.
        gas_conversion_factor: m3/h of gas per kW of boiler power.
        gas_price_per_m3: Currency units per m3 of gas.
        write_max_attempts: Attempts per reading before giving up.
        write_backoff_base_s: Backoff unit; delay is base * attempt.
        alert_interval_s: Seconds between periodic alert evaluations.
        weather_api_key: OpenWeatherMap key; empty disables weather.
        weather_address: Condominium address used for geocoding.
        weather_refresh_interval_s: Seconds between weather refreshes.
        health_path: JSON health file path; empty disables the file.
        log_level: Root log level.
    """

    database_url: str
    device_id: str
    condominium_id: str
    mqtt_host: str = "broker.hivemq.com"
    mqtt_port: int = 8000
    mqtt_transport: str = "websockets"
    mqtt_websocket_path: str = "/mqtt"
    mqtt_topic: str = "carolinepaz/sensores"
    mqtt_reconnect_interval_s: float = 5.0
    mqtt_connect_timeout_s: float = 10.0
    window_capacity: int = 50
    history_load_limit: int = 100
    sample_interval_s: float = 5.0
    gas_conversion_factor: float = 0.1
    gas_price_per_m3: float = 8.0
    write_max_attempts: int = 3
    write_backoff_base_s: float = 1.0
    alert_interval_s: float = 60.0
    weather_api_key: str = ""
    weather_address: str = ""
    weather_refresh_interval_s: float = 1800.0
    health_path: str = ""
    log_level: str = "INFO"

    @field_validator("mqtt_transport")
    @classmethod
    def mqtt_transport_must_be_known(cls, v: str) -> str:
        """Validate the MQTT transport is one aiomqtt supports."""
        v = v.strip().lower()
        if v not in _VALID_TRANSPORTS:
            raise ValueError(f"MQTT_TRANSPORT must be one of {_VALID_TRANSPORTS}")
        return v

    @field_validator("mqtt_port")
    @classmethod
    def mqtt_port_must_be_valid(cls, v: int) -> int:
        """Validate broker port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("MQTT_PORT must be between 1 and 65535")
        return v

    @field_validator(
        "window_capacity",
        "history_load_limit",
        "write_max_attempts",
    )
    @classmethod
    def counts_must_be_positive(cls, v: int) -> int:
        """Validate window, history and retry counts are at least 1."""
        if v < 1:
            raise ValueError("value must be >= 1")
        return v

    @field_validator(
        "sample_interval_s",
        "mqtt_reconnect_interval_s",
        "mqtt_connect_timeout_s",
        "alert_interval_s",
        "weather_refresh_interval_s",
    )
    @classmethod
    def intervals_must_be_positive(cls, v: float) -> float:
        """Validate intervals and timeouts are strictly positive."""
        if v <= 0:
            raise ValueError("interval must be > 0")
        return v

    @field_validator(
        "gas_conversion_factor",
        "gas_price_per_m3",
        "write_backoff_base_s",
    )
    @classmethod
    def factors_must_be_non_negative(cls, v: float) -> float:
        """Validate conversion factor, price and backoff are non-negative."""
        if v < 0:
            raise ValueError("value must be >= 0")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_upper(cls, v: str) -> str:
        """Normalize the log level name to upper case."""
        return v.strip().upper() or "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
