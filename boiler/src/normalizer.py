"""
Pure normalizer that converts a raw MQTT payload into a CanonicalReading.

The boiler controller publishes a JSON object with its own field names
(``temp_ida``, ``temp_retorno``, ``deltaT``, ``vazao_L_s``, ``potencia_kW``,
``energia_kWh``).  This module decodes that payload, maps the fields to
canonical names, and sanitizes the values:

- A temperature equal to the DS18B20 fault sentinel (-127) becomes 0.
- Missing, null, non-numeric, NaN, infinite or out-of-range values
  become 0.

This is a pure function: no side effects, no I/O, no clock.  The device_id
and timestamp are accepted as parameters so they can be injected by the
caller.

CHANGELOG:
- 2026-10-17: Out-of-range numbers no longer escape as OverflowError (STORY-016)
- 2026-10-17: Initial creation (STORY-003)

TODO:
- None
"""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime

from boiler.src.errors import ParseError
from boiler.src.models import CanonicalReading

logger = logging.getLogger(__name__)

FAULT_SENTINEL: float = -127.0
"""Value a disconnected temperature probe reports."""

# ---------------------------------------------------------------------------
# Mapping from CanonicalReading field names to device payload keys.
# ---------------------------------------------------------------------------

_FIELD_MAP: dict[str, str] = {
    "temp_supply": "temp_ida",
    "temp_return": "temp_retorno",
    "delta_t": "deltaT",
    "flow_rate_l_s": "vazao_L_s",
    "power_kw": "potencia_kW",
    "energy_kwh": "energia_kWh",
}
"""Maps CanonicalReading field name -> device payload key."""

_TEMPERATURE_FIELDS = frozenset({"temp_supply", "temp_return"})


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def _decode(raw: bytes | bytearray | str) -> dict:
    """Decode a raw payload into a JSON object.

    Raises:
        ParseError: If the payload is not UTF-8 JSON or not an object.
    """
    try:
        text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
        data = json.loads(text)
    except (UnicodeDecodeError, ValueError, TypeError) as exc:
        raise ParseError(f"payload is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ParseError(
            f"payload must be a JSON object, got {type(data).__name__}"
        )
    return data


def _to_float(value: object) -> float:
    """Coerce a payload value to a finite float, defaulting to 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize(
    raw: bytes | bytearray | str,
    *,
    device_id: str,
    observed_at: datetime,
) -> CanonicalReading:
    """Convert a raw boiler payload into a validated CanonicalReading.

    This is a **pure function**: it performs no I/O, has no side effects,
    and does not access the system clock.

    Args:
        raw: The MQTT payload, bytes or text, expected to hold a JSON
            object with the controller's native field names.
        device_id: Device identifier assigned by the consumer.
        observed_at: Timestamp assigned by the consumer.

    Returns:
        A :class:`CanonicalReading` with every numeric field finite.

    Raises:
        ParseError: If the payload is not a JSON object.
    """
    data = _decode(raw)
    fields: dict[str, float] = {}

    for field_name, payload_key in _FIELD_MAP.items():
        value = _to_float(data.get(payload_key))
        if field_name in _TEMPERATURE_FIELDS and value == FAULT_SENTINEL:
            logger.debug("Field '%s': fault sentinel replaced with 0", payload_key)
            value = 0.0
        fields[field_name] = value

    return CanonicalReading(
        device_id=device_id,
        observed_at=observed_at,
        **fields,
    )
