"""
Boiler telemetry pipeline package.

Receives gas-boiler sensor telemetry over MQTT, normalizes it, keeps a
rolling window of derived readings, persists every reading with bounded
retry, and evaluates consumption, cost and ambient-temperature alerts.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-001)

TODO:
- None
"""
