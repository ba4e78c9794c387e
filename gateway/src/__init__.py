"""
Axpert gateway package.

Polls Axpert-family solar inverters over their exclusive per-device
connectors, exposes the readings as Prometheus metrics, caches the
inverter settings, and accepts validated control commands over HTTP.

CHANGELOG:
- 2026-03-02: Initial creation (STORY-001)

TODO:
- None
"""
