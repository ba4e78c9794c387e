"""
Shared test fixtures for the Axpert gateway tests.

Provides environment isolation for GatewaySettings, deterministic simulated
connectors, inverters built on top of them, and an isolated metrics
registry per test.

CHANGELOG:
- 2026-03-05: Add simulated inverter and metrics fixtures (STORY-009)
- 2026-03-02: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

import random
from collections.abc import Callable
from pathlib import Path

import pytest
from gateway.src.metrics import GatewayMetrics
from gateway.src.models import Inverter
from gateway.src.simulator import SimulatedConnector, SimulatedState
from prometheus_client import CollectorRegistry

# All GatewaySettings environment variable names, used for cleanup.
_ALL_GATEWAY_ENV_VARS = (
    "AXPERT_LOG_LEVEL",
    "AXPERT_LISTEN_HOST",
    "AXPERT_LISTEN_PORT",
    "AXPERT_METRICS_PATH",
    "AXPERT_POLL_INTERVAL_S",
    "AXPERT_METRICS_ENABLED",
    "AXPERT_CONTROL_ENABLED",
    "AXPERT_CONNECTOR_FACTORY",
    "AXPERT_SIMULATED_INVERTERS",
)

SERIAL_1 = "96050000000001"


@pytest.fixture(autouse=True)
def _clean_gateway_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Remove all gateway env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_GATEWAY_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def make_inverter() -> Callable[..., tuple[Inverter, SimulatedConnector]]:
    """Return a builder for an inverter backed by a seeded simulator."""

    def _make(
        serial_no: str = SERIAL_1,
        state: SimulatedState | None = None,
    ) -> tuple[Inverter, SimulatedConnector]:
        connector = SimulatedConnector(serial_no, state=state, rng=random.Random(42))
        return Inverter(connector, serial_no), connector

    return _make


@pytest.fixture()
def simulated(
    make_inverter: Callable[..., tuple[Inverter, SimulatedConnector]],
) -> tuple[Inverter, SimulatedConnector]:
    """A single inverter and its simulated connector."""
    return make_inverter()


@pytest.fixture()
def metrics() -> GatewayMetrics:
    """Gateway metrics on a fresh registry without process collectors."""
    return GatewayMetrics(CollectorRegistry())
