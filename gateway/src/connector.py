"""
Connector capability consumed by the gateway, and device discovery.

The Axpert wire protocol and its USB/serial transport live outside this
package.  A connector is any object implementing :class:`Connector`: it
performs blocking request/response I/O against exactly one inverter, is
handed over already opened, and raises :class:`DeviceIOError` for every
transport or protocol failure.  Connectors are not re-entrant; callers
serialise access through the owning :class:`~gateway.src.models.Inverter`
lock.

Each telemetry query returns its own small, typed payload (one frozen
dataclass per section) instead of a loosely typed dict.

CHANGELOG:
- 2026-03-12: Keep closing the remaining connectors after any close failure
- 2026-03-04: Add configurable connector factory and discovery (STORY-008)
- 2026-03-03: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from gateway.src.exceptions import DeviceIOError, DiscoveryError
from gateway.src.models import Inverter

if TYPE_CHECKING:
    from gateway.src.config import GatewaySettings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Section payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GeneralStatus:
    """Device general status (QPIGS-style section)."""

    grid_voltage: float
    grid_frequency: float
    ac_output_voltage: float
    ac_output_frequency: float
    ac_output_apparent_power: float
    ac_output_active_power: float
    output_load_percent: float
    battery_voltage: float
    battery_charging_current: float
    battery_capacity: float
    heat_sink_temperature: float
    pv_input_voltage_1: float
    pv_input_current_1: float
    battery_discharge_current: float
    charging_on: bool
    scc1_charging_on: bool
    pv_input_voltage_2: float = 0.0
    pv_input_current_2: float = 0.0
    pv_input_voltage_3: float = 0.0
    pv_input_current_3: float = 0.0
    scc2_charging_on: bool = False
    scc3_charging_on: bool = False


@dataclass(frozen=True, slots=True)
class ParallelInfo:
    """Parallel/source status of the device.

    Attributes:
        line_loss: Utility line is offline.
        load_on: Output has load.
        ac_charging: Battery is being charged from the utility.
    """

    line_loss: bool
    load_on: bool
    ac_charging: bool


@dataclass(frozen=True, slots=True)
class RatingInfo:
    """Device rating information, carrying most writable settings.

    Source priorities are raw wire codes; voltages are in volts.
    """

    output_source_priority: int
    charger_source_priority: int
    max_ac_charging_current: float
    battery_recharge_voltage: float
    battery_redischarge_voltage: float
    battery_under_voltage: float
    battery_float_voltage: float


@dataclass(frozen=True, slots=True)
class WarningStatus:
    """Active warning flags, by name (e.g. ``"overload"``)."""

    active: frozenset[str]

    @property
    def overload(self) -> bool:
        return "overload" in self.active


# ---------------------------------------------------------------------------
# Capability
# ---------------------------------------------------------------------------


@runtime_checkable
class Connector(Protocol):
    """Blocking I/O capability against one physical inverter."""

    def serial_no(self) -> str: ...

    def general_status(self) -> GeneralStatus: ...

    def parallel_info(self) -> ParallelInfo: ...

    def rating_info(self) -> RatingInfo: ...

    def warning_status(self) -> WarningStatus: ...

    def device_mode(self) -> str:
        """Return the raw device mode wire letter."""
        ...

    def output_mode(self) -> int:
        """Return the raw output mode (0 single machine, 1 parallel, 2-4 phase)."""
        ...

    def set_output_source_priority(self, code: int) -> None: ...

    def set_charger_source_priority(self, code: int) -> None: ...

    def set_battery_recharge_voltage(self, volts: float) -> None: ...

    def set_battery_redischarge_voltage(self, volts: float) -> None: ...

    def close(self) -> None: ...


ConnectorFactory = Callable[["GatewaySettings"], Sequence[Connector]]
"""Opens the connectors of every attached inverter, given the settings."""

# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def load_connector_factory(path: str) -> ConnectorFactory:
    """Resolve a ``"module:attribute"`` import path to a connector factory.

    Args:
        path: Import path such as
            ``"gateway.src.simulator:open_simulated_connectors"``.

    Returns:
        The callable named by *path*; it is called with the gateway
        settings and returns the opened connectors.

    Raises:
        DiscoveryError: If the path is malformed or cannot be imported.
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise DiscoveryError(
            f"connector factory must look like 'module:attribute', got {path!r}"
        )
    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        raise DiscoveryError(f"cannot load connector factory {path!r}: {exc}") from exc
    if not callable(factory):
        raise DiscoveryError(f"connector factory {path!r} is not callable")
    return factory


def discover_inverters(connectors: Iterable[Connector]) -> list[Inverter]:
    """Build one :class:`Inverter` per connector, reading each serial once.

    Inverters are returned in connector order, which fixes the poll order
    and the order of the inverter listing.

    Raises:
        DiscoveryError: If no connector is given or a serial number
            cannot be read.
    """
    inverters: list[Inverter] = []
    for connector in connectors:
        try:
            serial_no = connector.serial_no()
        except DeviceIOError as exc:
            raise DiscoveryError(f"failed to retrieve serial number: {exc}") from exc
        logger.info("Discovered inverter with serialno '%s'", serial_no)
        inverters.append(Inverter(connector, serial_no))

    if not inverters:
        raise DiscoveryError("no Axpert inverters found")
    return inverters


def close_inverters(inverters: Iterable[Inverter]) -> None:
    """Release every inverter's connector, logging individual failures."""
    for inv in inverters:
        try:
            with inv.lock:
                inv.connector.close()
        except Exception:
            logger.warning(
                "Failed to close connector for serialno '%s'",
                inv.serial_no,
                exc_info=True,
            )
