"""
In-memory simulated Axpert inverter.

Implements the :class:`~gateway.src.connector.Connector` capability without
hardware so the gateway can run end-to-end in development and tests.  The
simulator behaves like a device where it matters to the gateway:

- Writable settings persist, so the next poll observes a command's effect.
- Unknown wire codes on write are rejected with :class:`DeviceIOError`,
  the way a device answers NAK.
- Individual sections can be made to fail through ``fail_sections``.

CHANGELOG:
- 2026-03-08: Add per-section fault injection (STORY-012)
- 2026-03-04: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from gateway.src.connector import GeneralStatus, ParallelInfo, RatingInfo, WarningStatus
from gateway.src.exceptions import DeviceIOError
from gateway.src.mappings import CHARGER_SOURCE_PRIORITY, DEVICE_MODE, OUTPUT_SOURCE_PRIORITY

if TYPE_CHECKING:
    from gateway.src.config import GatewaySettings

logger = logging.getLogger(__name__)


@dataclass
class SimulatedState:
    """Holds the simulated inverter state."""

    # Writable settings
    output_source_priority: int = 2  # SBU first
    charger_source_priority: int = 1  # Solar first
    battery_recharge_voltage: float = 46.0
    battery_redischarge_voltage: float = 54.0
    battery_under_voltage: float = 42.0
    battery_float_voltage: float = 54.0
    max_ac_charging_current: float = 30.0

    # Operating conditions
    device_mode: str = "B"
    output_mode: int = 0
    ac_charging: bool = False
    grid_voltage: float = 230.0
    pv_power_w: float = 1800.0
    load_power_w: float = 900.0
    battery_voltage: float = 52.4
    battery_capacity: float = 78.0
    warnings: set[str] = field(default_factory=set)


class SimulatedConnector:
    """Simulated connector for one Axpert inverter.

    Args:
        serial_no: Serial number reported by the device.
        state: Initial state; defaults to a battery-mode inverter.
        rng: Random source for measurement noise.

    Attributes:
        fail_sections: Names of connector methods (e.g. ``"rating_info"``)
            that raise :class:`DeviceIOError` until removed.
    """

    def __init__(
        self,
        serial_no: str,
        state: SimulatedState | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._serial_no = serial_no
        self.state = state if state is not None else SimulatedState()
        self.fail_sections: set[str] = set()
        self.closed = False
        self._rng = rng if rng is not None else random.Random()

    def _check(self, section: str) -> None:
        if self.closed:
            raise DeviceIOError(f"{self._serial_no}: connector is closed")
        if section in self.fail_sections:
            raise DeviceIOError(f"{self._serial_no}: simulated {section} failure")

    def _noise(self, value: float, spread: float) -> float:
        return round(value + self._rng.uniform(-spread, spread), 1)

    # -- Queries -------------------------------------------------------------

    def serial_no(self) -> str:
        self._check("serial_no")
        return self._serial_no

    def general_status(self) -> GeneralStatus:
        self._check("general_status")
        s = self.state
        pv_voltage = self._noise(310.0, 5.0) if s.pv_power_w > 0 else 0.0
        pv_current = round(s.pv_power_w / pv_voltage, 1) if pv_voltage else 0.0
        load = self._noise(s.load_power_w, 20.0)
        net_battery_w = s.pv_power_w - load
        battery_voltage = self._noise(s.battery_voltage, 0.2)
        charging = net_battery_w > 0
        return GeneralStatus(
            grid_voltage=self._noise(s.grid_voltage, 2.0),
            grid_frequency=self._noise(50.0, 0.05),
            ac_output_voltage=self._noise(230.0, 1.0),
            ac_output_frequency=self._noise(50.0, 0.05),
            ac_output_apparent_power=round(load * 1.05),
            ac_output_active_power=round(load),
            output_load_percent=round(load / 50.0),
            battery_voltage=battery_voltage,
            battery_charging_current=round(net_battery_w / battery_voltage) if charging else 0,
            battery_capacity=s.battery_capacity,
            heat_sink_temperature=self._noise(38.0, 1.0),
            pv_input_voltage_1=pv_voltage,
            pv_input_current_1=pv_current,
            battery_discharge_current=0 if charging else round(-net_battery_w / battery_voltage),
            charging_on=charging or s.ac_charging,
            scc1_charging_on=charging,
        )

    def parallel_info(self) -> ParallelInfo:
        self._check("parallel_info")
        return ParallelInfo(
            line_loss=self.state.grid_voltage < 90.0,
            load_on=self.state.load_power_w > 0,
            ac_charging=self.state.ac_charging,
        )

    def rating_info(self) -> RatingInfo:
        self._check("rating_info")
        s = self.state
        return RatingInfo(
            output_source_priority=s.output_source_priority,
            charger_source_priority=s.charger_source_priority,
            max_ac_charging_current=s.max_ac_charging_current,
            battery_recharge_voltage=s.battery_recharge_voltage,
            battery_redischarge_voltage=s.battery_redischarge_voltage,
            battery_under_voltage=s.battery_under_voltage,
            battery_float_voltage=s.battery_float_voltage,
        )

    def warning_status(self) -> WarningStatus:
        self._check("warning_status")
        return WarningStatus(active=frozenset(self.state.warnings))

    def device_mode(self) -> str:
        self._check("device_mode")
        return self.state.device_mode

    def output_mode(self) -> int:
        self._check("output_mode")
        return self.state.output_mode

    # -- Writes --------------------------------------------------------------

    def set_output_source_priority(self, code: int) -> None:
        self._check("set_output_source_priority")
        if code not in OUTPUT_SOURCE_PRIORITY.wire_to_token:
            raise DeviceIOError(f"{self._serial_no}: device rejected output priority {code!r}")
        logger.info("Simulated %s: output source priority -> %d", self._serial_no, code)
        self.state.output_source_priority = code

    def set_charger_source_priority(self, code: int) -> None:
        self._check("set_charger_source_priority")
        if code not in CHARGER_SOURCE_PRIORITY.wire_to_token:
            raise DeviceIOError(f"{self._serial_no}: device rejected charger priority {code!r}")
        logger.info("Simulated %s: charger source priority -> %d", self._serial_no, code)
        self.state.charger_source_priority = code
        # Utility may only charge when the charger priority allows it
        self.state.ac_charging = (
            code != 3 and self.state.device_mode == DEVICE_MODE.inverse("utility")
        )

    def set_battery_recharge_voltage(self, volts: float) -> None:
        self._check("set_battery_recharge_voltage")
        logger.info("Simulated %s: battery recharge voltage -> %.1f", self._serial_no, volts)
        self.state.battery_recharge_voltage = volts

    def set_battery_redischarge_voltage(self, volts: float) -> None:
        self._check("set_battery_redischarge_voltage")
        logger.info("Simulated %s: battery redischarge voltage -> %.1f", self._serial_no, volts)
        self.state.battery_redischarge_voltage = volts

    def close(self) -> None:
        self.closed = True


def open_simulated_connectors(settings: GatewaySettings) -> list[SimulatedConnector]:
    """Connector factory returning ``settings.simulated_inverters`` simulators."""
    count = settings.simulated_inverters
    logger.warning("Using %d simulated inverter(s); no hardware is polled", count)
    return [SimulatedConnector(f"9605{idx:010d}") for idx in range(1, count + 1)]
