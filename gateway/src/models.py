"""
Domain models for the Axpert gateway.

- :class:`InverterSettings`: last-known-good configuration of one inverter,
  every field independently optional until first observed.
- :class:`Inverter`: one physical device, its exclusively owned connector,
  its serial number, its cached settings and the lock guarding both.
- :class:`Command`: a transient control request.

CHANGELOG:
- 2026-03-05: Add battery voltage thresholds and charge source (STORY-006)
- 2026-03-03: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from gateway.src.mappings import (
    ChargerSourcePriority,
    ChargeSource,
    DeviceMode,
    OutputSourcePriority,
)

if TYPE_CHECKING:
    from gateway.src.connector import Connector


class SettingsField(StrEnum):
    """Names of the individually updatable :class:`InverterSettings` fields."""

    OUTPUT_SOURCE_PRIORITY = "output_source_priority"
    CHARGER_SOURCE_PRIORITY = "charger_source_priority"
    DEVICE_MODE = "device_mode"
    CHARGE_SOURCE = "charge_source"
    BATTERY_RECHARGE_VOLTAGE = "battery_recharge_voltage"
    BATTERY_REDISCHARGE_VOLTAGE = "battery_redischarge_voltage"
    BATTERY_CUTOFF_VOLTAGE = "battery_cutoff_voltage"
    BATTERY_FLOAT_VOLTAGE = "battery_float_voltage"


class InverterSettings(BaseModel):
    """Domain view of an inverter's current configuration.

    Fields are populated independently as their telemetry sections succeed;
    a missing field never implies anything about the others.  Serialised
    with camelCase keys for the HTTP API.

    Attributes:
        output_source_priority: Output source priority token.
        charger_source_priority: Charger source priority token.
        device_mode: Current device mode token.
        charge_source: Whether the utility or solar is charging the battery.
        battery_recharge_voltage: Voltage (V) at which charging resumes.
        battery_redischarge_voltage: Voltage (V) at which discharging resumes.
        battery_cutoff_voltage: Battery under/cut-off voltage (V).
        battery_float_voltage: Battery float voltage (V).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    output_source_priority: OutputSourcePriority | None = None
    charger_source_priority: ChargerSourcePriority | None = None
    device_mode: DeviceMode | None = None
    charge_source: ChargeSource | None = None
    battery_recharge_voltage: float | None = None
    battery_redischarge_voltage: float | None = None
    battery_cutoff_voltage: float | None = None
    battery_float_voltage: float | None = None


class Inverter:
    """One physical inverter reached through an exclusively owned connector.

    The single re-entrant lock guards both use of the connector and the
    cached :class:`InverterSettings`.  The poller holds it for a whole
    multi-section poll, so API reads and commands against the same device
    wait for that poll to finish.  The serial number is set once at
    discovery and cannot be reassigned.

    Args:
        connector: Pre-opened connector, owned by this inverter only.
        serial_no: Stable unique serial number read at discovery.
    """

    def __init__(self, connector: Connector, serial_no: str) -> None:
        self.connector = connector
        self._serial_no = serial_no
        self.settings: InverterSettings | None = None
        self.lock = threading.RLock()

    @property
    def serial_no(self) -> str:
        return self._serial_no

    def __repr__(self) -> str:
        return f"Inverter(serial_no={self._serial_no!r})"


@dataclass(frozen=True, slots=True)
class Command:
    """A control request, alive only for the duration of its dispatch.

    Attributes:
        name: Command name, e.g. ``"setOutputPriority"``.
        serial_no: Serial number of the target inverter.
        value: Requested value, always passed as a string.
    """

    name: str
    serial_no: str
    value: str
