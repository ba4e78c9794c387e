"""
Command validation and dispatch for the control API.

A static table maps command names to handlers.  Every handler:

1. resolves the target inverter by exact serial number match,
2. validates the requested value (inverse enum mapping, or the battery
   voltage safety rules against the cached settings),
3. writes the validated value through the connector.

Validation and the write run under a single acquisition of the inverter
lock, so a poll cannot slip in between them.  Connector failures
(:class:`DeviceIOError`) propagate unchanged.  The settings cache is not
updated optimistically; the next poll picks up the new value.

Battery voltage safety rules (fixed policy):

- The candidate voltage must be a whole number of volts.
- Recharge voltage must lie in [44, 51] V.  Redischarge voltage must lie
  in [48, 58] V.
- The cached values must keep ``recharge <= redischarge <= float``.
- Both recharge and redischarge must be ``>= cutoff``.

CHANGELOG:
- 2026-03-12: Check recharge voltage against float voltage; strict whole-volt parsing
- 2026-03-10: Add battery recharge/redischarge voltage commands (STORY-014)
- 2026-03-07: Initial creation with output/charger priority commands (STORY-013)

TODO:
- None
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from gateway.src import settings_cache
from gateway.src.exceptions import (
    InverterNotFoundError,
    UnknownCommandError,
    ValidationError,
)
from gateway.src.mappings import charger_priority_to_wire, output_priority_to_wire
from gateway.src.models import Command, Inverter, InverterSettings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Voltage policy
# ---------------------------------------------------------------------------

_WHOLE_VOLTS = re.compile(r"[+-]?[0-9]+(?:\.0+)?")

RECHARGE_VOLTAGE_RANGE: tuple[int, int] = (44, 51)
"""Inclusive bounds (V) for the battery recharge voltage."""

REDISCHARGE_VOLTAGE_RANGE: tuple[int, int] = (48, 58)
"""Inclusive bounds (V) for the battery redischarge voltage."""


def parse_whole_volts(value: str) -> int:
    """Parse a command value as a whole number of volts.

    Raises:
        ValidationError: If *value* is not numeric or not a whole number.
    """
    text = value.strip()
    if _WHOLE_VOLTS.fullmatch(text) is None:
        raise ValidationError(f"voltage must be a whole number, got {value!r}")
    return int(float(text))


def _check_range(name: str, volts: int, bounds: tuple[int, int]) -> None:
    lo, hi = bounds
    if not lo <= volts <= hi:
        raise ValidationError(f"{name} voltage {volts}V outside allowed range [{lo}, {hi}]V")


def _require(settings: InverterSettings | None, field: str, serial_no: str) -> float:
    value = getattr(settings, field, None) if settings is not None else None
    if value is None:
        raise ValidationError(
            f"current {field.replace('_', ' ')} not yet available for inverter "
            f"{serial_no} - please wait for the next poll cycle"
        )
    return value


def validate_recharge_voltage(
    volts: int, settings: InverterSettings | None, serial_no: str
) -> None:
    """Apply the recharge voltage range and cross-field rules.

    Raises:
        ValidationError: Naming the first violated constraint.
    """
    _check_range("recharge", volts, RECHARGE_VOLTAGE_RANGE)
    redischarge = _require(settings, "battery_redischarge_voltage", serial_no)
    float_voltage = _require(settings, "battery_float_voltage", serial_no)
    cutoff = _require(settings, "battery_cutoff_voltage", serial_no)
    if volts > redischarge:
        raise ValidationError(
            f"recharge voltage {volts}V must not exceed redischarge voltage {redischarge:g}V"
        )
    if volts > float_voltage:
        raise ValidationError(
            f"recharge voltage {volts}V must not exceed float voltage {float_voltage:g}V"
        )
    if volts < cutoff:
        raise ValidationError(
            f"recharge voltage {volts}V must not be below cutoff voltage {cutoff:g}V"
        )


def validate_redischarge_voltage(
    volts: int, settings: InverterSettings | None, serial_no: str
) -> None:
    """Apply the redischarge voltage range and cross-field rules.

    Raises:
        ValidationError: Naming the first violated constraint.
    """
    _check_range("redischarge", volts, REDISCHARGE_VOLTAGE_RANGE)
    recharge = _require(settings, "battery_recharge_voltage", serial_no)
    float_voltage = _require(settings, "battery_float_voltage", serial_no)
    cutoff = _require(settings, "battery_cutoff_voltage", serial_no)
    if volts < recharge:
        raise ValidationError(
            f"redischarge voltage {volts}V must not be below recharge voltage {recharge:g}V"
        )
    if volts > float_voltage:
        raise ValidationError(
            f"redischarge voltage {volts}V must not exceed float voltage {float_voltage:g}V"
        )
    if volts < cutoff:
        raise ValidationError(
            f"redischarge voltage {volts}V must not be below cutoff voltage {cutoff:g}V"
        )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def set_output_priority(inv: Inverter, value: str) -> None:
    code = output_priority_to_wire(value)
    with inv.lock:
        inv.connector.set_output_source_priority(code)


def set_charger_priority(inv: Inverter, value: str) -> None:
    code = charger_priority_to_wire(value)
    with inv.lock:
        inv.connector.set_charger_source_priority(code)


def set_battery_recharge_voltage(inv: Inverter, value: str) -> None:
    volts = parse_whole_volts(value)
    with inv.lock:
        validate_recharge_voltage(volts, settings_cache.read(inv), inv.serial_no)
        inv.connector.set_battery_recharge_voltage(float(volts))


def set_battery_redischarge_voltage(inv: Inverter, value: str) -> None:
    volts = parse_whole_volts(value)
    with inv.lock:
        validate_redischarge_voltage(volts, settings_cache.read(inv), inv.serial_no)
        inv.connector.set_battery_redischarge_voltage(float(volts))


CommandHandler = Callable[[Inverter, str], None]


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """One entry of the command table.

    Attributes:
        name: Command name as used in ``/api/command/{name}``.
        handler: Validates the value and writes it to the inverter.
        description: Human-readable summary, used in logs.
    """

    name: str
    handler: CommandHandler
    description: str


COMMANDS: Mapping[str, CommandSpec] = {
    spec.name: spec
    for spec in (
        CommandSpec("setOutputPriority", set_output_priority, "output source priority"),
        CommandSpec("setChargerPriority", set_charger_priority, "charger source priority"),
        CommandSpec(
            "setBatteryRechargeVoltage",
            set_battery_recharge_voltage,
            "battery recharge voltage",
        ),
        CommandSpec(
            "setBatteryRedischargeVoltage",
            set_battery_redischarge_voltage,
            "battery redischarge voltage",
        ),
    )
}
"""Static command name -> handler table."""


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


def find_inverter(inverters: Sequence[Inverter], serial_no: str) -> Inverter:
    """Return the inverter whose serial number equals *serial_no* exactly.

    Raises:
        InverterNotFoundError: If no inverter matches.
    """
    for inv in inverters:
        if inv.serial_no == serial_no:
            return inv
    raise InverterNotFoundError(serial_no)


class CommandDispatcher:
    """Resolves command names and target inverters, then runs the handler.

    Args:
        inverters: Known inverters.
        commands: Command table; defaults to :data:`COMMANDS`.
    """

    def __init__(
        self,
        inverters: Sequence[Inverter],
        commands: Mapping[str, CommandSpec] = COMMANDS,
    ) -> None:
        self._inverters = tuple(inverters)
        self._commands = commands

    def dispatch(self, command: Command) -> None:
        """Validate and execute *command*.

        Raises:
            UnknownCommandError: If the command name is not in the table.
            InverterNotFoundError: If the serial number is unknown.
            ValidationError: If the value is rejected; nothing is written.
            DeviceIOError: If the connector write fails.
        """
        spec = self._commands.get(command.name)
        if spec is None:
            raise UnknownCommandError(command.name)

        inv = find_inverter(self._inverters, command.serial_no)
        logger.info(
            "Setting %s to: %s for inverter: %s",
            spec.description,
            command.value,
            inv.serial_no,
        )
        spec.handler(inv, command.value)
