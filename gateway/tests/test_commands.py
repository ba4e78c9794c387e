"""
Unit tests for command validation and dispatch.

Tests verify:
- Unknown command names and serial numbers are rejected before any write.
- Priority tokens are translated to wire codes and written.
- Battery voltage commands enforce whole volts, the fixed ranges and the
  cross-field ordering against the cached settings.
- Connector failures propagate as DeviceIOError.
- The settings cache is never updated optimistically.

CHANGELOG:
- 2026-03-12: Cover recharge above float and non-decimal voltage strings
- 2026-03-10: Add battery voltage command tests (STORY-014)
- 2026-03-07: Initial creation (STORY-013)

TODO:
- None
"""

from __future__ import annotations

import pytest
from gateway.src import settings_cache
from gateway.src.commands import (
    COMMANDS,
    CommandDispatcher,
    find_inverter,
    parse_whole_volts,
    validate_recharge_voltage,
    validate_redischarge_voltage,
)
from gateway.src.exceptions import (
    DeviceIOError,
    InverterNotFoundError,
    UnknownCommandError,
    ValidationError,
)
from gateway.src.models import Command, InverterSettings
from gateway.src.poller import Poller

SERIAL = "96050000000001"


def _cached(inv, **fields) -> None:
    """Seed the settings cache as a poll would have done."""
    inv.settings = InverterSettings(**fields)


@pytest.fixture()
def dispatcher(simulated) -> CommandDispatcher:
    inv, _ = simulated
    return CommandDispatcher([inv])


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class TestDispatch:
    """Command and inverter resolution."""

    def test_command_table(self) -> None:
        assert set(COMMANDS) == {
            "setOutputPriority",
            "setChargerPriority",
            "setBatteryRechargeVoltage",
            "setBatteryRedischargeVoltage",
        }

    def test_unknown_command(self, dispatcher) -> None:
        with pytest.raises(UnknownCommandError, match="unknown command: reboot"):
            dispatcher.dispatch(Command("reboot", SERIAL, "now"))

    def test_unknown_command_checked_before_serial(self, dispatcher) -> None:
        with pytest.raises(UnknownCommandError):
            dispatcher.dispatch(Command("reboot", "nope", "now"))

    def test_unknown_serial(self, dispatcher) -> None:
        with pytest.raises(InverterNotFoundError, match="nope"):
            dispatcher.dispatch(Command("setOutputPriority", "nope", "solar"))

    def test_serial_match_is_exact(self, simulated) -> None:
        inv, _ = simulated
        with pytest.raises(InverterNotFoundError):
            find_inverter([inv], SERIAL[:-1])
        with pytest.raises(InverterNotFoundError):
            find_inverter([inv], f" {SERIAL}")
        assert find_inverter([inv], SERIAL) is inv


class TestPriorityCommands:
    """setOutputPriority / setChargerPriority."""

    def test_output_priority_written(self, simulated, dispatcher) -> None:
        _, connector = simulated
        dispatcher.dispatch(Command("setOutputPriority", SERIAL, "utility"))
        assert connector.state.output_source_priority == 0

    def test_charger_priority_written(self, simulated, dispatcher) -> None:
        _, connector = simulated
        dispatcher.dispatch(Command("setChargerPriority", SERIAL, "solaronly"))
        assert connector.state.charger_source_priority == 3

    @pytest.mark.parametrize("value", ["Solar", "grid", "", "1"])
    def test_invalid_token_writes_nothing(self, simulated, dispatcher, value: str) -> None:
        _, connector = simulated
        with pytest.raises(ValidationError):
            dispatcher.dispatch(Command("setOutputPriority", SERIAL, value))
        assert connector.state.output_source_priority == 2

    def test_device_failure_propagates(self, simulated, dispatcher) -> None:
        _, connector = simulated
        connector.fail_sections.add("set_charger_source_priority")
        with pytest.raises(DeviceIOError):
            dispatcher.dispatch(Command("setChargerPriority", SERIAL, "utilityfirst"))

    def test_cache_not_updated_optimistically(self, simulated, dispatcher, metrics) -> None:
        inv, _ = simulated
        poller = Poller([inv], metrics)
        poller.run_cycle()

        dispatcher.dispatch(Command("setOutputPriority", SERIAL, "solar"))
        assert settings_cache.read(inv).output_source_priority == "sbu"

        poller.run_cycle()
        assert settings_cache.read(inv).output_source_priority == "solar"


# ---------------------------------------------------------------------------
# Battery voltages
# ---------------------------------------------------------------------------


class TestParseWholeVolts:
    """Voltage values must be whole numbers."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("45", 45), ("45.0", 45), (" 50 ", 50), ("+46", 46), ("48.00", 48)],
    )
    def test_accepted(self, value: str, expected: int) -> None:
        assert parse_whole_volts(value) == expected

    @pytest.mark.parametrize(
        "value",
        ["50.5", "abc", "", "nan", "inf", "4_5", "4.5e1", "0x2d", "45.", "\u0664\u0665"],
    )
    def test_rejected(self, value: str) -> None:
        with pytest.raises(ValidationError):
            parse_whole_volts(value)


class TestRechargeVoltage:
    """Recharge voltage rules against cached recharge=44, redischarge=48,
    float=50 and cutoff=44."""

    @pytest.fixture()
    def cached(self) -> InverterSettings:
        return InverterSettings(
            battery_recharge_voltage=44.0,
            battery_redischarge_voltage=48.0,
            battery_float_voltage=50.0,
            battery_cutoff_voltage=44.0,
        )

    def test_within_bounds(self, cached) -> None:
        validate_recharge_voltage(45, cached, SERIAL)

    @pytest.mark.parametrize("volts", [43, 52])
    def test_outside_range(self, cached, volts: int) -> None:
        with pytest.raises(ValidationError, match="outside allowed range"):
            validate_recharge_voltage(volts, cached, SERIAL)

    def test_above_redischarge(self, cached) -> None:
        with pytest.raises(ValidationError, match="must not exceed redischarge"):
            validate_recharge_voltage(49, cached, SERIAL)

    def test_above_float(self, cached) -> None:
        cached.battery_redischarge_voltage = 54.0
        with pytest.raises(ValidationError, match="must not exceed float"):
            validate_recharge_voltage(51, cached, SERIAL)

    def test_missing_float_voltage(self, cached) -> None:
        cached.battery_float_voltage = None
        with pytest.raises(ValidationError, match="float voltage not yet available"):
            validate_recharge_voltage(45, cached, SERIAL)

    def test_below_cutoff(self, cached) -> None:
        cached.battery_cutoff_voltage = 46.0
        with pytest.raises(ValidationError, match="below cutoff"):
            validate_recharge_voltage(45, cached, SERIAL)

    def test_missing_cached_values(self) -> None:
        with pytest.raises(ValidationError, match="not yet available"):
            validate_recharge_voltage(45, None, SERIAL)
        with pytest.raises(ValidationError, match="redischarge voltage not yet available"):
            validate_recharge_voltage(45, InverterSettings(battery_cutoff_voltage=42.0), SERIAL)

    def test_dispatch_writes_whole_volts(self, simulated, dispatcher) -> None:
        inv, connector = simulated
        _cached(
            inv,
            battery_redischarge_voltage=48.0,
            battery_float_voltage=50.0,
            battery_cutoff_voltage=44.0,
        )
        dispatcher.dispatch(Command("setBatteryRechargeVoltage", SERIAL, "45"))
        assert connector.state.battery_recharge_voltage == 45.0

    @pytest.mark.parametrize("value", ["43", "50.5", "52"])
    def test_dispatch_rejects_without_write(self, simulated, dispatcher, value: str) -> None:
        inv, connector = simulated
        _cached(
            inv,
            battery_recharge_voltage=44.0,
            battery_redischarge_voltage=48.0,
            battery_float_voltage=50.0,
            battery_cutoff_voltage=44.0,
        )
        with pytest.raises(ValidationError):
            dispatcher.dispatch(Command("setBatteryRechargeVoltage", SERIAL, value))
        assert connector.state.battery_recharge_voltage == 46.0

    def test_dispatch_above_float_writes_nothing(self, simulated, dispatcher) -> None:
        inv, connector = simulated
        _cached(
            inv,
            battery_redischarge_voltage=54.0,
            battery_float_voltage=50.0,
            battery_cutoff_voltage=44.0,
        )
        with pytest.raises(ValidationError):
            dispatcher.dispatch(Command("setBatteryRechargeVoltage", SERIAL, "51"))
        assert connector.state.battery_recharge_voltage == 46.0

    def test_dispatch_before_first_poll(self, simulated, dispatcher) -> None:
        _, connector = simulated
        with pytest.raises(ValidationError):
            dispatcher.dispatch(Command("setBatteryRechargeVoltage", SERIAL, "45"))
        assert connector.state.battery_recharge_voltage == 46.0


class TestRedischargeVoltage:
    """Redischarge voltage rules."""

    @pytest.fixture()
    def cached(self) -> InverterSettings:
        return InverterSettings(
            battery_recharge_voltage=46.0,
            battery_redischarge_voltage=54.0,
            battery_float_voltage=54.0,
            battery_cutoff_voltage=42.0,
        )

    @pytest.mark.parametrize("volts", [48, 50, 54])
    def test_within_bounds(self, cached, volts: int) -> None:
        validate_redischarge_voltage(volts, cached, SERIAL)

    @pytest.mark.parametrize("volts", [47, 59])
    def test_outside_range(self, cached, volts: int) -> None:
        with pytest.raises(ValidationError, match="outside allowed range"):
            validate_redischarge_voltage(volts, cached, SERIAL)

    def test_below_recharge(self, cached) -> None:
        cached.battery_recharge_voltage = 50.0
        with pytest.raises(ValidationError, match="below recharge"):
            validate_redischarge_voltage(49, cached, SERIAL)

    def test_above_float(self, cached) -> None:
        with pytest.raises(ValidationError, match="exceed float"):
            validate_redischarge_voltage(55, cached, SERIAL)

    def test_below_cutoff(self, cached) -> None:
        cached.battery_recharge_voltage = 44.0
        cached.battery_cutoff_voltage = 49.0
        with pytest.raises(ValidationError, match="below cutoff"):
            validate_redischarge_voltage(48, cached, SERIAL)

    def test_missing_float_voltage(self, cached) -> None:
        cached.battery_float_voltage = None
        with pytest.raises(ValidationError, match="float voltage not yet available"):
            validate_redischarge_voltage(50, cached, SERIAL)

    def test_dispatch_after_poll(self, simulated, dispatcher, metrics) -> None:
        inv, connector = simulated
        Poller([inv], metrics).run_cycle()

        dispatcher.dispatch(Command("setBatteryRedischargeVoltage", SERIAL, "52"))
        assert connector.state.battery_redischarge_voltage == 52.0

    def test_device_failure_propagates(self, simulated, dispatcher, metrics) -> None:
        inv, connector = simulated
        Poller([inv], metrics).run_cycle()
        connector.fail_sections.add("set_battery_redischarge_voltage")

        with pytest.raises(DeviceIOError):
            dispatcher.dispatch(Command("setBatteryRedischargeVoltage", SERIAL, "52"))
