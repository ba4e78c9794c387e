"""
Unit tests for the fixed-rate telemetry poller.

Tests verify:
- A clean cycle exports every gauge, fills the settings cache and clears
  axpert_scrape_error.
- A failed section is skipped; the remaining sections still run and only
  their fields reach the cache.
- A field that fails to map leaves the other fields of its section intact.
- One failing inverter does not stop the others from being polled.
- Fixed-rate scheduling: overrunning cycles start the next one at once.
- The background thread starts and stops cleanly.

CHANGELOG:
- 2026-03-12: Cover restart after a stop that timed out
- 2026-03-09: Add per-field mapping failure tests (STORY-012)
- 2026-03-05: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

import logging
import threading
import time

import pytest
from gateway.src import settings_cache
from gateway.src.models import Inverter
from gateway.src.poller import Poller, seconds_until_next_cycle
from gateway.src.simulator import SimulatedConnector, SimulatedState

SERIAL_1 = "96050000000001"
SERIAL_2 = "96050000000002"


def _sample(metrics, name: str, serial_no: str | None = SERIAL_1) -> float | None:
    labels = {"serialno": serial_no} if serial_no is not None else None
    return metrics.registry.get_sample_value(f"axpert_{name}", labels)


# ---------------------------------------------------------------------------
# Single cycle
# ---------------------------------------------------------------------------


class TestCleanCycle:
    """A cycle where every section succeeds."""

    def test_settings_cache_populated(self, simulated, metrics) -> None:
        inv, _ = simulated
        Poller([inv], metrics).run_cycle()

        settings = settings_cache.read(inv)
        assert settings.output_source_priority == "sbu"
        assert settings.charger_source_priority == "solarfirst"
        assert settings.device_mode == "battery"
        assert settings.charge_source == "solar"
        assert settings.battery_recharge_voltage == 46.0
        assert settings.battery_redischarge_voltage == 54.0
        assert settings.battery_cutoff_voltage == 42.0
        assert settings.battery_float_voltage == 54.0

    def test_gauges_exported(self, simulated, metrics) -> None:
        inv, _ = simulated
        assert Poller([inv], metrics).run_cycle() is False

        assert _sample(metrics, "scrape_error", None) == 0.0
        assert _sample(metrics, "output_sourcepriority") == 2.0
        assert _sample(metrics, "charger_sourcepriority") == 1.0
        assert _sample(metrics, "battery_cutoff_voltage") == 42.0
        assert _sample(metrics, "charger_maxcurrent") == 30.0
        assert _sample(metrics, "devicemode") == 3.0
        assert _sample(metrics, "outputmode") == 0.0
        assert _sample(metrics, "overload") == 0.0
        assert _sample(metrics, "acchargeon") == 0.0
        assert _sample(metrics, "battery_capacity_percent") == 78.0
        assert _sample(metrics, "grid_voltage") == pytest.approx(230.0, abs=2.1)

    def test_overload_warning(self, make_inverter, metrics) -> None:
        inv, _ = make_inverter(state=SimulatedState(warnings={"overload"}))
        Poller([inv], metrics).run_cycle()
        assert _sample(metrics, "overload") == 1.0

    def test_scrape_error_cleared_by_next_clean_cycle(self, simulated, metrics) -> None:
        inv, connector = simulated
        poller = Poller([inv], metrics)

        connector.fail_sections.add("general_status")
        assert poller.run_cycle() is True
        assert _sample(metrics, "scrape_error", None) == 1.0

        connector.fail_sections.clear()
        assert poller.run_cycle() is False
        assert _sample(metrics, "scrape_error", None) == 0.0


class TestSectionFailure:
    """A failed section is skipped and the others still run."""

    def test_rating_failure_keeps_other_fields(self, simulated, metrics) -> None:
        inv, connector = simulated
        connector.fail_sections.add("rating_info")

        assert Poller([inv], metrics).run_cycle() is True

        settings = settings_cache.read(inv)
        assert settings.device_mode == "battery"
        assert settings.charge_source == "solar"
        assert settings.output_source_priority is None
        assert settings.battery_recharge_voltage is None
        assert _sample(metrics, "output_sourcepriority") is None
        # Sections after the failed one still ran
        assert _sample(metrics, "outputmode") == 0.0
        assert _sample(metrics, "scrape_error", None) == 1.0

    def test_failure_logged_with_section_name(
        self, simulated, metrics, caplog: pytest.LogCaptureFixture
    ) -> None:
        inv, connector = simulated
        connector.fail_sections.add("warning_status")

        with caplog.at_level(logging.ERROR):
            Poller([inv], metrics).run_cycle()

        assert "Failed to retrieve warning status" in caplog.text
        assert SERIAL_1 in caplog.text

    def test_previous_values_kept_on_failure(self, simulated, metrics) -> None:
        inv, connector = simulated
        poller = Poller([inv], metrics)
        poller.run_cycle()

        connector.state.battery_float_voltage = 56.0
        connector.fail_sections.add("rating_info")
        poller.run_cycle()

        assert settings_cache.read(inv).battery_float_voltage == 54.0

    def test_unexpected_error_does_not_abort_cycle(
        self, metrics, caplog: pytest.LogCaptureFixture
    ) -> None:
        class _Buggy(SimulatedConnector):
            def parallel_info(self):
                raise RuntimeError("boom")

        inv = Inverter(_Buggy(SERIAL_1), SERIAL_1)
        with caplog.at_level(logging.ERROR):
            assert Poller([inv], metrics).run_cycle() is True

        assert "Unexpected error retrieving parallel device info" in caplog.text
        assert settings_cache.read(inv).device_mode == "battery"

    def test_other_inverters_still_polled(self, make_inverter, metrics) -> None:
        inv1, conn1 = make_inverter(SERIAL_1)
        inv2, _ = make_inverter(SERIAL_2)
        conn1.fail_sections.update({"general_status", "rating_info"})

        assert Poller([inv1, inv2], metrics).run_cycle() is True

        assert settings_cache.read(inv2).battery_float_voltage == 54.0
        assert _sample(metrics, "battery_voltage", SERIAL_2) is not None
        assert _sample(metrics, "battery_voltage", SERIAL_1) is None


class TestMappingFailure:
    """Unrecognised wire codes fail only their own field."""

    def test_unknown_priority_keeps_other_rating_fields(self, make_inverter, metrics) -> None:
        inv, _ = make_inverter(state=SimulatedState(output_source_priority=7))

        assert Poller([inv], metrics).run_cycle() is True

        settings = settings_cache.read(inv)
        assert settings.output_source_priority is None
        assert settings.charger_source_priority == "solarfirst"
        assert settings.battery_recharge_voltage == 46.0
        # The raw gauge is still exported
        assert _sample(metrics, "output_sourcepriority") == 7.0

    def test_unknown_priority_keeps_previous_cached_value(self, simulated, metrics) -> None:
        inv, connector = simulated
        poller = Poller([inv], metrics)
        poller.run_cycle()

        connector.state.charger_source_priority = 9
        poller.run_cycle()

        assert settings_cache.read(inv).charger_source_priority == "solarfirst"

    def test_unknown_device_mode(self, make_inverter, metrics) -> None:
        inv, _ = make_inverter(state=SimulatedState(device_mode="X"))

        assert Poller([inv], metrics).run_cycle() is True

        assert settings_cache.read(inv).device_mode is None
        assert _sample(metrics, "devicemode") is None
        assert _sample(metrics, "outputmode") == 0.0


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


class TestSecondsUntilNextCycle:
    """Fixed-rate delay calculation."""

    def test_waits_remainder_of_interval(self) -> None:
        assert seconds_until_next_cycle(100.0, 104.0, 30.0) == 26.0

    def test_exact_interval_boundary(self) -> None:
        assert seconds_until_next_cycle(100.0, 130.0, 30.0) == 0.0

    def test_overrun_starts_immediately(self) -> None:
        assert seconds_until_next_cycle(100.0, 145.0, 30.0) == 0.0


class _FakeStopEvent:
    """Stop event that ends the loop after a fixed number of cycles."""

    def __init__(self) -> None:
        self.remaining = 0
        self.waits: list[float] = []

    def is_set(self) -> bool:
        return self.remaining <= 0

    def wait(self, timeout: float) -> bool:
        self.waits.append(timeout)
        return False


class TestRunLoop:
    """run() schedules cycles at a fixed rate."""

    def test_fixed_rate_with_overrun(self, simulated, metrics, monkeypatch) -> None:
        inv, _ = simulated
        # (start, end) per cycle: 5s, 40s overrun, 1s
        ticks = iter([0.0, 5.0, 30.0, 70.0, 70.0, 71.0])
        poller = Poller([inv], metrics, interval_s=30.0, clock=lambda: next(ticks))

        stop = _FakeStopEvent()
        stop.remaining = 3
        poller._stop_event = stop

        def _cycle() -> bool:
            stop.remaining -= 1
            return False

        monkeypatch.setattr(poller, "run_cycle", _cycle)
        poller.run()

        assert stop.waits == [25.0, 29.0]

    def test_cycle_exception_sets_scrape_error(self, simulated, metrics, monkeypatch) -> None:
        inv, _ = simulated
        poller = Poller([inv], metrics, interval_s=30.0, clock=lambda: 0.0)
        stop = _FakeStopEvent()
        stop.remaining = 1
        poller._stop_event = stop

        def _cycle() -> bool:
            stop.remaining -= 1
            raise RuntimeError("registry exploded")

        monkeypatch.setattr(poller, "run_cycle", _cycle)
        poller.run()

        assert _sample(metrics, "scrape_error", None) == 1.0

    def test_rejects_non_positive_interval(self, simulated, metrics) -> None:
        inv, _ = simulated
        with pytest.raises(ValueError):
            Poller([inv], metrics, interval_s=0)


class TestThread:
    """start()/stop() manage the background poll thread."""

    def test_start_polls_and_stop_interrupts_wait(self, simulated, metrics) -> None:
        inv, _ = simulated
        poller = Poller([inv], metrics, interval_s=3600.0)

        poller.start()
        try:
            deadline = time.monotonic() + 5.0
            while settings_cache.read(inv) is None and time.monotonic() < deadline:
                time.sleep(0.01)
            assert settings_cache.read(inv) is not None
            with pytest.raises(RuntimeError, match="already running"):
                poller.start()
        finally:
            started = time.monotonic()
            poller.stop(timeout=5.0)

        assert time.monotonic() - started < 5.0
        assert not any(t.name == "axpert-poller" for t in threading.enumerate())

    def test_stop_timeout_keeps_thread_and_blocks_restart(self, metrics) -> None:
        class _Stuck(SimulatedConnector):
            def __init__(self, serial_no: str) -> None:
                super().__init__(serial_no)
                self.entered = threading.Event()
                self.release = threading.Event()

            def general_status(self):
                self.entered.set()
                assert self.release.wait(5.0)
                return super().general_status()

        connector = _Stuck(SERIAL_1)
        poller = Poller([Inverter(connector, SERIAL_1)], metrics, interval_s=3600.0)
        poller.start()
        try:
            assert connector.entered.wait(5.0)
            poller.stop(timeout=0.05)

            with pytest.raises(RuntimeError, match="already running"):
                poller.start()
        finally:
            connector.release.set()
            poller.stop(timeout=5.0)

        assert poller._thread is None
