"""
Fixed-rate telemetry poller for Axpert inverters.

Once per interval the poller visits every inverter in discovery order.
For each one it takes the inverter lock, then reads six independent
sections in a fixed order:

1. general status
2. parallel/source status
3. rating info
4. warning status
5. device mode
6. output mode

It pushes the readings into the Prometheus gauges and the settings fields
into the settings cache.  The lock is held for the whole multi-section
exchange because connectors are not re-entrant.  API readers and commands
for that inverter wait until the poll is done.

Failure handling:

- A failed section is logged, flagged, and skipped.  There is no retry
  and no early return; the next section is still attempted.
- A field that fails to map is logged and flagged.  The other fields of
  the same section are still applied.
- After every inverter is done, ``axpert_scrape_error`` is set to 1 if
  anything failed during the cycle and 0 otherwise.

Scheduling is fixed-rate.  Each cycle starts one interval after the
previous cycle started.  When a cycle overruns the interval, the next one
starts immediately.

CHANGELOG:
- 2026-03-12: Keep a thread that outlives stop() so start() cannot double it
- 2026-03-09: Keep applying remaining fields when one field fails to map (STORY-012)
- 2026-03-06: Add device mode and output mode sections (STORY-011)
- 2026-03-05: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING

from gateway.src import settings_cache
from gateway.src.exceptions import DeviceIOError, MappingError, ValidationError
from gateway.src.mappings import DEVICE_MODE_INDEX, device_mode_from_wire
from gateway.src.metrics import bool_to_float
from gateway.src.models import SettingsField

if TYPE_CHECKING:
    from gateway.src.metrics import GatewayMetrics
    from gateway.src.models import Inverter

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_INTERVAL_S: float = 30.0
"""Default seconds between the starts of two poll cycles."""

STOP_JOIN_TIMEOUT_S: float = 10.0
"""How long :meth:`Poller.stop` waits for the poll thread to exit."""


def seconds_until_next_cycle(started_at: float, now: float, interval_s: float) -> float:
    """Return how long to wait before the next fixed-rate cycle.

    Args:
        started_at: Monotonic time the previous cycle started.
        now: Current monotonic time.
        interval_s: Poll interval in seconds.

    Returns:
        Remaining time until ``started_at + interval_s``, or ``0.0`` when
        the previous cycle overran the interval.
    """
    return max(0.0, started_at + interval_s - now)


# ---------------------------------------------------------------------------
# Poller
# ---------------------------------------------------------------------------


class Poller:
    """Periodic poller feeding the metrics registry and the settings cache.

    Args:
        inverters: Known inverters, polled in this order every cycle.
        metrics: Gauges written by the poller.
        interval_s: Seconds between the starts of two cycles.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        inverters: Sequence[Inverter],
        metrics: GatewayMetrics,
        *,
        interval_s: float = DEFAULT_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self._inverters = tuple(inverters)
        self._metrics = metrics
        self._interval_s = interval_s
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._sections: tuple[tuple[str, Callable[[Inverter, str], bool]], ...] = (
            ("device general status", self._poll_general_status),
            ("parallel device info", self._poll_parallel_info),
            ("rating info", self._poll_rating_info),
            ("warning status", self._poll_warning_status),
            ("device mode", self._poll_device_mode),
            ("device output mode", self._poll_output_mode),
        )

    @property
    def interval_s(self) -> float:
        return self._interval_s

    # -- Cycle ---------------------------------------------------------------

    def run_cycle(self) -> bool:
        """Poll every inverter once and update the scrape error gauge.

        Returns:
            True if any section or field failed for any inverter.
        """
        scrape_error = False
        for inv in self._inverters:
            if self.poll_inverter(inv):
                scrape_error = True

        self._metrics.scrape_error.set(bool_to_float(scrape_error))
        return scrape_error

    def poll_inverter(self, inv: Inverter) -> bool:
        """Read every section of one inverter while holding its lock.

        Returns:
            True if at least one section or field failed.
        """
        failed = False
        logger.info("Starting metrics retrieval from device with serialno '%s'", inv.serial_no)

        with inv.lock:
            for section_name, section in self._sections:
                try:
                    if not section(inv, inv.serial_no):
                        failed = True
                except (DeviceIOError, MappingError) as exc:
                    failed = True
                    logger.error(
                        "Failed to retrieve %s from device with serialno '%s': %s",
                        section_name,
                        inv.serial_no,
                        exc,
                    )
                except Exception:
                    failed = True
                    logger.error(
                        "Unexpected error retrieving %s from device with serialno '%s'",
                        section_name,
                        inv.serial_no,
                        exc_info=True,
                    )

        logger.info("Finished metrics retrieval from device with serialno '%s'", inv.serial_no)
        return failed

    # -- Sections ------------------------------------------------------------
    # Each returns False when a settings field could not be applied.  Section
    # level failures propagate as DeviceIOError / MappingError.

    def _poll_general_status(self, inv: Inverter, serial_no: str) -> bool:
        status = inv.connector.general_status()
        logger.debug("device general status: %r", status)

        m = self._metrics
        m.grid_frequency.labels(serial_no).set(status.grid_frequency)
        m.grid_voltage.labels(serial_no).set(status.grid_voltage)
        m.pv_input_voltage_1.labels(serial_no).set(status.pv_input_voltage_1)
        m.pv_input_voltage_2.labels(serial_no).set(status.pv_input_voltage_2)
        m.pv_input_voltage_3.labels(serial_no).set(status.pv_input_voltage_3)
        m.pv_input_current_1.labels(serial_no).set(status.pv_input_current_1)
        m.pv_input_current_2.labels(serial_no).set(status.pv_input_current_2)
        m.pv_input_current_3.labels(serial_no).set(status.pv_input_current_3)
        m.ac_output_voltage.labels(serial_no).set(status.ac_output_voltage)
        m.ac_output_frequency.labels(serial_no).set(status.ac_output_frequency)
        m.ac_output_apparent_power.labels(serial_no).set(status.ac_output_apparent_power)
        m.ac_output_active_power.labels(serial_no).set(status.ac_output_active_power)
        m.output_load_percent.labels(serial_no).set(status.output_load_percent)
        m.heat_sink_temperature.labels(serial_no).set(status.heat_sink_temperature)
        m.battery_voltage.labels(serial_no).set(status.battery_voltage)
        m.battery_capacity.labels(serial_no).set(status.battery_capacity)
        m.battery_charge_current.labels(serial_no).set(status.battery_charging_current)
        m.battery_discharge_current.labels(serial_no).set(status.battery_discharge_current)
        m.charge_on.labels(serial_no).set(bool_to_float(status.charging_on))
        m.scc_charge_on_1.labels(serial_no).set(bool_to_float(status.scc1_charging_on))
        m.scc_charge_on_2.labels(serial_no).set(bool_to_float(status.scc2_charging_on))
        m.scc_charge_on_3.labels(serial_no).set(bool_to_float(status.scc3_charging_on))
        return True

    def _poll_parallel_info(self, inv: Inverter, serial_no: str) -> bool:
        info = inv.connector.parallel_info()
        logger.debug("parallel device information: %r", info)

        m = self._metrics
        m.load_on.labels(serial_no).set(bool_to_float(info.load_on))
        m.line_loss.labels(serial_no).set(bool_to_float(info.line_loss))
        m.ac_charge_on.labels(serial_no).set(bool_to_float(info.ac_charging))

        return _apply_fields(inv, [(SettingsField.CHARGE_SOURCE, info.ac_charging)])

    def _poll_rating_info(self, inv: Inverter, serial_no: str) -> bool:
        rating = inv.connector.rating_info()
        logger.debug("rating information: %r", rating)

        m = self._metrics
        m.output_source_priority.labels(serial_no).set(rating.output_source_priority)
        m.charger_source_priority.labels(serial_no).set(rating.charger_source_priority)
        m.max_ac_charging_current.labels(serial_no).set(rating.max_ac_charging_current)
        m.battery_recharge_voltage.labels(serial_no).set(rating.battery_recharge_voltage)
        m.battery_redischarge_voltage.labels(serial_no).set(
            rating.battery_redischarge_voltage
        )
        m.battery_cutoff_voltage.labels(serial_no).set(rating.battery_under_voltage)
        m.battery_float_voltage.labels(serial_no).set(rating.battery_float_voltage)

        return _apply_fields(
            inv,
            [
                (SettingsField.OUTPUT_SOURCE_PRIORITY, rating.output_source_priority),
                (SettingsField.CHARGER_SOURCE_PRIORITY, rating.charger_source_priority),
                (SettingsField.BATTERY_RECHARGE_VOLTAGE, rating.battery_recharge_voltage),
                (
                    SettingsField.BATTERY_REDISCHARGE_VOLTAGE,
                    rating.battery_redischarge_voltage,
                ),
                (SettingsField.BATTERY_CUTOFF_VOLTAGE, rating.battery_under_voltage),
                (SettingsField.BATTERY_FLOAT_VOLTAGE, rating.battery_float_voltage),
            ],
        )

    def _poll_warning_status(self, inv: Inverter, serial_no: str) -> bool:
        warnings = inv.connector.warning_status()
        logger.debug("warning status: %r", warnings)

        self._metrics.overload.labels(serial_no).set(bool_to_float(warnings.overload))
        return True

    def _poll_device_mode(self, inv: Inverter, serial_no: str) -> bool:
        code = inv.connector.device_mode()
        logger.debug("device mode: %r", code)

        mode = device_mode_from_wire(code)
        self._metrics.device_mode.labels(serial_no).set(DEVICE_MODE_INDEX[mode])
        return _apply_fields(inv, [(SettingsField.DEVICE_MODE, code)])

    def _poll_output_mode(self, inv: Inverter, serial_no: str) -> bool:
        output_mode = inv.connector.output_mode()
        logger.debug("device output mode: %r", output_mode)

        self._metrics.output_mode.labels(serial_no).set(output_mode)
        return True

    # -- Loop ----------------------------------------------------------------

    def run(self) -> None:
        """Run cycles at a fixed rate until :meth:`stop` is called."""
        logger.info("Poll loop started (interval=%ss)", self._interval_s)
        while not self._stop_event.is_set():
            started_at = self._clock()
            try:
                self.run_cycle()
            except Exception:
                logger.error("Poll cycle error", exc_info=True)
                self._metrics.scrape_error.set(1)

            delay = seconds_until_next_cycle(started_at, self._clock(), self._interval_s)
            if delay > 0:
                # Returns early when stop() is called
                self._stop_event.wait(delay)
        logger.info("Poll loop stopped")

    def start(self) -> None:
        """Start the poll loop on a background daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("poller already running")
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="axpert-poller", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = STOP_JOIN_TIMEOUT_S) -> None:
        """Signal the poll loop to stop and wait for the thread to exit.

        An in-flight connector call is not interrupted.  If it outlasts
        *timeout* the thread is kept, so :meth:`start` refuses to launch a
        second poll thread until it has exited.
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Poll thread did not stop within %.1fs", timeout)
            else:
                self._thread = None


def _apply_fields(inv: Inverter, fields: Iterable[tuple[SettingsField, object]]) -> bool:
    """Write each field into the settings cache independently.

    Returns:
        False if any field failed to map; the others are still applied.
    """
    ok = True
    for field, raw in fields:
        try:
            settings_cache.update_field(inv, field, raw)
        except (MappingError, ValidationError) as exc:
            ok = False
            logger.error(
                "Failed to update %s for device with serialno '%s': %s",
                field.value,
                inv.serial_no,
                exc,
            )
    return ok
