"""
Prometheus metrics registry for the Axpert gateway.

A single :class:`GatewayMetrics` is built at startup and handed to both the
poller (writer) and the HTTP layer (exposition).  It owns its own
``CollectorRegistry`` instead of using the process-global default one, so
tests can build as many isolated instances as they like.

All device gauges carry a ``serialno`` label; values are last-write-wins.
``axpert_scrape_error`` is unlabelled and reflects the most recent cycle.

CHANGELOG:
- 2026-03-06: Add device mode and output mode gauges (STORY-011)
- 2026-03-05: Initial creation (STORY-007)

TODO:
- None
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Gauge,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

NAMESPACE = "axpert"
"""Metric name prefix."""

LABEL_SERIAL_NUMBER = "serialno"
"""Label carrying the inverter serial number."""

_LABELS = (LABEL_SERIAL_NUMBER,)


def bool_to_float(value: bool) -> float:
    """Render a flag as a 0/1 gauge value."""
    return 1.0 if value else 0.0


class GatewayMetrics:
    """All gauges exported by the gateway, registered on one registry.

    Args:
        registry: Registry to register on.  A fresh one with process and
            platform collectors is created when omitted.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        if registry is None:
            registry = CollectorRegistry()
            ProcessCollector(registry=registry)
            PlatformCollector(registry=registry)
        self.registry = registry

        # -- General status --
        self.grid_frequency = self._gauge("grid_frequency", "Grid frequency in herz")
        self.grid_voltage = self._gauge("grid_voltage", "Grid voltage")
        self.pv_input_voltage_1 = self._gauge("pvinput1_voltage", "PV input 1 voltage")
        self.pv_input_voltage_2 = self._gauge("pvinput2_voltage", "PV input 2 voltage")
        self.pv_input_voltage_3 = self._gauge("pvinput3_voltage", "PV input 3 voltage")
        self.pv_input_current_1 = self._gauge(
            "pvinput1_current", "PV input 1 current in amps"
        )
        self.pv_input_current_2 = self._gauge(
            "pvinput2_current", "PV input 2 current in amps"
        )
        self.pv_input_current_3 = self._gauge(
            "pvinput3_current", "PV input 3 current in amps"
        )
        self.ac_output_voltage = self._gauge("acoutput_voltage", "AC output voltage")
        self.ac_output_frequency = self._gauge(
            "acoutput_frequency", "AC output frequency in herz"
        )
        self.ac_output_apparent_power = self._gauge(
            "acoutput_apparent_power", "AC output apparent power in volt-amps"
        )
        self.ac_output_active_power = self._gauge(
            "acoutput_active_power", "AC output active power in watts"
        )
        self.output_load_percent = self._gauge(
            "output_load_percent", "Output load in percentage"
        )
        self.heat_sink_temperature = self._gauge(
            "heatsink_temperature", "Heatsink temperature in celsius"
        )
        self.battery_voltage = self._gauge("battery_voltage", "Battery voltage")
        self.battery_capacity = self._gauge(
            "battery_capacity_percent", "Battery capacity in percentage"
        )
        self.battery_charge_current = self._gauge(
            "battery_charge_current", "Battery charge current in amps"
        )
        self.battery_discharge_current = self._gauge(
            "battery_discharge_current", "Battery discharge current in amps"
        )
        self.charge_on = self._gauge("chargeon", "Returns 1 if battery is being charged")
        self.scc_charge_on_1 = self._gauge(
            "sccchargeon1", "Returns 1 if battery is being charged with solar power 1"
        )
        self.scc_charge_on_2 = self._gauge(
            "sccchargeon2", "Returns 1 if battery is being charged with solar power 2"
        )
        self.scc_charge_on_3 = self._gauge(
            "sccchargeon3", "Returns 1 if battery is being charged with solar power 3"
        )

        # -- Parallel / source status --
        self.line_loss = self._gauge("lineloss", "Returns 1 if utility line is offline")
        self.load_on = self._gauge("loadon", "Returns 1 if output has load")
        self.ac_charge_on = self._gauge(
            "acchargeon", "Returns 1 if battery is being charged with utility power"
        )

        # -- Rating info --
        self.output_source_priority = self._gauge(
            "output_sourcepriority",
            "Shows the output source priority - "
            "0: Utility first, 1: Solar first, 2: SBU first",
        )
        self.charger_source_priority = self._gauge(
            "charger_sourcepriority",
            "Shows the charger source priority - 0: Utility first, "
            "1: Solar first, 2: Solar and utility, 3: Solar only",
        )
        self.max_ac_charging_current = self._gauge(
            "charger_maxcurrent", "Max AC charging current in amps"
        )
        self.battery_recharge_voltage = self._gauge(
            "battery_recharge_voltage", "Battery recharge voltage"
        )
        self.battery_redischarge_voltage = self._gauge(
            "battery_redischarge_voltage", "Battery redischarge voltage"
        )
        self.battery_cutoff_voltage = self._gauge(
            "battery_cutoff_voltage", "Battery under / cutoff voltage"
        )
        self.battery_float_voltage = self._gauge(
            "battery_float_voltage", "Battery float voltage"
        )

        # -- Warnings, modes --
        self.overload = self._gauge("overload", "Returns 1 if system is overloaded")
        self.device_mode = self._gauge(
            "devicemode",
            "Shows the device mode - 0: PowerOnMode, 1: StandbyMode, 2: LineMode, "
            "3: BatteryMode, 4: FaultMode, 5: PowerSavingMode",
        )
        self.output_mode = self._gauge(
            "outputmode",
            "Shows the output mode - 0: SingleMachine, 1: Parallel, "
            "2: Phase1, 3: Phase2, 4: Phase3",
        )

        self.scrape_error = Gauge(
            "scrape_error",
            "Returns 1 if the last scrape failed",
            namespace=NAMESPACE,
            registry=self.registry,
        )

    def _gauge(self, name: str, documentation: str) -> Gauge:
        return Gauge(
            name,
            documentation,
            labelnames=_LABELS,
            namespace=NAMESPACE,
            registry=self.registry,
        )

    def render(self) -> tuple[bytes, str]:
        """Return the registry in the Prometheus text exposition format.

        Returns:
            ``(payload, content_type)`` ready to be sent as an HTTP body.
        """
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
