"""
Per-inverter cache of last-known-good settings.

The cache state lives on each :class:`~gateway.src.models.Inverter`
(``inverter.settings``) and is only touched under the inverter's lock,
the same lock the poller holds while it talks to the connector.

- :func:`read` returns a detached copy, so callers never see a record that
  a concurrent poll is halfway through updating.
- :func:`update_field` maps one raw value into one field.  Fields are
  independent: a failed update leaves every other field, and every other
  call, untouched.

Commands never write here.  A successful command changes the device, and
the next poll brings the cache up to date.

CHANGELOG:
- 2026-03-05: Accept field name/raw value pairs for every field (STORY-006)
- 2026-03-04: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from typing import Any

from gateway.src.exceptions import ValidationError
from gateway.src.mappings import (
    charge_source_from_wire,
    charger_priority_from_wire,
    device_mode_from_wire,
    output_priority_from_wire,
)
from gateway.src.models import Inverter, InverterSettings, SettingsField

logger = logging.getLogger(__name__)


def _voltage(raw: object) -> float:
    """Accept a finite real number of volts."""
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValidationError(f"voltage must be a number, got {raw!r}")
    value = float(raw)
    if not math.isfinite(value):
        raise ValidationError(f"voltage must be finite, got {raw!r}")
    return value


_CONVERTERS: dict[SettingsField, Callable[[Any], Any]] = {
    SettingsField.OUTPUT_SOURCE_PRIORITY: output_priority_from_wire,
    SettingsField.CHARGER_SOURCE_PRIORITY: charger_priority_from_wire,
    SettingsField.DEVICE_MODE: device_mode_from_wire,
    SettingsField.CHARGE_SOURCE: charge_source_from_wire,
    SettingsField.BATTERY_RECHARGE_VOLTAGE: _voltage,
    SettingsField.BATTERY_REDISCHARGE_VOLTAGE: _voltage,
    SettingsField.BATTERY_CUTOFF_VOLTAGE: _voltage,
    SettingsField.BATTERY_FLOAT_VOLTAGE: _voltage,
}
"""Raw wire value -> cached value conversion per field."""


def read(inverter: Inverter) -> InverterSettings | None:
    """Return a copy of the inverter's cached settings.

    Blocks while a poll of the same inverter is in progress.

    Returns:
        A deep copy of the settings, or ``None`` if no poll section has
        populated any field yet.
    """
    with inverter.lock:
        if inverter.settings is None:
            return None
        return inverter.settings.model_copy(deep=True)


def update_field(inverter: Inverter, field: SettingsField | str, raw: object) -> None:
    """Map *raw* through the field's converter and store it.

    Creates the settings record on first use.  Nothing is written when the
    conversion fails.

    Args:
        inverter: The inverter whose cache is updated.
        field: Name of the settings field.
        raw: Raw wire value (wire code, flag, or number of volts).

    Raises:
        MappingError: If *raw* is an unrecognised wire code.
        ValidationError: If *field* is unknown or a voltage is not a number.
    """
    try:
        name = SettingsField(field)
    except ValueError:
        raise ValidationError(f"unknown settings field: {field!r}") from None

    value = _CONVERTERS[name](raw)

    with inverter.lock:
        if inverter.settings is None:
            inverter.settings = InverterSettings()
        setattr(inverter.settings, name.value, value)

    logger.debug(
        "Updated %s=%s for serialno '%s'", name.value, value, inverter.serial_no
    )
