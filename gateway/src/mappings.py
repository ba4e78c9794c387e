"""
Bidirectional wire-code <-> canonical-token tables for inverter settings.

Axpert devices report their configuration as small integers (source
priorities), single letters (device mode) or flags (AC charging).  The
gateway caches, serves and validates settings as stable lowercase tokens
instead.  This module is the single source of truth for that translation.

Every table is total over its defined members and never substitutes a
default:

- ``forward`` (wire code -> token) raises :class:`MappingError` for an
  unrecognised wire code.
- ``inverse`` (token -> wire code) raises :class:`ValidationError` for an
  unrecognised token.

CHANGELOG:
- 2026-03-06: Add device mode gauge index (STORY-011)
- 2026-03-03: Initial creation (STORY-003)

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Generic, TypeVar

from gateway.src.exceptions import MappingError, ValidationError

W = TypeVar("W", int, str, bool)
T = TypeVar("T", bound=StrEnum)

# ---------------------------------------------------------------------------
# Canonical tokens
# ---------------------------------------------------------------------------


class OutputSourcePriority(StrEnum):
    """Which source feeds the AC output first."""

    UTILITY = "utility"
    SOLAR = "solar"
    SBU = "sbu"


class ChargerSourcePriority(StrEnum):
    """Which source is allowed to charge the battery."""

    UTILITY_FIRST = "utilityfirst"
    SOLAR_FIRST = "solarfirst"
    SOLAR_AND_UTILITY = "solarandutility"
    SOLAR_ONLY = "solaronly"


class DeviceMode(StrEnum):
    """Operating mode reported by the inverter."""

    POWER_ON = "poweron"
    STANDBY = "standby"
    UTILITY = "utility"
    BATTERY = "battery"
    FAULT = "fault"
    POWER_SAVING = "powersaving"


class ChargeSource(StrEnum):
    """Where the battery charge currently comes from."""

    UTILITY = "utility"
    SOLAR = "solar"


# ---------------------------------------------------------------------------
# Table definition
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EnumTable(Generic[W, T]):
    """A bijection between wire codes of one Python type and enum tokens.

    Attributes:
        domain: Human-readable domain name used in error messages.
        wire_type: Exact Python type of the wire codes (``int``, ``str``
            or ``bool``).  Codes of any other type are unrecognised, so
            ``True`` is never accepted as the integer code ``1``.
        token_type: The :class:`StrEnum` holding the canonical tokens.
        wire_to_token: Forward mapping.  Must cover every token exactly once.
    """

    domain: str
    wire_type: type
    token_type: type[T]
    wire_to_token: Mapping[W, T]
    _token_to_wire: dict[T, W] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        inverse = {token: code for code, token in self.wire_to_token.items()}
        if set(inverse) != set(self.token_type):
            msg = f"{self.domain}: table must map every token exactly once"
            raise ValueError(msg)
        # frozen=True requires object.__setattr__
        object.__setattr__(self, "_token_to_wire", inverse)

    def forward(self, code: object) -> T:
        """Translate a wire code into its canonical token.

        Raises:
            MappingError: If *code* is not a defined wire code.
        """
        if type(code) is not self.wire_type or code not in self.wire_to_token:
            raise MappingError(self.domain, code)
        return self.wire_to_token[code]  # type: ignore[index]

    def inverse(self, token: str) -> W:
        """Translate a canonical token into its wire code.

        Raises:
            ValidationError: If *token* is not a defined token.
        """
        try:
            member = self.token_type(token)
        except ValueError:
            allowed = ", ".join(t.value for t in self.token_type)
            raise ValidationError(
                f"unrecognized {self.domain}: {token!r} (expected one of: {allowed})"
            ) from None
        return self._token_to_wire[member]

    @property
    def tokens(self) -> tuple[T, ...]:
        """All canonical tokens in wire-code order."""
        return tuple(self.wire_to_token.values())


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

OUTPUT_SOURCE_PRIORITY: EnumTable[int, OutputSourcePriority] = EnumTable(
    domain="output source priority",
    wire_type=int,
    token_type=OutputSourcePriority,
    wire_to_token={
        0: OutputSourcePriority.UTILITY,
        1: OutputSourcePriority.SOLAR,
        2: OutputSourcePriority.SBU,
    },
)

CHARGER_SOURCE_PRIORITY: EnumTable[int, ChargerSourcePriority] = EnumTable(
    domain="charger source priority",
    wire_type=int,
    token_type=ChargerSourcePriority,
    wire_to_token={
        0: ChargerSourcePriority.UTILITY_FIRST,
        1: ChargerSourcePriority.SOLAR_FIRST,
        2: ChargerSourcePriority.SOLAR_AND_UTILITY,
        3: ChargerSourcePriority.SOLAR_ONLY,
    },
)

DEVICE_MODE: EnumTable[str, DeviceMode] = EnumTable(
    domain="device mode",
    wire_type=str,
    token_type=DeviceMode,
    wire_to_token={
        "P": DeviceMode.POWER_ON,
        "S": DeviceMode.STANDBY,
        "L": DeviceMode.UTILITY,
        "B": DeviceMode.BATTERY,
        "F": DeviceMode.FAULT,
        "H": DeviceMode.POWER_SAVING,
    },
)

# AC charging flag projection: True means the utility is charging.
CHARGE_SOURCE: EnumTable[bool, ChargeSource] = EnumTable(
    domain="charge source",
    wire_type=bool,
    token_type=ChargeSource,
    wire_to_token={
        True: ChargeSource.UTILITY,
        False: ChargeSource.SOLAR,
    },
)

DEVICE_MODE_INDEX: dict[DeviceMode, int] = {
    mode: idx for idx, mode in enumerate(DEVICE_MODE.tokens)
}
"""Gauge value per device mode: 0 poweron .. 5 powersaving."""


# ---------------------------------------------------------------------------
# Per-domain convenience functions
# ---------------------------------------------------------------------------


def output_priority_from_wire(code: int) -> OutputSourcePriority:
    return OUTPUT_SOURCE_PRIORITY.forward(code)


def output_priority_to_wire(token: str) -> int:
    return OUTPUT_SOURCE_PRIORITY.inverse(token)


def charger_priority_from_wire(code: int) -> ChargerSourcePriority:
    return CHARGER_SOURCE_PRIORITY.forward(code)


def charger_priority_to_wire(token: str) -> int:
    return CHARGER_SOURCE_PRIORITY.inverse(token)


def device_mode_from_wire(code: str) -> DeviceMode:
    return DEVICE_MODE.forward(code)


def device_mode_to_wire(token: str) -> str:
    return DEVICE_MODE.inverse(token)


def charge_source_from_wire(ac_charging: bool) -> ChargeSource:
    return CHARGE_SOURCE.forward(ac_charging)


def charge_source_to_wire(token: str) -> bool:
    return CHARGE_SOURCE.inverse(token)
