"""Typed single-field position updates, validated at the boundary.

Each updatable field has its own command type; ``apply_update`` dispatches
on the command's type, so an unknown field cannot be expressed at all and an
out-of-range value is rejected with ``CommandError`` before the position is
touched.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, replace
from functools import singledispatch
from typing import ClassVar, Optional, Tuple, Union

from .errors import CommandError
from .metrics_engine import revive_risk_inputs
from .models import TIERS, UNAVAILABLE, Position, utcnow


MANUAL_SOURCE = "Manual"


@dataclass(frozen=True)
class NumericUpdate:
    value: float

    field_name: ClassVar[str] = ""
    minimum: ClassVar[Optional[float]] = 0.0
    maximum: ClassVar[Optional[float]] = None
    market_input: ClassVar[bool] = False


@dataclass(frozen=True)
class SetCurrentPrice(NumericUpdate):
    field_name = "current_price"
    market_input = True


@dataclass(frozen=True)
class SetFairValue(NumericUpdate):
    field_name = "fair_value"
    market_input = True


@dataclass(frozen=True)
class SetAvgPrice(NumericUpdate):
    field_name = "avg_price_local"


@dataclass(frozen=True)
class SetSharesOwned(NumericUpdate):
    field_name = "shares_owned"


@dataclass(frozen=True)
class SetBeta(NumericUpdate):
    field_name = "beta"


@dataclass(frozen=True)
class SetVolatility(NumericUpdate):
    field_name = "volatility"


@dataclass(frozen=True)
class SetProbability(NumericUpdate):
    field_name = "probability_positive"
    maximum = 1.0


@dataclass(frozen=True)
class SetPERatio(NumericUpdate):
    field_name = "pe_ratio"


@dataclass(frozen=True)
class SetEPSGrowth(NumericUpdate):
    field_name = "eps_growth_rate"
    minimum = None


@dataclass(frozen=True)
class SetDebtToEBITDA(NumericUpdate):
    field_name = "debt_to_ebitda"


@dataclass(frozen=True)
class SetDividendYield(NumericUpdate):
    field_name = "dividend_yield"


@dataclass(frozen=True)
class SetDownsideRisk:
    """A value <= 0, or None to go back to the beta calibration."""

    value: Optional[float]


@dataclass(frozen=True)
class TextUpdate:
    value: str

    field_name: ClassVar[str] = ""
    allow_empty: ClassVar[bool] = False


@dataclass(frozen=True)
class SetCompanyName(TextUpdate):
    field_name = "company_name"


@dataclass(frozen=True)
class SetSector(TextUpdate):
    field_name = "sector"


@dataclass(frozen=True)
class SetComment(TextUpdate):
    field_name = "comment"
    allow_empty = True


@dataclass(frozen=True)
class SetISIN(TextUpdate):
    field_name = "isin"
    allow_empty = True


@dataclass(frozen=True)
class SetUpdateFrequency:
    value: str


PositionUpdate = Union[
    NumericUpdate, SetDownsideRisk, TextUpdate, SetUpdateFrequency,
]


@singledispatch
def apply_update(command, position: Position) -> Tuple[Position, bool]:
    """Return the updated position and whether metrics must be recomputed."""
    raise CommandError(f"unsupported update {type(command).__name__}")


@apply_update.register
def _(command: NumericUpdate, position: Position) -> Tuple[Position, bool]:
    value = command.value
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise CommandError(f"{command.field_name} must be a finite number, got {value!r}")
    if command.minimum is not None and value < command.minimum:
        raise CommandError(f"{command.field_name} must be >= {command.minimum:g}, got {value}")
    if command.maximum is not None and value > command.maximum:
        raise CommandError(f"{command.field_name} must be <= {command.maximum:g}, got {value}")
    updated = replace(position, **{command.field_name: float(value)}, last_updated=utcnow())
    if command.market_input:
        fetched_at = dict(position.fetched_at)
        fetched_at[MANUAL_SOURCE] = utcnow()
        updated = replace(updated, fetched_at=fetched_at)
        if position.data_source in ("", "None"):
            updated = replace(updated, data_source=MANUAL_SOURCE)
        if position.assessment == UNAVAILABLE:
            updated = revive_risk_inputs(updated)
    return updated, True


@apply_update.register
def _(command: SetDownsideRisk, position: Position) -> Tuple[Position, bool]:
    value = command.value
    if value is None:
        return replace(position, downside_risk=None, downside_calibrated=False, last_updated=utcnow()), True
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise CommandError(f"downside_risk must be a finite number, got {value!r}")
    if value > 0:
        raise CommandError(f"downside_risk must be <= 0, got {value}")
    return replace(position, downside_risk=float(value), downside_calibrated=False, last_updated=utcnow()), True


@apply_update.register
def _(command: TextUpdate, position: Position) -> Tuple[Position, bool]:
    if not isinstance(command.value, str):
        raise CommandError(f"{command.field_name} must be text")
    value = command.value.strip()
    if not value and not command.allow_empty:
        raise CommandError(f"{command.field_name} cannot be empty")
    return replace(position, **{command.field_name: value}, last_updated=utcnow()), False


@apply_update.register
def _(command: SetUpdateFrequency, position: Position) -> Tuple[Position, bool]:
    if command.value not in TIERS:
        raise CommandError(f"update_frequency must be one of {TIERS}, got {command.value!r}")
    return replace(position, update_frequency=command.value, last_updated=utcnow()), False


__all__ = [
    "NumericUpdate",
    "PositionUpdate",
    "SetAvgPrice",
    "SetBeta",
    "SetComment",
    "SetCompanyName",
    "SetCurrentPrice",
    "SetDebtToEBITDA",
    "SetDividendYield",
    "SetDownsideRisk",
    "SetEPSGrowth",
    "SetFairValue",
    "SetISIN",
    "SetPERatio",
    "SetProbability",
    "SetSector",
    "SetSharesOwned",
    "SetUpdateFrequency",
    "SetVolatility",
    "TextUpdate",
    "apply_update",
    "MANUAL_SOURCE",
]
