"""Expected-value and Kelly sizing metrics for a single position.

Everything here is pure: functions take a ``Position`` and return a new one
without touching providers, the store, or the clock. Invalid inputs produce
neutral (zeroed) metrics instead of raising so a single bad quote can never
abort a refresh batch.
"""
from __future__ import annotations

import math
from dataclasses import replace
from typing import List, Optional

from .config import MetricsConfig
from .errors import ValidationError
from .models import ADD, DEFAULT_PROBABILITY, HOLD, SELL, TRIM, UNAVAILABLE, Position


DERIVED_FIELDS = (
    "upside_potential",
    "b_ratio",
    "expected_value",
    "kelly_fraction",
    "half_kelly_suggested",
    "buy_zone_min",
    "buy_zone_max",
)


def calibrate_downside(beta: float) -> float:
    """Map market sensitivity to a default downside scenario in percent."""
    if beta < 0.5:
        return -15.0
    if beta < 1.0:
        return -20.0
    if beta < 1.5:
        return -25.0
    return -30.0


def upside_potential(current_price: float, fair_value: float) -> float:
    if current_price <= 0:
        return 0.0
    return (fair_value - current_price) / current_price * 100


def expected_value(probability: float, upside: float, downside: float) -> float:
    return probability * upside + (1 - probability) * downside


def b_ratio(upside: float, downside: float) -> float:
    if downside == 0:
        return 0.0
    return upside / abs(downside)


def kelly_fraction(b: float, probability: float) -> float:
    if b <= 0:
        return 0.0
    fraction = ((b * probability) - (1 - probability)) / b * 100
    return max(0.0, fraction)


def half_kelly(kelly: float, cap: float = 15.0) -> float:
    return max(0.0, min(kelly / 2, cap))


def assess(ev: float, config: MetricsConfig = MetricsConfig()) -> str:
    if ev > config.add_threshold:
        return ADD
    if ev > 0:
        return HOLD
    if ev > config.sell_threshold:
        return TRIM
    return SELL


def buy_zone(
    current_price: float,
    fair_value: float,
    probability: float,
    downside: float,
    config: MetricsConfig = MetricsConfig(),
) -> tuple[float, float]:
    """Return (min, max) entry prices at which EV reaches the target EV.

    Solving ``target = p * upside + (1 - p) * downside`` for the upside and
    then ``upside = (fair - price) / price * 100`` for the price gives the
    highest attractive entry. When that needs a non-positive upside the zone
    falls back to a fixed band below the current price.
    """
    if fair_value <= 0 or probability <= 0:
        return 0.0, 0.0
    required_upside = (config.target_ev - (1 - probability) * downside) / probability
    if required_upside > 0:
        high = fair_value / (1 + required_upside / 100)
        return high * config.buy_zone_width, high
    return current_price * config.fallback_zone_low, current_price * config.fallback_zone_high


def _finite(*values: Optional[float]) -> bool:
    return all(v is None or (isinstance(v, (int, float)) and math.isfinite(v)) for v in values)


def _inputs_valid(position: Position) -> bool:
    if not _finite(position.current_price, position.fair_value, position.probability_positive,
                   position.downside_risk, position.beta):
        return False
    if position.current_price < 0 or position.fair_value < 0:
        return False
    return 0.0 <= position.probability_positive <= 1.0


def compute(position: Position, config: MetricsConfig = MetricsConfig()) -> Position:
    """Derive upside, EV, Kelly sizing, buy zone and assessment.

    Invalid inputs give zeroed metrics. The label still follows the EV
    partition, so a neutral EV of 0 reads as Trim, never Add or Hold.
    """
    if position.assessment == UNAVAILABLE and position.data_source == "None":
        return replace(position)

    if not _inputs_valid(position):
        neutral = {name: 0.0 for name in DERIVED_FIELDS}
        return replace(position, assessment=assess(0.0, config), **neutral)

    calibrated = position.downside_risk is None or position.downside_calibrated
    downside = calibrate_downside(position.beta) if calibrated else position.downside_risk

    p = position.probability_positive
    upside = upside_potential(position.current_price, position.fair_value)
    ev = expected_value(p, upside, downside)
    b = b_ratio(upside, downside)
    kelly = kelly_fraction(b, p)
    zone_min, zone_max = buy_zone(position.current_price, position.fair_value, p, downside, config)

    return replace(
        position,
        downside_risk=downside,
        downside_calibrated=calibrated,
        upside_potential=upside,
        b_ratio=b,
        expected_value=ev,
        kelly_fraction=kelly,
        half_kelly_suggested=half_kelly(kelly, config.half_kelly_cap),
        buy_zone_min=zone_min,
        buy_zone_max=zone_max,
        assessment=assess(ev, config),
    )


def normalize_derived(position: Position, config: MetricsConfig = MetricsConfig()) -> Position:
    """Bring provider-supplied derived metrics back inside the engine's invariants.

    The provider's EV, Kelly fraction and buy zone are adopted; the half-Kelly
    size and the assessment are always re-derived from them so the label can
    never disagree with the adopted EV.
    """
    ev = position.expected_value if _finite(position.expected_value) else 0.0
    kelly = max(0.0, position.kelly_fraction) if _finite(position.kelly_fraction) else 0.0
    zone_min, zone_max = sorted((position.buy_zone_min, position.buy_zone_max))
    return replace(
        position,
        expected_value=ev,
        kelly_fraction=kelly,
        half_kelly_suggested=half_kelly(kelly, config.half_kelly_cap),
        buy_zone_min=zone_min,
        buy_zone_max=zone_max,
        assessment=assess(ev, config),
    )


def revive_risk_inputs(position: Position, keep=()) -> Position:
    """Replace the zeroed risk placeholders left by the Unavailable state.

    A zero downside goes back to the beta calibration and a zero probability
    to the default; fields named in ``keep`` were supplied explicitly and
    stay as they are.
    """
    changes = {}
    if "downside_risk" not in keep and position.downside_risk == 0.0:
        changes.update(downside_risk=None, downside_calibrated=False)
    if "probability_positive" not in keep and position.probability_positive == 0.0:
        changes["probability_positive"] = DEFAULT_PROBABILITY
    return replace(position, **changes)


def validate_metrics(position: Position, config: MetricsConfig = MetricsConfig()) -> List[ValidationError]:
    issues: List[ValidationError] = []
    if position.upside_potential > config.max_sane_upside:
        issues.append(ValidationError(
            f"{position.ticker}: fair value {position.fair_value:.2f} implies "
            f"{position.upside_potential:.1f}% upside"
        ))
    if not 0.0 <= position.probability_positive <= 1.0:
        issues.append(ValidationError(
            f"{position.ticker}: probability {position.probability_positive} outside [0, 1]"
        ))
    if position.downside_risk is not None and position.downside_risk > 0:
        issues.append(ValidationError(
            f"{position.ticker}: downside risk {position.downside_risk} should be <= 0"
        ))
    return issues


__all__ = [
    "assess",
    "b_ratio",
    "buy_zone",
    "calibrate_downside",
    "compute",
    "expected_value",
    "half_kelly",
    "kelly_fraction",
    "normalize_derived",
    "revive_risk_inputs",
    "upside_potential",
    "validate_metrics",
]
