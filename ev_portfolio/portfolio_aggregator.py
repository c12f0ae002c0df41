"""Portfolio-wide weighting, valuation and risk/return aggregation."""
from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Dict, List, Mapping, Sequence

import numpy as np

from .models import PortfolioMetrics, Position


logger = logging.getLogger(__name__)


def _rate(rates: Mapping[str, float], currency: str) -> float:
    rate = rates.get(currency)
    if rate is None or rate <= 0 or not math.isfinite(rate):
        logger.debug("no usable rate for %s, using 1.0", currency)
        return 1.0
    return float(rate)


def position_values(positions: Sequence[Position], rates: Mapping[str, float]) -> np.ndarray:
    """Base-currency market value of each position."""
    if not positions:
        return np.zeros(0)
    shares = np.array([p.shares_owned for p in positions], dtype=float)
    prices = np.array([p.current_price for p in positions], dtype=float)
    fx = np.array([_rate(rates, p.currency) for p in positions], dtype=float)
    values = shares * prices * fx
    return np.where(np.isfinite(values), values, 0.0)


def aggregate(positions: Sequence[Position], rates: Mapping[str, float]) -> PortfolioMetrics:
    """Combine positions into value-weighted portfolio metrics.

    Weights are percentages of the total base-currency value; with a zero
    total every weight (and every weighted metric) is zero.
    """
    values = position_values(positions, rates)
    total_value = float(values.sum()) if len(values) else 0.0
    if total_value <= 0:
        return PortfolioMetrics(
            total_value=0.0,
            weights={p.ticker: 0.0 for p in positions},
        )

    weights = values / total_value * 100
    ev = np.array([p.expected_value for p in positions], dtype=float)
    vol = np.array([p.volatility for p in positions], dtype=float)
    weighted_ev = float(np.dot(ev, weights / 100))
    weighted_volatility = float(np.dot(vol, weights / 100))
    risk_adjusted = weighted_ev / weighted_volatility if weighted_volatility > 0 else 0.0

    sector_weights: Dict[str, float] = {}
    weight_map: Dict[str, float] = {}
    for position, weight in zip(positions, weights):
        sector = position.sector or "Unknown"
        sector_weights.setdefault(sector, 0.0)
        sector_weights[sector] += float(weight)
        weight_map.setdefault(position.ticker, 0.0)
        weight_map[position.ticker] += float(weight)

    return PortfolioMetrics(
        total_value=total_value,
        weighted_ev=weighted_ev,
        weighted_volatility=weighted_volatility,
        risk_adjusted_return=risk_adjusted,
        # Current allocation against the sizing budget, not a re-derived Kelly figure
        kelly_utilization=float(weights.sum()),
        sector_weights=sector_weights,
        weights=weight_map,
    )


def revalue(position: Position, rate: float) -> Position:
    """Base-currency value and unrealized P&L from price, cost and FX rate."""
    value = position.shares_owned * position.current_price * rate
    cost_basis = position.shares_owned * position.avg_price_local * rate
    return replace(position, current_value_base=value, unrealized_pnl=value - cost_basis)


def apply_weights(positions: Sequence[Position], rates: Mapping[str, float]) -> List[Position]:
    values = position_values(positions, rates)
    total_value = float(values.sum()) if len(values) else 0.0
    weighted: List[Position] = []
    for position, value in zip(positions, values):
        weight = float(value) / total_value * 100 if total_value > 0 else 0.0
        weighted.append(replace(position, weight=weight))
    return weighted


__all__ = ["aggregate", "apply_weights", "position_values", "revalue"]
