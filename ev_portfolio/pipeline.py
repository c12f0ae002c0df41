"""Tiered data sourcing for one position per refresh."""
from __future__ import annotations

import logging
from dataclasses import fields as dataclass_fields, replace
from typing import List, Optional, Sequence, Tuple

from .config import MetricsConfig
from .currency_engine import RateCache
from .errors import UnavailableError
from .metrics_engine import compute, normalize_derived, revive_risk_inputs, validate_metrics
from .models import UNAVAILABLE, Position, SourcePatch, utcnow
from .providers import MarketDataProvider, first_usable


logger = logging.getLogger(__name__)

# Provenance and identity are stamped by the pipeline, never taken from a provider
PATCHABLE_FIELDS = {f.name for f in dataclass_fields(Position)} - {
    "id",
    "ticker",
    "data_source",
    "fair_value_source",
    "fetched_at",
    "stale",
    "last_updated",
    "created_at",
    "updated_at",
    "downside_calibrated",
    "shares_owned",
    "avg_price_local",
}

# Zeroed by the Unavailable fallback; sizing (shares, average price) is user data and kept.
UNAVAILABLE_ZEROED = (
    "current_price",
    "fair_value",
    "beta",
    "volatility",
    "pe_ratio",
    "eps_growth_rate",
    "debt_to_ebitda",
    "dividend_yield",
    "probability_positive",
    "downside_risk",
    "upside_potential",
    "b_ratio",
    "expected_value",
    "kelly_fraction",
    "half_kelly_suggested",
    "buy_zone_min",
    "buy_zone_max",
    "current_value_base",
    "unrealized_pnl",
    "weight",
)


def unavailable(position: Position) -> Position:
    """Explicit no-data state: never a computed Sell."""
    zeroed = {name: 0.0 for name in UNAVAILABLE_ZEROED}
    return replace(
        position,
        assessment=UNAVAILABLE,
        data_source="None",
        fair_value_source="Not available",
        downside_calibrated=False,
        last_updated=utcnow(),
        **zeroed,
    )


class DataSourcingPipeline:
    """Ordered providers, first usable price wins, Unavailable otherwise.

    Providers are tried in the order given; a provider that raises or returns
    no positive price hands over to the next one. Metrics are derived here
    unless the winning provider already supplied them.
    """

    def __init__(
        self,
        providers: Sequence[MarketDataProvider],
        rate_cache: Optional[RateCache] = None,
        metrics_config: MetricsConfig = MetricsConfig(),
    ):
        self.providers = list(providers)
        self.rate_cache = rate_cache
        self.metrics_config = metrics_config

    @property
    def source_names(self) -> List[str]:
        return [p.name for p in self.providers]

    def select(self, preferred_source: Optional[str] = None) -> List[MarketDataProvider]:
        if not preferred_source:
            return list(self.providers)
        chosen = [p for p in self.providers if p.name == preferred_source]
        if not chosen:
            raise ValueError(
                f"unknown or unconfigured source {preferred_source!r}; configured: {self.source_names}"
            )
        return chosen

    def refresh(
        self, position: Position, preferred_source: Optional[str] = None
    ) -> Tuple[Position, Optional[UnavailableError]]:
        providers = self.select(preferred_source)
        patch, causes = first_usable(providers, position)
        if patch is None:
            error = UnavailableError(position.ticker, causes)
            logger.error("%s", error)
            return unavailable(position), error

        refreshed = self.apply(position, patch)
        logger.info("refreshed %s from %s (EV %.2f%%, %s)", refreshed.ticker, patch.source,
                    refreshed.expected_value, refreshed.assessment)
        return refreshed, None

    def apply(self, position: Position, patch: SourcePatch) -> Position:
        updates = {k: v for k, v in patch.fields.items() if k in PATCHABLE_FIELDS}
        ignored = set(patch.fields) - set(updates)
        if ignored:
            logger.debug("ignoring unknown fields from %s: %s", patch.source, sorted(ignored))

        fetched_at = dict(position.fetched_at)
        fetched_at[patch.source] = patch.fetched_at
        merged = replace(
            position,
            **updates,
            data_source=patch.source,
            fair_value_source=patch.fair_value_source or position.fair_value_source,
            fetched_at=fetched_at,
            stale=False,
            last_updated=patch.fetched_at,
        )
        if "downside_risk" in updates:
            merged = replace(merged, downside_calibrated=False)
        if position.assessment == UNAVAILABLE:
            merged = revive_risk_inputs(merged, keep=updates)

        if patch.derived:
            merged = normalize_derived(merged, self.metrics_config)
        else:
            merged = compute(merged, self.metrics_config)

        for issue in validate_metrics(merged, self.metrics_config):
            logger.warning("validation: %s", issue)

        if patch.exchange_rate is not None and self.rate_cache is not None:
            if self.rate_cache.put(merged.currency, patch.exchange_rate):
                logger.debug("cached %s rate %.6f from %s", merged.currency, patch.exchange_rate, patch.source)
        return merged


__all__ = ["DataSourcingPipeline", "unavailable"]
