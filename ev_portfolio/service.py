"""Application context and the operations exposed to callers.

``AppContext`` is built once at startup and owns every shared handle (store,
rate cache, HTTP sessions, pipeline). Nothing in the package keeps module
level state; tests build their own context around fakes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import requests

from .alerts import AlertDispatcher, AlertEvaluator
from .alpha_vantage import AlphaVantageProvider
from .commands import PositionUpdate, apply_update
from .config import AppConfig
from .currency_engine import CurrencyEngine, RateCache
from .email_notifier import EmailNotifier, Notifier
from .errors import UnavailableError
from .fx_rates import ExchangeRatesApiSource
from .grok_analysis import GrokAnalysisProvider
from .history import HistoryRecorder
from .metrics_engine import compute
from .models import Alert, ExchangeRate, HistorySnapshot, PortfolioMetrics, Position
from .pipeline import DataSourcingPipeline
from .portfolio_aggregator import aggregate, apply_weights, revalue
from .providers import MarketDataProvider
from .store import Store
from .yahoo_quotes import YahooQuoteProvider


logger = logging.getLogger(__name__)


def build_providers(config: AppConfig, session: requests.Session) -> List[MarketDataProvider]:
    """Quantitative providers first, generative analysis last."""
    cfg = config.providers
    providers: List[MarketDataProvider] = []
    if cfg.alpha_vantage_api_key:
        providers.append(AlphaVantageProvider(cfg.alpha_vantage_api_key, config=cfg, session=session))
    if cfg.enable_yahoo:
        providers.append(YahooQuoteProvider())
    if cfg.xai_api_key:
        providers.append(GrokAnalysisProvider(
            cfg.xai_api_key,
            config=cfg,
            metrics=config.metrics,
            base_currency=config.base_currency,
            session=session,
        ))
    return providers


@dataclass
class AppContext:
    config: AppConfig
    store: Store
    rate_cache: RateCache
    currency: CurrencyEngine
    pipeline: DataSourcingPipeline
    recorder: HistoryRecorder
    evaluator: AlertEvaluator
    dispatcher: AlertDispatcher
    session: Optional[requests.Session] = field(default=None, repr=False)

    @classmethod
    def build(
        cls,
        config: AppConfig,
        store: Store,
        notifier: Optional[Notifier] = None,
        providers: Optional[Sequence[MarketDataProvider]] = None,
    ) -> "AppContext":
        session = requests.Session()
        rate_cache = RateCache(config.base_currency, config.rate_ttl_seconds)
        for rate in store.list_rates():
            rate_cache.put(rate.currency_code, rate.rate, manual=rate.is_manual)

        fx_source = None
        if config.providers.exchange_rates_api_key:
            fx_source = ExchangeRatesApiSource(config.providers.exchange_rates_api_key,
                                               config=config.providers, session=session)
        if providers is None:
            providers = build_providers(config, session)
        if notifier is None and config.email.recipients:
            notifier = EmailNotifier(config.email)

        pipeline = DataSourcingPipeline(providers, rate_cache, config.metrics)
        logger.info("data sources: %s", ", ".join(pipeline.source_names) or "none configured")
        return cls(
            config=config,
            store=store,
            rate_cache=rate_cache,
            currency=CurrencyEngine(rate_cache, fx_source),
            pipeline=pipeline,
            recorder=HistoryRecorder(store),
            evaluator=AlertEvaluator(store),
            dispatcher=AlertDispatcher(store, notifier),
            session=session,
        )

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None


class PortfolioService:
    def __init__(self, context: AppContext):
        self.context = context

    @property
    def store(self) -> Store:
        return self.context.store

    def compute_metrics(self, position: Position) -> Position:
        return compute(position, self.context.config.metrics)

    def refresh_position(
        self, position_id: int, preferred_source: Optional[str] = None
    ) -> Tuple[Position, Optional[UnavailableError]]:
        """Refresh one stored position: source, value, persist, record, alert.

        When every provider fails, a position that already holds a usable
        price keeps its stored values and is marked stale; one that never
        had data is stored in the Unavailable state.
        """
        position = self.store.get_position(position_id)
        if position is None:
            raise KeyError(f"position {position_id} not found")
        prior_ev = position.expected_value

        refreshed, error = self.context.pipeline.refresh(position, preferred_source)
        if error is not None:
            if position.current_price > 0 and position.data_source not in ("", "None"):
                kept = self.store.save_position(replace(position, stale=True))
                logger.warning("keeping stale data for %s (last source %s)", kept.ticker, kept.data_source)
                return kept, error
            return self.store.save_position(refreshed), error

        rate = self.context.currency.rate(refreshed.currency)
        self._persist_rate(refreshed.currency)
        saved = self.store.save_position(revalue(refreshed, rate))
        self.context.recorder.append(saved)
        self.context.recorder.prune(saved.id, self.context.config.scheduler.history_retention)
        self.evaluate_alerts(saved, prior_ev)
        return saved, None

    def evaluate_alerts(self, position: Position, prior_ev: float) -> List[Alert]:
        return self.context.evaluator.evaluate(position, prior_ev, self.store.get_settings())

    def update_field(self, position_id: int, command: PositionUpdate) -> Position:
        position = self.store.get_position(position_id)
        if position is None:
            raise KeyError(f"position {position_id} not found")
        updated, recompute = apply_update(command, position)
        if recompute:
            updated = self.compute_metrics(updated)
            updated = revalue(updated, self.context.currency.rate(updated.currency))
        saved = self.store.save_position(updated)
        logger.info("%s: manual update %s", saved.ticker, type(command).__name__)
        return saved

    def aggregate(
        self,
        positions: Optional[Sequence[Position]] = None,
        rates: Optional[Mapping[str, float]] = None,
        write_weights: bool = False,
    ) -> PortfolioMetrics:
        if positions is None:
            positions = self.store.list_positions()
        if rates is None:
            rates = self.context.currency.rates({p.currency for p in positions})
        if write_weights:
            for weighted in apply_weights(positions, rates):
                self.store.save_position(weighted)
        return aggregate(positions, rates)

    def history(self, position_id: int, limit: int = 100) -> List[HistorySnapshot]:
        return self.context.recorder.recent(position_id, limit)

    def set_manual_rate(self, currency: str, rate: float) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.context.rate_cache.put(currency, rate, manual=True)
        self.store.save_rate(ExchangeRate(currency, rate, is_manual=True))

    def rates(self) -> Dict[str, ExchangeRate]:
        return self.context.rate_cache.snapshot()

    def _persist_rate(self, currency: str) -> None:
        entry = self.context.rate_cache.snapshot().get(currency)
        if entry is not None and not entry.is_manual:
            self.store.save_rate(entry)


__all__ = ["AppContext", "PortfolioService", "build_providers"]
