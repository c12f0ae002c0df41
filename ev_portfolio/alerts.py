"""Threshold alerts raised after a refresh, and their delivery sweep."""
from __future__ import annotations

import logging
from typing import List, Optional

from .errors import PortfolioError
from .email_notifier import Notifier
from .models import BUY_ZONE, EV_CHANGE, Alert, PortfolioSettings, Position
from .store import Store


logger = logging.getLogger(__name__)


def in_buy_zone(position: Position) -> bool:
    if position.current_price <= 0 or position.buy_zone_max <= 0:
        return False
    return position.buy_zone_min <= position.current_price <= position.buy_zone_max


class AlertEvaluator:
    """Compares post-refresh metrics against the EV captured before the refresh."""

    def __init__(self, store: Optional[Store] = None):
        self.store = store

    def evaluate(self, position: Position, prior_ev: float, settings: PortfolioSettings) -> List[Alert]:
        alerts: List[Alert] = []
        change = position.expected_value - prior_ev
        if settings.alerts_enabled and abs(change) > settings.alert_threshold_ev:
            alerts.append(Alert(
                position_id=position.id,
                ticker=position.ticker,
                alert_type=EV_CHANGE,
                message=f"EV changed from {prior_ev:.2f}% to {position.expected_value:.2f}% ({change:+.2f}%)",
            ))
        if in_buy_zone(position):
            alerts.append(Alert(
                position_id=position.id,
                ticker=position.ticker,
                alert_type=BUY_ZONE,
                message=(
                    f"{position.ticker} is in buy zone at {position.current_price:.2f} "
                    f"({position.buy_zone_min:.2f}-{position.buy_zone_max:.2f})"
                ),
            ))
        if self.store is not None:
            alerts = [self.store.add_alert(alert) for alert in alerts]
        return alerts


class AlertDispatcher:
    """Delivers queued alerts; failures stay queued for the next sweep."""

    def __init__(self, store: Store, notifier: Optional[Notifier]):
        self.store = store
        self.notifier = notifier

    def deliver_pending(self) -> int:
        if not self.store.get_settings().alerts_enabled:
            return 0
        pending = self.store.list_alerts(delivered=False)
        if not pending:
            return 0
        if self.notifier is None:
            logger.warning("%d alerts queued but no notifier configured", len(pending))
            return 0

        logger.info("found %d undelivered alerts", len(pending))
        delivered = 0
        for alert in pending:
            try:
                self.notifier.send_alert(alert)
            except (OSError, ValueError, PortfolioError) as exc:
                logger.warning("failed to deliver alert %s for %s: %s", alert.id, alert.ticker, exc)
                continue
            alert.delivered = True
            self.store.save_alert(alert)
            delivered += 1
            logger.info("alert %s delivered", alert.id)
        return delivered


__all__ = ["AlertDispatcher", "AlertEvaluator", "in_buy_zone"]
