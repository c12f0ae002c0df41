"""Persistence interface and an in-memory implementation."""
from __future__ import annotations

import itertools
from dataclasses import replace
from typing import Dict, List, Optional, Protocol

from .models import Alert, ExchangeRate, HistorySnapshot, PortfolioSettings, Position, utcnow


class Store(Protocol):
    def get_position(self, position_id: int) -> Optional[Position]:
        ...

    def list_positions(self, update_frequency: Optional[str] = None) -> List[Position]:
        ...

    def save_position(self, position: Position) -> Position:
        ...

    def add_snapshot(self, snapshot: HistorySnapshot) -> None:
        ...

    def list_snapshots(self, position_id: int, limit: Optional[int] = None) -> List[HistorySnapshot]:
        """Newest first."""
        ...

    def delete_snapshots(self, position_id: int, keep: int) -> int:
        ...

    def add_alert(self, alert: Alert) -> Alert:
        ...

    def save_alert(self, alert: Alert) -> Alert:
        ...

    def list_alerts(self, delivered: Optional[bool] = None) -> List[Alert]:
        ...

    def get_settings(self) -> PortfolioSettings:
        ...

    def save_settings(self, settings: PortfolioSettings) -> None:
        ...

    def save_rate(self, rate: ExchangeRate) -> None:
        ...

    def list_rates(self) -> List[ExchangeRate]:
        ...


class InMemoryStore(Store):
    """A simple in-process store useful for tests or single-user runs."""

    def __init__(self, positions: Optional[List[Position]] = None,
                 settings: Optional[PortfolioSettings] = None):
        self._ids = itertools.count(1)
        self._alert_ids = itertools.count(1)
        self._positions: Dict[int, Position] = {}
        self._snapshots: Dict[int, List[HistorySnapshot]] = {}
        self._alerts: Dict[int, Alert] = {}
        self._rates: Dict[str, ExchangeRate] = {}
        self._settings = settings or PortfolioSettings()
        for position in positions or []:
            self.save_position(position)

    def get_position(self, position_id: int) -> Optional[Position]:
        position = self._positions.get(position_id)
        return replace(position) if position is not None else None

    def list_positions(self, update_frequency: Optional[str] = None) -> List[Position]:
        return [
            replace(p) for p in self._positions.values()
            if update_frequency is None or p.update_frequency == update_frequency
        ]

    def save_position(self, position: Position) -> Position:
        if position.id is None:
            position = replace(position, id=next(self._ids))
        position = replace(position, updated_at=utcnow())
        self._positions[position.id] = position
        return replace(position)

    def add_snapshot(self, snapshot: HistorySnapshot) -> None:
        self._snapshots.setdefault(snapshot.position_id, []).append(snapshot)

    def list_snapshots(self, position_id: int, limit: Optional[int] = None) -> List[HistorySnapshot]:
        snaps = sorted(self._snapshots.get(position_id, []), key=lambda s: s.recorded_at, reverse=True)
        return snaps[:limit] if limit is not None else snaps

    def delete_snapshots(self, position_id: int, keep: int) -> int:
        snaps = self.list_snapshots(position_id)
        kept, dropped = snaps[:keep], snaps[keep:]
        self._snapshots[position_id] = list(reversed(kept))
        return len(dropped)

    def add_alert(self, alert: Alert) -> Alert:
        alert = replace(alert, id=next(self._alert_ids))
        self._alerts[alert.id] = alert
        return replace(alert)

    def save_alert(self, alert: Alert) -> Alert:
        if alert.id is None:
            return self.add_alert(alert)
        self._alerts[alert.id] = replace(alert)
        return replace(alert)

    def list_alerts(self, delivered: Optional[bool] = None) -> List[Alert]:
        return [
            replace(a) for a in sorted(self._alerts.values(), key=lambda a: a.id)
            if delivered is None or a.delivered == delivered
        ]

    def get_settings(self) -> PortfolioSettings:
        return replace(self._settings)

    def save_settings(self, settings: PortfolioSettings) -> None:
        self._settings = replace(settings)

    def save_rate(self, rate: ExchangeRate) -> None:
        self._rates[rate.currency_code] = replace(rate)

    def list_rates(self) -> List[ExchangeRate]:
        return [replace(r) for r in self._rates.values()]


__all__ = ["InMemoryStore", "Store"]
