"""Append-only metric history per position."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from .models import HistorySnapshot, Position, utcnow
from .store import Store


def snapshot_of(position: Position, recorded_at: Optional[datetime] = None) -> HistorySnapshot:
    return HistorySnapshot(
        position_id=position.id,
        ticker=position.ticker,
        current_price=position.current_price,
        fair_value=position.fair_value,
        upside_potential=position.upside_potential,
        downside_risk=position.downside_risk or 0.0,
        probability_positive=position.probability_positive,
        expected_value=position.expected_value,
        kelly_fraction=position.kelly_fraction,
        weight=position.weight,
        assessment=position.assessment,
        recorded_at=recorded_at or utcnow(),
    )


class HistoryRecorder:
    def __init__(self, store: Store):
        self.store = store

    def append(self, position: Position, recorded_at: Optional[datetime] = None) -> HistorySnapshot:
        snapshot = snapshot_of(position, recorded_at)
        self.store.add_snapshot(snapshot)
        return snapshot

    def recent(self, position_id: int, limit: int = 100) -> List[HistorySnapshot]:
        return self.store.list_snapshots(position_id, limit=limit)

    def prune(self, position_id: int, keep: int) -> int:
        """Drop all but the newest ``keep`` snapshots; returns how many were removed."""
        if keep < 0:
            raise ValueError("keep must be >= 0")
        return self.store.delete_snapshots(position_id, keep)


__all__ = ["HistoryRecorder", "snapshot_of"]
