"""Cadence-driven refresh batches and the periodic alert sweep.

A batch is a single sequential loop over the positions of one tier. There is
no fan-out: provider rate limits are respected by pausing between positions,
and each position's refresh, persist, history and alert steps finish before
the next position starts.
"""
from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from .config import SchedulerConfig
from .models import TIERS, BatchResult, utcnow
from .service import PortfolioService


logger = logging.getLogger(__name__)

IDLE = "idle"


class Scheduler:
    def __init__(
        self,
        service: PortfolioService,
        config: SchedulerConfig = SchedulerConfig(),
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.service = service
        self.config = config
        self._sleep = sleep
        self._lock = threading.Lock()
        self.state = IDLE
        self.last_runs: Dict[str, datetime] = {}
        self.last_sweep: Optional[datetime] = None

    def refresh_all_due(self, tier: str) -> BatchResult:
        """Refresh every position of ``tier``; a skipped result when a batch is already running."""
        if tier not in TIERS:
            raise ValueError(f"unknown tier {tier!r}; expected one of {TIERS}")
        if not self._lock.acquire(blocking=False):
            logger.warning("%s batch requested while %s, skipping", tier, self.state)
            return BatchResult(tier=tier, skipped=True)
        self.state = f"running({tier})"
        try:
            return self._run_batch(tier)
        finally:
            self.state = IDLE
            self._lock.release()

    run_tier = refresh_all_due

    def _run_batch(self, tier: str) -> BatchResult:
        store = self.service.store
        positions = store.list_positions(update_frequency=tier)
        result = BatchResult(tier=tier, total=len(positions))
        logger.info("running %s update for %d positions", tier, len(positions))

        for index, position in enumerate(positions):
            if index and self.config.per_position_delay > 0:
                self._sleep(self.config.per_position_delay)
            try:
                _, error = self.service.refresh_position(position.id)
            except Exception:  # one position must not abort the batch
                logger.exception("failed to update %s", position.ticker)
                result.errors += 1
                continue
            if error is not None:
                logger.warning("failed to update %s: %s", position.ticker, error)
                result.errors += 1
            else:
                logger.debug("%s updated", position.ticker)
                result.updated += 1

        settings = store.get_settings()
        settings.last_update_run = utcnow()
        store.save_settings(settings)
        logger.info("%s update completed: %d updated, %d errors, %d total",
                    tier, result.updated, result.errors, result.total)
        return result

    def deliver_alerts(self) -> int:
        self.last_sweep = utcnow()
        return self.service.context.dispatcher.deliver_pending()

    def due_tiers(self, now: datetime) -> List[str]:
        """Daily every day, weekly on Mondays, monthly on the 1st; once per day each."""
        due: List[str] = []
        for tier in TIERS:
            last = self.last_runs.get(tier)
            if last is not None and last.date() == now.date():
                continue
            if tier == "weekly" and now.weekday() != 0:
                continue
            if tier == "monthly" and now.day != 1:
                continue
            due.append(tier)
        return due

    def sweep_due(self, now: datetime) -> bool:
        if self.last_sweep is None:
            return True
        return now - self.last_sweep >= timedelta(seconds=self.config.alert_sweep_interval)

    def run_pending(self, now: Optional[datetime] = None) -> List[BatchResult]:
        now = now or utcnow()
        results: List[BatchResult] = []
        for tier in self.due_tiers(now):
            result = self.refresh_all_due(tier)
            if not result.skipped:
                self.last_runs[tier] = now
                results.append(result)
        if self.sweep_due(now):
            self.deliver_alerts()
            self.last_sweep = now
        return results

    def run_forever(self, stop: threading.Event) -> None:
        logger.info("scheduler started (poll every %.0fs)", self.config.poll_interval)
        while not stop.is_set():
            self.run_pending()
            stop.wait(self.config.poll_interval)
        logger.info("scheduler stopped")


__all__ = ["Scheduler"]
