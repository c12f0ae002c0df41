"""Alert evaluation after a refresh and the delivery sweep."""

from datetime import datetime, timedelta, timezone

from ev_portfolio.alerts import AlertDispatcher, AlertEvaluator, in_buy_zone
from ev_portfolio.email_notifier import alert_payload
from ev_portfolio.history import HistoryRecorder
from ev_portfolio.models import Alert, PortfolioSettings, Position
from ev_portfolio.store import InMemoryStore


def _position(**overrides) -> Position:
    defaults = dict(ticker="ABC", id=1, current_price=100.0, expected_value=6.0,
                    buy_zone_min=80.0, buy_zone_max=90.0)
    defaults.update(overrides)
    return Position(**defaults)


class _RecordingNotifier:
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send_alert(self, alert):
        if alert.ticker in self.fail_for:
            raise OSError("smtp refused")
        self.sent.append(alert)


def test_ev_change_above_threshold_raises_alert():
    alerts = AlertEvaluator().evaluate(_position(expected_value=25.0), 10.0, PortfolioSettings())

    assert [a.alert_type for a in alerts] == ["ev_change"]
    assert "+15.00%" in alerts[0].message


def test_ev_change_at_threshold_is_quiet():
    assert AlertEvaluator().evaluate(_position(expected_value=20.0), 10.0, PortfolioSettings()) == []


def test_disabled_alerts_suppress_ev_change_only():
    settings = PortfolioSettings(alerts_enabled=False)
    position = _position(expected_value=40.0, current_price=85.0)

    alerts = AlertEvaluator().evaluate(position, 0.0, settings)

    assert [a.alert_type for a in alerts] == ["buy_zone"]


def test_buy_zone_bounds_are_inclusive():
    assert in_buy_zone(_position(current_price=80.0))
    assert in_buy_zone(_position(current_price=90.0))
    assert not in_buy_zone(_position(current_price=90.01))


def test_zero_price_or_empty_zone_is_never_in_buy_zone():
    assert not in_buy_zone(_position(current_price=0.0, buy_zone_min=0.0))
    assert not in_buy_zone(_position(current_price=0.0, buy_zone_min=0.0, buy_zone_max=0.0))


def test_evaluator_persists_alerts():
    store = InMemoryStore()

    AlertEvaluator(store).evaluate(_position(expected_value=30.0, current_price=85.0), 0.0, PortfolioSettings())

    assert len(store.list_alerts(delivered=False)) == 2


def test_dispatcher_delivers_and_marks():
    store = InMemoryStore()
    store.add_alert(Alert(1, "ABC", "ev_change", "EV up"))
    notifier = _RecordingNotifier()

    assert AlertDispatcher(store, notifier).deliver_pending() == 1
    assert store.list_alerts(delivered=False) == []
    assert len(notifier.sent) == 1


def test_failed_delivery_stays_queued():
    store = InMemoryStore()
    store.add_alert(Alert(1, "ABC", "ev_change", "EV up"))
    store.add_alert(Alert(2, "XYZ", "buy_zone", "in zone"))
    notifier = _RecordingNotifier(fail_for={"ABC"})

    assert AlertDispatcher(store, notifier).deliver_pending() == 1
    pending = store.list_alerts(delivered=False)
    assert [a.ticker for a in pending] == ["ABC"]


def test_dispatcher_respects_disabled_alerts():
    store = InMemoryStore(settings=PortfolioSettings(alerts_enabled=False))
    store.add_alert(Alert(1, "ABC", "ev_change", "EV up"))

    assert AlertDispatcher(store, _RecordingNotifier()).deliver_pending() == 0
    assert len(store.list_alerts(delivered=False)) == 1


def test_alert_payload_mentions_ticker_and_type():
    payload = alert_payload(Alert(1, "ABC", "buy_zone", "ABC is in buy zone"))

    assert payload.subject == "Stock Alert: ABC - buy_zone"
    assert "ABC is in buy zone" in payload.body


def test_history_is_newest_first_and_prunable():
    store = InMemoryStore()
    recorder = HistoryRecorder(store)
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    for day in range(5):
        recorder.append(_position(expected_value=float(day)), recorded_at=start + timedelta(days=day))

    assert [s.expected_value for s in recorder.recent(1, limit=2)] == [4.0, 3.0]
    assert recorder.prune(1, keep=3) == 2
    assert [s.expected_value for s in recorder.recent(1)] == [4.0, 3.0, 2.0]
