import pytest

from ev_portfolio.models import Position
from ev_portfolio.portfolio_aggregator import aggregate, apply_weights, revalue


def _holding(ticker: str, shares: float, price: float, currency: str = "USD", sector: str = "Tech",
             ev: float = 0.0, volatility: float = 0.0) -> Position:
    return Position(
        ticker=ticker,
        shares_owned=shares,
        current_price=price,
        currency=currency,
        sector=sector,
        expected_value=ev,
        volatility=volatility,
    )


def test_empty_portfolio_is_all_zero():
    metrics = aggregate([], {})

    assert metrics.total_value == 0.0
    assert metrics.weighted_ev == 0.0
    assert metrics.weighted_volatility == 0.0
    assert metrics.risk_adjusted_return == 0.0
    assert metrics.kelly_utilization == 0.0
    assert metrics.sector_weights == {}


def test_zero_value_positions_get_zero_weights():
    metrics = aggregate([_holding("A", 0, 100.0), _holding("B", 10, 0.0)], {"USD": 1.0})

    assert metrics.total_value == 0.0
    assert metrics.weights == {"A": 0.0, "B": 0.0}


def test_weights_are_fx_normalized_and_sum_to_100():
    positions = [
        _holding("A", 10, 100.0, "USD", "Tech", ev=10.0, volatility=20.0),
        _holding("B", 10, 100.0, "EUR", "Health", ev=-2.0, volatility=30.0),
    ]

    metrics = aggregate(positions, {"USD": 1.0, "EUR": 1.1})

    assert metrics.total_value == pytest.approx(2100.0)
    assert metrics.weights["A"] == pytest.approx(1000 / 2100 * 100)
    assert metrics.weights["B"] == pytest.approx(1100 / 2100 * 100)
    assert sum(metrics.weights.values()) == pytest.approx(100.0, abs=1e-6)
    assert metrics.kelly_utilization == pytest.approx(100.0, abs=1e-6)
    expected_ev = 10.0 * 1000 / 2100 - 2.0 * 1100 / 2100
    expected_vol = 20.0 * 1000 / 2100 + 30.0 * 1100 / 2100
    assert metrics.weighted_ev == pytest.approx(expected_ev)
    assert metrics.weighted_volatility == pytest.approx(expected_vol)
    assert metrics.risk_adjusted_return == pytest.approx(expected_ev / expected_vol)


def test_sector_weights_group_by_sector():
    positions = [
        _holding("A", 1, 50.0, sector="Tech"),
        _holding("B", 1, 25.0, sector="Tech"),
        _holding("C", 1, 25.0, sector=""),
    ]

    metrics = aggregate(positions, {})

    assert metrics.sector_weights["Tech"] == pytest.approx(75.0)
    assert metrics.sector_weights["Unknown"] == pytest.approx(25.0)


def test_missing_rate_defaults_to_one():
    metrics = aggregate([_holding("A", 2, 10.0, "DKK")], {"USD": 1.0})

    assert metrics.total_value == pytest.approx(20.0)


def test_zero_volatility_gives_zero_risk_adjusted_return():
    metrics = aggregate([_holding("A", 1, 10.0, ev=5.0)], {})

    assert metrics.weighted_ev == pytest.approx(5.0)
    assert metrics.risk_adjusted_return == 0.0


def test_revalue_computes_base_value_and_pnl():
    position = Position(ticker="A", shares_owned=10, current_price=120.0, avg_price_local=100.0)

    result = revalue(position, 2.0)

    assert result.current_value_base == pytest.approx(2400.0)
    assert result.unrealized_pnl == pytest.approx(400.0)


def test_apply_weights_writes_each_position_weight():
    weighted = apply_weights([_holding("A", 3, 10.0), _holding("B", 1, 10.0)], {"USD": 1.0})

    assert [p.weight for p in weighted] == pytest.approx([75.0, 25.0])
