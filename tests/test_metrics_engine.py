"""EV, Kelly, buy zone and assessment rules of the metrics engine."""

import math

import pytest

from ev_portfolio.config import MetricsConfig
from ev_portfolio.metrics_engine import (
    assess,
    calibrate_downside,
    compute,
    normalize_derived,
    revive_risk_inputs,
    validate_metrics,
)
from ev_portfolio.models import Position


def _make_position(**overrides) -> Position:
    defaults = dict(
        ticker="ABC",
        current_price=100.0,
        fair_value=120.0,
        probability_positive=0.65,
        downside_risk=-20.0,
        beta=1.0,
    )
    defaults.update(overrides)
    return Position(**defaults)


def test_hold_scenario_from_strategy_rules():
    result = compute(_make_position())

    assert result.upside_potential == pytest.approx(20.0)
    assert result.expected_value == pytest.approx(6.0)
    assert result.b_ratio == pytest.approx(1.0)
    assert result.kelly_fraction == pytest.approx(30.0)
    assert result.half_kelly_suggested == pytest.approx(15.0)
    assert result.assessment == "Hold"


def test_flat_price_with_negative_ev_is_sold_at_default_boundary():
    result = compute(_make_position(current_price=50.0, fair_value=50.0, downside_risk=-15.0))

    assert result.upside_potential == 0.0
    assert result.expected_value == pytest.approx(-5.25)
    assert result.assessment == "Sell"


def test_sell_boundary_is_configurable():
    config = MetricsConfig(sell_threshold=-6.0)
    result = compute(_make_position(current_price=50.0, fair_value=50.0, downside_risk=-15.0), config)

    assert result.assessment == "Trim"


@pytest.mark.parametrize(
    "beta, expected",
    [(0.2, -15.0), (0.5, -20.0), (0.99, -20.0), (1.0, -25.0), (1.49, -25.0), (1.5, -30.0), (1.8, -30.0)],
)
def test_downside_calibration_by_beta(beta, expected):
    assert calibrate_downside(beta) == expected


def test_unset_downside_is_calibrated_from_beta():
    result = compute(_make_position(downside_risk=None, beta=1.8))

    assert result.downside_risk == -30.0
    assert result.downside_calibrated is True


def test_calibrated_downside_follows_later_beta_changes():
    first = compute(_make_position(downside_risk=None, beta=1.8))
    first.beta = 0.3

    assert compute(first).downside_risk == -15.0


def test_kelly_is_floored_at_zero_when_edge_is_negative():
    result = compute(_make_position(fair_value=101.0, probability_positive=0.5))

    assert result.b_ratio == pytest.approx(0.05)
    assert result.kelly_fraction == 0.0
    assert result.half_kelly_suggested == 0.0


def test_kelly_formula_matches_definition_when_positive():
    result = compute(_make_position(fair_value=110.0, probability_positive=0.75))
    b = 10.0 / 20.0
    expected = ((b * 0.75) - 0.25) / b * 100

    assert result.kelly_fraction == pytest.approx(expected)
    assert result.half_kelly_suggested == pytest.approx(min(expected / 2, 15))


def test_zero_downside_gives_zero_b_ratio_and_kelly():
    result = compute(_make_position(downside_risk=0.0))

    assert result.b_ratio == 0.0
    assert result.kelly_fraction == 0.0


def test_zero_price_gives_zero_upside():
    result = compute(_make_position(current_price=0.0))

    assert result.upside_potential == 0.0
    assert result.expected_value == pytest.approx(0.35 * -20.0)


def test_buy_zone_inverts_ev_for_target():
    result = compute(_make_position())
    required_upside = (15.0 - 0.35 * -20.0) / 0.65
    expected_max = 120.0 / (1 + required_upside / 100)

    assert result.buy_zone_max == pytest.approx(expected_max)
    assert result.buy_zone_min == pytest.approx(expected_max * 0.90)
    assert result.buy_zone_min <= result.buy_zone_max


def test_buy_zone_falls_back_to_band_when_inversion_degenerates():
    config = MetricsConfig(target_ev=-50.0)
    result = compute(_make_position(), config)

    assert result.buy_zone_min == pytest.approx(85.0)
    assert result.buy_zone_max == pytest.approx(95.0)


def test_buy_zone_empty_without_fair_value():
    result = compute(_make_position(fair_value=0.0))

    assert (result.buy_zone_min, result.buy_zone_max) == (0.0, 0.0)


@pytest.mark.parametrize(
    "ev, expected",
    [(7.01, "Add"), (7.0, "Hold"), (0.01, "Hold"), (0.0, "Trim"), (-4.99, "Trim"), (-5.0, "Sell"), (-40.0, "Sell")],
)
def test_assessment_bands_are_exclusive(ev, expected):
    assert assess(ev) == expected


def test_compute_is_idempotent_on_unchanged_inputs():
    position = _make_position(downside_risk=None, beta=1.2)

    once = compute(position)

    assert compute(position) == once
    assert compute(once) == once


def test_compute_does_not_mutate_input():
    position = _make_position()
    compute(position)

    assert position.expected_value == 0.0
    assert position.assessment == ""


@pytest.mark.parametrize(
    "overrides",
    [
        {"probability_positive": 1.5},
        {"current_price": math.nan},
        {"fair_value": -3.0},
        {"downside_risk": math.inf},
    ],
)
def test_invalid_inputs_yield_neutral_metrics(overrides):
    result = compute(_make_position(**overrides))

    assert result.expected_value == 0.0
    assert result.assessment == "Trim"
    assert result.kelly_fraction == 0.0
    assert result.half_kelly_suggested == 0.0
    assert result.buy_zone_min == result.buy_zone_max == 0.0


def test_unavailable_positions_are_left_alone():
    position = _make_position(assessment="Unavailable", data_source="None", current_price=0.0)

    assert compute(position).assessment == "Unavailable"


def test_normalize_derived_restores_invariants():
    position = _make_position(
        kelly_fraction=-12.0,
        half_kelly_suggested=40.0,
        buy_zone_min=95.0,
        buy_zone_max=80.0,
        expected_value=9.0,
        assessment="Strong Buy",
    )

    result = normalize_derived(position)

    assert result.kelly_fraction == 0.0
    assert result.half_kelly_suggested == 0.0
    assert (result.buy_zone_min, result.buy_zone_max) == (80.0, 95.0)
    assert result.assessment == "Add"


def test_inflated_fair_value_is_flagged():
    result = compute(_make_position(fair_value=250.0))

    issues = validate_metrics(result)

    assert len(issues) == 1
    assert "upside" in str(issues[0])


@pytest.mark.parametrize(
    "ev, label, expected",
    [(-15.0, "Hold", "Sell"), (-4.0, "Sell", "Trim"), (12.0, "Trim", "Add"), (3.0, "Add", "Hold")],
)
def test_normalize_derived_relabels_from_adopted_ev(ev, label, expected):
    result = normalize_derived(_make_position(expected_value=ev, assessment=label))

    assert result.expected_value == ev
    assert result.assessment == expected


def test_normalize_derived_recomputes_half_kelly_from_kelly():
    result = normalize_derived(_make_position(kelly_fraction=18.0, half_kelly_suggested=14.0))

    assert result.half_kelly_suggested == pytest.approx(9.0)

    capped = normalize_derived(_make_position(kelly_fraction=50.0, half_kelly_suggested=5.0))
    assert capped.half_kelly_suggested == 15.0


def test_revive_risk_inputs_replaces_zero_placeholders():
    revived = revive_risk_inputs(_make_position(probability_positive=0.0, downside_risk=0.0))

    assert revived.probability_positive == 0.65
    assert revived.downside_risk is None
    assert compute(revived).downside_risk == calibrate_downside(1.0)


def test_revive_risk_inputs_keeps_explicit_values():
    position = _make_position(probability_positive=0.0, downside_risk=-10.0)

    revived = revive_risk_inputs(position, keep={"probability_positive"})

    assert revived.probability_positive == 0.0
    assert revived.downside_risk == -10.0


def test_metrics_config_is_immutable():
    config = MetricsConfig()

    with pytest.raises(AttributeError):
        config.sell_threshold = -3.0
