import pytest

from ev_portfolio.alpha_vantage import AlphaVantageProvider, parse_number
from ev_portfolio.config import ProviderConfig
from ev_portfolio.errors import ProviderError
from ev_portfolio.models import Position


QUOTE = {"Global Quote": {"01. symbol": "MSFT", "05. price": "412.50"}}
OVERVIEW = {
    "Symbol": "MSFT",
    "Name": "Microsoft Corporation",
    "Sector": "TECHNOLOGY",
    "Beta": "0.90",
    "AnalystTargetPrice": "480.00",
    "PERatio": "None",
    "DividendYield": "0.0072",
    "QuarterlyEarningsGrowthYOY": "0.104",
}


def _provider(session):
    return AlphaVantageProvider("demo-key", config=ProviderConfig(backoff_base=0.0), session=session)


@pytest.mark.parametrize(
    "raw, expected",
    [("1.25", 1.25), ("12%", 12.0), ("None", None), ("-", None), ("", None), (None, None), (3, 3.0), ("n/a", None)],
)
def test_parse_number(raw, expected):
    assert parse_number(raw) == expected


def test_quote_and_overview_are_merged(fake_http):
    session = fake_http.Session([fake_http.Response(payload=QUOTE), fake_http.Response(payload=OVERVIEW)])

    patch = _provider(session).fetch(Position(ticker="MSFT"))

    assert patch.source == "Alpha Vantage"
    assert patch.price == pytest.approx(412.5)
    assert patch.fields["fair_value"] == pytest.approx(480.0)
    assert patch.fields["beta"] == pytest.approx(0.9)
    assert patch.fields["eps_growth_rate"] == pytest.approx(10.4)
    assert patch.fields["sector"] == "TECHNOLOGY"
    assert "pe_ratio" not in patch.fields
    assert patch.fair_value_source.startswith("Alpha Vantage Consensus")
    assert patch.derived is False
    assert [call.params["function"] for call in session.calls] == ["GLOBAL_QUOTE", "OVERVIEW"]
    assert session.calls[0].params["apikey"] == "demo-key"


def test_overview_failure_keeps_the_quote(fake_http):
    session = fake_http.Session([fake_http.Response(payload=QUOTE), fake_http.Response(payload={})])

    patch = _provider(session).fetch(Position(ticker="MSFT"))

    assert patch.price == pytest.approx(412.5)
    assert "fair_value" not in patch.fields
    assert patch.fair_value_source is None


def test_throttle_note_on_both_calls_raises(fake_http):
    note = {"Note": "Thank you for using Alpha Vantage! Our standard API rate limit is 25 requests per day."}
    session = fake_http.Session([fake_http.Response(payload=note), fake_http.Response(payload=note)])

    with pytest.raises(ProviderError, match="GLOBAL_QUOTE"):
        _provider(session).fetch(Position(ticker="MSFT"))


def test_unknown_ticker_without_quote_gives_no_price(fake_http):
    session = fake_http.Session([
        fake_http.Response(payload={"Global Quote": {}}),
        fake_http.Response(payload=OVERVIEW),
    ])

    patch = _provider(session).fetch(Position(ticker="MSFT"))

    assert patch.price == 0.0


def test_api_key_is_required():
    with pytest.raises(ValueError):
        AlphaVantageProvider("")
