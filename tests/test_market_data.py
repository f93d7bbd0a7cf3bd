"""Market price gateway tests with a fake yfinance Ticker."""

import pandas as pd
import pytest

from services import market_data
from services.market_data import MarketDataService

QUOTES = {
    "AAPL": {"regularMarketPrice": 190.0, "regularMarketPreviousClose": 200.0, "currency": "USD"},
    "BBCA.JK": {"currentPrice": 9500.0, "previousClose": 9400.0, "currency": "IDR"},
    "NOHIST": {},
    "HISTONLY": {"currency": "USD"},
}


class FakeTicker:
    def __init__(self, symbol):
        self.symbol = symbol

    @property
    def info(self):
        if self.symbol == "BOOM":
            raise RuntimeError("rate limited")
        return QUOTES.get(self.symbol, {})

    def history(self, period="1d"):
        if self.symbol == "HISTONLY":
            return pd.DataFrame({"Close": [41.0, 42.5]})
        return pd.DataFrame()


@pytest.fixture(autouse=True)
def fake_yfinance(monkeypatch):
    monkeypatch.setattr(market_data.yf, "Ticker", FakeTicker)


def test_price_and_daily_change():
    quote = MarketDataService.get_price("aapl")

    assert quote.symbol == "AAPL"
    assert quote.price == 190.0
    assert quote.change == pytest.approx(-10.0)
    assert quote.change_percent == pytest.approx(-5.0)
    assert quote.currency == "USD"


def test_native_currency_is_reported():
    quote = MarketDataService.get_price("BBCA.JK")

    assert quote.currency == "IDR"
    assert quote.change == pytest.approx(100.0)


def test_history_fallback():
    quote = MarketDataService.get_price("HISTONLY")

    assert quote.price == 42.5
    assert quote.change == 0.0


def test_unknown_symbol_returns_none():
    assert MarketDataService.get_price("NOHIST") is None


def test_errors_are_swallowed():
    assert MarketDataService.get_price("BOOM") is None


def test_batch_drops_failures_and_duplicates():
    prices = MarketDataService.get_prices(["AAPL", "aapl", "BOOM", "BBCA.JK", "NOHIST"], max_workers=2)

    assert set(prices) == {"AAPL", "BBCA.JK"}
    assert prices["BBCA.JK"].price == 9500.0


def test_empty_batch():
    assert MarketDataService.get_prices([]) == {}
