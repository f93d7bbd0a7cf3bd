"""AI prompt generation and save/paste-back workflow tests."""

from datetime import date

import pytest

from errors import PersistenceError, ValidationError
from repositories import AnalysisRepository
from services import analysis as analysis_module
from services.analysis import AnalysisService, generate_portfolio_prompt, generate_stock_prompt
from services.ledger import LedgerService
from services.market_data import MarketPrice
from services.positions import AggregatedPosition


class StubRates:
    def __init__(self, rates=None):
        self.rates = rates or {}

    def get_rate(self, from_currency, to_currency):
        if from_currency == to_currency:
            return 1.0
        return self.rates.get((from_currency, to_currency), 1.0)


def row(symbol, quantity, average_price, current_price=None, currency="USD"):
    return AggregatedPosition(
        symbol=symbol,
        asset_type="stock",
        total_quantity=quantity,
        average_price=average_price,
        total_cost=quantity * average_price,
        first_purchase_date=date(2024, 1, 1),
        last_purchase_date=date(2024, 3, 1),
        purchase_count=2,
        currency=currency,
        current_price=current_price,
    )


def test_portfolio_prompt_overview():
    prompt = generate_portfolio_prompt([row("ABC", 10, 80, current_price=100), row("XYZ", 5, 20)])

    assert prompt.startswith("Please analyze my investment portfolio:")
    assert "Total Portfolio Value: $1,000.00 (1/2 positions have current pricing)" in prompt
    assert "Total Cost Basis: $900.00" in prompt
    assert "Total P&L: +$100.00 (11.11%)" in prompt
    assert "1 position(s) missing current price data" in prompt
    assert "P&L: +$200.00 (25.00%)" in prompt
    assert "XYZ (stock)" in prompt and "[Price data unavailable]" in prompt
    assert "**Risk Assessment**" in prompt
    assert "**Market Outlook**" in prompt


def test_portfolio_prompt_without_missing_prices():
    prompt = generate_portfolio_prompt([row("ABC", 10, 120, current_price=100)])

    assert "missing current price data" not in prompt
    assert "Total P&L: -$200.00 (-16.67%)" in prompt


def test_portfolio_prompt_normalizes_totals_to_usd():
    prompt = generate_portfolio_prompt(
        [row("BBCA.JK", 100, 9000, current_price=10000, currency="IDR")],
        usd_rates={"IDR": 0.0001},
    )

    assert "Total Portfolio Value: $100.00" in prompt
    assert "current price: Rp10,000" in prompt


def test_stock_prompt():
    prompt = generate_stock_prompt("nvda", 123.456)

    assert "comprehensive analysis of NVDA at the current price of $123.46" in prompt
    assert "**Recommendation**" in prompt


def test_portfolio_analysis_requires_positions(db):
    with pytest.raises(ValidationError, match="No positions"):
        AnalysisService.create_portfolio_analysis("u1", price_lookup=lambda symbols: {}, currency_service=StubRates())


def test_portfolio_analysis_is_saved(db):
    LedgerService.record_transaction("u1", "ABC", "buy", 10, 80, "stock", transaction_date=date(2024, 1, 1))
    LedgerService.record_transaction("u1", "OLD", "buy", 1, 10, "stock", transaction_date=date(2024, 1, 1))
    LedgerService.record_transaction("u1", "OLD", "sell", 1, 12, "stock", transaction_date=date(2024, 1, 2))

    prompt, analysis_id = AnalysisService.create_portfolio_analysis(
        "u1",
        price_lookup=lambda symbols: {"ABC": MarketPrice("ABC", 100.0, 0.0, 0.0)},
        currency_service=StubRates(),
    )

    assert "OLD" not in prompt
    assert "(1/1 positions have current pricing)" in prompt
    [saved] = AnalysisService.list_analyses("u1")
    assert saved.id == analysis_id
    assert saved.analysis_type == "aggregated_portfolio_analysis"
    assert saved.prompt_used == prompt
    assert saved.result == ""


def test_save_failure_still_returns_prompt(db, monkeypatch):
    def broken_add(*args, **kwargs):
        raise PersistenceError("db down")

    monkeypatch.setattr(analysis_module.AnalysisRepository, "add", staticmethod(broken_add))

    prompt, analysis_id = AnalysisService.create_stock_analysis("u1", "ABC", 10.0)

    assert "ABC" in prompt
    assert analysis_id is None


@pytest.mark.parametrize("symbol, price", [("", 10.0), ("ABC", 0), ("ABC", None)])
def test_stock_analysis_validation(db, symbol, price):
    with pytest.raises(ValidationError):
        AnalysisService.create_stock_analysis("u1", symbol, price)


def test_save_result_round_trip(db):
    _, analysis_id = AnalysisService.create_stock_analysis("u1", "ABC", 10.0)

    saved = AnalysisService.save_result("u1", analysis_id, "  Hold.  ")

    assert saved.result == "Hold."
    assert AnalysisService.list_analyses("u1")[0].analysis_type == "stock_analysis"


def test_save_result_rejects_empty_and_foreign(db):
    _, analysis_id = AnalysisService.create_stock_analysis("u1", "ABC", 10.0)

    with pytest.raises(ValidationError):
        AnalysisService.save_result("u1", analysis_id, "   ")
    with pytest.raises(ValidationError):
        AnalysisService.save_result("intruder", analysis_id, "Sell everything")
    with pytest.raises(ValidationError):
        AnalysisService.save_result("u1", 9999, "Hold")

    assert AnalysisRepository.get_by_user("u1")[0].result == ""


def test_analyses_are_listed_newest_first(db):
    _, first = AnalysisService.create_stock_analysis("u1", "ABC", 10.0)
    _, second = AnalysisService.create_stock_analysis("u1", "XYZ", 10.0)

    assert [a.id for a in AnalysisService.list_analyses("u1")] == [second, first]
