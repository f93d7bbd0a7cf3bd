"""
AI analysis workflow.

No model is called from here: a prompt is generated from the user's holdings
and saved, the user pastes it into an external assistant, and the response is
pasted back and stored against the saved prompt.
"""

import logging
from typing import Dict, List, Optional, Tuple

from errors import PersistenceError, ValidationError
from models import Analysis
from prompts import PORTFOLIO_ANALYSIS_TEMPLATE, STOCK_ANALYSIS_TEMPLATE, render_prompt
from repositories import AnalysisRepository
from services.common import format_currency, normalize_symbol, require_user
from services.currency import CurrencyService, get_currency_service
from services.portfolio import PortfolioService, PriceLookup, REPORTING_CURRENCY
from services.market_data import MarketDataService
from services.positions import AggregatedPosition

logger = logging.getLogger(__name__)

PORTFOLIO_ANALYSIS = "aggregated_portfolio_analysis"
STOCK_ANALYSIS = "stock_analysis"


def _signed(amount: float, currency: str) -> str:
    return f"+{format_currency(amount, currency)}" if amount >= 0 else format_currency(amount, currency)


def _position_line(position: AggregatedPosition) -> str:
    currency = position.currency
    head = (
        f"{position.symbol} ({position.asset_type}): {position.total_quantity:g} units, "
        f"avg price {format_currency(position.average_price, currency)} "
        f"({position.purchase_count} transactions, {position.first_purchase_date} to {position.last_purchase_date})"
    )
    if position.current_price and position.current_price > 0:
        value = position.current_price * position.total_quantity
        pnl = value - position.total_cost
        pnl_pct = (pnl / position.total_cost * 100) if position.total_cost > 0 else 0.0
        return (
            f"{head}, current price: {format_currency(position.current_price, currency)}, "
            f"current value: {format_currency(value, currency)}, "
            f"P&L: {_signed(pnl, currency)} ({pnl_pct:.2f}%)"
        )
    return f"{head}, current price: [Price data unavailable], cost basis: {format_currency(position.total_cost, currency)}"


def generate_portfolio_prompt(
    positions: List[AggregatedPosition],
    usd_rates: Optional[Dict[str, float]] = None
) -> str:
    """
    Build the portfolio review prompt.

    Totals are reported in USD; `usd_rates` maps a position currency to its
    USD rate (missing currencies use 1.0). Positions without a price count
    towards cost but not value, and the overview says how many are missing.
    """
    usd_rates = usd_rates or {}

    total_value = 0.0
    total_cost = 0.0
    priced = 0
    for p in positions:
        rate = usd_rates.get(p.currency, 1.0)
        total_cost += p.total_cost * rate
        if p.current_price and p.current_price > 0:
            total_value += p.current_price * p.total_quantity * rate
            priced += 1

    total_pnl = total_value - total_cost
    total_pnl_pct = (total_pnl / total_cost * 100) if total_cost > 0 else 0.0

    missing = len(positions) - priced
    pricing_note = ""
    if missing:
        pricing_note = (
            f"\nNote: {missing} position(s) missing current price data - actual values may be higher.\n"
        )

    return render_prompt(
        PORTFOLIO_ANALYSIS_TEMPLATE,
        total_value=format_currency(total_value, REPORTING_CURRENCY),
        priced_count=priced,
        position_count=len(positions),
        total_cost=format_currency(total_cost, REPORTING_CURRENCY),
        total_pnl=_signed(total_pnl, REPORTING_CURRENCY),
        total_pnl_percent=f"{total_pnl_pct:.2f}",
        pricing_note=pricing_note,
        positions="\n".join(_position_line(p) for p in positions)
    )


def generate_stock_prompt(symbol: str, current_price: float, currency: str = "USD") -> str:
    """Build the single-stock analysis prompt."""
    return render_prompt(
        STOCK_ANALYSIS_TEMPLATE,
        symbol=normalize_symbol(symbol),
        current_price=format_currency(current_price, currency)
    )


class AnalysisService:
    """Service for generating, saving and completing AI analysis prompts."""

    @staticmethod
    def _save_prompt(user_id: str, analysis_type: str, prompt: str) -> Optional[int]:
        try:
            analysis = AnalysisRepository.add(user_id, analysis_type, prompt)
        except PersistenceError as e:
            logger.error(f"Failed to save {analysis_type} prompt for user {user_id}: {e}")
            return None
        logger.info(f"Saved {analysis_type} prompt {analysis.id} for user {user_id}")
        return analysis.id

    @staticmethod
    def create_portfolio_analysis(
        user_id: str,
        price_lookup: Optional[PriceLookup] = None,
        currency_service: Optional[CurrencyService] = None
    ) -> Tuple[str, Optional[int]]:
        """
        Generate and save a portfolio review prompt from the open positions.

        Returns:
            Tuple of (prompt, analysis_id); the id is None if saving failed

        Raises:
            ValidationError: If the user holds no open positions
        """
        user_id = require_user(user_id)
        positions = PortfolioService.get_current_positions(user_id, include_closed=False)
        if not positions:
            raise ValidationError("No positions found")

        price_lookup = price_lookup or MarketDataService.get_prices
        currency_service = currency_service or get_currency_service()
        prices = price_lookup([p.symbol for p in positions])

        rows = []
        for position in positions:
            row = AggregatedPosition.from_current(position)
            market = prices.get(position.symbol)
            if market is not None:
                row.current_price = market.price
                row.currency = market.currency or row.currency
            rows.append(row)

        usd_rates = {
            currency: currency_service.get_rate(currency, REPORTING_CURRENCY)
            for currency in {row.currency for row in rows}
        }
        prompt = generate_portfolio_prompt(rows, usd_rates)
        return prompt, AnalysisService._save_prompt(user_id, PORTFOLIO_ANALYSIS, prompt)

    @staticmethod
    def create_stock_analysis(
        user_id: str,
        symbol: str,
        current_price: float,
        currency: str = "USD"
    ) -> Tuple[str, Optional[int]]:
        """
        Generate and save a single-stock prompt.

        Raises:
            ValidationError: If the symbol is missing or the price is not positive
        """
        user_id = require_user(user_id)
        if not normalize_symbol(symbol):
            raise ValidationError("Missing required field: symbol")
        if current_price is None or not current_price > 0:
            raise ValidationError("Current price must be greater than zero")

        prompt = generate_stock_prompt(symbol, float(current_price), currency)
        return prompt, AnalysisService._save_prompt(user_id, STOCK_ANALYSIS, prompt)

    @staticmethod
    def save_result(user_id: str, analysis_id: int, result: str) -> Analysis:
        """
        Store the pasted-back assistant response.

        Raises:
            ValidationError: If the result is empty or the analysis is not the user's
        """
        user_id = require_user(user_id)
        result = (result or "").strip()
        if not result:
            raise ValidationError("Analysis result cannot be empty")

        analysis = AnalysisRepository.update_result(analysis_id, user_id, result)
        if analysis is None:
            raise ValidationError(f"Analysis not found: {analysis_id}")

        logger.info(f"Saved result for analysis {analysis_id} ({len(result)} chars)")
        return analysis

    @staticmethod
    def list_analyses(user_id: str) -> List[Analysis]:
        """A user's saved analyses, newest first."""
        return AnalysisRepository.get_by_user(require_user(user_id))
