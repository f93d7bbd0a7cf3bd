"""
Portfolio service for valuing positions and building reporting series.
Joins derived positions with live prices and FX rates; everything is
recomputed per request and normalized to USD for portfolio totals.
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional
from dataclasses import dataclass

import pandas as pd

from models import Transaction
from repositories import TransactionRepository
from services.common import require_user
from services.currency import CurrencyService, get_currency_service
from services.market_data import MarketDataService, MarketPrice
from services.positions import (
    AggregatedPosition,
    CurrentPosition,
    UsdEquivalent,
    aggregate_positions,
    chronological_key,
    open_positions,
    with_enrichment,
)

logger = logging.getLogger(__name__)

REPORTING_CURRENCY = "USD"

PriceLookup = Callable[[Iterable[str]], Dict[str, MarketPrice]]


@dataclass
class PortfolioSummary:
    """Portfolio-level totals, all in USD."""
    base_currency: str
    total_value: float
    total_cost: float
    unrealized_pnl: float
    unrealized_pnl_percent: float
    realized_pnl: float
    daily_pnl: float
    positions_priced: int
    positions_total: int


class PortfolioService:
    """
    Service for portfolio valuation and chart-ready reporting.
    Positions come from the aggregation engine, prices from the market data
    gateway and rates from the currency service.
    """

    @staticmethod
    def get_current_positions(user_id: str, include_closed: bool = True) -> List[CurrentPosition]:
        """
        Derive a user's positions from the ledger.

        Args:
            user_id: Owner
            include_closed: Keep fully sold positions (quantity 0)

        Returns:
            Positions ordered by symbol
        """
        transactions = TransactionRepository.get_by_user(require_user(user_id))
        positions = aggregate_positions(transactions)
        return positions if include_closed else open_positions(positions)

    @staticmethod
    def enrich_positions(
        positions: List[CurrentPosition],
        prices: Dict[str, MarketPrice],
        currency_service: Optional[CurrencyService] = None
    ) -> List[CurrentPosition]:
        """
        Attach market price, native currency and a USD view to each position.

        A missing price is represented as 0. The market's currency wins over
        the currency recorded on the transactions.
        """
        currency_service = currency_service or get_currency_service()
        enriched = []

        for position in positions:
            market = prices.get(position.symbol)
            current_price = market.price if market else 0.0
            price_change = market.change if market else None
            currency = (market.currency if market else None) or position.currency or REPORTING_CURRENCY

            usd_equivalent = None
            if currency != REPORTING_CURRENCY:
                rate = currency_service.get_rate(currency, REPORTING_CURRENCY)
                usd_price = current_price * rate if current_price > 0 else 0.0
                usd_equivalent = UsdEquivalent(
                    current_price=usd_price,
                    average_cost=position.average_cost * rate,
                    total_cost_basis=position.total_cost_basis * rate,
                    market_value=usd_price * position.current_quantity,
                    rate=rate
                )

            enriched.append(with_enrichment(position, current_price, currency, price_change, usd_equivalent))

        return enriched

    @staticmethod
    def get_enriched_positions(
        user_id: str,
        include_closed: bool = False,
        price_lookup: Optional[PriceLookup] = None,
        currency_service: Optional[CurrencyService] = None
    ) -> List[CurrentPosition]:
        """Positions with live prices and USD equivalents. Only open positions are priced."""
        positions = PortfolioService.get_current_positions(user_id, include_closed=include_closed)
        if not positions:
            return []

        price_lookup = price_lookup or MarketDataService.get_prices
        prices = price_lookup([p.symbol for p in open_positions(positions)])
        return PortfolioService.enrich_positions(positions, prices, currency_service)

    @staticmethod
    def get_aggregated_positions(user_id: str) -> List[AggregatedPosition]:
        """Aggregated display rows, most recently traded first."""
        positions = PortfolioService.get_current_positions(user_id)
        positions.sort(key=lambda p: p.last_transaction_date, reverse=True)
        return [AggregatedPosition.from_current(p) for p in positions]

    @staticmethod
    def calculate_summary(positions: List[CurrentPosition]) -> PortfolioSummary:
        """
        Portfolio totals in USD.

        Value and cost cover open positions; realized P&L covers every
        position, closed ones included.
        """
        held = open_positions(positions)

        total_value = sum(p.market_value_usd for p in held)
        total_cost = sum(p.cost_basis_usd for p in held)
        unrealized_pnl = total_value - total_cost
        unrealized_pnl_pct = (unrealized_pnl / total_cost * 100) if total_cost > 0 else 0.0

        realized_pnl = sum(p.total_realized_pnl * p.usd_rate for p in positions)
        daily_pnl = sum(
            (p.price_change or 0.0) * p.current_quantity * p.usd_rate
            for p in held
        )

        return PortfolioSummary(
            base_currency=REPORTING_CURRENCY,
            total_value=round(total_value, 2),
            total_cost=round(total_cost, 2),
            unrealized_pnl=round(unrealized_pnl, 2),
            unrealized_pnl_percent=round(unrealized_pnl_pct, 2),
            realized_pnl=round(realized_pnl, 2),
            daily_pnl=round(daily_pnl, 2),
            positions_priced=sum(1 for p in held if p.current_price and p.current_price > 0),
            positions_total=len(held)
        )

    @staticmethod
    def allocation_series(positions: List[CurrentPosition]) -> List[Dict]:
        """Share of total USD market value per symbol, largest first."""
        rows = [
            {
                'symbol': p.symbol,
                'value': p.market_value_usd,
                'asset_type': p.asset_type,
                'currency': p.currency,
                'original_value': p.market_value,
            }
            for p in positions
            if p.market_value_usd > 0
        ]
        rows.sort(key=lambda row: row['value'], reverse=True)

        total = sum(row['value'] for row in rows)
        for row in rows:
            row['share'] = row['value'] / total * 100 if total > 0 else 0.0
        return rows

    @staticmethod
    def performance_series(positions: List[CurrentPosition]) -> List[Dict]:
        """Unrealized return per priced symbol (USD), best first."""
        rows = []
        for p in positions:
            market_value = p.market_value_usd
            if market_value <= 0:
                continue
            cost_basis = p.cost_basis_usd
            pnl = market_value - cost_basis
            rows.append({
                'symbol': p.symbol,
                'pnl': pnl,
                'pnl_percent': (pnl / cost_basis * 100) if cost_basis > 0 else 0.0,
                'realized_pnl': p.total_realized_pnl,
                'market_value': market_value,
                'currency': p.currency,
            })
        rows.sort(key=lambda row: row['pnl_percent'], reverse=True)
        return rows

    @staticmethod
    def timeline_series(
        transactions: List[Transaction],
        usd_rates: Optional[Dict[str, float]] = None
    ) -> List[Dict]:
        """
        Replay the ledger chronologically into cumulative invested/realized totals.

        One point per date; the last transaction of a day carries that day's
        totals.

        Args:
            transactions: Ledger rows in any order
            usd_rates: Optional currency -> USD rate map; missing currencies use 1.0

        Returns:
            List of dicts with date, total_invested, total_realized, net_invested,
            transaction_type and symbol
        """
        if not transactions:
            return []

        usd_rates = usd_rates or {}
        ordered = sorted(transactions, key=chronological_key)
        df = pd.DataFrame([
            {
                'date': tx.transaction_date,
                'transaction_type': tx.transaction_type,
                'symbol': tx.symbol,
                'notional': tx.quantity * tx.price,
                'realized_pnl': tx.realized_pnl or 0.0,
                'rate': usd_rates.get(tx.currency, 1.0),
            }
            for tx in ordered
        ])

        invested = (df['notional'] * df['rate']).where(df['transaction_type'] == 'buy', 0.0)
        realized = (df['realized_pnl'] * df['rate']).where(df['transaction_type'] == 'sell', 0.0)
        df['total_invested'] = invested.cumsum()
        df['total_realized'] = realized.cumsum()
        # Money still in the market: realized losses are not coming back
        df['net_invested'] = df['total_invested'] - (-df['total_realized']).clip(lower=0.0)

        points = df.drop_duplicates(subset='date', keep='last')
        columns = ['date', 'total_invested', 'total_realized', 'net_invested', 'transaction_type', 'symbol']
        return [
            {
                **row,
                'total_invested': float(row['total_invested']),
                'total_realized': float(row['total_realized']),
                'net_invested': float(row['net_invested']),
            }
            for row in points[columns].to_dict('records')
        ]

    @staticmethod
    def get_dashboard(
        user_id: str,
        price_lookup: Optional[PriceLookup] = None,
        currency_service: Optional[CurrencyService] = None
    ) -> Dict:
        """
        Everything the dashboard renders in one pass.

        Returns:
            Dict with transactions, positions (open), summary and the three chart series
        """
        user_id = require_user(user_id)
        currency_service = currency_service or get_currency_service()

        transactions = TransactionRepository.get_by_user(user_id)
        positions = aggregate_positions(transactions)
        price_lookup = price_lookup or MarketDataService.get_prices
        prices = price_lookup([p.symbol for p in open_positions(positions)]) if positions else {}
        enriched = PortfolioService.enrich_positions(positions, prices, currency_service)

        currencies = {tx.currency for tx in transactions}
        usd_rates = {c: currency_service.get_rate(c, REPORTING_CURRENCY) for c in currencies}

        summary = PortfolioService.calculate_summary(enriched)
        logger.info(
            f"Dashboard for user {user_id}: {summary.positions_priced}/{summary.positions_total} "
            f"open positions priced, total value {summary.total_value} {REPORTING_CURRENCY}"
        )

        return {
            'transactions': transactions,
            'positions': open_positions(enriched),
            'summary': summary,
            'allocation': PortfolioService.allocation_series(enriched),
            'performance': PortfolioService.performance_series(enriched),
            'timeline': PortfolioService.timeline_series(transactions, usd_rates),
        }
