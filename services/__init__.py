"""
Services package for the portfolio tracker.
Provides core business logic separated from presentation and data layers.
"""

from services.common import (
    normalize_symbol,
    infer_currency,
    require_user,
    validate_transaction_input,
    format_currency,
    currency_decimals
)
from services.positions import (
    CurrentPosition,
    AggregatedPosition,
    UsdEquivalent,
    PurchaseLot,
    aggregate_positions,
    aggregate_lots,
    open_positions,
    preview_sell,
    replay,
    sell_realized_pnl
)
from services.ledger import LedgerService
from services.currency import CurrencyService, ExchangeRateFeed, RateCache, get_currency_service
from services.market_data import MarketDataService, MarketPrice
from services.portfolio import PortfolioService, PortfolioSummary
from services.analysis import AnalysisService, generate_portfolio_prompt, generate_stock_prompt

__all__ = [
    # Common utilities
    'normalize_symbol',
    'infer_currency',
    'require_user',
    'validate_transaction_input',
    'format_currency',
    'currency_decimals',
    # Position engine
    'CurrentPosition',
    'AggregatedPosition',
    'UsdEquivalent',
    'PurchaseLot',
    'aggregate_positions',
    'aggregate_lots',
    'open_positions',
    'preview_sell',
    'replay',
    'sell_realized_pnl',
    # Services
    'LedgerService',
    'CurrencyService',
    'ExchangeRateFeed',
    'RateCache',
    'get_currency_service',
    'MarketDataService',
    'MarketPrice',
    'PortfolioService',
    'PortfolioSummary',
    # AI analysis workflow
    'AnalysisService',
    'generate_portfolio_prompt',
    'generate_stock_prompt',
]
