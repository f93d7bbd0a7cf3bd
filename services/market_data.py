"""
Market data service for fetching latest prices from Yahoo Finance.
Lookups never raise: a symbol that cannot be priced yields None and is
dropped from batch results.
"""

import yfinance as yf
import pandas as pd
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Optional, Dict, Iterable

from config import get_settings
from services.common import normalize_symbol

logger = logging.getLogger(__name__)


@dataclass
class MarketPrice:
    """Latest quote for a symbol in its native currency."""
    symbol: str
    price: float
    change: float
    change_percent: float
    currency: str = "USD"


class MarketDataService:
    """
    Service for fetching market prices.
    Symbols are passed to yfinance as stored (e.g. "AAPL", "BBCA.JK", "BTC-USD").
    """

    @staticmethod
    def _fetch_ticker_info(symbol: str) -> Dict:
        """Fetch ticker info."""
        ticker = yf.Ticker(symbol)
        return ticker.info or {}

    @staticmethod
    def _fetch_last_close(symbol: str) -> Optional[float]:
        """Fetch the last close from one day of history."""
        hist: pd.DataFrame = yf.Ticker(symbol).history(period="1d")
        if hist is None or hist.empty:
            return None
        return float(hist['Close'].iloc[-1])

    @staticmethod
    def get_price(symbol: str) -> Optional[MarketPrice]:
        """
        Fetch the latest price, prior close and currency for a symbol.

        Args:
            symbol: Ticker symbol

        Returns:
            MarketPrice, or None if not found or on any error
        """
        symbol = normalize_symbol(symbol)
        try:
            info = MarketDataService._fetch_ticker_info(symbol)

            price = info.get('regularMarketPrice') or info.get('currentPrice') or info.get('previousClose')
            if price is None:
                price = MarketDataService._fetch_last_close(symbol)
            if not price:
                logger.warning(f"Could not retrieve price for {symbol}")
                return None

            price = float(price)
            previous_close = info.get('regularMarketPreviousClose') or info.get('previousClose')
            change = price - float(previous_close) if previous_close else 0.0
            change_percent = (change / float(previous_close) * 100) if previous_close else 0.0

            return MarketPrice(
                symbol=symbol,
                price=price,
                change=change,
                change_percent=change_percent,
                currency=info.get('currency') or "USD"
            )

        except Exception as e:
            logger.error(f"Error fetching price for {symbol}: {e}")
            return None

    @staticmethod
    def get_prices(symbols: Iterable[str], max_workers: Optional[int] = None) -> Dict[str, MarketPrice]:
        """
        Fetch prices for many symbols concurrently.

        Failed lookups are omitted rather than failing the batch.

        Args:
            symbols: Symbols to price (duplicates are fetched once)
            max_workers: Thread pool size (default: settings.price_fetch_workers)

        Returns:
            Dict mapping symbol to MarketPrice
        """
        unique_symbols = list(dict.fromkeys(normalize_symbol(s) for s in symbols if s))
        if not unique_symbols:
            return {}

        workers = max_workers or get_settings().price_fetch_workers
        prices: Dict[str, MarketPrice] = {}

        with ThreadPoolExecutor(max_workers=min(workers, len(unique_symbols))) as executor:
            future_to_symbol = {
                executor.submit(MarketDataService.get_price, symbol): symbol
                for symbol in unique_symbols
            }
            for future in as_completed(future_to_symbol):
                symbol = future_to_symbol[future]
                try:
                    result = future.result()
                except Exception as e:
                    logger.error(f"Price lookup for {symbol} failed: {e}")
                    continue
                if result is not None:
                    prices[symbol] = result

        missing = len(unique_symbols) - len(prices)
        if missing:
            logger.warning(f"No price available for {missing} of {len(unique_symbols)} symbols")
        return prices
