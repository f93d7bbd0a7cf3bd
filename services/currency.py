"""
Currency conversion service.

Resolves "1 unit of A = ? units of B" through a tiered fallback chain:
in-memory cache (10 minute TTL) -> live exchange rate feed -> newest persisted
rate -> static fallback table -> 1.0. `get_rate` never raises.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple

import httpx

from config import get_settings
from errors import PersistenceError, UpstreamUnavailable, ValidationError
from repositories import ExchangeRateRepository

logger = logging.getLogger(__name__)


# Last-resort rates (~16,460 IDR = 1 USD)
FALLBACK_RATES: Dict[Tuple[str, str], float] = {
    ("IDR", "USD"): 0.000061,
    ("USD", "IDR"): 16460.0,
}

COMMON_PAIRS: List[Tuple[str, str]] = [("USD", "IDR"), ("IDR", "USD")]

LIVE_SOURCE = "exchangerate-api"


class RateCache:
    """
    Time-bounded cache of FX rates keyed by currency pair.
    Each entry is an immutable (rate, stored_at) tuple replaced as a whole.
    """

    def __init__(self, ttl_seconds: float = 600, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Tuple[str, str], Tuple[float, float]] = {}

    def get(self, from_currency: str, to_currency: str) -> Optional[float]:
        """Return a fresh rate, evicting the entry if it has expired."""
        key = (from_currency, to_currency)
        entry = self._entries.get(key)
        if entry is None:
            return None
        rate, stored_at = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            self._entries.pop(key, None)
            return None
        return rate

    def peek(self, from_currency: str, to_currency: str) -> Optional[float]:
        """Return the cached rate regardless of age."""
        entry = self._entries.get((from_currency, to_currency))
        return entry[0] if entry else None

    def set(self, from_currency: str, to_currency: str, rate: float) -> None:
        self._entries[(from_currency, to_currency)] = (rate, self._clock())

    def invalidate(self, from_currency: str, to_currency: str) -> None:
        self._entries.pop((from_currency, to_currency), None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class ExchangeRateFeed:
    """Client for the free exchangerate-api.com "latest" endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.exchange_api_base).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.exchange_api_timeout
        self._client = client

    def get_latest_rates(self, base_currency: str) -> Dict[str, float]:
        """
        Fetch all rates quoted against `base_currency`.

        Raises:
            UpstreamUnavailable: On transport errors, HTTP errors or malformed payloads
        """
        url = f"{self.base_url}/{base_currency}"
        headers = {"User-Agent": "Portfolio-Tracker/1.0"}
        try:
            if self._client is not None:
                response = self._client.get(url, headers=headers, timeout=self.timeout)
            else:
                response = httpx.get(url, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamUnavailable(f"Exchange API error for {base_currency}: {e}") from e

        rates = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(rates, dict):
            raise UpstreamUnavailable(f"Exchange API returned no rates for {base_currency}")
        try:
            return {code: float(value) for code, value in rates.items()}
        except (TypeError, ValueError) as e:
            raise UpstreamUnavailable(f"Exchange API returned malformed rates for {base_currency}") from e

    def fetch_rate(self, from_currency: str, to_currency: str) -> Optional[float]:
        """Fetch a single pair; None if the target is missing from the payload."""
        return self.get_latest_rates(from_currency).get(to_currency)


class CurrencyService:
    """
    FX rate resolution with caching and fallbacks.
    The cache, the feed and the rate store are injected so they can be swapped in tests.
    """

    def __init__(
        self,
        cache: Optional[RateCache] = None,
        feed: Optional[ExchangeRateFeed] = None,
        rate_store=ExchangeRateRepository,
        fallback_rates: Optional[Dict[Tuple[str, str], float]] = None,
        persist_in_background: bool = True
    ):
        settings = get_settings()
        self.cache = cache if cache is not None else RateCache(settings.fx_cache_ttl_seconds)
        self.feed = feed if feed is not None else ExchangeRateFeed()
        self.rate_store = rate_store
        self.fallback_rates = fallback_rates if fallback_rates is not None else FALLBACK_RATES
        self.persist_in_background = persist_in_background
        self._executor: Optional[ThreadPoolExecutor] = None

    def get_rate(self, from_currency: str, to_currency: str) -> float:
        """
        Get the rate converting `from_currency` into `to_currency`.

        Returns:
            A positive rate; 1.0 for identical currencies or when nothing else is known
        """
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        if from_currency == to_currency:
            return 1.0

        cached = self.cache.get(from_currency, to_currency)
        if cached is not None:
            return cached

        rate = self._fetch_live(from_currency, to_currency)
        if rate is not None:
            self.cache.set(from_currency, to_currency, rate)
            self._persist(from_currency, to_currency, rate)
            return rate

        rate = self._load_persisted(from_currency, to_currency)
        if rate is not None:
            self.cache.set(from_currency, to_currency, rate)
            return rate

        rate = self.fallback_rates.get((from_currency, to_currency), 1.0)
        logger.warning(f"Using static fallback rate {from_currency}->{to_currency}: {rate}")
        self.cache.set(from_currency, to_currency, rate)
        return rate

    def convert(self, amount: float, from_currency: str, to_currency: str = "USD") -> float:
        return amount * self.get_rate(from_currency, to_currency)

    def convert_to_usd(self, amount: float, currency: str) -> float:
        return self.convert(amount, currency, "USD")

    def get_display_rate(self, from_currency: str, to_currency: str = "USD") -> float:
        """Cached or static rate for display; performs no I/O."""
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        if from_currency == to_currency:
            return 1.0
        cached = self.cache.peek(from_currency, to_currency)
        if cached is not None:
            return cached
        return self.fallback_rates.get((from_currency, to_currency), 1.0)

    def update_rate(
        self,
        from_currency: str,
        to_currency: str,
        rate: float,
        source: str = "manual"
    ):
        """
        Manually record a rate and make it current.

        Raises:
            ValidationError: If the rate is not positive
            PersistenceError: If the store rejects the insert
        """
        if rate is None or not rate > 0:
            raise ValidationError("Exchange rate must be greater than zero")
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        row = self.rate_store.add(from_currency, to_currency, float(rate), source, date.today())
        self.cache.set(from_currency, to_currency, float(rate))
        logger.info(f"Exchange rate {from_currency}->{to_currency} set to {rate} ({source})")
        return row

    def refresh_rates(self, pairs: Optional[List[Tuple[str, str]]] = None) -> List[Dict]:
        """Force a re-resolution of the given pairs (default: USD<->IDR)."""
        results = []
        for from_currency, to_currency in pairs or COMMON_PAIRS:
            self.cache.invalidate(from_currency.upper(), to_currency.upper())
            rate = self.get_rate(from_currency, to_currency)
            results.append({
                'from_currency': from_currency.upper(),
                'to_currency': to_currency.upper(),
                'rate': rate,
                'status': 'updated'
            })
        return results

    def recent_rates(self, limit: int = 10) -> List:
        """Newest persisted rates across all pairs."""
        return self.rate_store.get_recent(limit)

    def _fetch_live(self, from_currency: str, to_currency: str) -> Optional[float]:
        try:
            rate = self.feed.fetch_rate(from_currency, to_currency)
        except UpstreamUnavailable as e:
            logger.error(f"Error fetching exchange rate from API for {from_currency}-{to_currency}: {e}")
            return None
        if rate is None or not rate > 0:
            return None
        return rate

    def _load_persisted(self, from_currency: str, to_currency: str) -> Optional[float]:
        try:
            row = self.rate_store.get_latest(from_currency, to_currency)
        except PersistenceError as e:
            logger.error(f"Error fetching exchange rate from DB for {from_currency}-{to_currency}: {e}")
            return None
        if row is None or not row.rate > 0:
            return None
        return row.rate

    def _persist(self, from_currency: str, to_currency: str, rate: float) -> None:
        if self.persist_in_background:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="fx-persist")
            self._executor.submit(self._save_rate, from_currency, to_currency, rate)
        else:
            self._save_rate(from_currency, to_currency, rate)

    def _save_rate(self, from_currency: str, to_currency: str, rate: float) -> None:
        try:
            self.rate_store.add(from_currency, to_currency, rate, LIVE_SOURCE, date.today())
        except PersistenceError as e:
            logger.error(f"Failed to save exchange rate to DB: {e}")


# Process-wide service sharing one rate cache across requests
_currency_service: Optional[CurrencyService] = None


def get_currency_service() -> CurrencyService:
    """Get or create the global currency service."""
    global _currency_service
    if _currency_service is None:
        _currency_service = CurrencyService()
    return _currency_service
