"""Currency service tests: cache tiers, feed parsing and fallbacks."""

import httpx
import pytest

from errors import PersistenceError, UpstreamUnavailable, ValidationError
from repositories import ExchangeRateRepository
from services.currency import FALLBACK_RATES, CurrencyService, ExchangeRateFeed, RateCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class StubFeed:
    def __init__(self, rates=None, error=None) -> None:
        self.rates = rates or {}
        self.error = error
        self.calls = []

    def fetch_rate(self, from_currency, to_currency):
        self.calls.append((from_currency, to_currency))
        if self.error is not None:
            raise self.error
        return self.rates.get((from_currency, to_currency))


class StubResponse:
    def __init__(self, payload, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            request = httpx.Request("GET", "https://example.test")
            raise httpx.HTTPStatusError("error", request=request, response=httpx.Response(self.status_code))

    def json(self):
        return self._payload


class StubClient:
    def __init__(self, response) -> None:
        self.response = response
        self.calls = []

    def get(self, url, headers, timeout):
        self.calls.append(url)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


class BrokenStore:
    @staticmethod
    def get_latest(from_currency, to_currency):
        raise PersistenceError("db down")

    @staticmethod
    def add(*args, **kwargs):
        raise PersistenceError("db down")


def make_service(feed, clock=None, rate_store=ExchangeRateRepository):
    return CurrencyService(
        cache=RateCache(ttl_seconds=600, clock=clock or FakeClock()),
        feed=feed,
        rate_store=rate_store,
        persist_in_background=False,
    )


def test_identity_rate_needs_no_io():
    feed = StubFeed(error=AssertionError("should not be called"))
    service = make_service(feed, rate_store=BrokenStore)

    assert service.get_rate("USD", "USD") == 1.0
    assert service.get_rate("idr", "IDR") == 1.0
    assert feed.calls == []


def test_live_rate_is_cached_and_persisted(db):
    feed = StubFeed({("USD", "IDR"): 16000.0})
    service = make_service(feed)

    assert service.get_rate("USD", "IDR") == 16000.0
    assert service.get_rate("USD", "IDR") == 16000.0

    assert feed.calls == [("USD", "IDR")]
    stored = ExchangeRateRepository.get_latest("USD", "IDR")
    assert stored.rate == 16000.0
    assert stored.source == "exchangerate-api"


def test_cache_expires_after_ttl(db):
    clock = FakeClock()
    feed = StubFeed({("USD", "IDR"): 16000.0})
    service = make_service(feed, clock=clock)

    service.get_rate("USD", "IDR")
    clock.now += 599
    service.get_rate("USD", "IDR")
    assert len(feed.calls) == 1

    clock.now += 1
    feed.rates[("USD", "IDR")] = 16100.0
    assert service.get_rate("USD", "IDR") == 16100.0
    assert len(feed.calls) == 2


def test_persisted_rate_used_when_feed_fails(db):
    ExchangeRateRepository.add("USD", "IDR", 15500.0, "manual")
    service = make_service(StubFeed(error=UpstreamUnavailable("offline")))

    assert service.get_rate("USD", "IDR") == 15500.0


def test_static_fallback_when_everything_fails():
    service = make_service(StubFeed(error=UpstreamUnavailable("offline")), rate_store=BrokenStore)

    assert service.get_rate("IDR", "USD") == FALLBACK_RATES[("IDR", "USD")]
    assert service.get_rate("EUR", "JPY") == 1.0


def test_fallback_is_cached():
    feed = StubFeed(error=UpstreamUnavailable("offline"))
    service = make_service(feed, rate_store=BrokenStore)

    service.get_rate("USD", "IDR")
    service.get_rate("USD", "IDR")

    assert len(feed.calls) == 1


def test_persist_failure_does_not_fail_lookup():
    service = make_service(StubFeed({("USD", "EUR"): 0.9}), rate_store=BrokenStore)

    assert service.get_rate("USD", "EUR") == 0.9


def test_conversions(db):
    service = make_service(StubFeed({("IDR", "USD"): 0.0001}))

    assert service.convert(1_000_000, "IDR", "USD") == pytest.approx(100)
    assert service.convert_to_usd(50, "USD") == 50


def test_display_rate_never_fetches():
    feed = StubFeed(error=AssertionError("should not be called"))
    service = make_service(feed, rate_store=BrokenStore)

    assert service.get_display_rate("USD", "IDR") == FALLBACK_RATES[("USD", "IDR")]
    service.cache.set("USD", "IDR", 16200.0)
    assert service.get_display_rate("USD", "IDR") == 16200.0
    assert feed.calls == []


def test_update_rate(db):
    feed = StubFeed(error=AssertionError("should not be called"))
    service = make_service(feed)

    row = service.update_rate("usd", "idr", 16300.0)

    assert row.source == "manual"
    assert service.get_rate("USD", "IDR") == 16300.0
    assert service.recent_rates()[0].rate == 16300.0


@pytest.mark.parametrize("rate", [0, -1, None])
def test_update_rate_rejects_non_positive(db, rate):
    service = make_service(StubFeed())

    with pytest.raises(ValidationError):
        service.update_rate("USD", "IDR", rate)


def test_refresh_rates_bypasses_cache(db):
    feed = StubFeed({("USD", "IDR"): 16000.0, ("IDR", "USD"): 0.0000625})
    service = make_service(feed)
    service.cache.set("USD", "IDR", 1.0)

    results = service.refresh_rates()

    assert {(r["from_currency"], r["to_currency"]): r["rate"] for r in results} == {
        ("USD", "IDR"): 16000.0,
        ("IDR", "USD"): 0.0000625,
    }


def test_feed_parses_rates():
    client = StubClient(StubResponse({"base": "USD", "rates": {"IDR": 16000, "EUR": "0.9"}}))
    feed = ExchangeRateFeed(base_url="https://rates.test/latest/", timeout=1, client=client)

    assert feed.fetch_rate("USD", "EUR") == 0.9
    assert feed.fetch_rate("USD", "GBP") is None
    assert client.calls[0] == "https://rates.test/latest/USD"


@pytest.mark.parametrize(
    "response",
    [
        StubResponse({}, status_code=503),
        StubResponse({"error": "nope"}),
        StubResponse({"rates": {"IDR": "lots"}}),
        httpx.ConnectError("refused"),
    ],
)
def test_feed_failures_raise_upstream_unavailable(response):
    feed = ExchangeRateFeed(base_url="https://rates.test", timeout=1, client=StubClient(response))

    with pytest.raises(UpstreamUnavailable):
        feed.get_latest_rates("USD")


def test_rate_cache_invalidate_and_clear():
    cache = RateCache(ttl_seconds=600, clock=FakeClock())
    cache.set("USD", "IDR", 16000.0)
    cache.set("IDR", "USD", 0.0000625)

    cache.invalidate("USD", "IDR")
    assert cache.get("USD", "IDR") is None
    assert len(cache) == 1

    cache.clear()
    assert cache.peek("IDR", "USD") is None
    assert len(cache) == 0
