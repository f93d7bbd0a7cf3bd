"""Transaction ledger tests (in-memory SQLite)."""

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from errors import AuthenticationRequired, InsufficientPosition, ValidationError
from repositories import TransactionRepository
from services import ledger
from services.ledger import LedgerService
from services.positions import aggregate_positions, preview_sell


def record(kind, quantity, price, day=1, symbol="ABC", user_id="u1", **kwargs):
    return LedgerService.record_transaction(
        user_id=user_id,
        symbol=symbol,
        transaction_type=kind,
        quantity=quantity,
        price=price,
        asset_type=kwargs.pop("asset_type", "stock"),
        transaction_date=date(2024, 1, day),
        **kwargs
    )


def test_buy_is_stored_normalized(db):
    tx = record("BUY", 10, 100, symbol=" abc ", notes="  ")

    assert tx.id is not None
    assert tx.symbol == "ABC"
    assert tx.transaction_type == "buy"
    assert tx.realized_pnl == 0
    assert tx.notes is None


def test_sell_records_realized_pnl(db):
    record("buy", 10, 100, day=1)
    record("buy", 10, 120, day=2)

    sell = record("sell", 5, 150, day=3)

    assert sell.realized_pnl == pytest.approx(200)


def test_oversell_leaves_ledger_unchanged(db):
    record("buy", 10, 100, day=1)
    record("buy", 10, 120, day=2)

    with pytest.raises(InsufficientPosition):
        record("sell", 21, 150, day=3)

    assert len(TransactionRepository.get_by_user("u1")) == 2


def test_sell_without_position_fails(db):
    with pytest.raises(InsufficientPosition, match="Position not found"):
        record("sell", 1, 10)

    assert TransactionRepository.get_by_user("u1") == []


def test_sell_only_sees_own_holdings(db):
    record("buy", 10, 100, user_id="other")

    with pytest.raises(InsufficientPosition):
        record("sell", 1, 100, user_id="u1")


@pytest.mark.parametrize(
    "overrides",
    [
        {"symbol": ""},
        {"kind": "hold"},
        {"quantity": 0},
        {"quantity": -1},
        {"price": 0},
        {"asset_type": "bond"},
        {"currency": "XYZ"},
    ],
)
def test_invalid_input_is_rejected(db, overrides):
    args = {"kind": "buy", "quantity": 1, "price": 10, "symbol": "ABC"}
    args.update({k: v for k, v in overrides.items() if k in args})
    extra = {k: v for k, v in overrides.items() if k not in args}

    with pytest.raises(ValidationError):
        record(args["kind"], args["quantity"], args["price"], symbol=args["symbol"], **extra)

    assert TransactionRepository.get_by_user("u1") == []


def test_missing_owner_is_rejected(db):
    with pytest.raises(AuthenticationRequired):
        record("buy", 1, 10, user_id="")
    with pytest.raises(AuthenticationRequired):
        LedgerService.list_transactions(None)


def test_listing_orders(db):
    record("buy", 1, 10, day=2, symbol="ABC")
    record("buy", 1, 10, day=1, symbol="XYZ")
    record("buy", 1, 10, day=3, symbol="ABC")

    newest_first = LedgerService.list_transactions("u1")
    symbol_history = LedgerService.list_symbol_transactions("u1", "abc")

    assert [tx.transaction_date.day for tx in newest_first] == [3, 2, 1]
    assert [tx.transaction_date.day for tx in symbol_history] == [2, 3]


def test_fractional_sells_can_close_position(db):
    record("buy", 0.3, 60000, symbol="BTC-USD", asset_type="crypto")
    record("sell", 0.1, 65000, day=2, symbol="BTC-USD", asset_type="crypto")

    last = record("sell", 0.2, 70000, day=3, symbol="BTC-USD", asset_type="crypto")

    assert last.realized_pnl == pytest.approx(2000)
    [position] = aggregate_positions(LedgerService.list_transactions("u1"))
    assert position.current_quantity == 0.0
    assert not position.is_open
    assert not position.is_oversold


def test_fractional_oversell_still_rejected(db):
    record("buy", 0.3, 60000, symbol="BTC-USD", asset_type="crypto")

    with pytest.raises(InsufficientPosition):
        record("sell", 0.3001, 65000, day=2, symbol="BTC-USD", asset_type="crypto")


def test_concurrent_sells_cannot_both_pass(db, monkeypatch):
    record("buy", 10, 100)

    def slow_preview(*args):
        time.sleep(0.05)
        return preview_sell(*args)

    monkeypatch.setattr(ledger, "preview_sell", slow_preview)

    def sell():
        try:
            return record("sell", 10, 110, day=2)
        except InsufficientPosition:
            return None

    with ThreadPoolExecutor(max_workers=2) as executor:
        results = list(executor.map(lambda _: sell(), range(2)))

    assert sum(1 for r in results if r is not None) == 1
    assert len(TransactionRepository.get_by_user("u1")) == 2
