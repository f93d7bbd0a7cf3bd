"""
Position aggregation engine.

Folds the append-only transaction ledger into one CurrentPosition per
(owner, symbol) using weighted-average-cost accounting:

- a buy blends into the average cost:
  new_avg = (qty * avg + buy_qty * buy_price) / (qty + buy_qty)
- a sell reduces the quantity only; the average cost of the remaining units is
  unchanged and the sell realizes (sell_price - avg) * sell_qty.

Everything here is a pure function of its input. The ledger calls
`preview_sell` before inserting a sell so the realized P&L formula lives in a
single place.
"""

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from errors import InsufficientPosition

logger = logging.getLogger(__name__)

# Float sums of fractional (crypto) quantities drift; amounts this close count as equal
QUANTITY_REL_TOL = 1e-9
QUANTITY_ABS_TOL = 1e-12


@dataclass
class UsdEquivalent:
    """USD view of a position held in another currency."""
    current_price: float
    average_cost: float
    total_cost_basis: float
    market_value: float
    rate: float = 1.0  # Native currency -> USD rate used for the conversion


@dataclass
class CurrentPosition:
    """Derived per-(owner, symbol) aggregate. Never persisted."""
    user_id: str
    symbol: str
    asset_type: str
    currency: str
    current_quantity: float
    average_cost: float
    total_cost_basis: float
    first_purchase_date: Optional[date]
    last_transaction_date: Optional[date]
    transaction_count: int
    total_realized_pnl: float
    is_oversold: bool = False  # Sells exceeded tracked buys somewhere in the history

    # Enrichment-time fields
    current_price: Optional[float] = None
    price_change: Optional[float] = None
    usd_equivalent: Optional[UsdEquivalent] = None

    @property
    def is_open(self) -> bool:
        return self.current_quantity > 0

    @property
    def market_value(self) -> float:
        """Market value in the native currency (0 when no price is known)."""
        return (self.current_price or 0.0) * self.current_quantity

    @property
    def market_value_usd(self) -> float:
        if self.usd_equivalent is not None:
            return self.usd_equivalent.market_value
        return self.market_value

    @property
    def cost_basis_usd(self) -> float:
        if self.usd_equivalent is not None:
            return self.usd_equivalent.total_cost_basis
        return self.total_cost_basis

    @property
    def usd_rate(self) -> float:
        return self.usd_equivalent.rate if self.usd_equivalent is not None else 1.0


@dataclass
class AggregatedPosition:
    """Display projection of a position (also used for plain purchase lots)."""
    symbol: str
    asset_type: str
    total_quantity: float
    average_price: float
    total_cost: float
    first_purchase_date: Optional[date]
    last_purchase_date: Optional[date]
    purchase_count: int
    currency: str = "USD"
    total_realized_pnl: float = 0.0
    current_price: Optional[float] = None

    @classmethod
    def from_current(cls, position: CurrentPosition) -> "AggregatedPosition":
        """Project a CurrentPosition into the aggregated display shape."""
        return cls(
            symbol=position.symbol,
            asset_type=position.asset_type,
            total_quantity=position.current_quantity,
            average_price=position.average_cost,
            total_cost=position.total_cost_basis,
            first_purchase_date=position.first_purchase_date,
            last_purchase_date=position.last_transaction_date,
            purchase_count=position.transaction_count,
            currency=position.currency,
            total_realized_pnl=position.total_realized_pnl,
            current_price=position.current_price
        )


@dataclass
class _RunningState:
    quantity: float = 0.0
    average_cost: float = 0.0
    realized_pnl: float = 0.0
    first_date: Optional[date] = None
    last_date: Optional[date] = None
    count: int = 0
    oversold: bool = False


def quantities_match(a: float, b: float) -> bool:
    """True when two quantities are equal up to float drift."""
    return math.isclose(a, b, rel_tol=QUANTITY_REL_TOL, abs_tol=QUANTITY_ABS_TOL)


def sell_realized_pnl(average_cost: float, price: float, quantity: float) -> float:
    """Realized P&L of selling `quantity` units at `price` against `average_cost`."""
    return (price - average_cost) * quantity


def chronological_key(tx: Any) -> Tuple:
    created_at = getattr(tx, "created_at", None) or datetime.min
    tx_id = getattr(tx, "id", None)
    return (tx.transaction_date, created_at, tx_id if tx_id is not None else 0)


def _apply(state: _RunningState, tx: Any) -> None:
    """Apply one transaction to the running state of its symbol."""
    if tx.transaction_type == "buy":
        new_quantity = state.quantity + tx.quantity
        new_cost_basis = state.quantity * state.average_cost + tx.quantity * tx.price
        state.average_cost = new_cost_basis / new_quantity if new_quantity != 0 else 0.0
        state.quantity = new_quantity
    elif tx.transaction_type == "sell":
        realized = getattr(tx, "realized_pnl", None)
        if realized is None:
            realized = sell_realized_pnl(state.average_cost, tx.price, tx.quantity)
        if quantities_match(state.quantity, tx.quantity):
            state.quantity = 0.0
        else:
            state.quantity -= tx.quantity
        state.realized_pnl += realized
        if state.quantity < 0:
            state.oversold = True
    else:
        logger.warning(f"Skipping transaction with unknown type {tx.transaction_type!r} for {tx.symbol}")
        return

    tx_date = tx.transaction_date
    if state.first_date is None or tx_date < state.first_date:
        state.first_date = tx_date
    if state.last_date is None or tx_date > state.last_date:
        state.last_date = tx_date
    state.count += 1


def replay(transactions: Iterable[Any]) -> Optional[CurrentPosition]:
    """
    Replay the transactions of a single (owner, symbol) oldest first.

    Args:
        transactions: Transaction rows (or any objects with the same attributes)

    Returns:
        CurrentPosition, or None for an empty history
    """
    ordered = sorted(transactions, key=chronological_key)
    if not ordered:
        return None

    state = _RunningState()
    for tx in ordered:
        _apply(state, tx)

    first = ordered[0]
    if state.oversold:
        logger.warning(
            f"Position {first.symbol} for user {first.user_id} sold more than it bought "
            f"(quantity {state.quantity})"
        )

    return CurrentPosition(
        user_id=first.user_id,
        symbol=first.symbol,
        asset_type=first.asset_type,
        currency=first.currency,
        current_quantity=state.quantity,
        average_cost=state.average_cost,
        total_cost_basis=state.quantity * state.average_cost,
        first_purchase_date=state.first_date,
        last_transaction_date=state.last_date,
        transaction_count=state.count,
        total_realized_pnl=state.realized_pnl,
        is_oversold=state.oversold
    )


def aggregate_positions(transactions: Iterable[Any]) -> List[CurrentPosition]:
    """
    Fold a ledger into one CurrentPosition per (owner, symbol).

    Fully closed positions (quantity 0) are included; use `open_positions`
    for a holdings view.

    Returns:
        Positions ordered by symbol (then owner)
    """
    groups: Dict[Tuple[str, str], List[Any]] = OrderedDict()
    for tx in transactions:
        groups.setdefault((tx.user_id, tx.symbol), []).append(tx)

    positions = [replay(group) for group in groups.values()]
    return sorted(
        (p for p in positions if p is not None),
        key=lambda p: (p.symbol, p.user_id)
    )


def open_positions(positions: Iterable[CurrentPosition]) -> List[CurrentPosition]:
    """Keep only positions with a positive quantity."""
    return [p for p in positions if p.is_open]


def preview_sell(
    transactions: Iterable[Any],
    symbol: str,
    quantity: float,
    price: float
) -> float:
    """
    Dry-run a sell against a symbol's existing history.

    Args:
        transactions: Existing transactions of the owner for `symbol`
        symbol: Symbol being sold
        quantity: Units to sell
        price: Sell price per unit

    Returns:
        Realized P&L the sell would record

    Raises:
        InsufficientPosition: If there is no position or too few units
    """
    position = replay(tx for tx in transactions if tx.symbol == symbol)
    if position is None:
        raise InsufficientPosition(symbol, quantity)
    if position.current_quantity < quantity and not quantities_match(position.current_quantity, quantity):
        raise InsufficientPosition(symbol, quantity, position.current_quantity)
    return sell_realized_pnl(position.average_cost, price, quantity)


@dataclass
class PurchaseLot:
    """A plain purchase record without sells (legacy import shape)."""
    symbol: str
    quantity: float
    price: float
    purchase_date: date
    asset_type: str = "stock"
    currency: str = "USD"


def aggregate_lots(lots: Iterable[PurchaseLot]) -> List[AggregatedPosition]:
    """
    Simple aggregation of purchase lots by symbol.

    Total cost is the sum of quantity * price; the average price is total cost
    over total quantity. No sells are involved, so nothing is realized.
    """
    groups: Dict[str, List[PurchaseLot]] = OrderedDict()
    for lot in lots:
        groups.setdefault(lot.symbol, []).append(lot)

    aggregated = []
    for symbol, symbol_lots in groups.items():
        by_date = sorted(symbol_lots, key=lambda lot: lot.purchase_date)
        total_quantity = sum(lot.quantity for lot in symbol_lots)
        total_cost = sum(lot.quantity * lot.price for lot in symbol_lots)
        aggregated.append(AggregatedPosition(
            symbol=symbol,
            asset_type=by_date[0].asset_type,
            total_quantity=total_quantity,
            average_price=total_cost / total_quantity if total_quantity else 0.0,
            total_cost=total_cost,
            first_purchase_date=by_date[0].purchase_date,
            last_purchase_date=by_date[-1].purchase_date,
            purchase_count=len(symbol_lots),
            currency=by_date[0].currency
        ))
    return aggregated


def with_enrichment(
    position: CurrentPosition,
    current_price: Optional[float],
    currency: str,
    price_change: Optional[float] = None,
    usd_equivalent: Optional[UsdEquivalent] = None
) -> CurrentPosition:
    """Return a copy of `position` carrying market data; the input is left untouched."""
    return replace(
        position,
        current_price=current_price,
        currency=currency,
        price_change=price_change,
        usd_equivalent=usd_equivalent
    )
