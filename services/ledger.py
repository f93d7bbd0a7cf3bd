"""
Transaction ledger service.
Validates and appends buy/sell transactions; the ledger is the only durable
source of truth for positions.
"""

import logging
import threading
from datetime import date
from typing import List, Optional

from db_engine import get_session
from models import Transaction
from repositories import TransactionRepository
from services.common import normalize_symbol, require_user, validate_transaction_input
from services.positions import preview_sell

logger = logging.getLogger(__name__)

# Serializes sell checks with their insert across dashboard sessions (threads)
_ledger_write_lock = threading.Lock()


class LedgerService:
    """
    Service for recording and listing transactions.
    Sell validation and realized P&L are delegated to the aggregation engine.
    """

    @staticmethod
    def record_transaction(
        user_id: str,
        symbol: str,
        transaction_type: str,
        quantity: float,
        price: float,
        asset_type: str,
        currency: str = "USD",
        transaction_date: Optional[date] = None,
        notes: Optional[str] = None
    ) -> Transaction:
        """
        Record a new buy or sell.

        Args:
            user_id: Authenticated owner
            symbol: Ticker symbol (normalized to uppercase)
            transaction_type: 'buy' or 'sell'
            quantity: Units traded, > 0
            price: Price per unit, > 0
            asset_type: 'stock' or 'crypto'
            currency: Currency of `price`
            transaction_date: Trade date (default: today)
            notes: Optional free-text note

        Returns:
            The stored Transaction

        Raises:
            AuthenticationRequired: If no owner is given
            ValidationError: If any field is invalid
            InsufficientPosition: If a sell exceeds the current quantity
            PersistenceError: If the store rejects the insert
        """
        user_id = require_user(user_id)
        symbol, transaction_type, asset_type, currency = validate_transaction_input(
            symbol, transaction_type, quantity, price, asset_type, currency
        )
        quantity = float(quantity)
        price = float(price)

        # The sell check and the insert share one session under the writer lock
        with _ledger_write_lock, get_session() as session:
            realized_pnl = 0.0
            if transaction_type == "sell":
                history = TransactionRepository.get_by_user_and_symbol(user_id, symbol, session=session)
                realized_pnl = preview_sell(history, symbol, quantity, price)

            transaction = TransactionRepository.add(
                user_id=user_id,
                symbol=symbol,
                transaction_type=transaction_type,
                quantity=quantity,
                price=price,
                asset_type=asset_type,
                currency=currency,
                transaction_date=transaction_date or date.today(),
                realized_pnl=realized_pnl,
                notes=(notes or "").strip() or None,
                session=session
            )
        logger.info(
            f"Recorded {transaction_type} of {quantity} {symbol} @ {price} {currency} "
            f"for user {user_id} (realized P&L {realized_pnl:.2f})"
        )
        return transaction

    @staticmethod
    def list_transactions(user_id: str) -> List[Transaction]:
        """All transactions of a user, newest first (date desc, then creation desc)."""
        return TransactionRepository.get_by_user(require_user(user_id))

    @staticmethod
    def list_symbol_transactions(user_id: str, symbol: str) -> List[Transaction]:
        """A user's transactions for one symbol, oldest first."""
        return TransactionRepository.get_by_user_and_symbol(require_user(user_id), normalize_symbol(symbol))
