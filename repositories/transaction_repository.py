"""
Transaction Repository - data access layer for the append-only Transaction ledger.
Optimized with optional session parameter for transaction reuse.
"""

from typing import Optional, List
from datetime import date
from sqlmodel import Session, select

from models import Transaction
from repositories.base import run_in_session


class TransactionRepository:
    """Repository for Transaction inserts and queries. The ledger is append-only."""

    @staticmethod
    def add(
        user_id: str,
        symbol: str,
        transaction_type: str,
        quantity: float,
        price: float,
        asset_type: str,
        currency: str,
        transaction_date: date,
        realized_pnl: float = 0.0,
        notes: Optional[str] = None,
        session: Optional[Session] = None
    ) -> Transaction:
        """
        Append a new transaction to the ledger.

        Args:
            user_id: Owner of the transaction
            symbol: Normalized (uppercase) symbol
            transaction_type: 'buy' or 'sell'
            quantity: Number of shares/units
            price: Price per unit in `currency`
            asset_type: 'stock' or 'crypto'
            currency: Currency code of `price`
            transaction_date: Date of the transaction
            realized_pnl: Realized P&L (0 for buys)
            notes: Optional free-text note
            session: Optional existing session for transaction reuse

        Returns:
            Created Transaction object
        """
        def _create_transaction(sess: Session) -> Transaction:
            transaction = Transaction(
                user_id=user_id,
                symbol=symbol,
                transaction_type=transaction_type,
                quantity=quantity,
                price=price,
                asset_type=asset_type,
                currency=currency,
                transaction_date=transaction_date,
                realized_pnl=realized_pnl,
                notes=notes
            )
            sess.add(transaction)
            sess.commit()
            sess.refresh(transaction)
            return transaction

        return run_in_session(_create_transaction, session)

    @staticmethod
    def get_by_user(user_id: str, session: Optional[Session] = None) -> List[Transaction]:
        """
        Retrieve all transactions of a user, newest first.

        Ordered by transaction date descending, then creation time descending.
        """
        def _get_by_user(sess: Session) -> List[Transaction]:
            statement = (
                select(Transaction)
                .where(Transaction.user_id == user_id)
                .order_by(Transaction.transaction_date.desc(), Transaction.created_at.desc())
            )
            return list(sess.exec(statement).all())

        return run_in_session(_get_by_user, session)

    @staticmethod
    def get_by_user_and_symbol(
        user_id: str,
        symbol: str,
        session: Optional[Session] = None
    ) -> List[Transaction]:
        """Retrieve a user's transactions for one symbol, oldest first."""
        def _get_by_symbol(sess: Session) -> List[Transaction]:
            statement = (
                select(Transaction)
                .where(Transaction.user_id == user_id, Transaction.symbol == symbol)
                .order_by(
                    Transaction.transaction_date,
                    Transaction.created_at,
                    Transaction.id
                )
            )
            return list(sess.exec(statement).all())

        return run_in_session(_get_by_symbol, session)
