"""
ExchangeRate Repository - append-only FX rate history.
"""

from typing import Optional, List
from datetime import date
from sqlmodel import Session, select

from models import ExchangeRate
from repositories.base import run_in_session


class ExchangeRateRepository:
    """Repository for ExchangeRate inserts and lookups."""

    @staticmethod
    def add(
        from_currency: str,
        to_currency: str,
        rate: float,
        source: str = "api",
        rate_date: Optional[date] = None,
        session: Optional[Session] = None
    ) -> ExchangeRate:
        """Insert a new rate row. History is kept; there is no upsert."""
        def _add(sess: Session) -> ExchangeRate:
            row = ExchangeRate(
                from_currency=from_currency,
                to_currency=to_currency,
                rate=rate,
                source=source,
                rate_date=rate_date or date.today()
            )
            sess.add(row)
            sess.commit()
            sess.refresh(row)
            return row

        return run_in_session(_add, session)

    @staticmethod
    def get_latest(
        from_currency: str,
        to_currency: str,
        session: Optional[Session] = None
    ) -> Optional[ExchangeRate]:
        """Get the most recently created rate for a currency pair."""
        def _get_latest(sess: Session) -> Optional[ExchangeRate]:
            statement = (
                select(ExchangeRate)
                .where(
                    ExchangeRate.from_currency == from_currency,
                    ExchangeRate.to_currency == to_currency
                )
                .order_by(ExchangeRate.created_at.desc(), ExchangeRate.id.desc())
                .limit(1)
            )
            return sess.exec(statement).first()

        return run_in_session(_get_latest, session)

    @staticmethod
    def get_recent(limit: int = 10, session: Optional[Session] = None) -> List[ExchangeRate]:
        """Get the newest rate rows across all pairs."""
        def _get_recent(sess: Session) -> List[ExchangeRate]:
            statement = (
                select(ExchangeRate)
                .order_by(ExchangeRate.created_at.desc(), ExchangeRate.id.desc())
                .limit(limit)
            )
            return list(sess.exec(statement).all())

        return run_in_session(_get_recent, session)
