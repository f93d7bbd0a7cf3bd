"""
ExchangeRate model - a persisted FX quote. Rows are history, newest wins.
"""

from typing import Optional
from datetime import date, datetime
from sqlmodel import SQLModel, Field


class ExchangeRate(SQLModel, table=True):
    """1 unit of `from_currency` = `rate` units of `to_currency`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    from_currency: str = Field(index=True)
    to_currency: str = Field(index=True)
    rate: float
    source: str = Field(default="api")  # "exchangerate-api", "manual", ...
    rate_date: date = Field(default_factory=date.today)
    created_at: datetime = Field(default_factory=datetime.now, index=True)
