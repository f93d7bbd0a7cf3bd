"""
Transaction model - an immutable buy/sell entry in the ledger.
"""

from typing import Optional
from datetime import date, datetime
from sqlmodel import SQLModel, Field

TRANSACTION_TYPES = ("buy", "sell")
ASSET_TYPES = ("stock", "crypto")


class Transaction(SQLModel, table=True):
    """Represents a buy/sell transaction recorded by a user."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    symbol: str = Field(index=True)  # e.g., "AAPL", "BBCA.JK", "BTC-USD"
    transaction_type: str  # "buy" or "sell"
    quantity: float
    price: float  # Price per unit, in `currency`
    asset_type: str  # "stock" or "crypto"
    currency: str = Field(default="USD")
    transaction_date: date = Field(index=True)
    realized_pnl: float = Field(default=0.0)  # Always 0 for buys
    notes: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.now)
