"""
Database models for the portfolio tracker.
All SQLModel table definitions are centralized here.
"""

from models.transaction import Transaction, TRANSACTION_TYPES, ASSET_TYPES
from models.exchange_rate import ExchangeRate
from models.analysis import Analysis

__all__ = [
    'Transaction',
    'ExchangeRate',
    'Analysis',
    'TRANSACTION_TYPES',
    'ASSET_TYPES',
]
