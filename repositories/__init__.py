"""
Repositories package for the portfolio tracker.
Provides data access layer for all database operations.
"""

from repositories.transaction_repository import TransactionRepository
from repositories.exchange_rate_repository import ExchangeRateRepository
from repositories.analysis_repository import AnalysisRepository

__all__ = [
    'TransactionRepository',
    'ExchangeRateRepository',
    'AnalysisRepository',
]
