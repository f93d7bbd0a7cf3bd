"""
Analysis model - a generated AI prompt and the response pasted back by the user.
"""

from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field


class Analysis(SQLModel, table=True):
    """Log entry for the manual AI analysis workflow."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    analysis_type: str  # "aggregated_portfolio_analysis" or "stock_analysis"
    prompt_used: str
    result: str = Field(default="")  # Filled when the user pastes the response
    created_at: datetime = Field(default_factory=datetime.now)
