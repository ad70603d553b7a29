"""
Ledger (revenue / tree point) Pydantic schemas.
"""
from pydantic import BaseModel


class RevenueResponse(BaseModel):
    total: int
    balance: int


class TreePointsResponse(BaseModel):
    total: float
    balance: float


class WithdrawRequest(BaseModel):
    """Withdraw revenue (yen)."""
    amount: int


class SpendPointsRequest(BaseModel):
    """Spend tree points."""
    amount: float
