"""
Revenue and tree point balance endpoints.
"""
from fastapi import APIRouter

from ecomarket.api.deps import CurrentUid, RevenueLedgerDep, TreePointLedgerDep
from ecomarket.schemas.ledger import (
    RevenueResponse,
    SpendPointsRequest,
    TreePointsResponse,
    WithdrawRequest,
)

router = APIRouter()


@router.get("/revenue", response_model=RevenueResponse)
async def get_revenue(uid: CurrentUid, revenue: RevenueLedgerDep):
    balance = await revenue.get(uid)
    return RevenueResponse(total=balance.total, balance=balance.balance)


@router.post("/revenue/withdraw", response_model=RevenueResponse)
async def withdraw_revenue(body: WithdrawRequest, uid: CurrentUid, revenue: RevenueLedgerDep):
    """Withdraw from the revenue balance; 400 if it does not cover the amount."""
    await revenue.deduct(uid, body.amount)
    balance = await revenue.get(uid)
    return RevenueResponse(total=balance.total, balance=balance.balance)


@router.get("/tree-points", response_model=TreePointsResponse)
async def get_tree_points(uid: CurrentUid, tree_points: TreePointLedgerDep):
    balance = await tree_points.get(uid)
    return TreePointsResponse(total=balance.total, balance=balance.balance)


@router.post("/tree-points/spend", response_model=TreePointsResponse)
async def spend_tree_points(body: SpendPointsRequest, uid: CurrentUid, tree_points: TreePointLedgerDep):
    await tree_points.deduct(uid, body.amount)
    balance = await tree_points.get(uid)
    return TreePointsResponse(total=balance.total, balance=balance.balance)
