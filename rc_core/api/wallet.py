"""
钱包 API - 钱包查询与余额支付
"""
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rc_core.api.deps import get_db_session, get_db_write_session
from rc_core.api.models import ApiResponse, DataResponse
from rc_core.config import get_settings
from rc_core.services import WalletService
from rc_core.utils.logger import get_logger

router = APIRouter(prefix="/wallet", tags=["Wallet"])
logger = get_logger(__name__)


# ============ Request/Response Models ============

class PaymentRequest(BaseModel):
    """余额支付请求"""
    user_id: str = Field(..., min_length=1, description="用户ID")
    amount: Decimal = Field(..., description="支付金额（正数）")
    order_id: Optional[str] = Field(None, description="订单号")
    transaction_id: Optional[str] = Field(None, description="交易号，重复提交时用于幂等")
    description: str = Field(default="Wallet payment for order", description="描述")


# ============ API Endpoints ============

@router.post("/payment", response_model=DataResponse)
async def pay_with_wallet(
    body: PaymentRequest,
    db: AsyncSession = Depends(get_db_write_session),
):
    """
    使用钱包余额支付

    - 余额不足时拒绝，不做任何修改
    """
    entry = await WalletService.debit(
        db,
        user_id=body.user_id,
        amount=body.amount,
        order_id=body.order_id,
        transaction_id=body.transaction_id,
        description=body.description,
    )
    await db.commit()

    return ApiResponse.success({
        "transaction_id": entry.transaction.transaction_id,
        "amount": -entry.transaction.amount,
        "balance_before": entry.transaction.balance_before,
        "balance_after": entry.transaction.balance_after,
        "replayed": entry.replayed,
    })


@router.get("/{user_id}", response_model=DataResponse)
async def get_wallet(
    user_id: str,
    limit: Optional[int] = Query(None, ge=1, le=200, description="每页条数"),
    offset: int = Query(0, ge=0, description="偏移量"),
    db: AsyncSession = Depends(get_db_session),
):
    """
    钱包详情

    - 余额、累计获得/消费、最近交易与汇总
    - 没有钱包的用户返回零值
    """
    if limit is None:
        limit = get_settings().wallet_history_limit
    details = await WalletService.get_wallet_details(db, user_id, limit=limit, offset=offset)
    return ApiResponse.success(details)
