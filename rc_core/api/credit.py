"""
额度 API - 额度预览、捐赠额度发放、交易查询
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rc_core.api.deps import get_db_session, get_donation_service
from rc_core.api.models import ApiResponse, DataResponse
from rc_core.calc.models.credit import CreditCalculation, OrderDetails, ProductInfo
from rc_core.services import DonationCreditService, WalletService
from rc_core.services.donation_credit_service import NGO_DONATION_REASON

router = APIRouter(prefix="/credit", tags=["Credit"])


# ============ Request/Response Models ============

class CalculateCreditRequest(BaseModel):
    """额度预览请求"""
    product: ProductInfo
    order_details: OrderDetails = Field(default_factory=OrderDetails)
    return_reason: str = Field(default=NGO_DONATION_REASON, description="退货原因")


class ProcessDonationRequest(BaseModel):
    """捐赠额度发放请求"""
    user_id: str = Field(..., min_length=1, description="买家用户ID")
    order_id: str = Field(..., min_length=1, description="订单号")
    seller_id: str = Field(..., min_length=1, description="卖家ID")
    ngo_id: Optional[str] = Field(None, description="接收捐赠的 NGO")
    return_id: Optional[str] = Field(None, description="退货单号")
    decision_id: Optional[str] = Field(None, description="关联的退货决策")
    idempotency_key: Optional[str] = Field(None, description="幂等键，缺省由订单信息派生")
    product: ProductInfo
    order_details: OrderDetails = Field(default_factory=OrderDetails)


# ============ API Endpoints ============

@router.post("/calculate", response_model=ApiResponse[CreditCalculation])
async def calculate_credit(
    body: CalculateCreditRequest,
    service: DonationCreditService = Depends(get_donation_service),
):
    """
    额度预览

    - 按当前配置计算避免成本、买家额度与分摊
    - 不产生任何写入
    """
    calculation = await service.calculate_credit(body.product, body.order_details, body.return_reason)
    return ApiResponse.success(calculation)


@router.post("/process-ngo-donation", response_model=DataResponse)
async def process_ngo_donation(
    body: ProcessDonationRequest,
    service: DonationCreditService = Depends(get_donation_service),
):
    """
    发放 NGO 捐赠额度

    - 入账、成本分摊、月度汇总在同一事务内完成
    - 相同幂等键的重复请求返回首次结果
    """
    result = await service.process_donation_credit(
        user_id=body.user_id,
        order_id=body.order_id,
        seller_id=body.seller_id,
        product=body.product,
        order_details=body.order_details,
        ngo_id=body.ngo_id,
        return_id=body.return_id,
        decision_id=body.decision_id,
        idempotency_key=body.idempotency_key,
    )
    return ApiResponse.success(result)


@router.get("/transactions/{transaction_id}", response_model=DataResponse)
async def get_transaction(
    transaction_id: str,
    db: AsyncSession = Depends(get_db_session),
):
    """查询单笔钱包交易"""
    transaction = await WalletService.get_transaction(db, transaction_id)
    return ApiResponse.success(transaction.to_dict())


@router.get("/stats", response_model=DataResponse)
async def get_credit_stats(
    start_date: Optional[datetime] = Query(None, description="开始时间 (ISO8601)"),
    end_date: Optional[datetime] = Query(None, description="结束时间 (ISO8601)"),
    db: AsyncSession = Depends(get_db_session),
):
    """NGO 捐赠额度统计"""
    stats = await WalletService.get_ngo_credit_stats(db, start_date, end_date)
    return ApiResponse.success(stats)
