"""
退货决策 API - 评估退货、记录用户选择、决策统计
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rc_core.api.deps import get_db_session, get_db_write_session, get_decision_service
from rc_core.api.models import ApiResponse, DataResponse
from rc_core.calc.models.enums import ItemCondition, LoyaltyTier, UserChoice
from rc_core.services import ReturnDecisionService

router = APIRouter(prefix="/decision", tags=["Decision"])


# ============ Request/Response Models ============

class CustomerLocation(BaseModel):
    """买家位置"""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class EvaluateReturnRequest(BaseModel):
    """退货评估请求"""
    order_id: str = Field(..., min_length=1, description="订单号")
    item_id: str = Field(..., min_length=1, description="订单行ID")
    return_reason: Optional[str] = Field(None, description="退货原因")
    condition: Optional[ItemCondition] = Field(None, description="买家申报的商品状态")
    loyalty_tier: LoyaltyTier = Field(default=LoyaltyTier.BRONZE, description="会员等级")
    location: Optional[CustomerLocation] = Field(None, description="买家位置，缺省使用默认位置")


class UserChoiceRequest(BaseModel):
    """用户选择请求"""
    decision_id: str = Field(..., min_length=1, description="决策号")
    choice: UserChoice


# ============ API Endpoints ============

@router.post("/evaluate", response_model=DataResponse)
async def evaluate_return(
    body: EvaluateReturnRequest,
    service: ReturnDecisionService = Depends(get_decision_service),
):
    """
    评估退货并给出推荐路径

    - 捐赠 / 闪购 / 转售，另附传统退货选项
    - NGO 查询失败时降级为无可用 NGO
    """
    result = await service.evaluate_return(
        order_id=body.order_id,
        item_id=body.item_id,
        return_reason=body.return_reason,
        condition=body.condition.value if body.condition else None,
        loyalty_tier=body.loyalty_tier,
        latitude=body.location.latitude if body.location else None,
        longitude=body.location.longitude if body.location else None,
    )
    return ApiResponse.success(result)


@router.post("/user-choice", response_model=DataResponse)
async def record_user_choice(
    body: UserChoiceRequest,
    db: AsyncSession = Depends(get_db_write_session),
):
    """
    记录用户选择

    - 选择捐赠后等待额度发放完成决策
    - 其他选择立即完成决策
    """
    decision = await ReturnDecisionService.record_user_choice(db, body.decision_id, body.choice)
    await db.commit()
    return ApiResponse.success(ReturnDecisionService.to_response(decision))


@router.get("/analytics", response_model=DataResponse)
async def get_decision_analytics(
    start_date: Optional[datetime] = Query(None, description="开始时间 (ISO8601)"),
    end_date: Optional[datetime] = Query(None, description="结束时间 (ISO8601)"),
    db: AsyncSession = Depends(get_db_session),
):
    """按路径统计决策"""
    pathways = await ReturnDecisionService.get_decision_analytics(db, start_date, end_date)
    return ApiResponse.success({"pathways": pathways})


@router.get("/{decision_id}", response_model=DataResponse)
async def get_decision(
    decision_id: str,
    db: AsyncSession = Depends(get_db_session),
):
    """查询决策"""
    decision = await ReturnDecisionService.get_decision(db, decision_id)
    return ApiResponse.success(ReturnDecisionService.to_response(decision))
