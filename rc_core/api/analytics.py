"""
财务分析 API
"""
import re

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from rc_core.api.deps import get_db_session
from rc_core.api.models import ApiResponse, DataResponse
from rc_core.calc.models.enums import AnalyticsPeriod, SellerAnalysisPeriod
from rc_core.services import AnalyticsService, FinancialSummaryService
from rc_core.utils.errors import ValidationError

router = APIRouter(prefix="/analytics", tags=["Analytics"])

MONTH_KEY_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


@router.get("/financial", response_model=DataResponse)
async def get_financial_analytics(
    period: AnalyticsPeriod = Query(AnalyticsPeriod.CURRENT_MONTH, description="分析周期"),
    db: AsyncSession = Depends(get_db_session),
):
    """
    平台财务分析

    - 周期汇总、月度趋势（含类目拆分）、最近的捐赠记录
    """
    return ApiResponse.success(await AnalyticsService.get_financial_analytics(db, period))


@router.get("/sellers/{seller_id}", response_model=DataResponse)
async def get_seller_cost_analysis(
    seller_id: str,
    period: SellerAnalysisPeriod = Query(SellerAnalysisPeriod.DAYS_30, description="分析周期"),
    db: AsyncSession = Depends(get_db_session),
):
    """卖家成本与节省分析"""
    return ApiResponse.success(await AnalyticsService.get_seller_cost_analysis(db, seller_id, period))


@router.get("/monthly/{month_key}", response_model=DataResponse)
async def get_monthly_summary(
    month_key: str,
    db: AsyncSession = Depends(get_db_session),
):
    """单月汇总（含类目拆分）"""
    if not MONTH_KEY_PATTERN.match(month_key):
        raise ValidationError(code="INVALID_MONTH_KEY", detail="month_key must be formatted as YYYY-MM")
    return ApiResponse.success(await FinancialSummaryService.get_monthly_summary(db, month_key))
