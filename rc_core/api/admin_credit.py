"""
额度配置 API - 管理员接口

配置更新立即生效，只影响之后的计算
"""
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rc_core.api.deps import get_credit_config_manager, get_db_session, get_db_write_session
from rc_core.api.models import ApiResponse, DataResponse
from rc_core.services import CreditConfigManager
from rc_core.utils.logger import get_logger

router = APIRouter(prefix="/admin/credit-config", tags=["Admin Credit"])
logger = get_logger(__name__)


# ============ Request/Response Models ============

class CostFactorsUpdateRequest(BaseModel):
    """成本因子更新（按类目局部更新）"""
    reverse_logistics: Optional[Dict[str, Dict[str, Any]]] = None
    warehouse_processing: Optional[Dict[str, Any]] = None
    product_write_off: Optional[Dict[str, Any]] = None
    quality_degradation: Optional[Dict[str, Any]] = None
    updated_by: Optional[str] = Field(None, description="操作人")


class CreditSettingsUpdateRequest(BaseModel):
    """额度规则更新"""
    buyer_credit_percentage: Optional[Decimal] = None
    max_credit_percentage: Optional[Decimal] = None
    min_credit_amount: Optional[Decimal] = None
    max_credit_amount: Optional[Decimal] = None
    updated_by: Optional[str] = Field(None, description="操作人")


class CostSharingUpdateRequest(BaseModel):
    """分摊比例更新"""
    seller_percentage: Decimal
    platform_percentage: Decimal
    updated_by: Optional[str] = Field(None, description="操作人")


# ============ API Endpoints ============

@router.get("", response_model=DataResponse)
async def get_credit_config(
    db: AsyncSession = Depends(get_db_session),
    config_manager: CreditConfigManager = Depends(get_credit_config_manager),
):
    """读取当前额度配置"""
    return ApiResponse.success(await config_manager.get_admin_config(db))


@router.put("/cost-factors", response_model=DataResponse)
async def update_cost_factors(
    body: CostFactorsUpdateRequest,
    db: AsyncSession = Depends(get_db_write_session),
    config_manager: CreditConfigManager = Depends(get_credit_config_manager),
):
    """更新成本因子"""
    changes = body.model_dump(mode="json", exclude_none=True, exclude={"updated_by"})
    cost_factors = await config_manager.update_cost_factors(db, changes, body.updated_by)
    await db.commit()
    config_manager.invalidate()
    return ApiResponse.success(cost_factors.model_dump(mode="json"))


@router.put("/credit-settings", response_model=DataResponse)
async def update_credit_settings(
    body: CreditSettingsUpdateRequest,
    db: AsyncSession = Depends(get_db_write_session),
    config_manager: CreditConfigManager = Depends(get_credit_config_manager),
):
    """更新额度规则（最低额度不得大于最高额度）"""
    changes = body.model_dump(mode="json", exclude_none=True, exclude={"updated_by"})
    credit_settings = await config_manager.update_credit_settings(db, changes, body.updated_by)
    await db.commit()
    config_manager.invalidate()
    return ApiResponse.success(credit_settings.model_dump(mode="json"))


@router.put("/cost-sharing", response_model=DataResponse)
async def update_cost_sharing(
    body: CostSharingUpdateRequest,
    db: AsyncSession = Depends(get_db_write_session),
    config_manager: CreditConfigManager = Depends(get_credit_config_manager),
):
    """更新卖家/平台分摊比例（两者之和必须为 100）"""
    cost_sharing = await config_manager.update_cost_sharing(
        db, body.seller_percentage, body.platform_percentage, body.updated_by
    )
    await db.commit()
    config_manager.invalidate()
    return ApiResponse.success(cost_sharing.model_dump(mode="json"))
