"""
退货决策相关数据模型
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .credit import CreditCalculation
from .enums import CreditSource, LoyaltyTier, Pathway, QualityGrade


class ReturnItem(BaseModel):
    """退货商品快照（来自订单服务，不可变）"""

    model_config = ConfigDict(frozen=True)

    order_id: str
    order_item_id: str
    user_id: str
    product_id: Optional[str] = None
    name: Optional[str] = None
    price: Decimal = Field(..., gt=0)  # 购买时单价
    category: str = ""
    condition: str = "Good"
    purchase_date: Optional[datetime] = None  # 签收时间，缺失时按下单时间
    brand: Optional[str] = None
    seller_id: Optional[str] = None
    seller_location: Optional[str] = None
    delivery_address: Optional[str] = None


class CustomerContext(BaseModel):
    """买家上下文"""

    model_config = ConfigDict(frozen=True)

    user_id: str
    loyalty_tier: LoyaltyTier = LoyaltyTier.BRONZE
    latitude: float
    longitude: float


class NearbyNGO(BaseModel):
    """附近 NGO"""

    id: str
    name: str
    distance_km: float
    capacity_remaining: int = 0
    accepted_categories: List[str] = Field(default_factory=list)


class DecisionOption(BaseModel):
    """展示给用户的处理选项"""

    type: str
    title: str
    description: str
    benefits: List[str] = Field(default_factory=list)
    recommended: bool = False
    ngos: List[NearbyNGO] = Field(default_factory=list)


class ReturnDecisionResult(BaseModel):
    """决策结果"""

    pathway: Pathway
    confidence: Decimal
    recommendation: str
    processing_time: str

    # 捐赠
    credit_offered: Optional[Decimal] = None
    credit_source: Optional[CreditSource] = None
    estimated_savings: Optional[Decimal] = None
    ngos_available: int = 0
    nearby_ngos: List[NearbyNGO] = Field(default_factory=list)
    credit_calculation: Optional[CreditCalculation] = None

    # 闪购
    flash_sale_price: Optional[Decimal] = None
    discount_percentage: Optional[Decimal] = None

    # 转售
    estimated_resale_value: Optional[Decimal] = None
    processing_cost: Optional[Decimal] = None
    expected_profit: Optional[Decimal] = None
    quality_grade: Optional[QualityGrade] = None

    factors: Dict[str, Any] = Field(default_factory=dict)
    options: List[DecisionOption] = Field(default_factory=list)
