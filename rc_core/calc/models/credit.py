"""
额度计算相关数据模型
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import CategoryKey

Percentage = Annotated[Decimal, Field(ge=0, le=100)]
NonNegative = Annotated[Decimal, Field(ge=0)]


class LogisticsFactor(BaseModel):
    """逆向物流成本因子（占价格百分比）"""

    model_config = ConfigDict(frozen=True)

    base_percentage: NonNegative
    distance_multiplier: NonNegative  # 每 100km 追加的百分比


def _default_reverse_logistics() -> Dict[str, LogisticsFactor]:
    return {
        CategoryKey.FASHION.value: LogisticsFactor(base_percentage=Decimal("8"), distance_multiplier=Decimal("0.5")),
        CategoryKey.ELECTRONICS.value: LogisticsFactor(base_percentage=Decimal("12"), distance_multiplier=Decimal("0.8")),
        CategoryKey.HOME_KITCHEN.value: LogisticsFactor(base_percentage=Decimal("10"), distance_multiplier=Decimal("0.6")),
        CategoryKey.BEAUTY.value: LogisticsFactor(base_percentage=Decimal("6"), distance_multiplier=Decimal("0.4")),
        CategoryKey.DEFAULT.value: LogisticsFactor(base_percentage=Decimal("9"), distance_multiplier=Decimal("0.6")),
    }


def _percent_table(fashion: str, electronics: str, home_kitchen: str, beauty: str, default: str) -> Dict[str, Decimal]:
    return {
        CategoryKey.FASHION.value: Decimal(fashion),
        CategoryKey.ELECTRONICS.value: Decimal(electronics),
        CategoryKey.HOME_KITCHEN.value: Decimal(home_kitchen),
        CategoryKey.BEAUTY.value: Decimal(beauty),
        CategoryKey.DEFAULT.value: Decimal(default),
    }


class CostFactors(BaseModel):
    """各类目的避免成本因子"""

    model_config = ConfigDict(frozen=True)

    reverse_logistics: Dict[str, LogisticsFactor] = Field(default_factory=_default_reverse_logistics)
    warehouse_processing: Dict[str, NonNegative] = Field(
        default_factory=lambda: _percent_table("4.5", "8.0", "6.0", "3.5", "5.5")
    )
    product_write_off: Dict[str, NonNegative] = Field(
        default_factory=lambda: _percent_table("15", "25", "12", "18", "16")
    )
    quality_degradation: Dict[str, NonNegative] = Field(
        default_factory=lambda: _percent_table("20", "30", "15", "25", "22")
    )

    def logistics_for(self, category_key: str) -> LogisticsFactor:
        return self.reverse_logistics.get(category_key) or self.reverse_logistics[CategoryKey.DEFAULT.value]

    @staticmethod
    def lookup(table: Dict[str, Decimal], category_key: str) -> Decimal:
        """按类目取百分比，缺失时回落到 default"""
        if category_key in table:
            return table[category_key]
        return table[CategoryKey.DEFAULT.value]


class CreditSettings(BaseModel):
    """买家额度规则"""

    model_config = ConfigDict(frozen=True)

    buyer_credit_percentage: Percentage = Decimal("60")  # 避免成本中返还给买家的比例
    max_credit_percentage: Percentage = Decimal("35")  # 额度不超过商品价格的比例
    min_credit_amount: NonNegative = Decimal("25")
    max_credit_amount: NonNegative = Decimal("2000")


class CostSharingSettings(BaseModel):
    """额度成本分摊比例（两者之和须为 100，在配置更新时校验）"""

    model_config = ConfigDict(frozen=True)

    seller_percentage: Percentage = Decimal("65")
    platform_percentage: Percentage = Decimal("35")


class CreditConfigSnapshot(BaseModel):
    """不可变配置快照，随每次计算结果一起保存"""

    model_config = ConfigDict(frozen=True)

    cost_factors: CostFactors = Field(default_factory=CostFactors)
    credit: CreditSettings = Field(default_factory=CreditSettings)
    cost_sharing: CostSharingSettings = Field(default_factory=CostSharingSettings)


class ProductInfo(BaseModel):
    """商品信息"""

    product_id: Optional[str] = None
    name: Optional[str] = None
    price: Decimal = Field(..., gt=0)
    category: str = ""
    brand: Optional[str] = None


class OrderDetails(BaseModel):
    """订单信息（用于估算退货距离）"""

    order_id: Optional[str] = None
    delivery_address: Optional[str] = None
    seller_location: Optional[str] = None

    @property
    def has_locations(self) -> bool:
        return bool(self.delivery_address) and bool(self.seller_location)


class AvoidedCosts(BaseModel):
    """避免的传统退货成本"""

    reverse_logistics: Decimal
    warehouse_processing: Decimal
    product_write_off: Decimal
    quality_degradation: Decimal
    total: Decimal


class CostSharing(BaseModel):
    """额度成本分摊"""

    total: Decimal
    seller_amount: Decimal
    platform_amount: Decimal
    seller_percentage: Decimal
    platform_percentage: Decimal


class SellerBenefit(BaseModel):
    """卖家收益（捐赠路径 vs 传统退货）"""

    traditional_cost: Decimal
    ngo_path_cost: Decimal
    savings: Decimal
    savings_percentage: Decimal


class CalculationMetadata(BaseModel):
    """计算元数据"""

    product_price: Decimal
    category: str
    category_key: CategoryKey
    distance_km: int
    return_reason: str
    calculated_at: Optional[datetime] = None


class CreditCalculation(BaseModel):
    """额度计算结果"""

    buyer_credit: Decimal
    raw_credit: Decimal
    avoided_costs: AvoidedCosts
    cost_sharing: CostSharing
    seller_benefit: SellerBenefit
    metadata: CalculationMetadata
    config: CreditConfigSnapshot
