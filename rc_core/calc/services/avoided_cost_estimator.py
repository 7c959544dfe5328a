"""
避免成本估算器 - 计算捐赠路径相比传统退货省下的成本
"""

import math
from decimal import Decimal
from typing import Optional

from ..models.credit import AvoidedCosts, CostFactors
from ..models.enums import CategoryKey
from rc_core.utils.money import percent_of, round_money

# 关键词到成本因子类目的映射，按顺序匹配
CATEGORY_KEYWORDS = (
    (CategoryKey.FASHION, ("fashion", "clothing", "apparel")),
    (CategoryKey.ELECTRONICS, ("electronics", "mobile", "laptop")),
    (CategoryKey.HOME_KITCHEN, ("home", "kitchen", "furniture")),
    (CategoryKey.BEAUTY, ("beauty", "cosmetics", "skincare")),
)

DISTANCE_BAND_KM = 100


def normalize_category(category: Optional[str]) -> CategoryKey:
    """将商品类目归一化为成本因子类目"""
    category_lower = (category or "").lower()
    for key, keywords in CATEGORY_KEYWORDS:
        if any(keyword in category_lower for keyword in keywords):
            return key
    return CategoryKey.DEFAULT


class AvoidedCostEstimator:
    """避免成本估算器（纯函数，无副作用）"""

    def __init__(self, cost_factors: Optional[CostFactors] = None):
        self.cost_factors = cost_factors or CostFactors()

    def estimate(
        self,
        price: Decimal,
        category_key: CategoryKey,
        distance_km: int,
        return_reason: str = "ngo_donation",
    ) -> AvoidedCosts:
        """
        估算四项避免成本

        Args:
            price: 商品价格（>0）
            category_key: 归一化后的类目
            distance_km: 退货距离（>=0）
            return_reason: 退货原因（当前不影响成本）

        Returns:
            四项成本（各自舍入到分）及其合计
        """
        key = category_key.value
        factors = self.cost_factors

        # 物流成本 = 基础比例 + 每 100km 追加比例
        logistics = factors.logistics_for(key)
        distance_bands = math.ceil(distance_km / DISTANCE_BAND_KM)
        reverse_logistics = percent_of(price, logistics.base_percentage) + percent_of(
            price, logistics.distance_multiplier * distance_bands
        )

        warehouse_processing = percent_of(price, factors.lookup(factors.warehouse_processing, key))
        product_write_off = percent_of(price, factors.lookup(factors.product_write_off, key))
        quality_degradation = percent_of(price, factors.lookup(factors.quality_degradation, key))

        components = [
            round_money(reverse_logistics),
            round_money(warehouse_processing),
            round_money(product_write_off),
            round_money(quality_degradation),
        ]

        return AvoidedCosts(
            reverse_logistics=components[0],
            warehouse_processing=components[1],
            product_write_off=components[2],
            quality_degradation=components[3],
            total=sum(components, Decimal("0")),
        )
