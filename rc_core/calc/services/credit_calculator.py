"""
买家额度计算器 - 由避免成本得出买家额度和卖家/平台分摊
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from ..models.credit import (
    CalculationMetadata,
    CostSharing,
    CreditCalculation,
    CreditConfigSnapshot,
    OrderDetails,
    ProductInfo,
    SellerBenefit,
)
from .avoided_cost_estimator import AvoidedCostEstimator, normalize_category
from .location import estimate_distance_km
from rc_core.utils.errors import ValidationError
from rc_core.utils.money import HUNDRED, percent_of, round_money, round_money_within


class CreditCalculator:
    """额度计算器

    所有中间值保持精确 Decimal，只在输出时舍入到分
    """

    def __init__(self, config: Optional[CreditConfigSnapshot] = None):
        """
        初始化额度计算器

        Args:
            config: 配置快照，缺省使用默认配置
        """
        self.config = config or CreditConfigSnapshot()
        self.estimator = AvoidedCostEstimator(self.config.cost_factors)

    def calculate_instant_credit(
        self,
        product: ProductInfo,
        order_details: OrderDetails,
        return_reason: str = "ngo_donation",
        calculated_at: Optional[datetime] = None,
    ) -> CreditCalculation:
        """
        计算捐赠退货的即时额度（预览，无副作用）

        Args:
            product: 商品信息
            order_details: 订单信息（收货地址、卖家地址）
            return_reason: 退货原因
            calculated_at: 计算时间（仅记录）

        Returns:
            CreditCalculation

        Raises:
            ValidationError: 商品价格无效
        """
        price = product.price
        if price is None or price <= 0:
            raise ValidationError(code="INVALID_PRODUCT_PRICE", detail="Product price must be greater than 0")

        category_key = normalize_category(product.category)
        distance_km = estimate_distance_km(order_details.delivery_address, order_details.seller_location)

        avoided = self.estimator.estimate(price, category_key, distance_km, return_reason)

        raw_credit = self.calculate_raw_credit(avoided.total)
        buyer_credit = self.apply_credit_limits(raw_credit, price)
        cost_sharing = self.split_cost(buyer_credit)
        seller_benefit = self.seller_benefit(avoided.total, cost_sharing.seller_amount)

        return CreditCalculation(
            buyer_credit=buyer_credit,
            raw_credit=round_money(raw_credit),
            avoided_costs=avoided,
            cost_sharing=cost_sharing,
            seller_benefit=seller_benefit,
            metadata=CalculationMetadata(
                product_price=price,
                category=product.category or "uncategorized",
                category_key=category_key,
                distance_km=distance_km,
                return_reason=return_reason,
                calculated_at=calculated_at,
            ),
            config=self.config,
        )

    def calculate_raw_credit(self, total_avoided: Decimal) -> Decimal:
        """未限额的买家额度 = 避免成本 × 返还比例"""
        return percent_of(total_avoided, self.config.credit.buyer_credit_percentage)

    def credit_upper_bound(self, price: Decimal) -> Decimal:
        """额度上限 = min(价格 × 上限比例, 最高额度)"""
        settings = self.config.credit
        return min(percent_of(price, settings.max_credit_percentage), settings.max_credit_amount)

    def apply_credit_limits(self, raw_credit: Decimal, price: Decimal) -> Decimal:
        """
        应用上下限并舍入到分

        下限无条件生效：低价商品的额度可能高于其避免成本（激励下限）
        """
        settings = self.config.credit
        upper = self.credit_upper_bound(price)
        capped = min(raw_credit, upper)

        if capped < settings.min_credit_amount:
            return round_money(settings.min_credit_amount)

        return max(round_money_within(capped, upper), round_money(settings.min_credit_amount))

    def split_cost(self, buyer_credit: Decimal) -> CostSharing:
        """
        额度成本分摊

        平台份额取差值，保证 seller + platform == buyer_credit
        """
        sharing = self.config.cost_sharing
        seller_amount = round_money(percent_of(buyer_credit, sharing.seller_percentage))
        platform_amount = buyer_credit - seller_amount

        return CostSharing(
            total=buyer_credit,
            seller_amount=seller_amount,
            platform_amount=platform_amount,
            seller_percentage=sharing.seller_percentage,
            platform_percentage=sharing.platform_percentage,
        )

    @staticmethod
    def seller_benefit(total_avoided: Decimal, seller_amount: Decimal) -> SellerBenefit:
        """卖家收益：传统退货成本 - 捐赠路径下卖家承担金额"""
        savings = total_avoided - seller_amount
        savings_percentage = round_money(savings / total_avoided * HUNDRED) if total_avoided > 0 else Decimal("0.00")

        return SellerBenefit(
            traditional_cost=total_avoided,
            ngo_path_cost=seller_amount,
            savings=savings,
            savings_percentage=savings_percentage,
        )
