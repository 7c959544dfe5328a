"""
退货决策路由 - 根据价格、商品状态和附近 NGO 选择处理路径
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..models.credit import CreditConfigSnapshot, OrderDetails, ProductInfo
from ..models.decision import (
    CustomerContext,
    DecisionOption,
    NearbyNGO,
    ReturnDecisionResult,
    ReturnItem,
)
from ..models.enums import CreditSource, LoyaltyTier, Pathway, QualityGrade
from .credit_calculator import CreditCalculator

from rc_core.utils.logger import get_logger
from rc_core.utils.money import round_money, round_whole

if TYPE_CHECKING:
    from rc_core.clients.ngo_directory import NGODirectory

logger = get_logger(__name__)

DONATION_PRICE_THRESHOLD = Decimal("500")  # <= 走捐赠
FLASH_SALE_PRICE_THRESHOLD = Decimal("1000")  # > 且状态 Good 走闪购
FLASH_SALE_CONDITION = "Good"
FLASH_SALE_PRICE_RATIO = Decimal("0.6")

# 固定置信度（占位值，不由输入质量推导）
PATHWAY_CONFIDENCE = {
    Pathway.DONATION: Decimal("0.85"),
    Pathway.FLASH_SALE: Decimal("0.82"),
    Pathway.RESALE: Decimal("0.78"),
}
NGO_LOOKUP_FAILURE_PENALTY = Decimal("0.15")

PROCESSING_TIME = {
    Pathway.DONATION: "24 hours",
    Pathway.FLASH_SALE: "2-3 hours",
    Pathway.RESALE: "3-5 days",
}

# 缺少位置数据时的静态额度
STATIC_CREDIT_RATIO = Decimal("0.25")
LOYALTY_MULTIPLIERS = {
    LoyaltyTier.BRONZE: Decimal("1.0"),
    LoyaltyTier.SILVER: Decimal("1.1"),
    LoyaltyTier.GOLD: Decimal("1.2"),
    LoyaltyTier.PLATINUM: Decimal("1.3"),
}
DONATION_SAVINGS_RATIO = Decimal("0.6")

# 转售估值
MAX_DEPRECIATION = Decimal("0.5")
ANNUAL_DEPRECIATION = Decimal("0.3")
RESALE_CONDITION_MULTIPLIERS = {
    "Like New": Decimal("0.8"),
    "Good": Decimal("0.65"),
    "Fair": Decimal("0.45"),
    "Poor": Decimal("0.25"),
}
RESALE_CATEGORY_MULTIPLIERS = {
    "Electronics": Decimal("0.7"),
    "Fashion": Decimal("0.6"),
    "Home & Kitchen": Decimal("0.5"),
    "Books": Decimal("0.4"),
}
PROCESSING_BASE_COSTS = {
    "Electronics": Decimal("150"),
    "Fashion": Decimal("80"),
    "Home & Kitchen": Decimal("100"),
    "Books": Decimal("40"),
}
PROCESSING_CONDITION_MULTIPLIERS = {
    "Like New": Decimal("1.0"),
    "Good": Decimal("1.2"),
    "Fair": Decimal("1.5"),
    "Poor": Decimal("2.0"),
}
QUALITY_GRADES = {
    "Like New": QualityGrade.LIKE_NEW,
    "Good": QualityGrade.GOOD,
}

TRADITIONAL_OPTION = DecisionOption(
    type=Pathway.TRADITIONAL.value,
    title="Standard Return",
    description="Get full refund through traditional process",
    benefits=[
        "Full refund to original payment method",
        "Standard return policy applies",
        "5-7 business days processing",
    ],
)


def select_pathway(price: Decimal, condition: str) -> Pathway:
    """
    按价格和状态选择路径

    500 及以下走捐赠；1000 以上且状态 Good 走闪购；其余走转售
    """
    if price <= DONATION_PRICE_THRESHOLD:
        return Pathway.DONATION
    if price > FLASH_SALE_PRICE_THRESHOLD and condition == FLASH_SALE_CONDITION:
        return Pathway.FLASH_SALE
    return Pathway.RESALE


def calculate_static_credit(price: Decimal, loyalty_tier: LoyaltyTier) -> Decimal:
    """静态额度 = round(价格 × 25% × 会员倍数)"""
    return round_whole(price * STATIC_CREDIT_RATIO * LOYALTY_MULTIPLIERS[loyalty_tier])


def calculate_flash_sale(price: Decimal) -> tuple[Decimal, Decimal]:
    """
    闪购价格

    Returns:
        (闪购价, 折扣百分比)
    """
    flash_sale_price = round_whole(price * FLASH_SALE_PRICE_RATIO)
    discount = round_whole((price - flash_sale_price) / price * Decimal("100"))
    return flash_sale_price, discount


def item_age_days(purchase_date: Optional[datetime], now: datetime) -> int:
    """商品已使用天数"""
    if purchase_date is None:
        return 0
    if purchase_date.tzinfo is None:
        purchase_date = purchase_date.replace(tzinfo=timezone.utc)
    return max((now - purchase_date).days, 0)


def calculate_resale_value(price: Decimal, category: str, condition: str, age_days: int) -> Decimal:
    """转售估值 = 价格 × (1 - 折旧) × 状态系数 × 类目系数"""
    depreciation = min(Decimal(age_days) / Decimal("365") * ANNUAL_DEPRECIATION, MAX_DEPRECIATION)
    condition_multiplier = RESALE_CONDITION_MULTIPLIERS.get(condition, Decimal("0.5"))
    category_multiplier = RESALE_CATEGORY_MULTIPLIERS.get(category, Decimal("0.5"))
    return round_whole(price * (1 - depreciation) * condition_multiplier * category_multiplier)


def calculate_processing_cost(category: str, condition: str) -> Decimal:
    """翻新处理成本 = 类目基础成本 × 状态系数"""
    base_cost = PROCESSING_BASE_COSTS.get(category, Decimal("100"))
    multiplier = PROCESSING_CONDITION_MULTIPLIERS.get(condition, Decimal("1.0"))
    return round_whole(base_cost * multiplier)


class DecisionRouter:
    """退货决策路由器

    每次评估无状态；唯一的 I/O 是附近 NGO 查询，失败时降级而不抛出
    """

    def __init__(
        self,
        ngo_directory: "NGODirectory",
        config: Optional[CreditConfigSnapshot] = None,
        search_radius_km: float = 15.0,
        ngo_lookup_timeout: float = 3.0,
    ):
        self.ngo_directory = ngo_directory
        self.calculator = CreditCalculator(config)
        self.search_radius_km = search_radius_km
        self.ngo_lookup_timeout = ngo_lookup_timeout

    async def evaluate(
        self,
        item: ReturnItem,
        customer: CustomerContext,
        now: Optional[datetime] = None,
    ) -> ReturnDecisionResult:
        """
        评估退货并给出推荐路径

        Args:
            item: 退货商品快照
            customer: 买家上下文（会员等级、位置）
            now: 当前时间（用于计算商品使用天数）

        Returns:
            ReturnDecisionResult
        """
        now = now or datetime.now(timezone.utc)
        pathway = select_pathway(item.price, item.condition)

        if pathway == Pathway.DONATION:
            result = await self._donation_decision(item, customer, now)
        elif pathway == Pathway.FLASH_SALE:
            result = self._flash_sale_decision(item)
        else:
            result = self._resale_decision(item, now)

        result.factors.update({
            "value_threshold": "LOW" if item.price <= DONATION_PRICE_THRESHOLD else "HIGH",
            "loyalty_tier": customer.loyalty_tier.value,
            "condition": item.condition,
            "category": item.category,
        })
        result.options = self.build_options(result)

        logger.info(
            "Return decision evaluated",
            order_item_id=item.order_item_id,
            pathway=result.pathway.value,
            confidence=str(result.confidence),
        )
        return result

    async def _donation_decision(
        self,
        item: ReturnItem,
        customer: CustomerContext,
        now: datetime,
    ) -> ReturnDecisionResult:
        """捐赠路径：查附近 NGO，计算动态额度"""
        ngos, lookup_failed = await self._find_nearby_ngos(customer, item.category)

        confidence = PATHWAY_CONFIDENCE[Pathway.DONATION]
        if lookup_failed:
            confidence -= NGO_LOOKUP_FAILURE_PENALTY

        credit_calculation = None
        if item.seller_location and item.delivery_address:
            credit_calculation = self.calculator.calculate_instant_credit(
                ProductInfo(
                    product_id=item.product_id,
                    name=item.name,
                    price=item.price,
                    category=item.category,
                    brand=item.brand,
                ),
                OrderDetails(
                    order_id=item.order_id,
                    delivery_address=item.delivery_address,
                    seller_location=item.seller_location,
                ),
                calculated_at=now,
            )
            credit_offered = credit_calculation.buyer_credit
            credit_source = CreditSource.DYNAMIC
        else:
            credit_offered = calculate_static_credit(item.price, customer.loyalty_tier)
            credit_source = CreditSource.STATIC

        if ngos:
            recommendation = (
                f"Donate to {ngos[0].name} ({ngos[0].distance_km:.1f} km away) "
                f"and get ₹{credit_offered} instant wallet credit"
            )
        else:
            recommendation = f"Donate and get ₹{credit_offered} instant wallet credit"

        return ReturnDecisionResult(
            pathway=Pathway.DONATION,
            confidence=confidence,
            recommendation=recommendation,
            processing_time=PROCESSING_TIME[Pathway.DONATION],
            credit_offered=credit_offered,
            credit_source=credit_source,
            estimated_savings=round_money(item.price * DONATION_SAVINGS_RATIO),
            ngos_available=len(ngos),
            nearby_ngos=ngos,
            credit_calculation=credit_calculation,
            factors={"ngos_available": len(ngos), "ngo_lookup_failed": lookup_failed},
        )

    async def _find_nearby_ngos(self, customer: CustomerContext, category: str) -> tuple[List[NearbyNGO], bool]:
        """
        查询附近有剩余容量的 NGO

        Returns:
            (NGO 列表, 查询是否失败)
        """
        try:
            ngos = await asyncio.wait_for(
                self.ngo_directory.find_nearby(
                    customer.latitude,
                    customer.longitude,
                    self.search_radius_km,
                    category,
                ),
                timeout=self.ngo_lookup_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("NGO lookup timed out", timeout=self.ngo_lookup_timeout)
            return [], True
        except Exception as e:
            logger.warning("NGO lookup failed", err=str(e))
            return [], True

        available = [
            ngo for ngo in ngos
            if ngo.capacity_remaining > 0 and ngo.distance_km <= self.search_radius_km
        ]
        return sorted(available, key=lambda ngo: ngo.distance_km), False

    def _flash_sale_decision(self, item: ReturnItem) -> ReturnDecisionResult:
        """闪购路径：以 6 折卖给附近用户"""
        flash_sale_price, discount = calculate_flash_sale(item.price)

        return ReturnDecisionResult(
            pathway=Pathway.FLASH_SALE,
            confidence=PATHWAY_CONFIDENCE[Pathway.FLASH_SALE],
            recommendation=f"List as flash sale at ₹{flash_sale_price} ({discount}% off) to nearby buyers",
            processing_time=PROCESSING_TIME[Pathway.FLASH_SALE],
            flash_sale_price=flash_sale_price,
            discount_percentage=discount,
            factors={"expected_sale_time": "24 hours"},
        )

    def _resale_decision(self, item: ReturnItem, now: datetime) -> ReturnDecisionResult:
        """转售路径：折旧估值减去翻新成本"""
        age_days = item_age_days(item.purchase_date, now)
        resale_value = calculate_resale_value(item.price, item.category, item.condition, age_days)
        processing_cost = calculate_processing_cost(item.category, item.condition)

        return ReturnDecisionResult(
            pathway=Pathway.RESALE,
            confidence=PATHWAY_CONFIDENCE[Pathway.RESALE],
            recommendation=f"Refurbish and resell for an estimated ₹{resale_value}",
            processing_time=PROCESSING_TIME[Pathway.RESALE],
            estimated_resale_value=resale_value,
            processing_cost=processing_cost,
            expected_profit=resale_value - processing_cost,
            quality_grade=QUALITY_GRADES.get(item.condition, QualityGrade.FAIR),
            factors={"age_days": age_days},
        )

    @staticmethod
    def build_options(result: ReturnDecisionResult) -> List[DecisionOption]:
        """根据推荐路径生成用户可选项，推荐项在前，传统退货始终可选"""
        if result.pathway == Pathway.DONATION:
            primary = DecisionOption(
                type=Pathway.DONATION.value,
                title="Donate for Good",
                description="Give back to the community and get instant credits",
                benefits=[
                    f"Get ₹{result.credit_offered} instant wallet credit",
                    "Support local NGOs and communities",
                    f"Fast processing in {result.processing_time}",
                    "Zero return shipping costs",
                ],
                recommended=True,
                ngos=result.nearby_ngos,
            )
        elif result.pathway == Pathway.FLASH_SALE:
            primary = DecisionOption(
                type=Pathway.FLASH_SALE.value,
                title="Flash Sale to Nearby Users",
                description="Sell quickly at discounted price to local buyers",
                benefits=[
                    f"Get ₹{result.flash_sale_price} ({result.discount_percentage}% off original price)",
                    f"Fast processing in {result.processing_time}",
                ],
                recommended=True,
            )
        else:
            primary = DecisionOption(
                type=Pathway.RESALE.value,
                title="Refurbish & Resell",
                description="Item is refurbished and resold as renewed",
                benefits=[
                    f"Estimated resale value ₹{result.estimated_resale_value}",
                    f"Processing in {result.processing_time}",
                ],
                recommended=True,
            )

        return [primary, TRADITIONAL_OPTION.model_copy()]

    def describe(self, result: ReturnDecisionResult) -> Dict[str, Any]:
        """决策摘要（用于持久化的决策因子）"""
        return {
            **result.factors,
            "pathway": result.pathway.value,
            "credit_source": result.credit_source.value if result.credit_source else None,
        }
