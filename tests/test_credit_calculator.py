"""
买家额度计算测试
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from rc_core.calc.models.credit import (
    CostSharingSettings,
    CreditConfigSnapshot,
    CreditSettings,
    OrderDetails,
    ProductInfo,
)
from rc_core.calc.services import CreditCalculator
from rc_core.utils.errors import ValidationError


def _calculator(seller: str = "65", platform: str = "35", **credit) -> CreditCalculator:
    return CreditCalculator(CreditConfigSnapshot(
        credit=CreditSettings(**credit),
        cost_sharing=CostSharingSettings(seller_percentage=Decimal(seller), platform_percentage=Decimal(platform)),
    ))


class TestInstantCredit:

    def test_fashion_299_scenario(self, sample_product, sample_order_details):
        result = CreditCalculator().calculate_instant_credit(sample_product, sample_order_details)

        assert result.metadata.distance_km == 50
        assert result.avoided_costs.total == Decimal("143.53")
        assert result.buyer_credit == Decimal("86.12")
        assert result.cost_sharing.seller_amount == Decimal("55.98")
        assert result.cost_sharing.platform_amount == Decimal("30.14")
        assert result.seller_benefit.savings == Decimal("87.55")

    def test_snapshot_is_captured(self, sample_product, sample_order_details):
        config = CreditConfigSnapshot(credit=CreditSettings(buyer_credit_percentage=Decimal("50")))
        result = CreditCalculator(config).calculate_instant_credit(sample_product, sample_order_details)

        assert result.config == config
        assert result.buyer_credit == Decimal("71.77")

    def test_identical_inputs_give_identical_results(self, sample_product, sample_order_details):
        at = datetime(2026, 10, 19, tzinfo=timezone.utc)
        calculator = CreditCalculator()

        first = calculator.calculate_instant_credit(sample_product, sample_order_details, calculated_at=at)
        second = calculator.calculate_instant_credit(sample_product, sample_order_details, calculated_at=at)

        assert first == second

    def test_floor_dominates_for_cheap_items(self, sample_order_details):
        product = ProductInfo(price=Decimal("50"), category="Fashion")
        result = CreditCalculator().calculate_instant_credit(product, sample_order_details)

        # 上限 50 × 35% = 17.50 低于最低额度
        assert result.buyer_credit == Decimal("25.00")
        assert result.buyer_credit > result.avoided_costs.total * Decimal("0.6")

    def test_percentage_cap(self):
        product = ProductInfo(price=Decimal("400"), category="Electronics")
        result = CreditCalculator().calculate_instant_credit(
            product, OrderDetails(delivery_address="Bangalore", seller_location="Delhi")
        )

        assert result.raw_credit > Decimal("140")
        assert result.buyer_credit == Decimal("140.00")

    def test_absolute_cap(self):
        calculator = _calculator(max_credit_amount=Decimal("100"))
        product = ProductInfo(price=Decimal("480"), category="Electronics")
        result = calculator.calculate_instant_credit(product, OrderDetails())

        assert result.buyer_credit == Decimal("100.00")

    @pytest.mark.parametrize("price", ["19.99", "50", "299", "450", "499.99"])
    def test_credit_within_bounds(self, price, sample_order_details):
        calculator = CreditCalculator()
        settings = calculator.config.credit
        product = ProductInfo(price=Decimal(price), category="Home & Kitchen")

        credit = calculator.calculate_instant_credit(product, sample_order_details).buyer_credit
        upper = min(settings.max_credit_amount, Decimal(price) * settings.max_credit_percentage / 100)

        assert credit >= settings.min_credit_amount
        assert credit <= max(upper, settings.min_credit_amount)

    def test_invalid_price_rejected(self, sample_order_details):
        product = ProductInfo.model_construct(price=Decimal("0"), category="Fashion")
        with pytest.raises(ValidationError) as exc_info:
            CreditCalculator().calculate_instant_credit(product, sample_order_details)
        assert exc_info.value.code == "INVALID_PRODUCT_PRICE"


class TestCostSplit:

    @pytest.mark.parametrize("seller, platform", [
        ("65", "35"),
        ("50", "50"),
        ("33.33", "66.67"),
        ("70", "30"),
        ("100", "0"),
    ])
    @pytest.mark.parametrize("credit", ["86.12", "25.00", "0.03", "1999.99", "71.77"])
    def test_split_is_exact(self, seller, platform, credit):
        sharing = _calculator(seller, platform).split_cost(Decimal(credit))
        assert sharing.seller_amount + sharing.platform_amount == Decimal(credit)

    def test_platform_takes_remainder(self):
        sharing = _calculator("33.33", "66.67").split_cost(Decimal("0.03"))
        assert sharing.seller_amount == Decimal("0.01")
        assert sharing.platform_amount == Decimal("0.02")
