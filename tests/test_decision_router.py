"""
退货决策路由测试
"""
import asyncio
from decimal import Decimal

import pytest

from rc_core.calc.models.decision import CustomerContext
from rc_core.calc.models.enums import CreditSource, LoyaltyTier, Pathway, QualityGrade
from rc_core.calc.services import DecisionRouter, select_pathway
from rc_core.calc.services.decision_router import (
    calculate_flash_sale,
    calculate_static_credit,
    item_age_days,
)
from rc_core.clients import InMemoryNGODirectory
from rc_core.utils.errors import ServiceUnavailableError

from .conftest import CUSTOMER_LAT, CUSTOMER_LON, NOW, make_return_item


def _customer(tier: LoyaltyTier = LoyaltyTier.BRONZE) -> CustomerContext:
    return CustomerContext(user_id="USER_42", loyalty_tier=tier, latitude=CUSTOMER_LAT, longitude=CUSTOMER_LON)


class SlowDirectory:
    async def find_nearby(self, latitude, longitude, radius_km, category=None):
        await asyncio.sleep(1)
        return []


class BrokenDirectory:
    async def find_nearby(self, latitude, longitude, radius_km, category=None):
        raise ServiceUnavailableError(code="NGO_DIRECTORY_UNAVAILABLE", detail="down")


class TestSelectPathway:

    @pytest.mark.parametrize("price, condition, expected", [
        ("299", "Good", Pathway.DONATION),
        ("500", "Good", Pathway.DONATION),
        ("500", "Poor", Pathway.DONATION),
        ("500.01", "Good", Pathway.RESALE),
        ("599", "Good", Pathway.RESALE),
        ("1000", "Good", Pathway.RESALE),
        ("1000.01", "Good", Pathway.FLASH_SALE),
        ("1500", "Good", Pathway.FLASH_SALE),
        ("1500", "Like New", Pathway.RESALE),
        ("1500", "Fair", Pathway.RESALE),
    ])
    def test_thresholds(self, price, condition, expected):
        assert select_pathway(Decimal(price), condition) == expected


class TestPricingHelpers:

    def test_flash_sale_1500(self):
        assert calculate_flash_sale(Decimal("1500")) == (Decimal("900"), Decimal("40"))

    @pytest.mark.parametrize("tier, expected", [
        (LoyaltyTier.BRONZE, "75"),
        (LoyaltyTier.GOLD, "90"),
        (LoyaltyTier.PLATINUM, "97"),
    ])
    def test_static_credit(self, tier, expected):
        assert calculate_static_credit(Decimal("299"), tier) == Decimal(expected)

    def test_item_age_without_purchase_date(self):
        assert item_age_days(None, NOW) == 0


class TestDecisionRouter:

    async def test_donation_with_nearby_ngos(self, ngo_directory):
        router = DecisionRouter(ngo_directory)
        result = await router.evaluate(make_return_item("A", "299"), _customer(), now=NOW)

        assert result.pathway == Pathway.DONATION
        assert result.confidence == Decimal("0.85")
        assert result.credit_source == CreditSource.DYNAMIC
        assert result.credit_offered == Decimal("86.12")
        assert result.estimated_savings == Decimal("179.40")
        # 满容量和半径外的 NGO 被过滤
        assert [ngo.id for ngo in result.nearby_ngos] == ["NGO_GOONJ", "NGO_AKSHAYA"]
        assert result.ngos_available == 2
        assert result.factors["value_threshold"] == "LOW"
        assert result.factors["ngo_lookup_failed"] is False

    async def test_donation_without_locations_uses_static_credit(self, ngo_directory):
        router = DecisionRouter(ngo_directory)
        item = make_return_item("A", "299", with_locations=False)
        result = await router.evaluate(item, _customer(LoyaltyTier.GOLD), now=NOW)

        assert result.credit_source == CreditSource.STATIC
        assert result.credit_offered == Decimal("90")
        assert result.credit_calculation is None

    async def test_ngo_lookup_timeout_degrades(self):
        router = DecisionRouter(SlowDirectory(), ngo_lookup_timeout=0.05)
        result = await router.evaluate(make_return_item("A", "299"), _customer(), now=NOW)

        assert result.pathway == Pathway.DONATION
        assert result.nearby_ngos == []
        assert result.confidence == Decimal("0.70")
        assert result.factors["ngo_lookup_failed"] is True

    async def test_ngo_lookup_error_degrades(self):
        router = DecisionRouter(BrokenDirectory())
        result = await router.evaluate(make_return_item("A", "299"), _customer(), now=NOW)

        assert result.ngos_available == 0
        assert result.confidence == Decimal("0.70")
        assert result.credit_offered == Decimal("86.12")

    async def test_resale_599(self):
        router = DecisionRouter(InMemoryNGODirectory())
        result = await router.evaluate(make_return_item("B", "599", category="Electronics"), _customer(), now=NOW)

        assert result.pathway == Pathway.RESALE
        assert result.confidence == Decimal("0.78")
        assert result.estimated_resale_value == Decimal("270")
        assert result.processing_cost == Decimal("180")
        assert result.expected_profit == Decimal("90")
        assert result.quality_grade == QualityGrade.GOOD
        assert result.factors["age_days"] == 10
        assert result.factors["value_threshold"] == "HIGH"

    async def test_flash_sale_1500(self):
        router = DecisionRouter(InMemoryNGODirectory())
        result = await router.evaluate(make_return_item("C", "1500", category="Electronics"), _customer(), now=NOW)

        assert result.pathway == Pathway.FLASH_SALE
        assert result.flash_sale_price == Decimal("900")
        assert result.discount_percentage == Decimal("40")

    async def test_traditional_option_always_offered(self, ngo_directory):
        router = DecisionRouter(ngo_directory)
        for price in ("299", "599", "1500"):
            result = await router.evaluate(make_return_item("X", price), _customer(), now=NOW)

            assert len(result.options) == 2
            assert result.options[0].recommended is True
            assert result.options[0].type == result.pathway.value
            assert result.options[1].type == Pathway.TRADITIONAL.value
