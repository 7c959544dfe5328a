"""
财务分析测试
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from rc_core.calc.models.enums import AnalyticsPeriod, SellerAnalysisPeriod
from rc_core.services import AnalyticsService, DonationCreditService
from rc_core.services.analytics_service import month_range_for, shift_month

from .conftest import NOW


@pytest_asyncio.fixture
async def two_donations(db_manager, config_manager, sample_product, sample_order_details):
    """同一卖家的两笔 299 元时装捐赠"""
    service = DonationCreditService(db_manager=db_manager, config_manager=config_manager)
    for return_id in ("RET_1", "RET_2"):
        await service.process_donation_credit(
            user_id="USER_42",
            order_id="ORD_1001",
            seller_id="SELLER_7",
            product=sample_product,
            order_details=sample_order_details,
            return_id=return_id,
            now=NOW,
        )


class TestMonthRange:

    def test_shift_across_year(self):
        assert shift_month(2026, 1, -1) == "2025-12"
        assert shift_month(2026, 11, 2) == "2027-01"

    @pytest.mark.parametrize("period,expected", [
        (AnalyticsPeriod.CURRENT_MONTH, ("2026-10", "2026-10")),
        (AnalyticsPeriod.LAST_MONTH, ("2026-09", "2026-09")),
        (AnalyticsPeriod.LAST_3_MONTHS, ("2026-08", "2026-10")),
        (AnalyticsPeriod.LAST_6_MONTHS, ("2026-05", "2026-10")),
    ])
    def test_periods(self, period, expected):
        assert month_range_for(period, NOW) == expected


class TestFinancialAnalytics:

    async def test_summary(self, db_manager, two_donations):
        async with db_manager.get_session() as session:
            analytics = await AnalyticsService.get_financial_analytics(session, now=NOW)

        summary = analytics["summary"]
        assert summary["total_transactions"] == 2
        assert summary["total_credits_issued"] == Decimal("172.24")
        assert summary["total_avoided_costs"] == Decimal("287.06")
        assert summary["total_seller_costs"] == Decimal("111.96")
        assert summary["total_platform_costs"] == Decimal("60.28")
        assert summary["total_platform_savings"] == Decimal("114.82")
        assert summary["seller_savings_rate"] == Decimal("61.00")
        assert analytics["trends"][0]["month_key"] == "2026-10"
        assert len(analytics["recent_transactions"]) == 2

    async def test_empty_period(self, db_manager, two_donations):
        async with db_manager.get_session() as session:
            analytics = await AnalyticsService.get_financial_analytics(
                session, AnalyticsPeriod.LAST_MONTH, now=NOW
            )

        assert analytics["summary"]["total_transactions"] == 0
        assert analytics["summary"]["seller_savings_rate"] == Decimal("0")
        assert analytics["trends"] == []


class TestSellerCostAnalysis:

    async def test_seller_summary(self, db_manager, two_donations):
        async with db_manager.get_session() as session:
            analysis = await AnalyticsService.get_seller_cost_analysis(session, "SELLER_7", now=NOW)

        summary = analysis["summary"]
        assert summary["total_ngo_donations"] == 2
        assert summary["total_seller_costs"] == Decimal("111.96")
        assert summary["average_cost_per_donation"] == Decimal("55.98")
        assert analysis["category_breakdown"][0]["product_category"] == "Fashion"

    async def test_unknown_seller(self, db_manager, two_donations):
        async with db_manager.get_session() as session:
            analysis = await AnalyticsService.get_seller_cost_analysis(
                session, "SELLER_NONE", SellerAnalysisPeriod.DAYS_7, now=datetime.now(timezone.utc)
            )

        assert analysis["summary"]["total_ngo_donations"] == 0
        assert analysis["summary"]["average_cost_per_donation"] == Decimal("0")
        assert analysis["category_breakdown"] == []
