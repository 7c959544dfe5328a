"""
财务分析服务 - 月度汇总分析与卖家成本分析
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rc_core.calc.models.enums import AnalyticsPeriod, SellerAnalysisPeriod
from rc_core.models.base import utcnow
from rc_core.models.cost_sharing import CostSharingRecord
from rc_core.models.financial_summary import MonthlyFinancialSummary
from rc_core.services.financial_summary_service import FinancialSummaryService
from rc_core.utils.logger import get_logger
from rc_core.utils.money import HUNDRED, round_money, to_decimal

logger = get_logger(__name__)

ZERO = Decimal("0")
RECENT_RECORDS_LIMIT = 20

SELLER_PERIOD_DAYS = {
    SellerAnalysisPeriod.DAYS_7: 7,
    SellerAnalysisPeriod.DAYS_30: 30,
    SellerAnalysisPeriod.DAYS_90: 90,
}


def _dec(value: Any) -> Decimal:
    """聚合结果转 Decimal（保留 2 位，空值为 0）"""
    return round_money(to_decimal(value, ZERO))


def shift_month(year: int, month: int, offset: int) -> str:
    """月份偏移，返回 YYYY-MM"""
    index = year * 12 + (month - 1) + offset
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def month_range_for(period: AnalyticsPeriod, now: datetime) -> tuple[str, str]:
    """
    分析周期对应的月份范围（含首尾）

    Returns:
        (起始月份, 结束月份)
    """
    current = shift_month(now.year, now.month, 0)
    if period == AnalyticsPeriod.CURRENT_MONTH:
        return current, current
    if period == AnalyticsPeriod.LAST_MONTH:
        last = shift_month(now.year, now.month, -1)
        return last, last
    if period == AnalyticsPeriod.LAST_3_MONTHS:
        return shift_month(now.year, now.month, -2), current
    return shift_month(now.year, now.month, -5), current


class AnalyticsService:
    """财务分析服务"""

    @staticmethod
    async def get_financial_analytics(
        db: AsyncSession,
        period: AnalyticsPeriod = AnalyticsPeriod.CURRENT_MONTH,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        平台财务分析

        Args:
            db: 数据库会话
            period: 分析周期
            now: 当前时间

        Returns:
            {summary, trends, recent_transactions, period}
        """
        now = now or utcnow()
        start_month, end_month = month_range_for(period, now)
        summary_model = MonthlyFinancialSummary
        in_period = summary_model.month_key.between(start_month, end_month)

        row = (await db.execute(
            select(
                func.coalesce(func.sum(summary_model.total_transactions), 0),
                func.sum(summary_model.total_credits_issued),
                func.sum(summary_model.total_avoided_costs),
                func.sum(summary_model.total_seller_costs),
                func.sum(summary_model.total_platform_costs),
                func.sum(summary_model.total_seller_savings),
                func.avg(summary_model.average_credit_amount),
                func.avg(summary_model.cost_efficiency_ratio),
            ).where(in_period)
        )).one()

        total_credits = _dec(row[1])
        total_avoided = _dec(row[2])
        total_seller_savings = _dec(row[5])

        summary = {
            "total_transactions": int(row[0]),
            "total_credits_issued": total_credits,
            "total_avoided_costs": total_avoided,
            "total_seller_costs": _dec(row[3]),
            "total_platform_costs": _dec(row[4]),
            "total_seller_savings": total_seller_savings,
            "average_credit_amount": _dec(row[6]),
            "cost_efficiency_ratio": to_decimal(row[7], ZERO).quantize(Decimal("0.0001")),
            "total_platform_savings": total_avoided - total_credits,
            "seller_savings_rate": (
                round_money(total_seller_savings / total_avoided * HUNDRED) if total_avoided > 0 else ZERO
            ),
        }

        months = await db.execute(
            select(summary_model)
            .where(in_period)
            .order_by(summary_model.month_key.desc())
            .execution_options(populate_existing=True)
        )
        trends = []
        for month in months.scalars().all():
            trends.append({
                "month_key": month.month_key,
                "total_transactions": month.total_transactions,
                "total_credits_issued": month.total_credits_issued,
                "total_seller_savings": month.total_seller_savings,
                "average_credit_amount": month.average_credit_amount,
                "cost_efficiency_ratio": month.cost_efficiency_ratio,
                "category_breakdown": await FinancialSummaryService.get_category_breakdown(db, month.month_key),
            })

        return {
            "summary": summary,
            "trends": trends,
            "recent_transactions": await AnalyticsService.get_recent_records(db),
            "period": period.value,
        }

    @staticmethod
    async def get_recent_records(db: AsyncSession, limit: int = RECENT_RECORDS_LIMIT) -> List[Dict[str, Any]]:
        """最近完成的成本分摊记录"""
        result = await db.execute(
            select(CostSharingRecord)
            .where(CostSharingRecord.status == "completed")
            .order_by(CostSharingRecord.processed_at.desc(), CostSharingRecord.id.desc())
            .limit(limit)
        )
        return [
            {
                "transaction_id": record.transaction_id,
                "user_id": record.user_id,
                "order_id": record.order_id,
                "seller_id": record.seller_id,
                "buyer_credit_amount": record.buyer_credit_amount,
                "seller_cost_amount": record.seller_cost_amount,
                "seller_savings": record.seller_savings,
                "seller_savings_percentage": record.seller_savings_percentage,
                "product_category": record.product_category,
                "processed_at": record.processed_at,
            }
            for record in result.scalars().all()
        ]

    @staticmethod
    async def get_seller_cost_analysis(
        db: AsyncSession,
        seller_id: str,
        period: SellerAnalysisPeriod = SellerAnalysisPeriod.DAYS_30,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        卖家成本分析

        Args:
            db: 数据库会话
            seller_id: 卖家ID
            period: 分析周期
            now: 当前时间

        Returns:
            {summary, category_breakdown, period}
        """
        now = now or utcnow()
        since = now - timedelta(days=SELLER_PERIOD_DAYS[period])
        record = CostSharingRecord
        conditions = (
            record.seller_id == seller_id,
            record.status == "completed",
            record.processed_at >= since,
        )

        row = (await db.execute(
            select(
                func.count(record.id),
                func.sum(record.buyer_credit_amount),
                func.sum(record.seller_cost_amount),
                func.sum(record.traditional_return_cost),
                func.sum(record.seller_savings),
                func.avg(record.seller_savings_percentage),
            ).where(*conditions)
        )).one()

        count = row[0] or 0
        total_seller_costs = _dec(row[2])
        total_seller_savings = _dec(row[4])

        summary = {
            "total_ngo_donations": count,
            "total_credits_issued": _dec(row[1]),
            "total_seller_costs": total_seller_costs,
            "total_traditional_costs": _dec(row[3]),
            "total_seller_savings": total_seller_savings,
            "average_savings_percentage": _dec(row[5]),
            "average_cost_per_donation": round_money(total_seller_costs / count) if count else ZERO,
            "average_savings_per_donation": round_money(total_seller_savings / count) if count else ZERO,
        }

        total_costs = func.sum(record.seller_cost_amount)
        categories = await db.execute(
            select(
                record.product_category,
                func.count(record.id),
                total_costs,
                func.sum(record.seller_savings),
                func.avg(record.seller_savings_percentage),
            )
            .where(*conditions)
            .group_by(record.product_category)
            .order_by(total_costs.desc(), record.product_category)
        )
        category_breakdown = [
            {
                "product_category": category_row[0],
                "transactions": category_row[1],
                "total_costs": _dec(category_row[2]),
                "total_savings": _dec(category_row[3]),
                "avg_savings_percentage": _dec(category_row[4]),
            }
            for category_row in categories.all()
        ]

        logger.debug("Seller cost analysis", seller_id=seller_id, period=period.value, donations=count)
        return {
            "seller_id": seller_id,
            "summary": summary,
            "category_breakdown": category_breakdown,
            "period": period.value,
        }
