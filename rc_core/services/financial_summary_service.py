"""
月度财务汇总服务

所有累加通过 INSERT ... ON CONFLICT DO UPDATE 在数据库内原子完成，并发捐赠不会丢失增量
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import Numeric, func, literal, select
from sqlalchemy.ext.asyncio import AsyncSession

from rc_core.database import dialect_insert
from rc_core.models.base import utcnow
from rc_core.models.cost_sharing import CostSharingRecord
from rc_core.models.financial_summary import MonthlyCategorySummary, MonthlyFinancialSummary
from rc_core.utils.errors import NotFoundError
from rc_core.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CATEGORY = "uncategorized"

# SQLite 的 NUMERIC 列会把整数值存为 INTEGER，乘以 1.0 避免整除
_DECIMAL_ONE = literal(Decimal("1.0"), Numeric(18, 4))


def month_key_for(dt: datetime) -> str:
    """月份键 YYYY-MM"""
    return dt.strftime("%Y-%m")


class FinancialSummaryService:
    """月度汇总服务"""

    @staticmethod
    async def update_monthly_summary(
        db: AsyncSession,
        record: CostSharingRecord,
        month_key: Optional[str] = None,
    ) -> None:
        """
        把一条成本分摊记录累加到月度汇总和类目汇总

        平均值和成本效率在同一条语句中由累加后的列重新计算

        Args:
            db: 数据库会话
            record: 成本分摊记录
            month_key: 月份键，缺省取记录处理时间
        """
        month_key = month_key or month_key_for(record.processed_at or utcnow())
        category = record.product_category or DEFAULT_CATEGORY
        now = utcnow()

        summary = MonthlyFinancialSummary
        stmt = dialect_insert(db, summary).values(
            month_key=month_key,
            total_transactions=1,
            total_credits_issued=record.buyer_credit_amount,
            total_avoided_costs=record.total_avoided_costs,
            total_seller_costs=record.seller_cost_amount,
            total_platform_costs=record.platform_cost_amount,
            total_seller_savings=record.seller_savings,
            average_credit_amount=record.buyer_credit_amount,
            average_seller_savings=record.seller_savings,
            cost_efficiency_ratio=_efficiency(
                record.buyer_credit_amount, record.seller_cost_amount + record.platform_cost_amount
            ),
            created_at=now,
            updated_at=now,
        )
        excluded = stmt.excluded

        new_count = summary.total_transactions + excluded.total_transactions
        new_credits = summary.total_credits_issued + excluded.total_credits_issued
        new_savings = summary.total_seller_savings + excluded.total_seller_savings
        new_seller = summary.total_seller_costs + excluded.total_seller_costs
        new_platform = summary.total_platform_costs + excluded.total_platform_costs

        stmt = stmt.on_conflict_do_update(
            index_elements=["month_key"],
            set_={
                "total_transactions": new_count,
                "total_credits_issued": new_credits,
                "total_avoided_costs": summary.total_avoided_costs + excluded.total_avoided_costs,
                "total_seller_costs": new_seller,
                "total_platform_costs": new_platform,
                "total_seller_savings": new_savings,
                "average_credit_amount": new_credits * _DECIMAL_ONE / new_count,
                "average_seller_savings": new_savings * _DECIMAL_ONE / new_count,
                "cost_efficiency_ratio": func.coalesce(
                    new_credits * _DECIMAL_ONE / func.nullif(new_seller + new_platform, 0), 0
                ),
                "updated_at": now,
            },
        )
        await db.execute(stmt)

        category_summary = MonthlyCategorySummary
        category_stmt = dialect_insert(db, category_summary).values(
            month_key=month_key,
            category=category,
            transactions=1,
            total_credits=record.buyer_credit_amount,
            total_avoided_costs=record.total_avoided_costs,
            total_seller_costs=record.seller_cost_amount,
            total_platform_costs=record.platform_cost_amount,
            updated_at=now,
        )
        excluded = category_stmt.excluded
        category_stmt = category_stmt.on_conflict_do_update(
            index_elements=["month_key", "category"],
            set_={
                "transactions": category_summary.transactions + excluded.transactions,
                "total_credits": category_summary.total_credits + excluded.total_credits,
                "total_avoided_costs": category_summary.total_avoided_costs + excluded.total_avoided_costs,
                "total_seller_costs": category_summary.total_seller_costs + excluded.total_seller_costs,
                "total_platform_costs": category_summary.total_platform_costs + excluded.total_platform_costs,
                "updated_at": now,
            },
        )
        await db.execute(category_stmt)

        logger.debug("Monthly summary updated", month_key=month_key, category=category)

    @staticmethod
    async def get_monthly_summary(db: AsyncSession, month_key: str) -> Dict[str, Any]:
        """
        查询某月汇总及类目明细

        Raises:
            NotFoundError: 该月没有数据
        """
        result = await db.execute(
            select(MonthlyFinancialSummary)
            .where(MonthlyFinancialSummary.month_key == month_key)
            .execution_options(populate_existing=True)
        )
        summary = result.scalar_one_or_none()
        if summary is None:
            raise NotFoundError(code="MONTHLY_SUMMARY_NOT_FOUND", resource=f"Monthly summary {month_key}")

        categories = await FinancialSummaryService.get_category_breakdown(db, month_key)
        return {
            "month_key": summary.month_key,
            "total_transactions": summary.total_transactions,
            "total_credits_issued": summary.total_credits_issued,
            "total_avoided_costs": summary.total_avoided_costs,
            "total_seller_costs": summary.total_seller_costs,
            "total_platform_costs": summary.total_platform_costs,
            "total_seller_savings": summary.total_seller_savings,
            "average_credit_amount": summary.average_credit_amount,
            "average_seller_savings": summary.average_seller_savings,
            "cost_efficiency_ratio": summary.cost_efficiency_ratio,
            "category_breakdown": categories,
            "updated_at": summary.updated_at,
        }

    @staticmethod
    async def get_category_breakdown(db: AsyncSession, month_key: str) -> Dict[str, Dict[str, Any]]:
        """某月各类目汇总"""
        result = await db.execute(
            select(MonthlyCategorySummary)
            .where(MonthlyCategorySummary.month_key == month_key)
            .order_by(MonthlyCategorySummary.category)
            .execution_options(populate_existing=True)
        )
        return {
            row.category: {
                "transactions": row.transactions,
                "total_credits": row.total_credits,
                "total_avoided_costs": row.total_avoided_costs,
                "total_seller_costs": row.total_seller_costs,
                "total_platform_costs": row.total_platform_costs,
            }
            for row in result.scalars().all()
        }


def _efficiency(credits, total_cost):
    """首笔写入时的成本效率"""
    if not total_cost:
        return 0
    return credits / total_cost
