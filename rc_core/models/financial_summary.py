"""
月度财务汇总数据模型
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from rc_core.models.base import Base, BigIntPK, utcnow


class MonthlyFinancialSummary(Base):
    """月度汇总表 - 每个自然月一行，只做原子累加"""
    __tablename__ = "monthly_financial_summaries"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    month_key: Mapped[str] = mapped_column(
        String(7),
        nullable=False,
        comment="月份 YYYY-MM"
    )

    total_transactions: Mapped[int] = mapped_column(Integer, default=0, nullable=False, comment="交易数")
    total_credits_issued: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), default=Decimal("0"), nullable=False, comment="发放额度合计"
    )
    total_avoided_costs: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), default=Decimal("0"), nullable=False, comment="避免成本合计"
    )
    total_seller_costs: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), default=Decimal("0"), nullable=False, comment="卖家承担合计"
    )
    total_platform_costs: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), default=Decimal("0"), nullable=False, comment="平台承担合计"
    )
    total_seller_savings: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), default=Decimal("0"), nullable=False, comment="卖家节省合计"
    )

    # 派生指标，与累加在同一条语句中重算
    average_credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 4), default=Decimal("0"), nullable=False, comment="平均额度"
    )
    average_seller_savings: Mapped[Decimal] = mapped_column(
        Numeric(18, 4), default=Decimal("0"), nullable=False, comment="平均卖家节省"
    )
    cost_efficiency_ratio: Mapped[Decimal] = mapped_column(
        Numeric(10, 4), default=Decimal("0"), nullable=False, comment="额度 / (卖家+平台成本)"
    )

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False, comment="创建时间")
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False, comment="更新时间"
    )

    __table_args__ = (
        UniqueConstraint("month_key", name="uq_monthly_summary_month"),
    )

    def __repr__(self) -> str:
        return f"<MonthlyFinancialSummary(month={self.month_key}, transactions={self.total_transactions})>"


class MonthlyCategorySummary(Base):
    """月度类目汇总表 - 每个 (月份, 类目) 一行"""
    __tablename__ = "monthly_category_summaries"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    month_key: Mapped[str] = mapped_column(String(7), nullable=False, comment="月份 YYYY-MM")
    category: Mapped[str] = mapped_column(String(100), nullable=False, comment="商品类目")

    transactions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_credits: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"), nullable=False)
    total_avoided_costs: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"), nullable=False)
    total_seller_costs: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"), nullable=False)
    total_platform_costs: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"), nullable=False)

    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("month_key", "category", name="uq_monthly_category"),
    )

    def __repr__(self) -> str:
        return f"<MonthlyCategorySummary(month={self.month_key}, category={self.category})>"
