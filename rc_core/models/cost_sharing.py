"""
额度成本分摊数据模型
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from rc_core.models.base import Base, BigIntPK, JSONType, utcnow


class CostSharingRecord(Base):
    """成本分摊记录表 - 与已完成的钱包交易一一对应"""
    __tablename__ = "cost_sharing_records"

    id: Mapped[int] = mapped_column(
        BigIntPK,
        primary_key=True,
        comment="记录ID"
    )

    transaction_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("wallet_transactions.transaction_id"),
        unique=True,
        nullable=False,
        comment="钱包交易号"
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, comment="买家用户ID")
    order_id: Mapped[str] = mapped_column(String(64), nullable=False, comment="订单号")
    return_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="退货单号")
    ngo_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="NGO ID")
    seller_id: Mapped[str] = mapped_column(String(64), nullable=False, comment="卖家ID")

    # 额度与避免成本
    buyer_credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        nullable=False,
        comment="买家获得额度"
    )
    total_avoided_costs: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        nullable=False,
        comment="避免的传统退货成本合计"
    )

    # 分摊
    seller_cost_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        nullable=False,
        comment="卖家承担金额"
    )
    platform_cost_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        nullable=False,
        comment="平台承担金额"
    )
    seller_cost_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        comment="卖家分摊比例"
    )
    platform_cost_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        comment="平台分摊比例"
    )

    # 卖家收益
    traditional_return_cost: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        nullable=False,
        comment="传统退货成本"
    )
    seller_savings: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        nullable=False,
        comment="卖家节省金额"
    )
    seller_savings_percentage: Mapped[Decimal] = mapped_column(
        Numeric(7, 2),
        nullable=False,
        comment="卖家节省比例"
    )

    # 商品快照
    product_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="商品ID")
    product_price: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        nullable=False,
        comment="商品价格"
    )
    product_category: Mapped[str] = mapped_column(
        String(100),
        default="uncategorized",
        nullable=False,
        comment="商品类目"
    )

    # 完整计算结果（含配置快照），用于审计与幂等重放
    calculation_metadata: Mapped[dict] = mapped_column(
        JSONType,
        default=dict,
        nullable=False,
        comment="计算明细与配置快照"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default="completed",
        nullable=False,
        comment="状态"
    )

    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="处理时间"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="创建时间"
    )

    __table_args__ = (
        Index("idx_cost_sharing_seller_time", "seller_id", "processed_at"),
        Index("idx_cost_sharing_user", "user_id"),
        Index("idx_cost_sharing_status_time", "status", "processed_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<CostSharingRecord(transaction_id={self.transaction_id}, "
            f"seller={self.seller_cost_amount}, platform={self.platform_cost_amount})>"
        )
