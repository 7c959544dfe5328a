"""
退货决策数据模型
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rc_core.models.base import Base, BigIntPK, JSONType, utcnow


class ReturnDecision(Base):
    """退货决策记录表 - 每次评估创建一行，之后写入用户选择和最终结果"""
    __tablename__ = "return_decisions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    decision_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        comment="决策号 DEC_..."
    )

    order_id: Mapped[str] = mapped_column(String(64), nullable=False, comment="订单号")
    order_item_id: Mapped[str] = mapped_column(String(64), nullable=False, comment="订单行ID")
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, comment="用户ID")
    product_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="商品ID")
    seller_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="卖家ID")

    return_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True, comment="退货原因")
    item_condition: Mapped[str] = mapped_column(String(20), nullable=False, comment="商品状态")
    item_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, comment="商品价格")

    pathway: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="决策路径：donation/flash_sale/resale/traditional"
    )
    confidence: Mapped[Decimal] = mapped_column(Numeric(4, 2), nullable=False, comment="置信度")
    decision_factors: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False, comment="决策因子")
    decision_payload: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False, comment="完整决策结果")

    estimated_credit: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2), nullable=True, comment="预估额度")
    estimated_resale_value: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(18, 2), nullable=True, comment="预估转售价值"
    )
    processing_cost_estimate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(18, 2), nullable=True, comment="预估处理成本"
    )
    flash_sale_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2), nullable=True, comment="闪购价")

    status: Mapped[str] = mapped_column(
        String(20),
        default="evaluated",
        nullable=False,
        comment="状态：evaluated/choice_recorded/completed"
    )
    user_choice: Mapped[Optional[str]] = mapped_column(String(30), nullable=True, comment="用户选择")
    final_outcome: Mapped[Optional[str]] = mapped_column(String(30), nullable=True, comment="最终结果")
    transaction_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="关联钱包交易号")
    revenue_impact: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2), nullable=True, comment="收入影响")
    cost_savings: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2), nullable=True, comment="节省成本")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    user_choice_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_return_decision_user", "user_id", "created_at"),
        Index("idx_return_decision_pathway_time", "pathway", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ReturnDecision(decision_id={self.decision_id}, pathway={self.pathway}, status={self.status})>"
