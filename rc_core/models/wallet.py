"""
钱包与钱包交易数据模型
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rc_core.models.base import Base, BigIntPK, JSONType, utcnow


class TransactionType(str, Enum):
    """钱包交易类型"""

    NGO_DONATION_CREDIT = "ngo_donation_credit"
    REFUND = "refund"
    CASHBACK = "cashback"
    PURCHASE = "purchase"
    WITHDRAWAL = "withdrawal"


class TransactionStatus(str, Enum):
    """钱包交易状态：pending → completed | failed，completed 为终态"""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Wallet(Base):
    """用户钱包表 - 每个用户一行，永不删除"""
    __tablename__ = "wallets"

    id: Mapped[int] = mapped_column(
        BigIntPK,
        primary_key=True,
        comment="钱包ID"
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        comment="用户ID"
    )

    # 余额 - 等于该用户所有 completed 交易金额之和
    balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        default=Decimal("0.00"),
        nullable=False,
        comment="当前余额"
    )

    total_credits_earned: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        default=Decimal("0.00"),
        nullable=False,
        comment="累计获得额度"
    )

    total_spent: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        default=Decimal("0.00"),
        nullable=False,
        comment="累计消费"
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="是否启用"
    )

    # 每次余额变动 +1
    version: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="版本号"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="创建时间"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        comment="更新时间"
    )

    transactions: Mapped[list["WalletTransaction"]] = relationship(
        "WalletTransaction",
        back_populates="wallet",
        lazy="raise"
    )

    def __repr__(self) -> str:
        return f"<Wallet(id={self.id}, user_id={self.user_id}, balance={self.balance})>"


class WalletTransaction(Base):
    """钱包交易流水表（仅追加）"""
    __tablename__ = "wallet_transactions"

    id: Mapped[int] = mapped_column(
        BigIntPK,
        primary_key=True,
        comment="流水ID"
    )

    # 全局幂等键
    transaction_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        comment="交易号（幂等键）"
    )

    wallet_id: Mapped[int] = mapped_column(
        BigIntPK,
        ForeignKey("wallets.id"),
        nullable=False,
        comment="钱包ID"
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="用户ID"
    )

    transaction_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="交易类型：ngo_donation_credit/refund/cashback/purchase/withdrawal"
    )

    # 正数为入账，负数为扣款
    amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        nullable=False,
        comment="交易金额（正数入账，负数扣款）"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=TransactionStatus.PENDING.value,
        nullable=False,
        comment="状态：pending/completed/failed/cancelled"
    )

    balance_before: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(18, 2),
        nullable=True,
        comment="交易前余额（完成时写入）"
    )
    balance_after: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(18, 2),
        nullable=True,
        comment="交易后余额（完成时写入）"
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="描述"
    )

    details: Mapped[dict] = mapped_column(
        JSONType,
        default=dict,
        nullable=False,
        comment="交易详情"
    )

    # 关联业务单据
    order_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="订单号")
    return_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="退货单号")
    ngo_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="NGO ID")
    reference_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="外部参考号")

    failure_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="失败原因"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="创建时间"
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="完成时间"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        comment="更新时间"
    )

    wallet: Mapped["Wallet"] = relationship("Wallet", back_populates="transactions")

    __table_args__ = (
        Index("idx_wallet_tx_user_time", "user_id", "created_at"),
        Index("idx_wallet_tx_status_time", "status", "created_at"),
        Index("idx_wallet_tx_type_time", "transaction_type", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<WalletTransaction(transaction_id={self.transaction_id}, "
            f"type={self.transaction_type}, amount={self.amount}, status={self.status})>"
        )

    @property
    def is_completed(self) -> bool:
        return self.status == TransactionStatus.COMPLETED.value
