"""
额度计算配置数据模型
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from rc_core.models.base import Base, BigIntPK, JSONType, utcnow


class CreditSetting(Base):
    """额度配置表 - cost_factors / credit_settings / cost_sharing 各一行"""
    __tablename__ = "credit_settings"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    setting_key: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        comment="配置键"
    )

    setting_value: Mapped[dict] = mapped_column(
        JSONType,
        default=dict,
        nullable=False,
        comment="配置值（与默认值合并）"
    )

    updated_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="最后修改人")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<CreditSetting(key={self.setting_key})>"
