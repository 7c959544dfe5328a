"""
额度成本分摊记录服务
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rc_core.calc.models.credit import CreditCalculation
from rc_core.models.base import utcnow
from rc_core.models.cost_sharing import CostSharingRecord
from rc_core.models.wallet import WalletTransaction
from rc_core.utils.errors import ValidationError
from rc_core.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CATEGORY = "uncategorized"


class CostSharingService:
    """成本分摊记录服务

    每笔已完成的捐赠额度交易对应一条记录，与入账在同一事务中写入
    """

    @staticmethod
    async def get_by_transaction_id(db: AsyncSession, transaction_id: str) -> Optional[CostSharingRecord]:
        """按交易号查询分摊记录"""
        result = await db.execute(
            select(CostSharingRecord).where(CostSharingRecord.transaction_id == transaction_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def record_cost_sharing(
        db: AsyncSession,
        transaction: WalletTransaction,
        calculation: CreditCalculation,
        order_id: str,
        seller_id: str,
        ngo_id: Optional[str] = None,
        return_id: Optional[str] = None,
        product_id: Optional[str] = None,
        processed_at: Optional[datetime] = None,
    ) -> CostSharingRecord:
        """
        写入成本分摊记录

        同一交易重复调用时返回已有记录

        Args:
            db: 数据库会话
            transaction: 已完成的钱包交易
            calculation: 额度计算结果
            order_id: 订单号
            seller_id: 卖家ID
            ngo_id: NGO ID
            return_id: 退货单号
            product_id: 商品ID
            processed_at: 处理时间（与月度汇总归属一致），缺省为当前时间

        Returns:
            CostSharingRecord

        Raises:
            ValidationError: 交易未完成
        """
        if not transaction.is_completed:
            raise ValidationError(
                code="TRANSACTION_NOT_COMPLETED",
                detail=f"Cost sharing requires a completed transaction, got {transaction.status}"
            )

        existing = await CostSharingService.get_by_transaction_id(db, transaction.transaction_id)
        if existing is not None:
            return existing

        sharing = calculation.cost_sharing
        benefit = calculation.seller_benefit
        now = utcnow()
        processed_at = processed_at or now

        record = CostSharingRecord(
            transaction_id=transaction.transaction_id,
            user_id=transaction.user_id,
            order_id=order_id,
            return_id=return_id,
            ngo_id=ngo_id,
            seller_id=seller_id,
            buyer_credit_amount=calculation.buyer_credit,
            total_avoided_costs=calculation.avoided_costs.total,
            seller_cost_amount=sharing.seller_amount,
            platform_cost_amount=sharing.platform_amount,
            seller_cost_percentage=sharing.seller_percentage,
            platform_cost_percentage=sharing.platform_percentage,
            traditional_return_cost=benefit.traditional_cost,
            seller_savings=benefit.savings,
            seller_savings_percentage=benefit.savings_percentage,
            product_id=product_id,
            product_price=calculation.metadata.product_price,
            product_category=calculation.metadata.category or DEFAULT_CATEGORY,
            calculation_metadata=calculation.model_dump(mode="json"),
            status="completed",
            processed_at=processed_at,
            created_at=now,
        )
        db.add(record)
        await db.flush()

        logger.info(
            "Cost sharing recorded",
            transaction_id=transaction.transaction_id,
            seller_id=seller_id,
            seller_cost=str(sharing.seller_amount),
            platform_cost=str(sharing.platform_amount),
        )
        return record
