"""
钱包交易对账 - 把长时间停留在 pending 的交易标记为失败
"""
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from rc_core.models.base import utcnow
from rc_core.models.wallet import TransactionStatus, WalletTransaction
from rc_core.utils.logger import get_logger

logger = get_logger(__name__)

RECONCILIATION_FAILURE_REASON = "reconciliation_timeout"


class ReconciliationService:
    """对账服务"""

    @staticmethod
    async def fail_stale_pending_transactions(
        db: AsyncSession,
        timeout_minutes: int,
        now: Optional[datetime] = None,
    ) -> int:
        """
        将超时的 pending 交易标记为 failed

        只处理 pending 状态，completed 交易永远不会被修改

        Args:
            db: 数据库会话
            timeout_minutes: 超时时间（分钟）
            now: 当前时间

        Returns:
            被标记的交易数
        """
        now = now or utcnow()
        cutoff = now - timedelta(minutes=timeout_minutes)

        result = await db.execute(
            update(WalletTransaction)
            .where(WalletTransaction.status == TransactionStatus.PENDING.value)
            .where(WalletTransaction.created_at < cutoff)
            .values(
                status=TransactionStatus.FAILED.value,
                failure_reason=RECONCILIATION_FAILURE_REASON,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        failed = result.rowcount or 0
        if failed:
            logger.warning("Stale pending transactions marked failed", count=failed, cutoff=cutoff.isoformat())
        return failed
