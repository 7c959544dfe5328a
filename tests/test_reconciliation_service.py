"""
pending 交易对账测试
"""
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import select

from rc_core.models.base import utcnow
from rc_core.models.wallet import TransactionStatus, WalletTransaction
from rc_core.services import ReconciliationService, WalletService
from rc_core.services.reconciliation_service import RECONCILIATION_FAILURE_REASON
from rc_core.tasks.scheduler import RECONCILE_JOB_KEY, build_scheduler

from .conftest import NOW


async def _seed(db_manager, now=NOW):
    """一笔过期 pending、一笔新 pending、一笔已完成"""
    async with db_manager.get_transaction() as session:
        await WalletService.issue_credit(session, "USER_1", Decimal("50"), "NGO_DONE")
        wallet = await WalletService.get_wallet(session, "USER_1")
        for transaction_id, age in (("NGO_STALE", 30), ("NGO_FRESH", 5)):
            session.add(WalletTransaction(
                transaction_id=transaction_id,
                wallet_id=wallet.id,
                user_id="USER_1",
                transaction_type="ngo_donation_credit",
                amount=Decimal("10"),
                status=TransactionStatus.PENDING.value,
                details={},
                created_at=now - timedelta(minutes=age),
                updated_at=now - timedelta(minutes=age),
            ))


async def _statuses(db_manager):
    async with db_manager.get_session() as session:
        rows = (await session.execute(select(WalletTransaction))).scalars().all()
        return {row.transaction_id: (row.status, row.failure_reason) for row in rows}


class TestReconciliation:

    async def test_only_stale_pending_fail(self, db_manager):
        await _seed(db_manager)

        async with db_manager.get_transaction() as session:
            failed = await ReconciliationService.fail_stale_pending_transactions(session, 15, now=NOW)

        statuses = await _statuses(db_manager)
        assert failed == 1
        assert statuses["NGO_STALE"] == (TransactionStatus.FAILED.value, RECONCILIATION_FAILURE_REASON)
        assert statuses["NGO_FRESH"][0] == TransactionStatus.PENDING.value
        assert statuses["NGO_DONE"][0] == TransactionStatus.COMPLETED.value

    async def test_scheduler_handler(self, db_manager, test_settings):
        await _seed(db_manager, now=utcnow())
        scheduler = build_scheduler(test_settings, db_manager)

        # 处理函数使用当前时间，两笔 pending 都早于 1 分钟
        result = await scheduler.run_service(RECONCILE_JOB_KEY, {"timeout_minutes": 1})

        assert scheduler.scheduler.get_job(RECONCILE_JOB_KEY) is not None
        assert result == {"failed": 2}
        statuses = await _statuses(db_manager)
        assert statuses["NGO_DONE"][0] == TransactionStatus.COMPLETED.value
