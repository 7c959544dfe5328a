"""
钱包账本测试
"""
import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import InvalidRequestError

from rc_core.models.wallet import TransactionStatus, TransactionType, Wallet, WalletTransaction
from rc_core.services import WalletService
from rc_core.utils.errors import (
    ConflictError,
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)


async def _credit(db_manager, user_id: str, amount: str, transaction_id: str):
    async with db_manager.get_transaction() as session:
        return await WalletService.issue_credit(session, user_id, Decimal(amount), transaction_id)


async def _debit(db_manager, user_id: str, amount: str, transaction_id: str = None):
    async with db_manager.get_transaction() as session:
        return await WalletService.debit(session, user_id, Decimal(amount), transaction_id=transaction_id)


async def _assert_ledger_invariant(db_manager, user_id: str):
    """余额 == 全部 completed 交易金额之和"""
    async with db_manager.get_session() as session:
        wallet = await WalletService.get_wallet(session, user_id)
        total = (await session.execute(
            select(func.coalesce(func.sum(WalletTransaction.amount), 0))
            .where(WalletTransaction.user_id == user_id)
            .where(WalletTransaction.status == TransactionStatus.COMPLETED.value)
        )).scalar_one()
    assert wallet.balance == Decimal(str(total)).quantize(Decimal("0.01"))
    return wallet


class TestIssueCredit:

    async def test_first_credit_creates_wallet(self, db_manager):
        entry = await _credit(db_manager, "USER_1", "86.12", "NGO_TX_1")

        assert entry.replayed is False
        assert entry.transaction.status == TransactionStatus.COMPLETED.value
        assert entry.transaction.balance_before == Decimal("0")
        assert entry.transaction.balance_after == Decimal("86.12")
        assert entry.wallet.total_credits_earned == Decimal("86.12")
        assert entry.wallet.version == 1

    async def test_replay_returns_original(self, db_manager):
        await _credit(db_manager, "USER_1", "50", "NGO_TX_1")
        replay = await _credit(db_manager, "USER_1", "50", "NGO_TX_1")

        assert replay.replayed is True
        wallet = await _assert_ledger_invariant(db_manager, "USER_1")
        assert wallet.balance == Decimal("50.00")

    async def test_reused_id_for_other_user_conflicts(self, db_manager):
        await _credit(db_manager, "USER_1", "50", "NGO_TX_1")
        with pytest.raises(ConflictError) as exc_info:
            await _credit(db_manager, "USER_2", "50", "NGO_TX_1")
        assert exc_info.value.code == "TRANSACTION_ID_CONFLICT"

    @pytest.mark.parametrize("amount, code", [
        ("0", "INVALID_CREDIT_AMOUNT"),
        ("-5", "INVALID_CREDIT_AMOUNT"),
        ("5000.01", "CREDIT_AMOUNT_EXCEEDS_LIMIT"),
    ])
    async def test_invalid_amount(self, db_manager, amount, code):
        with pytest.raises(ValidationError) as exc_info:
            await _credit(db_manager, "USER_1", amount, "NGO_TX_BAD")
        assert exc_info.value.code == code

    async def test_concurrent_credits_to_fresh_wallet(self, db_manager):
        await asyncio.gather(
            _credit(db_manager, "USER_NEW", "50", "NGO_TX_A"),
            _credit(db_manager, "USER_NEW", "75", "NGO_TX_B"),
        )

        wallet = await _assert_ledger_invariant(db_manager, "USER_NEW")
        assert wallet.balance == Decimal("125.00")
        assert wallet.version == 2


class TestDebit:

    async def test_debit_reduces_balance(self, db_manager):
        await _credit(db_manager, "USER_1", "100", "NGO_TX_1")
        entry = await _debit(db_manager, "USER_1", "30.50")

        assert entry.transaction.amount == Decimal("-30.50")
        assert entry.transaction.transaction_type == TransactionType.PURCHASE.value
        assert entry.wallet.balance == Decimal("69.50")
        assert entry.wallet.total_spent == Decimal("30.50")

    async def test_insufficient_balance_leaves_wallet_untouched(self, db_manager):
        await _credit(db_manager, "USER_1", "20", "NGO_TX_1")

        with pytest.raises(InsufficientBalanceError):
            await _debit(db_manager, "USER_1", "50")

        wallet = await _assert_ledger_invariant(db_manager, "USER_1")
        assert wallet.balance == Decimal("20.00")
        assert wallet.total_spent == Decimal("0")

    async def test_missing_wallet(self, db_manager):
        with pytest.raises(NotFoundError):
            await _debit(db_manager, "NOBODY", "10")

    async def test_debit_replay(self, db_manager):
        await _credit(db_manager, "USER_1", "100", "NGO_TX_1")
        await _debit(db_manager, "USER_1", "40", transaction_id="PAY_ORDER_9")
        replay = await _debit(db_manager, "USER_1", "40", transaction_id="PAY_ORDER_9")

        assert replay.replayed is True
        assert replay.wallet.balance == Decimal("60.00")

    async def test_ledger_invariant_after_mixed_sequence(self, db_manager):
        await _credit(db_manager, "USER_1", "86.12", "NGO_TX_1")
        await _debit(db_manager, "USER_1", "20.02")
        await _credit(db_manager, "USER_1", "25", "NGO_TX_2")
        await _debit(db_manager, "USER_1", "91.10")
        with pytest.raises(InsufficientBalanceError):
            await _debit(db_manager, "USER_1", "0.01")
        await _credit(db_manager, "USER_1", "140", "NGO_TX_3")

        wallet = await _assert_ledger_invariant(db_manager, "USER_1")
        assert wallet.balance == Decimal("140.00")
        assert wallet.total_credits_earned - wallet.total_spent == wallet.balance


class TestWalletQueries:

    async def test_missing_wallet_returns_zero_view(self, db_session):
        details = await WalletService.get_wallet_details(db_session, "NOBODY")

        assert details["wallet"]["balance"] == Decimal("0")
        assert details["transactions"] == []
        assert details["pagination"]["has_more"] is False

    async def test_details_summary_and_pagination(self, db_manager, db_session):
        await _credit(db_manager, "USER_1", "50", "NGO_TX_1")
        await _credit(db_manager, "USER_1", "75", "NGO_TX_2")
        await _debit(db_manager, "USER_1", "25")

        details = await WalletService.get_wallet_details(db_session, "USER_1", limit=2)

        assert details["wallet"]["balance"] == Decimal("100.00")
        assert details["summary"]["total_transactions"] == 3
        assert details["summary"]["total_ngo_credits"] == Decimal("125.00")
        assert details["summary"]["total_debits"] == Decimal("25.00")
        assert len(details["transactions"]) == 2
        assert details["pagination"]["has_more"] is True

    async def test_get_transaction_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            await WalletService.get_transaction(db_session, "MISSING")

    async def test_transactions_relationship_not_lazy_loaded(self, db_manager, db_session):
        """钱包的流水集合不做隐式加载，流水通过分页查询读取"""
        await _credit(db_manager, "USER_1", "50", "NGO_TX_1")

        wallet = await WalletService.get_wallet(db_session, "USER_1")
        with pytest.raises(InvalidRequestError):
            wallet.transactions

    async def test_ngo_credit_stats(self, db_manager, db_session):
        await _credit(db_manager, "USER_1", "50", "NGO_TX_1")
        await _credit(db_manager, "USER_2", "86.12", "NGO_TX_2")

        stats = await WalletService.get_ngo_credit_stats(db_session)

        assert stats["total_transactions"] == 2
        assert stats["unique_users"] == 2
        assert stats["total_credits_issued"] == Decimal("136.12")
        assert stats["average_credit_amount"] == Decimal("68.06")
        assert stats["max_credit"] == Decimal("86.12")

    def test_generate_transaction_id(self):
        transaction_id = WalletService.generate_transaction_id("NGO", "user_42")
        prefix, user, timestamp, random_part = transaction_id.split("_")

        assert prefix == "NGO"
        assert user == "USER"
        assert timestamp.isdigit()
        assert len(random_part) == 6


class TestConcurrentReplay:

    async def test_replay_detected_after_lock(self, db_manager, monkeypatch):
        """锁前检查未命中时，持锁后的检查返回首次结果"""
        await _credit(db_manager, "USER_1", "50", "NGO_TX_1")

        original = WalletService._find_replay
        calls = {"count": 0}

        async def _stale_first_check(db, transaction_id, user_id, amount):
            calls["count"] += 1
            if calls["count"] == 1:
                return None
            return await original(db, transaction_id, user_id, amount)

        monkeypatch.setattr(WalletService, "_find_replay", staticmethod(_stale_first_check))

        replay = await _credit(db_manager, "USER_1", "50", "NGO_TX_1")

        assert replay.replayed is True
        assert calls["count"] == 2
        wallet = await _assert_ledger_invariant(db_manager, "USER_1")
        assert wallet.balance == Decimal("50.00")

    async def test_unique_violation_becomes_conflict(self, db_manager, monkeypatch):
        """交易号唯一索引冲突转换为 409，不返回 500"""
        await _credit(db_manager, "USER_1", "50", "NGO_TX_1")

        async def _never_found(db, transaction_id, user_id, amount):
            return None

        monkeypatch.setattr(WalletService, "_find_replay", staticmethod(_never_found))

        with pytest.raises(ConflictError) as exc_info:
            await _credit(db_manager, "USER_2", "50", "NGO_TX_1")
        assert exc_info.value.code == "TRANSACTION_ID_CONFLICT"

        async with db_manager.get_session() as session:
            assert await WalletService.get_wallet(session, "USER_2") is None
            count = (await session.execute(
                select(func.count()).select_from(WalletTransaction)
            )).scalar_one()
        assert count == 1

    async def test_debit_unique_violation_becomes_conflict(self, db_manager, monkeypatch):
        await _credit(db_manager, "USER_1", "100", "NGO_TX_1")

        async def _never_found(db, transaction_id, user_id, amount):
            return None

        monkeypatch.setattr(WalletService, "_find_replay", staticmethod(_never_found))

        with pytest.raises(ConflictError) as exc_info:
            await _debit(db_manager, "USER_1", "40", transaction_id="NGO_TX_1")
        assert exc_info.value.code == "TRANSACTION_ID_CONFLICT"

        wallet = await _assert_ledger_invariant(db_manager, "USER_1")
        assert wallet.balance == Decimal("100.00")
        assert wallet.total_spent == Decimal("0")

    async def test_concurrent_wallet_creation(self, db_manager):
        """并发首次访问只创建一个钱包"""
        async def _create():
            async with db_manager.get_transaction() as session:
                return await WalletService.get_or_create_wallet(session, "USER_FRESH")

        wallets = await asyncio.gather(_create(), _create(), _create())

        assert len({wallet.id for wallet in wallets}) == 1
        async with db_manager.get_session() as session:
            count = (await session.execute(
                select(func.count()).select_from(Wallet).where(Wallet.user_id == "USER_FRESH")
            )).scalar_one()
        assert count == 1


class TestSessionLocking:

    async def test_open_read_does_not_block_write(self, db_manager):
        """只读会话持有读事务时，写事务仍可提交"""
        await _credit(db_manager, "USER_1", "50", "NGO_TX_1")

        async with db_manager.get_session() as reader:
            before = await WalletService.get_wallet(reader, "USER_1")
            assert before.balance == Decimal("50.00")

            entry = await asyncio.wait_for(_credit(db_manager, "USER_1", "25", "NGO_TX_2"), timeout=2)
            assert entry.wallet.balance == Decimal("75.00")

        wallet = await _assert_ledger_invariant(db_manager, "USER_1")
        assert wallet.balance == Decimal("75.00")

    async def test_write_session_commits(self, db_manager):
        """写会话由调用方提交"""
        async with db_manager.get_session(write=True) as session:
            await WalletService.issue_credit(session, "USER_1", Decimal("30"), "NGO_TX_W")
            await session.commit()

        wallet = await _assert_ledger_invariant(db_manager, "USER_1")
        assert wallet.balance == Decimal("30.00")
