"""
捐赠额度端到端流程测试
"""
import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from rc_core.models.cost_sharing import CostSharingRecord
from rc_core.models.wallet import WalletTransaction
from rc_core.services import (
    CostSharingService,
    DonationCreditService,
    FinancialSummaryService,
    WalletService,
    derive_transaction_id,
)
from rc_core.utils.errors import ConflictError, PersistenceError, ValidationError

from .conftest import NOW


@pytest.fixture
def service(db_manager, config_manager) -> DonationCreditService:
    return DonationCreditService(db_manager=db_manager, config_manager=config_manager)


async def _process(service, product, order_details, **kwargs):
    params = dict(
        user_id="USER_42",
        order_id="ORD_1001",
        seller_id="SELLER_7",
        product=product,
        order_details=order_details,
        ngo_id="NGO_GOONJ",
        return_id="RET_1",
        now=NOW,
    )
    params.update(kwargs)
    return await service.process_donation_credit(**params)


async def _count(db_manager, model) -> int:
    async with db_manager.get_session() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


class TestCalculateCredit:

    async def test_preview_has_no_side_effects(self, service, db_manager, sample_product, sample_order_details):
        calculation = await service.calculate_credit(sample_product, sample_order_details)

        assert calculation.buyer_credit == Decimal("86.12")
        assert await _count(db_manager, WalletTransaction) == 0

    async def test_read_failure_hides_driver_error(
        self, service, config_manager, monkeypatch, sample_product, sample_order_details
    ):
        """底层异常文本不出现在返回的错误中"""
        async def _broken_snapshot(*args, **kwargs):
            raise RuntimeError("connection to server at 10.0.0.5 refused")

        monkeypatch.setattr(config_manager, "get_snapshot", _broken_snapshot)

        with pytest.raises(PersistenceError) as exc_info:
            await service.calculate_credit(sample_product, sample_order_details)
        assert exc_info.value.detail == "Database operation failed"


class TestProcessDonationCredit:

    async def test_end_to_end(self, service, db_manager, sample_product, sample_order_details):
        result = await _process(service, sample_product, sample_order_details)

        assert result["replayed"] is False
        assert result["credit_issued"]["amount"] == Decimal("86.12")
        assert result["credit_issued"]["wallet_balance"] == Decimal("86.12")
        assert result["cost_sharing"]["seller_cost"] == Decimal("55.98")
        assert result["cost_sharing"]["platform_cost"] == Decimal("30.14")
        assert result["financial_impact"]["total_system_savings"] == Decimal("57.41")
        assert result["transaction_id"] == derive_transaction_id("USER_42", "ORD_1001", "RET_1", "PROD_TSHIRT_001")

        async with db_manager.get_session() as session:
            record = await session.scalar(select(CostSharingRecord))
            assert record.transaction_id == result["transaction_id"]
            assert record.seller_cost_amount + record.platform_cost_amount == record.buyer_credit_amount
            assert record.calculation_metadata["buyer_credit"] == "86.12"

            summary = await FinancialSummaryService.get_monthly_summary(session, "2026-10")
            assert summary["total_transactions"] == 1
            assert summary["total_credits_issued"] == Decimal("86.12")
            assert summary["category_breakdown"]["Fashion"]["transactions"] == 1

    async def test_duplicate_request_is_idempotent(self, service, db_manager, sample_product, sample_order_details):
        first = await _process(service, sample_product, sample_order_details)
        second = await _process(service, sample_product, sample_order_details)

        assert second["replayed"] is True
        assert second["transaction_id"] == first["transaction_id"]
        assert second["credit_issued"]["amount"] == first["credit_issued"]["amount"]
        assert await _count(db_manager, WalletTransaction) == 1
        assert await _count(db_manager, CostSharingRecord) == 1

        async with db_manager.get_session() as session:
            wallet = await WalletService.get_wallet(session, "USER_42")
            summary = await FinancialSummaryService.get_monthly_summary(session, "2026-10")
        assert wallet.balance == Decimal("86.12")
        assert summary["total_transactions"] == 1

    async def test_replay_ignores_later_config_change(
        self, service, db_manager, config_manager, sample_product, sample_order_details
    ):
        first = await _process(service, sample_product, sample_order_details)

        async with db_manager.get_transaction() as session:
            await config_manager.update_credit_settings(session, {"buyer_credit_percentage": "50"})

        replay = await _process(service, sample_product, sample_order_details)
        assert replay["replayed"] is True
        assert replay["credit_issued"]["amount"] == first["credit_issued"]["amount"]

    async def test_idempotency_key_reused_for_other_order(self, service, sample_product, sample_order_details):
        await _process(service, sample_product, sample_order_details, idempotency_key="KEY_1")

        with pytest.raises(ConflictError):
            await _process(service, sample_product, sample_order_details, idempotency_key="KEY_1", order_id="ORD_2")

    async def test_failure_rolls_back_everything(
        self, service, db_manager, monkeypatch, sample_product, sample_order_details
    ):
        async def _broken_summary(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(FinancialSummaryService, "update_monthly_summary", staticmethod(_broken_summary))

        with pytest.raises(PersistenceError) as exc_info:
            await _process(service, sample_product, sample_order_details)
        assert exc_info.value.code == "PERSISTENCE_FAILURE"
        assert "disk full" not in exc_info.value.detail
        assert "RuntimeError" not in exc_info.value.detail

        async with db_manager.get_session() as session:
            assert await WalletService.get_wallet(session, "USER_42") is None
        assert await _count(db_manager, WalletTransaction) == 0
        assert await _count(db_manager, CostSharingRecord) == 0

    async def test_failure_keeps_existing_balance(
        self, service, db_manager, monkeypatch, sample_product, sample_order_details
    ):
        await _process(service, sample_product, sample_order_details)

        async def _broken_record(*args, **kwargs):
            raise RuntimeError("constraint violated")

        monkeypatch.setattr(CostSharingService, "record_cost_sharing", staticmethod(_broken_record))

        with pytest.raises(PersistenceError):
            await _process(service, sample_product, sample_order_details, return_id="RET_2")

        async with db_manager.get_session() as session:
            wallet = await WalletService.get_wallet(session, "USER_42")
        assert wallet.balance == Decimal("86.12")
        assert await _count(db_manager, WalletTransaction) == 1

    async def test_missing_fields_rejected_before_writes(self, service, db_manager, sample_product, sample_order_details):
        with pytest.raises(ValidationError):
            await _process(service, sample_product, sample_order_details, seller_id=None)
        assert await _count(db_manager, WalletTransaction) == 0

    async def test_monthly_summary_accumulates(self, service, db_manager, sample_product, sample_order_details):
        await _process(service, sample_product, sample_order_details, return_id="RET_1")
        await _process(service, sample_product, sample_order_details, return_id="RET_2")

        async with db_manager.get_session() as session:
            summary = await FinancialSummaryService.get_monthly_summary(session, "2026-10")

        assert summary["total_transactions"] == 2
        assert summary["total_credits_issued"] == Decimal("172.24")
        assert summary["total_seller_costs"] + summary["total_platform_costs"] == Decimal("172.24")
        assert summary["average_credit_amount"] == Decimal("86.12")

    async def test_processed_at_follows_now(self, service, db_manager, sample_product, sample_order_details):
        """分摊记录的处理时间与月度汇总归属一致"""
        await _process(service, sample_product, sample_order_details)

        async with db_manager.get_session() as session:
            record = await session.scalar(select(CostSharingRecord))

        assert record.processed_at.replace(tzinfo=NOW.tzinfo) == NOW


class TestConcurrentDonations:

    async def test_replay_detected_after_wallet_lock(
        self, service, db_manager, monkeypatch, sample_product, sample_order_details
    ):
        """首次查询未看到已提交的同一请求时，返回首次结果而不是报错"""
        first = await _process(service, sample_product, sample_order_details)

        original = CostSharingService.get_by_transaction_id
        calls = {"count": 0}

        async def _stale_first_lookup(db, transaction_id):
            calls["count"] += 1
            if calls["count"] == 1:
                return None
            return await original(db, transaction_id)

        monkeypatch.setattr(CostSharingService, "get_by_transaction_id", staticmethod(_stale_first_lookup))

        second = await _process(service, sample_product, sample_order_details)

        assert second["replayed"] is True
        assert second["credit_issued"]["amount"] == first["credit_issued"]["amount"]
        assert await _count(db_manager, WalletTransaction) == 1
        assert await _count(db_manager, CostSharingRecord) == 1

        async with db_manager.get_session() as session:
            summary = await FinancialSummaryService.get_monthly_summary(session, "2026-10")
        assert summary["total_transactions"] == 1

    async def test_concurrent_donations_accumulate_summary(
        self, service, db_manager, sample_product, sample_order_details
    ):
        """不同用户的并发捐赠全部计入同一个月度汇总"""
        results = await asyncio.gather(*[
            _process(service, sample_product, sample_order_details, user_id=user_id)
            for user_id in ("USER_A", "USER_B", "USER_C")
        ])

        assert all(result["replayed"] is False for result in results)
        assert await _count(db_manager, CostSharingRecord) == 3

        async with db_manager.get_session() as session:
            summary = await FinancialSummaryService.get_monthly_summary(session, "2026-10")

        assert summary["total_transactions"] == 3
        assert summary["total_credits_issued"] == Decimal("258.36")
        assert summary["category_breakdown"]["Fashion"]["transactions"] == 3
