"""
钱包账本服务

所有写操作只 flush，不提交；由调用方的事务统一提交或回滚
"""
import secrets
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rc_core.config import get_settings
from rc_core.database import dialect_insert
from rc_core.models.base import utcnow
from rc_core.models.wallet import TransactionStatus, TransactionType, Wallet, WalletTransaction
from rc_core.utils.errors import (
    ConflictError,
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)
from rc_core.utils.logger import get_logger
from rc_core.utils.money import round_money, to_decimal

logger = get_logger(__name__)

ZERO = Decimal("0.00")


@dataclass
class LedgerEntry:
    """账本操作结果"""
    transaction: WalletTransaction
    wallet: Wallet
    replayed: bool = False


def _dec(value: Any) -> Decimal:
    """聚合结果转 Decimal（空值为 0）"""
    return round_money(to_decimal(value, ZERO))


class WalletService:
    """
    钱包账本服务

    功能：
    1. 钱包懒加载创建（并发首次访问不重复）
    2. 入账（幂等，按 transaction_id）
    3. 扣款（余额不足直接拒绝，不重试）
    4. 钱包详情与流水分页
    5. NGO 捐赠额度统计
    """

    @staticmethod
    def generate_transaction_id(prefix: str, user_id: str) -> str:
        """
        生成交易号：PREFIX_USER_毫秒时间戳_随机串

        Args:
            prefix: 前缀（NGO/PAY）
            user_id: 用户ID

        Returns:
            交易号
        """
        timestamp = int(time.time() * 1000)
        random_part = secrets.token_hex(3).upper()
        user_hash = user_id[:4].upper()
        return f"{prefix}_{user_hash}_{timestamp}_{random_part}"

    @staticmethod
    def validate_credit_amount(amount: Decimal) -> None:
        """
        校验单笔入账金额：0 < amount <= max_single_credit

        Raises:
            ValidationError: 金额无效或超出上限
        """
        if amount is None or amount <= 0:
            raise ValidationError(code="INVALID_CREDIT_AMOUNT", detail="Credit amount must be greater than 0")

        max_single_credit = get_settings().max_single_credit
        if amount > max_single_credit:
            raise ValidationError(
                code="CREDIT_AMOUNT_EXCEEDS_LIMIT",
                detail=f"Credit amount {amount} exceeds maximum limit {max_single_credit}"
            )

    @staticmethod
    async def get_wallet(db: AsyncSession, user_id: str, for_update: bool = False) -> Optional[Wallet]:
        """查询钱包（可加行锁）"""
        stmt = select(Wallet).where(Wallet.user_id == user_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_or_create_wallet(db: AsyncSession, user_id: str) -> Wallet:
        """
        获取或创建钱包（懒加载）

        使用 INSERT ... ON CONFLICT DO NOTHING，唯一约束保证并发首次访问只建一个钱包

        Args:
            db: 数据库会话
            user_id: 用户ID

        Returns:
            Wallet
        """
        now = utcnow()
        stmt = dialect_insert(db, Wallet).values(
            user_id=user_id,
            balance=ZERO,
            total_credits_earned=ZERO,
            total_spent=ZERO,
            is_active=True,
            version=0,
            created_at=now,
            updated_at=now,
        ).on_conflict_do_nothing(index_elements=["user_id"])
        result = await db.execute(stmt)

        if result.rowcount:
            logger.info("Wallet created", user_id=user_id)

        return await WalletService.get_wallet(db, user_id)

    @staticmethod
    async def _find_replay(
        db: AsyncSession,
        transaction_id: str,
        user_id: str,
        amount: Decimal,
    ) -> Optional[WalletTransaction]:
        """
        幂等检查

        Returns:
            已完成的同一笔交易；不存在返回 None

        Raises:
            ConflictError: 交易号已被其他用户/金额使用，或该交易未完成
        """
        result = await db.execute(
            select(WalletTransaction).where(WalletTransaction.transaction_id == transaction_id)
        )
        existing = result.scalar_one_or_none()
        if existing is None:
            return None

        if existing.user_id != user_id or existing.amount != amount:
            raise ConflictError(
                code="TRANSACTION_ID_CONFLICT",
                detail=f"Transaction id {transaction_id} already used for a different event"
            )
        if not existing.is_completed:
            raise ConflictError(
                code="TRANSACTION_NOT_COMPLETED",
                detail=f"Transaction {transaction_id} exists with status {existing.status}"
            )

        logger.info("幂等命中", transaction_id=transaction_id, user_id=user_id)
        return existing

    @staticmethod
    async def _insert_transaction(db: AsyncSession, transaction: WalletTransaction) -> None:
        """
        写入交易流水

        交易号唯一索引冲突时只回滚到保存点，转换为 ConflictError

        Raises:
            ConflictError: 交易号已被占用
        """
        try:
            async with db.begin_nested():
                db.add(transaction)
                await db.flush()
        except IntegrityError:
            logger.warning("Transaction id already exists", transaction_id=transaction.transaction_id)
            raise ConflictError(
                code="TRANSACTION_ID_CONFLICT",
                detail=f"Transaction id {transaction.transaction_id} already used for a different event"
            )

    @staticmethod
    async def issue_credit(
        db: AsyncSession,
        user_id: str,
        amount: Decimal,
        transaction_id: str,
        transaction_type: TransactionType = TransactionType.NGO_DONATION_CREDIT,
        description: Optional[str] = None,
        details: Optional[dict] = None,
        order_id: Optional[str] = None,
        return_id: Optional[str] = None,
        ngo_id: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> LedgerEntry:
        """
        入账（在调用方事务内执行）

        流程：
        1. 幂等检查（同一交易号、同一用户、同一金额直接返回原结果）
        2. 锁定钱包行，持锁后再次幂等检查
        3. 在保存点内写入 pending 交易
        4. 原子更新余额和累计额度
        5. 交易标记为 completed，记录前后余额

        Args:
            db: 数据库会话
            user_id: 用户ID
            amount: 入账金额（正数）
            transaction_id: 交易号（幂等键）
            transaction_type: 交易类型
            description: 描述
            details: 交易详情
            order_id: 订单号
            return_id: 退货单号
            ngo_id: NGO ID
            reference_id: 外部参考号

        Returns:
            LedgerEntry

        Raises:
            ValidationError: 金额无效或钱包已停用
            ConflictError: 交易号冲突
        """
        amount = round_money(to_decimal(amount))
        WalletService.validate_credit_amount(amount)

        existing = await WalletService._find_replay(db, transaction_id, user_id, amount)
        if existing is not None:
            wallet = await WalletService.get_wallet(db, user_id)
            return LedgerEntry(transaction=existing, wallet=wallet, replayed=True)

        await WalletService.get_or_create_wallet(db, user_id)
        wallet = await WalletService.get_wallet(db, user_id, for_update=True)
        if not wallet.is_active:
            raise ValidationError(code="WALLET_INACTIVE", detail=f"Wallet of user {user_id} is inactive")

        # 持锁后再查一次：并发的同一请求可能已先提交
        existing = await WalletService._find_replay(db, transaction_id, user_id, amount)
        if existing is not None:
            return LedgerEntry(transaction=existing, wallet=wallet, replayed=True)

        transaction = WalletTransaction(
            transaction_id=transaction_id,
            wallet_id=wallet.id,
            user_id=user_id,
            transaction_type=transaction_type.value,
            amount=amount,
            status=TransactionStatus.PENDING.value,
            description=description,
            details=details or {},
            order_id=order_id,
            return_id=return_id,
            ngo_id=ngo_id,
            reference_id=reference_id,
        )
        await WalletService._insert_transaction(db, transaction)

        balance_before = wallet.balance
        await db.execute(
            update(Wallet)
            .where(Wallet.id == wallet.id)
            .values(
                balance=Wallet.balance + amount,
                total_credits_earned=Wallet.total_credits_earned + amount,
                version=Wallet.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await db.refresh(wallet)

        transaction.status = TransactionStatus.COMPLETED.value
        transaction.balance_before = balance_before
        transaction.balance_after = wallet.balance
        transaction.completed_at = utcnow()
        await db.flush()

        logger.info(
            "Credit issued",
            user_id=user_id,
            transaction_id=transaction_id,
            amount=str(amount),
            balance=str(wallet.balance),
        )
        return LedgerEntry(transaction=transaction, wallet=wallet)

    @staticmethod
    async def debit(
        db: AsyncSession,
        user_id: str,
        amount: Decimal,
        order_id: Optional[str] = None,
        transaction_id: Optional[str] = None,
        description: str = "Wallet payment for order",
        details: Optional[dict] = None,
    ) -> LedgerEntry:
        """
        扣款（在调用方事务内执行）

        余额不足直接拒绝，不做任何修改，也不重试

        Args:
            db: 数据库会话
            user_id: 用户ID
            amount: 扣款金额（正数）
            order_id: 订单号
            transaction_id: 交易号（缺省自动生成）
            description: 描述
            details: 交易详情

        Returns:
            LedgerEntry

        Raises:
            ValidationError: 金额无效或钱包已停用
            NotFoundError: 钱包不存在
            InsufficientBalanceError: 余额不足
        """
        amount = round_money(to_decimal(amount))
        if amount <= 0:
            raise ValidationError(code="INVALID_PAYMENT_AMOUNT", detail="Payment amount must be greater than 0")

        if transaction_id:
            existing = await WalletService._find_replay(db, transaction_id, user_id, -amount)
            if existing is not None:
                wallet = await WalletService.get_wallet(db, user_id)
                return LedgerEntry(transaction=existing, wallet=wallet, replayed=True)
        else:
            transaction_id = WalletService.generate_transaction_id("PAY", user_id)

        wallet = await WalletService.get_wallet(db, user_id, for_update=True)
        if wallet is None:
            raise NotFoundError(code="WALLET_NOT_FOUND", resource=f"Wallet of user {user_id}")
        if not wallet.is_active:
            raise ValidationError(code="WALLET_INACTIVE", detail=f"Wallet of user {user_id} is inactive")

        existing = await WalletService._find_replay(db, transaction_id, user_id, -amount)
        if existing is not None:
            return LedgerEntry(transaction=existing, wallet=wallet, replayed=True)

        if wallet.balance < amount:
            raise InsufficientBalanceError(amount, wallet.balance)

        balance_before = wallet.balance
        result = await db.execute(
            update(Wallet)
            .where(Wallet.id == wallet.id)
            .where(Wallet.balance >= amount)
            .values(
                balance=Wallet.balance - amount,
                total_spent=Wallet.total_spent + amount,
                version=Wallet.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InsufficientBalanceError(amount, balance_before)

        await db.refresh(wallet)

        now = utcnow()
        transaction = WalletTransaction(
            transaction_id=transaction_id,
            wallet_id=wallet.id,
            user_id=user_id,
            transaction_type=TransactionType.PURCHASE.value,
            amount=-amount,  # 扣款为负数
            status=TransactionStatus.COMPLETED.value,
            balance_before=balance_before,
            balance_after=wallet.balance,
            description=description,
            details=details or {},
            order_id=order_id,
            completed_at=now,
        )
        await WalletService._insert_transaction(db, transaction)

        logger.info(
            "Wallet payment processed",
            user_id=user_id,
            transaction_id=transaction_id,
            amount=str(amount),
            balance=str(wallet.balance),
        )
        return LedgerEntry(transaction=transaction, wallet=wallet)

    @staticmethod
    async def get_wallet_details(
        db: AsyncSession,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """
        钱包详情（只读）

        没有钱包的用户返回零值视图，不会创建钱包

        Args:
            db: 数据库会话
            user_id: 用户ID
            limit: 每页条数
            offset: 偏移量

        Returns:
            {wallet, transactions, summary, pagination}
        """
        wallet = await WalletService.get_wallet(db, user_id)

        if wallet is None:
            wallet_view = {
                "user_id": user_id,
                "balance": ZERO,
                "total_credits_earned": ZERO,
                "total_spent": ZERO,
                "is_active": True,
                "created_at": None,
            }
        else:
            wallet_view = {
                "user_id": wallet.user_id,
                "balance": wallet.balance,
                "total_credits_earned": wallet.total_credits_earned,
                "total_spent": wallet.total_spent,
                "is_active": wallet.is_active,
                "created_at": wallet.created_at,
            }

        completed = WalletTransaction.status == TransactionStatus.COMPLETED.value
        summary_row = (await db.execute(
            select(
                func.count(WalletTransaction.id),
                func.sum(case((completed, 1), else_=0)),
                func.sum(case(
                    (completed & (WalletTransaction.transaction_type == TransactionType.NGO_DONATION_CREDIT.value),
                     WalletTransaction.amount),
                    else_=0,
                )),
                func.sum(case((completed & (WalletTransaction.amount > 0), WalletTransaction.amount), else_=0)),
                func.sum(case((completed & (WalletTransaction.amount < 0), -WalletTransaction.amount), else_=0)),
            ).where(WalletTransaction.user_id == user_id)
        )).one()

        total = summary_row[0] or 0

        history = await db.execute(
            select(WalletTransaction)
            .where(WalletTransaction.user_id == user_id)
            .order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc())
            .limit(limit)
            .offset(offset)
        )
        transactions = [
            {
                "transaction_id": tx.transaction_id,
                "type": tx.transaction_type,
                "amount": tx.amount,
                "status": tx.status,
                "description": tx.description,
                "details": tx.details,
                "order_id": tx.order_id,
                "return_id": tx.return_id,
                "ngo_id": tx.ngo_id,
                "created_at": tx.created_at,
                "completed_at": tx.completed_at,
            }
            for tx in history.scalars().all()
        ]

        return {
            "wallet": wallet_view,
            "transactions": transactions,
            "summary": {
                "total_transactions": total,
                "completed_transactions": int(summary_row[1] or 0),
                "total_ngo_credits": _dec(summary_row[2]),
                "total_credits": _dec(summary_row[3]),
                "total_debits": _dec(summary_row[4]),
            },
            "pagination": {
                "limit": limit,
                "offset": offset,
                "total": total,
                "has_more": offset + len(transactions) < total,
            },
        }

    @staticmethod
    async def get_transaction(db: AsyncSession, transaction_id: str) -> WalletTransaction:
        """
        按交易号查询

        Raises:
            NotFoundError: 交易不存在
        """
        result = await db.execute(
            select(WalletTransaction).where(WalletTransaction.transaction_id == transaction_id)
        )
        transaction = result.scalar_one_or_none()
        if transaction is None:
            raise NotFoundError(code="TRANSACTION_NOT_FOUND", resource=f"Transaction {transaction_id}")
        return transaction

    @staticmethod
    async def get_ngo_credit_stats(
        db: AsyncSession,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        NGO 捐赠额度统计

        Args:
            db: 数据库会话
            start: 开始时间（与 end 同时提供才生效）
            end: 结束时间

        Returns:
            统计字典
        """
        tx = WalletTransaction
        stmt = select(
            func.count(tx.id),
            func.count(func.distinct(tx.user_id)),
            func.count(func.distinct(tx.ngo_id)),
            func.sum(tx.amount),
            func.min(tx.amount),
            func.max(tx.amount),
            func.sum(case((tx.status == TransactionStatus.COMPLETED.value, 1), else_=0)),
            func.sum(case((tx.status == TransactionStatus.PENDING.value, 1), else_=0)),
            func.sum(case((tx.status == TransactionStatus.FAILED.value, 1), else_=0)),
        ).where(tx.transaction_type == TransactionType.NGO_DONATION_CREDIT.value)

        if start and end:
            stmt = stmt.where(tx.created_at.between(start, end))

        row = (await db.execute(stmt)).one()
        total_transactions = row[0] or 0
        total_credits = _dec(row[3])

        return {
            "total_transactions": total_transactions,
            "unique_users": row[1] or 0,
            "unique_ngos": row[2] or 0,
            "total_credits_issued": total_credits,
            "average_credit_amount": round_money(total_credits / total_transactions) if total_transactions else ZERO,
            "min_credit": _dec(row[4]),
            "max_credit": _dec(row[5]),
            "completed_transactions": int(row[6] or 0),
            "pending_transactions": int(row[7] or 0),
            "failed_transactions": int(row[8] or 0),
        }
