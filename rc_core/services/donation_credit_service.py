"""
NGO 捐赠额度发放服务

一次捐赠在单个事务中完成：计算额度、入账、记录成本分摊、累加月度汇总、完成决策；
任一步失败整体回滚
"""
import hashlib
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from rc_core.calc.models.credit import CreditCalculation, OrderDetails, ProductInfo
from rc_core.calc.services.credit_calculator import CreditCalculator
from rc_core.database import DatabaseManager
from rc_core.models.base import utcnow
from rc_core.models.wallet import TransactionType
from rc_core.services.base import BaseService
from rc_core.services.cost_sharing_service import CostSharingService
from rc_core.services.credit_config_service import CreditConfigManager, get_config_manager
from rc_core.services.financial_summary_service import FinancialSummaryService, month_key_for
from rc_core.services.return_decision_service import ReturnDecisionService
from rc_core.services.wallet_service import LedgerEntry, WalletService
from rc_core.utils.errors import ConflictError
from rc_core.utils.money import round_money

NGO_DONATION_REASON = "ngo_donation"


def derive_transaction_id(user_id: str, order_id: str, return_id: Optional[str], product_id: Optional[str]) -> str:
    """
    由业务字段确定性地生成交易号

    同一用户、订单、退货单（或商品）总是得到同一个交易号
    """
    source = f"{user_id}:{order_id}:{return_id or product_id or ''}"
    return "NGO_" + hashlib.sha1(source.encode("utf-8")).hexdigest()


class DonationCreditService(BaseService):
    """捐赠额度发放服务"""

    def __init__(
        self,
        db_manager: Optional[DatabaseManager] = None,
        config_manager: Optional[CreditConfigManager] = None,
    ):
        super().__init__(db_manager)
        self.config_manager = config_manager or get_config_manager()

    async def calculate_credit(
        self,
        product: ProductInfo,
        order_details: OrderDetails,
        return_reason: str = NGO_DONATION_REASON,
    ) -> CreditCalculation:
        """额度预览（只读，无副作用）"""
        async def _operation(session: AsyncSession) -> CreditCalculation:
            config = await self.config_manager.get_snapshot(session)
            return CreditCalculator(config).calculate_instant_credit(
                product, order_details, return_reason, calculated_at=utcnow()
            )

        return await self.execute_with_session(_operation)

    async def process_donation_credit(
        self,
        user_id: str,
        order_id: str,
        seller_id: str,
        product: ProductInfo,
        order_details: OrderDetails,
        ngo_id: Optional[str] = None,
        return_id: Optional[str] = None,
        decision_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        处理 NGO 捐赠额度（端到端）

        流程：
        1. 读取配置快照
        2. 计算额度（失败时不产生任何写入）
        3. 校验关联的决策
        4. 入账（幂等）
        5. 记录成本分摊
        6. 累加月度汇总
        7. 完成决策

        Args:
            user_id: 买家用户ID
            order_id: 订单号
            seller_id: 卖家ID
            product: 商品信息
            order_details: 订单信息
            ngo_id: 接收捐赠的 NGO
            return_id: 退货单号
            decision_id: 关联的退货决策
            idempotency_key: 幂等键，缺省由业务字段派生
            now: 处理时间（决定月度汇总归属）

        Returns:
            处理结果字典

        Raises:
            ValidationError: 输入无效
            NotFoundError: 决策不存在
            ConflictError: 交易号冲突或决策已完成
            PersistenceError: 存储失败，已整体回滚
        """
        self.validate_required_fields(
            {"user_id": user_id, "order_id": order_id, "seller_id": seller_id},
            ["user_id", "order_id", "seller_id"],
        )
        transaction_id = idempotency_key or derive_transaction_id(
            user_id, order_id, return_id, product.product_id
        )

        async def _operation(session: AsyncSession) -> Dict[str, Any]:
            processed_at = now or utcnow()

            replayed = await self._find_replay(session, transaction_id, user_id, order_id)
            if replayed is not None:
                return replayed

            config = await self.config_manager.get_snapshot(session)
            calculation = CreditCalculator(config).calculate_instant_credit(
                product, order_details, NGO_DONATION_REASON, calculated_at=processed_at
            )

            if decision_id:
                await ReturnDecisionService.ensure_donation_open(session, decision_id, user_id, order_id)

            entry = await WalletService.issue_credit(
                session,
                user_id=user_id,
                amount=calculation.buyer_credit,
                transaction_id=transaction_id,
                transaction_type=TransactionType.NGO_DONATION_CREDIT,
                description=f"NGO donation credit for order {order_id}",
                details={
                    "seller_id": seller_id,
                    "product_id": product.product_id,
                    "product_name": product.name,
                    "category": product.category,
                    "decision_id": decision_id,
                },
                order_id=order_id,
                return_id=return_id,
                ngo_id=ngo_id,
                reference_id=decision_id,
            )

            if entry.replayed:
                # 并发的同一请求已先提交：按其分摊记录返回首次结果
                replayed = await self._find_replay(session, transaction_id, user_id, order_id)
                if replayed is not None:
                    return replayed
                # 交易已完成但没有分摊记录，说明交易号被其他业务占用
                raise ConflictError(
                    code="TRANSACTION_ID_CONFLICT",
                    detail=f"Transaction id {transaction_id} already used for a different event"
                )

            record = await CostSharingService.record_cost_sharing(
                session,
                entry.transaction,
                calculation,
                order_id=order_id,
                seller_id=seller_id,
                ngo_id=ngo_id,
                return_id=return_id,
                product_id=product.product_id,
                processed_at=processed_at,
            )
            await FinancialSummaryService.update_monthly_summary(
                session, record, month_key_for(processed_at)
            )

            if decision_id:
                await ReturnDecisionService.complete_with_credit(
                    session, decision_id, transaction_id, calculation, user_id, order_id
                )

            self.logger.info(
                "NGO donation credit processed",
                user_id=user_id,
                order_id=order_id,
                transaction_id=transaction_id,
                credit=str(calculation.buyer_credit),
            )
            return self.build_result(entry, calculation)

        return await self.execute_with_transaction(_operation)

    async def _find_replay(
        self,
        session: AsyncSession,
        transaction_id: str,
        user_id: str,
        order_id: str,
    ) -> Optional[Dict[str, Any]]:
        """
        重复请求：由已保存的分摊记录重建原结果，不再入账或累加汇总

        原结果与当前配置无关，配置变更后重试仍返回首次的额度
        """
        record = await CostSharingService.get_by_transaction_id(session, transaction_id)
        if record is None:
            return None

        if record.user_id != user_id or record.order_id != order_id:
            raise ConflictError(
                code="TRANSACTION_ID_CONFLICT",
                detail=f"Transaction id {transaction_id} already used for a different event"
            )

        transaction = await WalletService.get_transaction(session, transaction_id)
        wallet = await WalletService.get_wallet(session, user_id)
        calculation = CreditCalculation.model_validate(record.calculation_metadata)

        self.logger.info("Donation credit replayed", transaction_id=transaction_id)
        return self.build_result(LedgerEntry(transaction=transaction, wallet=wallet, replayed=True), calculation)

    @staticmethod
    def build_result(entry: LedgerEntry, calculation: CreditCalculation) -> Dict[str, Any]:
        """组装处理结果"""
        avoided_total = calculation.avoided_costs.total
        buyer_credit = calculation.buyer_credit

        return {
            "transaction_id": entry.transaction.transaction_id,
            "replayed": entry.replayed,
            "credit_issued": {
                "amount": round_money(entry.transaction.amount),
                "transaction_id": entry.transaction.transaction_id,
                "wallet_balance": round_money(entry.transaction.balance_after),
            },
            "cost_sharing": {
                "seller_cost": calculation.cost_sharing.seller_amount,
                "platform_cost": calculation.cost_sharing.platform_amount,
                "seller_savings": calculation.seller_benefit.savings,
                "savings_percentage": calculation.seller_benefit.savings_percentage,
            },
            "avoided_costs": calculation.avoided_costs.model_dump(),
            "financial_impact": {
                "buyer_benefit": buyer_credit,
                "seller_net_cost": calculation.cost_sharing.seller_amount,
                "traditional_cost": avoided_total,
                "total_system_savings": avoided_total - buyer_credit,
            },
            "calculation": calculation,
        }
