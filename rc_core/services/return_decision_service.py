"""
退货决策服务 - 评估退货、保存决策、记录用户选择
"""
import secrets
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rc_core.calc.models.credit import CreditCalculation
from rc_core.calc.models.decision import CustomerContext, ReturnItem
from rc_core.calc.models.enums import DecisionStatus, LoyaltyTier, Pathway, UserChoice
from rc_core.calc.services.decision_router import DecisionRouter
from rc_core.clients.ngo_directory import NGODirectory
from rc_core.clients.order_gateway import OrderGateway
from rc_core.config import Settings, get_settings
from rc_core.database import DatabaseManager
from rc_core.models.base import utcnow
from rc_core.models.decision import ReturnDecision
from rc_core.services.base import BaseService
from rc_core.services.credit_config_service import CreditConfigManager, get_config_manager
from rc_core.utils.errors import ConflictError, NotFoundError, ValidationError
from rc_core.utils.money import round_money, to_decimal

# 最终结果
OUTCOME_CREDIT_ISSUED = "CREDIT_ISSUED"
OUTCOME_FLASH_SALE_LISTED = "FLASH_SALE_LISTED"
OUTCOME_RESALE_QUEUED = "RESALE_QUEUED"
OUTCOME_TRADITIONAL_RETURN = "TRADITIONAL_RETURN"

# 每条路径对应的用户选择
PATHWAY_CHOICES = {
    Pathway.DONATION.value: UserChoice.ACCEPT_DONATION,
    Pathway.FLASH_SALE.value: UserChoice.ACCEPT_FLASH_SALE,
    Pathway.RESALE.value: UserChoice.ACCEPT_RESALE,
}


def generate_decision_id() -> str:
    """决策号：DEC_毫秒时间戳_随机串"""
    return f"DEC_{int(time.time() * 1000)}_{secrets.token_hex(4).upper()}"


class ReturnDecisionService(BaseService):
    """退货决策服务"""

    def __init__(
        self,
        order_gateway: OrderGateway,
        ngo_directory: NGODirectory,
        db_manager: Optional[DatabaseManager] = None,
        config_manager: Optional[CreditConfigManager] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(db_manager)
        self.order_gateway = order_gateway
        self.ngo_directory = ngo_directory
        self.config_manager = config_manager or get_config_manager()
        self.settings = settings or get_settings()

    def check_return_window(self, item: ReturnItem, now: datetime) -> None:
        """
        退货期校验（签收后 return_window_days 天内）

        Raises:
            ValidationError: 已超过退货期
        """
        if item.purchase_date is None:
            return

        purchase_date = item.purchase_date
        if purchase_date.tzinfo is None:
            purchase_date = purchase_date.replace(tzinfo=timezone.utc)

        deadline = purchase_date + timedelta(days=self.settings.return_window_days)
        if now > deadline:
            raise ValidationError(
                code="RETURN_WINDOW_EXPIRED",
                detail=f"Return window has expired ({self.settings.return_window_days} days limit)"
            )

    async def evaluate_return(
        self,
        order_id: str,
        item_id: str,
        return_reason: Optional[str] = None,
        condition: Optional[str] = None,
        loyalty_tier: LoyaltyTier = LoyaltyTier.BRONZE,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        评估退货并保存决策

        Args:
            order_id: 订单号
            item_id: 订单行ID
            return_reason: 退货原因
            condition: 买家申报的商品状态，缺省使用订单快照
            loyalty_tier: 会员等级
            latitude: 买家纬度，缺省使用默认位置
            longitude: 买家经度
            now: 当前时间

        Returns:
            {decision_id, item, decision}

        Raises:
            NotFoundError: 订单或订单行不存在
            ValidationError: 已超过退货期
        """
        now = now or utcnow()

        item = await self.order_gateway.get_order_item(order_id, item_id)
        self.check_return_window(item, now)
        if condition:
            item = item.model_copy(update={"condition": condition})

        customer = CustomerContext(
            user_id=item.user_id,
            loyalty_tier=loyalty_tier,
            latitude=latitude if latitude is not None else self.settings.default_latitude,
            longitude=longitude if longitude is not None else self.settings.default_longitude,
        )

        # 先读配置，NGO 查询不占用写事务
        config = await self.execute_with_session(self.config_manager.get_snapshot)
        router = DecisionRouter(
            self.ngo_directory,
            config,
            search_radius_km=self.settings.ngo_search_radius_km,
            ngo_lookup_timeout=self.settings.ngo_lookup_timeout_seconds,
        )
        result = await router.evaluate(item, customer, now=now)

        async def _persist(session: AsyncSession) -> ReturnDecision:
            decision = ReturnDecision(
                decision_id=generate_decision_id(),
                order_id=item.order_id,
                order_item_id=item.order_item_id,
                user_id=item.user_id,
                product_id=item.product_id,
                seller_id=item.seller_id,
                return_reason=return_reason or "Customer initiated return",
                item_condition=item.condition,
                item_value=item.price,
                pathway=result.pathway.value,
                confidence=result.confidence,
                decision_factors=router.describe(result),
                decision_payload=result.model_dump(mode="json"),
                estimated_credit=result.credit_offered,
                estimated_resale_value=result.estimated_resale_value,
                processing_cost_estimate=result.processing_cost,
                flash_sale_price=result.flash_sale_price,
                status=DecisionStatus.EVALUATED.value,
                created_at=now,
            )
            session.add(decision)
            await session.flush()
            return decision

        decision = await self.execute_with_transaction(_persist)

        self.logger.info(
            "Return decision saved",
            decision_id=decision.decision_id,
            order_id=order_id,
            pathway=result.pathway.value,
        )
        return {"decision_id": decision.decision_id, "item": item, "decision": result}

    @staticmethod
    async def get_decision(db: AsyncSession, decision_id: str, for_update: bool = False) -> ReturnDecision:
        """
        查询决策

        Raises:
            NotFoundError: 决策不存在
        """
        stmt = select(ReturnDecision).where(ReturnDecision.decision_id == decision_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        decision = result.scalar_one_or_none()
        if decision is None:
            raise NotFoundError(code="DECISION_NOT_FOUND", resource=f"Decision {decision_id}")
        return decision

    @staticmethod
    async def ensure_open(db: AsyncSession, decision_id: str) -> ReturnDecision:
        """
        确认决策存在且未完成

        Raises:
            NotFoundError: 决策不存在
            ConflictError: 决策已完成
        """
        decision = await ReturnDecisionService.get_decision(db, decision_id, for_update=True)
        if decision.status == DecisionStatus.COMPLETED.value:
            raise ConflictError(
                code="DECISION_ALREADY_COMPLETED",
                detail=f"Decision {decision_id} is already completed with outcome {decision.final_outcome}"
            )
        return decision

    @staticmethod
    async def ensure_donation_open(
        db: AsyncSession,
        decision_id: str,
        user_id: str,
        order_id: str,
    ) -> ReturnDecision:
        """
        确认决策可以用捐赠额度完成

        决策须未完成、推荐路径为捐赠，且属于同一买家和订单

        Raises:
            NotFoundError: 决策不存在
            ConflictError: 决策已完成，或属于其他买家/订单
            ValidationError: 决策推荐的不是捐赠路径
        """
        decision = await ReturnDecisionService.ensure_open(db, decision_id)

        if decision.user_id != user_id or decision.order_id != order_id:
            raise ConflictError(
                code="DECISION_OWNER_MISMATCH",
                detail=f"Decision {decision_id} does not belong to user {user_id} and order {order_id}"
            )
        if decision.pathway != Pathway.DONATION.value:
            raise ValidationError(
                code="DECISION_PATHWAY_MISMATCH",
                detail=f"Decision {decision_id} recommends {decision.pathway}, not donation"
            )
        return decision

    @staticmethod
    async def record_user_choice(db: AsyncSession, decision_id: str, choice: UserChoice) -> ReturnDecision:
        """
        记录用户选择

        选择捐赠时只记录选择，额度发放完成后由捐赠流程完成决策；
        其他选择立即完成决策

        Args:
            db: 数据库会话
            decision_id: 决策号
            choice: 用户选择

        Returns:
            ReturnDecision

        Raises:
            NotFoundError: 决策不存在
            ConflictError: 决策已完成
            ValidationError: 选择不在该决策提供的选项中
        """
        decision = await ReturnDecisionService.ensure_open(db, decision_id)

        offered = {UserChoice.TRADITIONAL_RETURN, PATHWAY_CHOICES.get(decision.pathway)}
        if choice not in offered:
            raise ValidationError(
                code="CHOICE_NOT_OFFERED",
                detail=f"Choice {choice.value} is not offered for pathway {decision.pathway}"
            )

        now = utcnow()
        decision.user_choice = choice.value
        decision.user_choice_at = now

        if choice == UserChoice.ACCEPT_DONATION:
            decision.status = DecisionStatus.CHOICE_RECORDED.value
        elif choice == UserChoice.ACCEPT_FLASH_SALE:
            ReturnDecisionService._complete(
                decision, OUTCOME_FLASH_SALE_LISTED, revenue_impact=decision.flash_sale_price, now=now
            )
        elif choice == UserChoice.ACCEPT_RESALE:
            revenue = None
            if decision.estimated_resale_value is not None:
                revenue = decision.estimated_resale_value - (decision.processing_cost_estimate or Decimal("0"))
            ReturnDecisionService._complete(decision, OUTCOME_RESALE_QUEUED, revenue_impact=revenue, now=now)
        else:
            ReturnDecisionService._complete(decision, OUTCOME_TRADITIONAL_RETURN, now=now)

        await db.flush()
        return decision

    @staticmethod
    async def complete_with_credit(
        db: AsyncSession,
        decision_id: str,
        transaction_id: str,
        calculation: CreditCalculation,
        user_id: str,
        order_id: str,
    ) -> ReturnDecision:
        """捐赠额度发放后完成决策"""
        decision = await ReturnDecisionService.ensure_donation_open(db, decision_id, user_id, order_id)
        now = utcnow()

        if decision.user_choice is None:
            decision.user_choice = UserChoice.ACCEPT_DONATION.value
            decision.user_choice_at = now
        decision.transaction_id = transaction_id
        ReturnDecisionService._complete(
            decision,
            OUTCOME_CREDIT_ISSUED,
            cost_savings=calculation.avoided_costs.total - calculation.buyer_credit,
            now=now,
        )
        await db.flush()
        return decision

    @staticmethod
    def _complete(
        decision: ReturnDecision,
        outcome: str,
        revenue_impact: Optional[Decimal] = None,
        cost_savings: Optional[Decimal] = None,
        now: Optional[datetime] = None,
    ) -> None:
        decision.status = DecisionStatus.COMPLETED.value
        decision.final_outcome = outcome
        decision.revenue_impact = revenue_impact or Decimal("0")
        decision.cost_savings = cost_savings or Decimal("0")
        decision.completed_at = now or utcnow()

    @staticmethod
    async def get_decision_analytics(
        db: AsyncSession,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """
        按路径统计决策

        Args:
            db: 数据库会话
            start: 开始时间
            end: 结束时间

        Returns:
            各路径统计，按决策数降序
        """
        total = func.count(ReturnDecision.id)
        stmt = select(
            ReturnDecision.pathway,
            total,
            func.avg(ReturnDecision.item_value),
            func.avg(ReturnDecision.confidence),
            func.sum(func.coalesce(ReturnDecision.estimated_credit, 0)),
            func.sum(func.coalesce(ReturnDecision.estimated_resale_value, 0)),
            func.sum(func.coalesce(ReturnDecision.revenue_impact, 0)),
            func.sum(func.coalesce(ReturnDecision.cost_savings, 0)),
        ).group_by(ReturnDecision.pathway).order_by(total.desc(), ReturnDecision.pathway)

        if start:
            stmt = stmt.where(ReturnDecision.created_at >= start)
        if end:
            stmt = stmt.where(ReturnDecision.created_at <= end)

        rows = (await db.execute(stmt)).all()
        return [
            {
                "pathway": row[0],
                "total_decisions": row[1],
                "avg_item_value": round_money(to_decimal(row[2], Decimal("0"))),
                "avg_confidence": to_decimal(row[3], Decimal("0")).quantize(Decimal("0.01")),
                "total_estimated_credit": round_money(to_decimal(row[4], Decimal("0"))),
                "total_estimated_resale_value": round_money(to_decimal(row[5], Decimal("0"))),
                "total_revenue_impact": round_money(to_decimal(row[6], Decimal("0"))),
                "total_cost_savings": round_money(to_decimal(row[7], Decimal("0"))),
            }
            for row in rows
        ]

    @staticmethod
    def to_response(decision: ReturnDecision) -> Dict[str, Any]:
        """决策记录转响应字典"""
        data = decision.to_dict()
        data["decision"] = data.pop("decision_payload")
        return data
