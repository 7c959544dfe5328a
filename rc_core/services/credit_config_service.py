"""
额度计算配置管理

配置保存在 credit_settings 表，与默认值合并后生成不可变快照；
快照按进程缓存，任何更新都会使缓存失效
"""
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rc_core.calc.models.credit import (
    CostFactors,
    CostSharingSettings,
    CreditConfigSnapshot,
    CreditSettings,
)
from rc_core.database import dialect_insert
from rc_core.models.base import utcnow
from rc_core.models.credit_setting import CreditSetting
from rc_core.utils.errors import ConfigurationError
from rc_core.utils.logger import get_logger
from rc_core.utils.money import HUNDRED

logger = get_logger(__name__)

# 配置键 -> 快照字段
COST_FACTORS_KEY = "cost_factors"
CREDIT_SETTINGS_KEY = "credit_settings"
COST_SHARING_KEY = "cost_sharing"

SETTING_FIELDS = {
    COST_FACTORS_KEY: "cost_factors",
    CREDIT_SETTINGS_KEY: "credit",
    COST_SHARING_KEY: "cost_sharing",
}


def deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """递归合并字典，overrides 优先"""
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class CreditConfigManager:
    """额度配置管理器（进程内缓存）"""

    def __init__(self):
        self._snapshot: Optional[CreditConfigSnapshot] = None

    def invalidate(self) -> None:
        """使缓存失效，下次读取时从数据库重新加载"""
        self._snapshot = None

    async def get_snapshot(self, db: AsyncSession) -> CreditConfigSnapshot:
        """
        获取当前配置快照

        Args:
            db: 数据库会话

        Returns:
            CreditConfigSnapshot
        """
        if self._snapshot is None:
            self._snapshot = await self._load(db)
        return self._snapshot

    async def _load(self, db: AsyncSession) -> CreditConfigSnapshot:
        """从数据库加载配置并与默认值合并"""
        result = await db.execute(select(CreditSetting))
        stored = {row.setting_key: row.setting_value for row in result.scalars().all()}

        merged = CreditConfigSnapshot().model_dump(mode="json")
        for setting_key, field_name in SETTING_FIELDS.items():
            if stored.get(setting_key):
                merged[field_name] = deep_merge(merged[field_name], stored[setting_key])

        try:
            snapshot = CreditConfigSnapshot.model_validate(merged)
        except PydanticValidationError:
            # 存储的配置无法通过校验时使用默认值
            logger.error("Stored credit configuration is invalid, using defaults", exc_info=True)
            snapshot = CreditConfigSnapshot()

        logger.debug("Credit configuration loaded", keys=sorted(stored))
        return snapshot

    async def get_admin_config(self, db: AsyncSession) -> Dict[str, Any]:
        """管理后台展示的完整配置（含最后修改信息）"""
        snapshot = await self.get_snapshot(db)

        result = await db.execute(select(CreditSetting))
        audit = {
            row.setting_key: {"updated_by": row.updated_by, "updated_at": row.updated_at}
            for row in result.scalars().all()
        }

        return {
            COST_FACTORS_KEY: snapshot.cost_factors.model_dump(mode="json"),
            CREDIT_SETTINGS_KEY: snapshot.credit.model_dump(mode="json"),
            COST_SHARING_KEY: snapshot.cost_sharing.model_dump(mode="json"),
            "last_updated": audit,
        }

    async def update_cost_factors(
        self,
        db: AsyncSession,
        changes: Dict[str, Any],
        updated_by: Optional[str] = None,
    ) -> CostFactors:
        """
        更新成本因子（支持按类目局部更新）

        Raises:
            ConfigurationError: 因子为负或结构无效
        """
        current = await self.get_snapshot(db)
        merged = deep_merge(current.cost_factors.model_dump(mode="json"), changes)
        cost_factors = self._validate(CostFactors, merged)

        await self._save(db, COST_FACTORS_KEY, cost_factors.model_dump(mode="json"), updated_by)
        return cost_factors

    async def update_credit_settings(
        self,
        db: AsyncSession,
        changes: Dict[str, Any],
        updated_by: Optional[str] = None,
    ) -> CreditSettings:
        """
        更新额度规则

        Raises:
            ConfigurationError: 数值为负、比例超出 0-100，或最低额度大于最高额度
        """
        current = await self.get_snapshot(db)
        merged = deep_merge(current.credit.model_dump(mode="json"), changes)
        credit_settings = self._validate(CreditSettings, merged)

        if credit_settings.min_credit_amount > credit_settings.max_credit_amount:
            raise ConfigurationError(
                detail=(
                    f"min_credit_amount {credit_settings.min_credit_amount} "
                    f"exceeds max_credit_amount {credit_settings.max_credit_amount}"
                )
            )

        await self._save(db, CREDIT_SETTINGS_KEY, credit_settings.model_dump(mode="json"), updated_by)
        return credit_settings

    async def update_cost_sharing(
        self,
        db: AsyncSession,
        seller_percentage: Any,
        platform_percentage: Any,
        updated_by: Optional[str] = None,
    ) -> CostSharingSettings:
        """
        更新卖家/平台分摊比例

        Raises:
            ConfigurationError: 比例为负或两者之和不等于 100
        """
        cost_sharing = self._validate(
            CostSharingSettings,
            {"seller_percentage": seller_percentage, "platform_percentage": platform_percentage},
        )

        total = cost_sharing.seller_percentage + cost_sharing.platform_percentage
        if total != HUNDRED:
            raise ConfigurationError(detail=f"Cost sharing percentages must sum to 100, got {total}")

        await self._save(db, COST_SHARING_KEY, cost_sharing.model_dump(mode="json"), updated_by)
        return cost_sharing

    @staticmethod
    def _validate(model_class, data: Dict[str, Any]):
        """校验配置，失败时转换为 ConfigurationError"""
        try:
            return model_class.model_validate(data)
        except PydanticValidationError as e:
            errors = "; ".join(
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ConfigurationError(detail=errors)

    async def _save(
        self,
        db: AsyncSession,
        setting_key: str,
        value: Dict[str, Any],
        updated_by: Optional[str],
    ) -> None:
        """写入配置并使缓存失效"""
        now = utcnow()
        stmt = dialect_insert(db, CreditSetting).values(
            setting_key=setting_key,
            setting_value=value,
            updated_by=updated_by,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["setting_key"],
            set_={
                "setting_value": stmt.excluded.setting_value,
                "updated_by": stmt.excluded.updated_by,
                "updated_at": now,
            },
        )
        await db.execute(stmt)
        self.invalidate()

        logger.info("Credit configuration updated", setting_key=setting_key, updated_by=updated_by)


# 全局配置管理器实例
_config_manager: Optional[CreditConfigManager] = None


def get_config_manager() -> CreditConfigManager:
    """获取配置管理器单例"""
    global _config_manager
    if _config_manager is None:
        _config_manager = CreditConfigManager()
    return _config_manager
