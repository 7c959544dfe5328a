"""
额度配置管理测试
"""
from decimal import Decimal

import pytest

from rc_core.models.credit_setting import CreditSetting
from rc_core.services.credit_config_service import COST_SHARING_KEY, deep_merge
from rc_core.utils.errors import ConfigurationError


class TestDeepMerge:

    def test_nested_override(self):
        base = {"a": {"x": 1, "y": 2}, "b": 3}
        assert deep_merge(base, {"a": {"y": 20}}) == {"a": {"x": 1, "y": 20}, "b": 3}
        assert base["a"]["y"] == 2


class TestCreditConfigManager:

    async def test_defaults_without_stored_config(self, config_manager, db_session):
        snapshot = await config_manager.get_snapshot(db_session)

        assert snapshot.credit.buyer_credit_percentage == Decimal("60")
        assert snapshot.cost_sharing.seller_percentage == Decimal("65")

    async def test_update_cost_sharing(self, config_manager, db_manager):
        async with db_manager.get_transaction() as session:
            await config_manager.update_cost_sharing(session, Decimal("70"), Decimal("30"), updated_by="admin")

        async with db_manager.get_session() as session:
            snapshot = await config_manager.get_snapshot(session)
            admin_config = await config_manager.get_admin_config(session)

        assert snapshot.cost_sharing.seller_percentage == Decimal("70")
        assert admin_config["last_updated"][COST_SHARING_KEY]["updated_by"] == "admin"

    async def test_cost_sharing_must_sum_to_100(self, config_manager, db_manager):
        async with db_manager.get_transaction() as session:
            with pytest.raises(ConfigurationError) as exc_info:
                await config_manager.update_cost_sharing(session, Decimal("70"), Decimal("40"))
        assert exc_info.value.code == "INVALID_CONFIGURATION"

        async with db_manager.get_session() as session:
            snapshot = await config_manager.get_snapshot(session)
        assert snapshot.cost_sharing.seller_percentage == Decimal("65")

    async def test_negative_factor_rejected(self, config_manager, db_manager):
        async with db_manager.get_transaction() as session:
            with pytest.raises(ConfigurationError):
                await config_manager.update_cost_factors(session, {"product_write_off": {"fashion": "-1"}})

    async def test_partial_cost_factor_update(self, config_manager, db_manager):
        async with db_manager.get_transaction() as session:
            factors = await config_manager.update_cost_factors(
                session, {"reverse_logistics": {"fashion": {"base_percentage": "10"}}}
            )

        fashion = factors.reverse_logistics["fashion"]
        assert fashion.base_percentage == Decimal("10")
        assert fashion.distance_multiplier == Decimal("0.5")
        assert factors.product_write_off["electronics"] == Decimal("25")

    async def test_min_credit_above_max_rejected(self, config_manager, db_manager):
        async with db_manager.get_transaction() as session:
            with pytest.raises(ConfigurationError):
                await config_manager.update_credit_settings(
                    session, {"min_credit_amount": "500", "max_credit_amount": "100"}
                )

    async def test_invalid_stored_config_falls_back_to_defaults(self, config_manager, db_manager):
        async with db_manager.get_transaction() as session:
            session.add(CreditSetting(setting_key="credit_settings", setting_value={"buyer_credit_percentage": "250"}))

        async with db_manager.get_session() as session:
            snapshot = await config_manager.get_snapshot(session)

        assert snapshot.credit.buyer_credit_percentage == Decimal("60")
