"""
Pytest 配置和 fixtures
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from rc_core.calc.models.credit import OrderDetails, ProductInfo
from rc_core.calc.models.decision import ReturnItem
from rc_core.clients import InMemoryNGODirectory, InMemoryOrderGateway, NGORecord
from rc_core.config import Settings
from rc_core.database import DatabaseManager
from rc_core.services import CreditConfigManager

# 默认买家位置（Bangalore）
CUSTOMER_LAT = 12.9716
CUSTOMER_LON = 77.5946

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """临时 SQLite 数据库配置"""
    return Settings(
        db_url=f"sqlite+aiosqlite:///{tmp_path / 'returncredit_test.db'}",
        reconcile_enabled=False,
    )


@pytest_asyncio.fixture
async def db_manager(test_settings) -> AsyncGenerator[DatabaseManager, None]:
    """数据库管理器 fixture"""
    manager = DatabaseManager(test_settings)

    await manager.create_tables()

    yield manager

    await manager.drop_tables()
    await manager.close()


@pytest_asyncio.fixture
async def db_session(db_manager) -> AsyncGenerator[AsyncSession, None]:
    """数据库会话 fixture"""
    async with db_manager.get_session() as session:
        yield session
        await session.rollback()  # 测试后回滚


@pytest.fixture
def config_manager() -> CreditConfigManager:
    """每个测试独立的配置管理器（不共享缓存）"""
    return CreditConfigManager()


@pytest.fixture
def sample_product() -> ProductInfo:
    """示例商品：299 元时装"""
    return ProductInfo(
        product_id="PROD_TSHIRT_001",
        name="Cotton T-Shirt",
        price=Decimal("299"),
        category="Fashion",
        brand="Basics",
    )


@pytest.fixture
def sample_order_details() -> OrderDetails:
    """同城订单（退货距离 50km）"""
    return OrderDetails(
        order_id="ORD_1001",
        delivery_address="12 MG Road, Bangalore, Karnataka",
        seller_location="Warehouse 4, Bengaluru",
    )


@pytest.fixture
def sample_ngos():
    """默认位置附近的 NGO"""
    return [
        NGORecord(
            id="NGO_GOONJ",
            name="Goonj Collection Centre",
            latitude=12.9750,
            longitude=77.6000,
            accepted_categories=["Fashion", "Home & Kitchen"],
            capacity_limit=50,
            current_capacity=10,
        ),
        NGORecord(
            id="NGO_AKSHAYA",
            name="Akshaya Patra Drop Point",
            latitude=13.0100,
            longitude=77.6500,
            accepted_categories=["Fashion"],
            capacity_limit=20,
            current_capacity=5,
        ),
        NGORecord(
            id="NGO_FULL",
            name="Full Capacity Shelter",
            latitude=12.9720,
            longitude=77.5950,
            accepted_categories=["Fashion"],
            capacity_limit=10,
            current_capacity=10,
        ),
        NGORecord(
            id="NGO_MYSORE",
            name="Mysore Relief Trust",
            latitude=12.2958,
            longitude=76.6394,
            accepted_categories=["Fashion"],
        ),
    ]


@pytest.fixture
def ngo_directory(sample_ngos) -> InMemoryNGODirectory:
    return InMemoryNGODirectory(sample_ngos)


def make_return_item(
    item_id: str,
    price: str,
    category: str = "Fashion",
    condition: str = "Good",
    with_locations: bool = True,
    purchase_date: datetime = None,
) -> ReturnItem:
    """构造订单行快照"""
    return ReturnItem(
        order_id="ORD_1001",
        order_item_id=item_id,
        user_id="USER_42",
        product_id=f"PROD_{item_id}",
        name=f"Item {item_id}",
        price=Decimal(price),
        category=category,
        condition=condition,
        purchase_date=purchase_date or NOW - timedelta(days=10),
        seller_id="SELLER_7",
        seller_location="Warehouse 4, Bengaluru" if with_locations else None,
        delivery_address="12 MG Road, Bangalore" if with_locations else None,
    )


@pytest.fixture
def order_gateway() -> InMemoryOrderGateway:
    """内存订单服务：捐赠 / 转售 / 闪购 / 超出退货期 各一行"""
    gateway = InMemoryOrderGateway()
    gateway.add(make_return_item("ITEM_DONATE", "299"))
    gateway.add(make_return_item("ITEM_RESALE", "599", category="Electronics"))
    gateway.add(make_return_item("ITEM_FLASH", "1500", category="Electronics"))
    gateway.add(make_return_item("ITEM_OLD", "299", purchase_date=NOW - timedelta(days=45)))
    return gateway
