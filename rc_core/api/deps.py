"""
API 依赖注入

协作服务（订单、NGO 目录）按配置创建；测试中通过 dependency_overrides 替换
"""
from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rc_core.clients import (
    HttpNGODirectory,
    HttpOrderGateway,
    InMemoryNGODirectory,
    NGODirectory,
    OrderGateway,
)
from rc_core.config import Settings, get_settings
from rc_core.database import DatabaseManager, get_db_manager
from rc_core.services import (
    CreditConfigManager,
    DonationCreditService,
    ReturnDecisionService,
    get_config_manager,
)
from rc_core.utils.errors import ServiceUnavailableError
from rc_core.utils.logger import get_logger

logger = get_logger(__name__)


def get_database_manager() -> DatabaseManager:
    """依赖注入：数据库管理器"""
    return get_db_manager()


async def get_db_session(
    db_manager: DatabaseManager = Depends(get_database_manager),
) -> AsyncGenerator[AsyncSession, None]:
    """依赖注入：只读数据库会话"""
    async with db_manager.get_session() as session:
        yield session


async def get_db_write_session(
    db_manager: DatabaseManager = Depends(get_database_manager),
) -> AsyncGenerator[AsyncSession, None]:
    """依赖注入：写数据库会话（由接口自行 commit）"""
    async with db_manager.get_session(write=True) as session:
        yield session


def get_credit_config_manager() -> CreditConfigManager:
    """依赖注入：额度配置管理器"""
    return get_config_manager()


async def get_order_gateway(
    settings: Settings = Depends(get_settings),
) -> AsyncGenerator[OrderGateway, None]:
    """
    依赖注入：订单服务客户端

    Raises:
        ServiceUnavailableError: 未配置订单服务地址
    """
    if not settings.order_service_url:
        raise ServiceUnavailableError(
            code="ORDER_SERVICE_NOT_CONFIGURED",
            detail="Order service url is not configured"
        )

    async with HttpOrderGateway(
        settings.order_service_url, timeout=settings.collaborator_timeout_seconds
    ) as gateway:
        yield gateway


async def get_ngo_directory(
    settings: Settings = Depends(get_settings),
) -> AsyncGenerator[NGODirectory, None]:
    """依赖注入：NGO 目录（未配置时为空目录，捐赠路径无可用 NGO）"""
    if not settings.ngo_service_url:
        logger.debug("NGO service url not configured, using empty directory")
        yield InMemoryNGODirectory()
        return

    directory = HttpNGODirectory(settings.ngo_service_url, timeout=settings.collaborator_timeout_seconds)
    try:
        yield directory
    finally:
        await directory.close()


def get_donation_service(
    db_manager: DatabaseManager = Depends(get_database_manager),
    config_manager: CreditConfigManager = Depends(get_credit_config_manager),
) -> DonationCreditService:
    """依赖注入：捐赠额度服务"""
    return DonationCreditService(db_manager=db_manager, config_manager=config_manager)


def get_decision_service(
    order_gateway: OrderGateway = Depends(get_order_gateway),
    ngo_directory: NGODirectory = Depends(get_ngo_directory),
    db_manager: DatabaseManager = Depends(get_database_manager),
    config_manager: CreditConfigManager = Depends(get_credit_config_manager),
    settings: Settings = Depends(get_settings),
) -> ReturnDecisionService:
    """依赖注入：退货决策服务"""
    return ReturnDecisionService(
        order_gateway,
        ngo_directory,
        db_manager=db_manager,
        config_manager=config_manager,
        settings=settings,
    )
