"""
ReturnCredit 数据库连接和会话管理
"""
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    async_sessionmaker,
    AsyncSession,
    AsyncEngine
)

from rc_core.config import Settings, get_settings
from rc_core.utils.logger import get_logger
from rc_core.models.base import Base

logger = get_logger(__name__)

# 慢查询阈值（毫秒）
SLOW_QUERY_THRESHOLD_MS = 100

_slow_query_logger = logging.getLogger("slow_query")


def _setup_slow_query_logging(engine):
    """为同步引擎设置慢查询监控"""
    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        start_times = conn.info.get("query_start_time", [])
        if start_times:
            duration_ms = (time.perf_counter() - start_times.pop()) * 1000
            if duration_ms >= SLOW_QUERY_THRESHOLD_MS:
                # 截断过长的 SQL 语句
                sql = statement[:2000] + "..." if len(statement) > 2000 else statement
                sql = sql.replace("\n", " ").replace("  ", " ")
                _slow_query_logger.info(
                    f"duration={duration_ms:.1f}ms | sql={sql} | params={str(parameters)[:500]}"
                )


# 写事务的连接执行选项，SQLite 据此发出 BEGIN IMMEDIATE
WRITE_TRANSACTION_OPTIONS = {"sqlite_immediate": True}


def _setup_sqlite_transactions(engine):
    """SQLite 事务控制

    - WAL 模式下读不阻塞写
    - 只读会话使用普通 BEGIN，只在首次写入时获取写锁
    - get_transaction 使用 BEGIN IMMEDIATE，同一钱包/月度汇总行上的写事务按顺序执行
    """
    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        # 关闭驱动自带的 BEGIN，由下面的 begin 事件发出
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        if conn.get_execution_options().get("sqlite_immediate"):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


def dialect_insert(session: AsyncSession, model):
    """按方言选择支持 ON CONFLICT 的 insert 构造"""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)


class DatabaseManager:
    """数据库管理器"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._async_engine: Optional[AsyncEngine] = None
        self._async_session_factory: Optional[async_sessionmaker] = None

    def create_async_engine(self) -> AsyncEngine:
        """创建异步数据库引擎"""
        if self._async_engine is None:
            if self.settings.is_sqlite:
                self._async_engine = create_async_engine(
                    self.settings.database_url,
                    connect_args={"timeout": self.settings.db_busy_timeout_seconds},
                    echo=self.settings.api_debug,
                )
                _setup_sqlite_transactions(self._async_engine.sync_engine)
            else:
                self._async_engine = create_async_engine(
                    self.settings.database_url,
                    # 连接池配置
                    pool_size=self.settings.db_pool_size,
                    max_overflow=self.settings.db_max_overflow,
                    pool_pre_ping=True,  # 连接前检查有效性
                    pool_recycle=3600,   # 1小时回收连接
                    echo=self.settings.api_debug,
                )
            _setup_slow_query_logging(self._async_engine.sync_engine)
            logger.info("Created async database engine", dialect=self._async_engine.dialect.name)

        return self._async_engine

    def get_async_session_factory(self) -> async_sessionmaker:
        """获取异步会话工厂"""
        if self._async_session_factory is None:
            engine = self.create_async_engine()
            self._async_session_factory = async_sessionmaker(
                engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,  # 手动控制刷新时机
            )

        return self._async_session_factory

    @asynccontextmanager
    async def get_session(self, write: bool = False) -> AsyncGenerator[AsyncSession, None]:
        """获取数据库会话上下文管理器

        Args:
            write: 会话将写入数据（由调用方 commit），SQLite 上提前获取写锁
        """
        session_factory = self.get_async_session_factory()
        async with session_factory() as session:
            try:
                if write:
                    await session.connection(execution_options=WRITE_TRANSACTION_OPTIONS)
                yield session
            except Exception:
                await session.rollback()
                raise

    @asynccontextmanager
    async def get_transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """获取事务上下文管理器

        正常退出时提交，异常时整体回滚
        """
        session_factory = self.get_async_session_factory()
        async with session_factory() as session:
            async with session.begin():
                await session.connection(execution_options=WRITE_TRANSACTION_OPTIONS)
                yield session

    async def create_tables(self) -> None:
        """创建所有表（仅用于测试/本地开发）"""
        # 确保所有模型已注册到 metadata
        import rc_core.models  # noqa: F401

        engine = self.create_async_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Created all database tables")

    async def drop_tables(self) -> None:
        """删除所有表（仅用于测试）"""
        engine = self.create_async_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.info("Dropped all database tables")

    async def check_connection(self) -> bool:
        """检查数据库连接"""
        try:
            engine = self.create_async_engine()
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            logger.info("Database connection check passed")
            return True
        except Exception:
            logger.error("Database connection check failed", exc_info=True)
            return False

    async def close(self) -> None:
        """关闭数据库连接"""
        if self._async_engine:
            await self._async_engine.dispose()
            self._async_engine = None
            self._async_session_factory = None
            logger.info("Closed async database engine")


# 全局数据库管理器实例
_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """获取数据库管理器单例"""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager
