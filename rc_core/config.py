"""
ReturnCredit Configuration Management
遵循约束：环境变量前缀 RC__
"""
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """全局配置类"""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="RC__",
        case_sensitive=False
    )

    # Database
    db_host: str = Field(default="localhost")
    db_port: int = Field(default=5432)
    db_name: str = Field(default="returncredit")
    db_user: str = Field(default="returncredit")
    db_password: str = Field(default="")
    db_pool_size: int = Field(default=20)
    db_max_overflow: int = Field(default=40)
    # 完整连接串（优先于上面的分项配置，本地开发可用 sqlite+aiosqlite）
    db_url: Optional[str] = Field(default=None)
    db_busy_timeout_seconds: int = Field(default=30)

    # API Settings
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_prefix: str = Field(default="/api/rc/v1")
    api_title: str = Field(default="ReturnCredit API")
    api_version: str = Field(default="1.0.0")
    api_debug: bool = Field(default=False)
    cors_origins: list[str] = Field(default=["http://localhost:3000"])

    # Monitoring
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text

    # 外部协作服务
    order_service_url: Optional[str] = Field(default=None)
    ngo_service_url: Optional[str] = Field(default=None)
    collaborator_timeout_seconds: float = Field(default=5.0)
    ngo_lookup_timeout_seconds: float = Field(default=3.0)

    # 退货决策
    return_window_days: int = Field(default=30)
    ngo_search_radius_km: float = Field(default=15.0)
    default_latitude: float = Field(default=12.9716)  # Bangalore
    default_longitude: float = Field(default=77.5946)

    # 钱包
    max_single_credit: Decimal = Field(default=Decimal("5000"))
    wallet_history_limit: int = Field(default=50)

    # 对账任务
    reconcile_enabled: bool = Field(default=True)
    reconcile_interval_seconds: int = Field(default=300)
    pending_timeout_minutes: int = Field(default=15)

    @field_validator("api_prefix")
    @classmethod
    def validate_api_prefix(cls, v):
        """确保 API 前缀符合规范"""
        if not v.startswith("/api/rc/"):
            raise ValueError("API prefix must start with /api/rc/")
        return v

    @property
    def database_url(self) -> str:
        """构建数据库连接字符串"""
        if self.db_url:
            return self.db_url
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def sync_database_url(self) -> str:
        """构建同步数据库连接字符串（用于 Alembic）"""
        if self.db_url:
            return self.db_url.replace("+asyncpg", "").replace("+aiosqlite", "")
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """获取配置单例"""
    return Settings()
