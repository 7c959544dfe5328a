"""
基础服务类
"""
from typing import Any, Dict, List, Optional

from rc_core.database import DatabaseManager, get_db_manager
from rc_core.utils.errors import PersistenceError, ReturnCreditException, ValidationError
from rc_core.utils.logger import get_logger

logger = get_logger(__name__)


class BaseService:
    """基础服务类"""

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db_manager = db_manager or get_db_manager()
        self.logger = get_logger(self.__class__.__name__)

    async def execute_with_transaction(
        self,
        operation,
        *args,
        **kwargs
    ) -> Any:
        """
        在单个事务中执行操作

        operation 内的任何异常都会使整个事务回滚；
        业务异常原样抛出，其余异常转换为 PersistenceError
        """
        try:
            async with self.db_manager.get_transaction() as session:
                return await operation(session, *args, **kwargs)
        except ReturnCreditException:
            raise
        except Exception as e:
            # 原始异常只写日志，不返回给调用方
            self.logger.error("Transaction operation failed, rolled back", error_type=type(e).__name__, exc_info=True)
            raise PersistenceError() from e

    async def execute_with_session(
        self,
        operation,
        *args,
        **kwargs
    ) -> Any:
        """使用数据库会话执行只读操作"""
        try:
            async with self.db_manager.get_session() as session:
                return await operation(session, *args, **kwargs)
        except ReturnCreditException:
            raise
        except Exception as e:
            self.logger.error("Session operation failed", error_type=type(e).__name__, exc_info=True)
            raise PersistenceError(detail="Database operation failed") from e

    def validate_required_fields(self, data: Dict[str, Any], required_fields: List[str]) -> None:
        """验证必填字段"""
        missing_fields = [
            field for field in required_fields
            if field not in data or data[field] is None
        ]

        if missing_fields:
            raise ValidationError(
                code="MISSING_REQUIRED_FIELDS",
                detail=f"Missing required fields: {', '.join(missing_fields)}"
            )
