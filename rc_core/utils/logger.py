# mypy: disable-error-code="no-untyped-def, assignment, var-annotated"
"""
ReturnCredit 日志系统
- JSON 格式输出
- 必需字段：ts, level, trace_id, action, user_id, latency_ms, result, err
- PII 自动脱敏
"""
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from contextvars import ContextVar

import structlog
from structlog.processors import JSONRenderer, TimeStamper, add_log_level

# Context variables for request tracking
trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)


class PIIMaskingProcessor:
    """PII 数据脱敏处理器"""

    # 脱敏规则
    PATTERNS = {
        # 电话号码：保留国家码和后3位
        "phone": (re.compile(r"(\+\d{1,3}\s?)\d{4,8}(\d{3})"), r"\1****\2"),
        # 邮箱：保留首字母和域名
        "email": (re.compile(r"([a-zA-Z0-9])[a-zA-Z0-9._-]*@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})"), r"\1***@\2"),
        # Token/密钥
        "token": (re.compile(r"(token|key|secret|password)[\"']?\s*[:=]\s*[\"']?([^\"'\s,}]+)"), r"\1=***MASKED***"),
    }

    # 收货地址只保留最后一段（城市/邦）
    ADDRESS_KEYS = {"delivery_address", "address"}
    # 买家坐标保留 2 位小数（约 1km）
    COORDINATE_KEYS = {"latitude", "longitude", "lat", "lon"}

    def __call__(self, logger, method_name, event_dict):
        """处理日志事件，脱敏 PII 数据"""
        return self._mask_dict(event_dict)

    def _mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """递归脱敏字典中的 PII 数据"""
        if not isinstance(data, dict):
            return data

        masked_data = {}
        for key, value in data.items():
            masked_data[key] = self._mask_value(key, value)
        return masked_data

    def _mask_value(self, key: str, value: Any) -> Any:
        if key in self.ADDRESS_KEYS and isinstance(value, str):
            return self._mask_address(value)
        if key in self.COORDINATE_KEYS and isinstance(value, float):
            return round(value, 2)
        if isinstance(value, str):
            return self._mask_string(value)
        if isinstance(value, dict):
            return self._mask_dict(value)
        if isinstance(value, list):
            return [self._mask_value(key, item) for item in value]
        return value

    @staticmethod
    def _mask_address(address: str) -> str:
        parts = [part.strip() for part in address.split(",") if part.strip()]
        if len(parts) <= 1:
            return "[MASKED]"
        return f"[MASKED], {parts[-1]}"

    def _mask_string(self, text: str) -> str:
        """脱敏字符串中的 PII 数据"""
        for pattern, replacement in self.PATTERNS.values():
            text = pattern.sub(replacement, text)
        return text


class ReturnCreditProcessor:
    """添加 ReturnCredit 必需字段"""

    def __call__(self, logger, method_name, event_dict):
        event_dict["ts"] = datetime.now(timezone.utc).isoformat()

        if trace_id := trace_id_var.get():
            event_dict["trace_id"] = trace_id

        if user_id := user_id_var.get():
            event_dict.setdefault("user_id", user_id)

        # 重命名标准字段
        if "event" in event_dict:
            event_dict["action"] = event_dict.pop("event")

        if "exception" in event_dict:
            event_dict["err"] = str(event_dict.pop("exception"))

        return event_dict


def setup_logging(log_level: str = "INFO", log_format: str = "json", enable_pii_masking: bool = True) -> None:
    """配置日志系统

    structlog 和标准 logging 都输出到 stdout
    """
    level = getattr(logging, log_level.upper())

    processors = [
        TimeStamper(fmt="iso"),
        add_log_level,
        structlog.processors.format_exc_info,
        ReturnCreditProcessor(),
    ]

    if enable_pii_masking:
        processors.append(PIIMaskingProcessor())

    if log_format == "json":
        processors.append(JSONRenderer(default=str))
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # 移除已有的 handlers，避免重复
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(level)

    if log_format == "json":
        formatter = logging.Formatter(
            '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}',
            datefmt="%Y-%m-%dT%H:%M:%S"
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    logging.getLogger("rc_core").setLevel(level)

    # 降低第三方库的日志级别，避免噪音
    noisy_loggers = [
        "httpx",
        "httpcore",
        "asyncio",
        "uvicorn.access",
        "sqlalchemy.engine",
        "apscheduler",
    ]
    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """获取日志记录器"""
    return structlog.get_logger(name)


class LogContext:
    """日志上下文管理器，用于设置请求级别的上下文"""

    def __init__(self, trace_id: Optional[str] = None, user_id: Optional[str] = None):
        self.trace_id = trace_id
        self.user_id = user_id
        self._tokens = []

    def __enter__(self):
        if self.trace_id:
            self._tokens.append(trace_id_var.set(self.trace_id))
        if self.user_id:
            self._tokens.append(user_id_var.set(self.user_id))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for token in reversed(self._tokens):
            token.var.reset(token)
