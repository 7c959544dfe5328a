"""
外部协作服务调用计时

订单服务、NGO 目录等外部调用的耗时统一记录到 external_api_timing 日志器
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

_external_api_logger = logging.getLogger("external_api_timing")


def log_external_api_timing(
    service: str,
    method: str,
    endpoint: str,
    elapsed_ms: float,
    extra_info: Optional[str] = None
) -> None:
    """
    记录外部调用耗时

    Args:
        service: 服务名称（ORDER, NGO）
        method: HTTP 方法
        endpoint: 调用路径
        elapsed_ms: 耗时（毫秒）
        extra_info: 额外信息（如错误类型）
    """
    msg = f"{service} | {method} {endpoint} | {elapsed_ms:.1f}ms"
    if extra_info:
        msg += f" | {extra_info}"
    _external_api_logger.info(msg)


@asynccontextmanager
async def timed_external_api(service: str, method: str, endpoint: str):
    """
    异步计时上下文

    用法:
        async with timed_external_api("ORDER", "GET", "/orders/1/items/2"):
            response = await client.get(url)
    """
    start = time.perf_counter()
    try:
        yield
    except Exception as e:
        log_external_api_timing(
            service, method, endpoint,
            (time.perf_counter() - start) * 1000,
            f"ERROR={type(e).__name__}"
        )
        raise
    else:
        log_external_api_timing(service, method, endpoint, (time.perf_counter() - start) * 1000)
