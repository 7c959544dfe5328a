"""
订单服务客户端 - 查询退货商品快照
"""

from typing import Dict, Optional, Protocol, Tuple

import httpx

from rc_core.calc.models.decision import ReturnItem
from rc_core.utils.errors import NotFoundError, ServiceUnavailableError
from rc_core.utils.external_api_timing import timed_external_api
from rc_core.utils.logger import get_logger

logger = get_logger(__name__)


class OrderGateway(Protocol):
    """订单服务接口"""

    async def get_order_item(self, order_id: str, item_id: str) -> ReturnItem:
        """
        获取订单行快照

        Raises:
            NotFoundError: 订单或订单行不存在
        """
        ...


class HttpOrderGateway:
    """基于 HTTP 的订单服务客户端"""

    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        """
        初始化订单服务客户端

        Args:
            base_url: 订单服务地址
            timeout: 请求超时（秒）
            client: 外部传入的 httpx 客户端（测试用）
        """
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """关闭客户端连接"""
        await self.client.aclose()

    async def get_order_item(self, order_id: str, item_id: str) -> ReturnItem:
        endpoint = f"/orders/{order_id}/items/{item_id}"

        try:
            async with timed_external_api("ORDER", "GET", endpoint):
                response = await self.client.get(endpoint)
                if response.status_code == 404:
                    raise NotFoundError(code="ORDER_ITEM_NOT_FOUND", resource=f"Order item {order_id}/{item_id}")
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error("Order service request failed", endpoint=endpoint, err=str(e))
            raise ServiceUnavailableError(
                code="ORDER_SERVICE_UNAVAILABLE",
                detail="Order service request failed"
            )

        data.update(order_id=order_id, order_item_id=item_id)
        return ReturnItem(**data)


class InMemoryOrderGateway:
    """内存订单服务（本地开发和测试）"""

    def __init__(self, items: Optional[Dict[Tuple[str, str], ReturnItem]] = None):
        self._items: Dict[Tuple[str, str], ReturnItem] = dict(items or {})

    def add(self, item: ReturnItem) -> None:
        self._items[(item.order_id, item.order_item_id)] = item

    async def get_order_item(self, order_id: str, item_id: str) -> ReturnItem:
        item = self._items.get((order_id, item_id))
        if item is None:
            raise NotFoundError(code="ORDER_ITEM_NOT_FOUND", resource=f"Order item {order_id}/{item_id}")
        return item
