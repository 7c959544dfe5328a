"""
NGO 目录客户端 - 查询附近可接收捐赠的 NGO
"""

from typing import List, Optional, Protocol

import httpx
from pydantic import BaseModel, Field

from rc_core.calc.models.decision import NearbyNGO
from rc_core.calc.services.location import haversine_km
from rc_core.utils.errors import ServiceUnavailableError
from rc_core.utils.external_api_timing import timed_external_api
from rc_core.utils.logger import get_logger

logger = get_logger(__name__)

# 单次查询最多返回的 NGO 数
MAX_NEARBY_RESULTS = 10


class NGODirectory(Protocol):
    """NGO 目录接口"""

    async def find_nearby(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
        category: Optional[str] = None,
    ) -> List[NearbyNGO]:
        ...


class HttpNGODirectory:
    """基于 HTTP 的 NGO 目录客户端"""

    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def close(self):
        """关闭客户端连接"""
        await self.client.aclose()

    async def find_nearby(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
        category: Optional[str] = None,
    ) -> List[NearbyNGO]:
        endpoint = "/ngos/nearby"
        params = {"latitude": latitude, "longitude": longitude, "radius_km": radius_km}
        if category:
            params["category"] = category

        try:
            async with timed_external_api("NGO", "GET", endpoint):
                response = await self.client.get(endpoint, params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.warning("NGO directory request failed", endpoint=endpoint, err=str(e))
            raise ServiceUnavailableError(
                code="NGO_DIRECTORY_UNAVAILABLE",
                detail="NGO directory request failed"
            )

        return [NearbyNGO(**ngo) for ngo in data.get("ngos", [])]


class NGORecord(BaseModel):
    """内存目录中的 NGO 记录"""

    id: str
    name: str
    latitude: float
    longitude: float
    accepted_categories: List[str] = Field(default_factory=list)
    capacity_limit: int = 50
    current_capacity: int = 0
    is_active: bool = True
    is_verified: bool = True

    @property
    def capacity_remaining(self) -> int:
        return max(self.capacity_limit - self.current_capacity, 0)


class InMemoryNGODirectory:
    """内存 NGO 目录（本地开发和测试）

    筛选条件：启用、已认证、有剩余容量、接收该类目、在半径内
    按距离升序，距离相同时剩余容量多的在前
    """

    def __init__(self, ngos: Optional[List[NGORecord]] = None):
        self.ngos: List[NGORecord] = list(ngos or [])

    async def find_nearby(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
        category: Optional[str] = None,
    ) -> List[NearbyNGO]:
        candidates = []
        for ngo in self.ngos:
            if not (ngo.is_active and ngo.is_verified) or ngo.capacity_remaining <= 0:
                continue
            if category and category not in ngo.accepted_categories:
                continue

            distance = haversine_km(latitude, longitude, ngo.latitude, ngo.longitude)
            if distance <= radius_km:
                candidates.append((distance, ngo))

        candidates.sort(key=lambda pair: (pair[0], -pair[1].capacity_remaining))

        return [
            NearbyNGO(
                id=ngo.id,
                name=ngo.name,
                distance_km=round(distance, 2),
                capacity_remaining=ngo.capacity_remaining,
                accepted_categories=ngo.accepted_categories,
            )
            for distance, ngo in candidates[:MAX_NEARBY_RESULTS]
        ]
