"""
退货距离估算 - 基于城市对的粗粒度查表
"""

import math
from typing import Optional

# 按顺序匹配，先命中先返回
CITY_KEYWORDS = (
    ("bangalore", ("bangalore", "bengaluru")),
    ("mumbai", ("mumbai",)),
    ("delhi", ("delhi",)),
    ("chennai", ("chennai",)),
    ("pune", ("pune",)),
    ("hyderabad", ("hyderabad",)),
    ("gurgaon", ("gurgaon",)),
)

# 键为按字母排序的城市对
CITY_PAIR_DISTANCES_KM = {
    ("bangalore", "mumbai"): 980,
    ("bangalore", "delhi"): 2150,
    ("delhi", "mumbai"): 1400,
    ("bangalore", "chennai"): 350,
    ("mumbai", "pune"): 150,
    ("delhi", "gurgaon"): 30,
    ("bangalore", "hyderabad"): 570,
}

SAME_CITY_DISTANCE_KM = 50
MISSING_ADDRESS_DISTANCE_KM = 500
UNKNOWN_ROUTE_DISTANCE_KM = 750

EARTH_RADIUS_KM = 6371.0


def extract_city(address: Optional[str]) -> Optional[str]:
    """从地址文本中识别城市，无法识别返回 None"""
    if not address:
        return None

    address_lower = address.lower()
    for city, keywords in CITY_KEYWORDS:
        if any(keyword in address_lower for keyword in keywords):
            return city
    return None


def estimate_distance_km(delivery_address: Optional[str], seller_location: Optional[str]) -> int:
    """
    估算买家到卖家的退货距离

    Args:
        delivery_address: 买家收货地址
        seller_location: 卖家地址

    Returns:
        距离（公里）
    """
    if not delivery_address or not seller_location:
        return MISSING_ADDRESS_DISTANCE_KM

    city1 = extract_city(delivery_address)
    city2 = extract_city(seller_location)

    if city1 is None or city2 is None:
        return UNKNOWN_ROUTE_DISTANCE_KM

    if city1 == city2:
        return SAME_CITY_DISTANCE_KM

    key = tuple(sorted((city1, city2)))
    return CITY_PAIR_DISTANCES_KM.get(key, UNKNOWN_ROUTE_DISTANCE_KM)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """两点间大圆距离（公里）"""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
