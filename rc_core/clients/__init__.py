"""
外部协作服务客户端
"""

from .ngo_directory import HttpNGODirectory, InMemoryNGODirectory, NGODirectory, NGORecord
from .order_gateway import HttpOrderGateway, InMemoryOrderGateway, OrderGateway

__all__ = [
    "NGODirectory",
    "HttpNGODirectory",
    "InMemoryNGODirectory",
    "NGORecord",
    "OrderGateway",
    "HttpOrderGateway",
    "InMemoryOrderGateway",
]
