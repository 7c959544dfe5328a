"""
ReturnCredit API 路由模块
"""

from fastapi import APIRouter

from .admin_credit import router as admin_credit_router
from .analytics import router as analytics_router
from .credit import router as credit_router
from .decision import router as decision_router
from .wallet import router as wallet_router

# 创建主路由器
api_router = APIRouter()

api_router.include_router(decision_router)
api_router.include_router(credit_router)
api_router.include_router(wallet_router)
api_router.include_router(analytics_router)
api_router.include_router(admin_credit_router)
