"""
ReturnCredit FastAPI 主应用
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rc_core.api import api_router
from rc_core.config import get_settings
from rc_core.database import get_db_manager
from rc_core.middleware.logging import LoggingMiddleware
from rc_core.tasks.scheduler import build_scheduler
from rc_core.utils.errors import ReturnCreditException
from rc_core.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    settings = get_settings()
    logger.info("Starting ReturnCredit application", version=settings.api_version)

    db_manager = get_db_manager()
    if not await db_manager.check_connection():
        logger.error("Database connection check failed")
        raise RuntimeError("Database connection failed")

    scheduler = None
    if settings.reconcile_enabled:
        scheduler = build_scheduler(settings, db_manager)
        scheduler.start()

    logger.info("ReturnCredit application started successfully")

    yield  # 应用运行期间

    logger.info("Shutting down ReturnCredit application")
    try:
        if scheduler is not None:
            await scheduler.shutdown()
        await db_manager.close()
        logger.info("ReturnCredit application shutdown complete")
    except Exception:
        logger.error("Error during application shutdown", exc_info=True)


def _error_body(status: int, title: str, detail, code: str, **extra) -> dict:
    error = {
        "type": "about:blank",
        "title": title,
        "status": status,
        "detail": detail,
        "code": code,
    }
    error.update(extra)
    return {"ok": False, "error": error}


def create_app() -> FastAPI:
    """创建 FastAPI 应用"""
    settings = get_settings()

    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format
    )

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="ReturnCredit return decision and NGO donation credit API",
        docs_url="/docs" if settings.api_debug else None,
        redoc_url="/redoc" if settings.api_debug else None,
        openapi_url="/openapi.json" if settings.api_debug else None,
        lifespan=lifespan,
    )

    # CORS 中间件（开发模式允许所有来源）
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.api_debug else settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 日志中间件
    app.add_middleware(LoggingMiddleware)

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.exception_handler(ReturnCreditException)
    async def returncredit_exception_handler(request: Request, exc: ReturnCreditException):
        """处理 ReturnCredit 业务异常"""
        return exc.to_response(request)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """处理请求体验证异常"""
        logger.warning("Request validation failed", path=request.url.path, errors=str(exc.errors()))
        return JSONResponse(
            status_code=422,
            content=_error_body(
                422,
                "Validation Error",
                "Request validation failed",
                "VALIDATION_ERROR",
                validation_errors=[
                    {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
                    for err in exc.errors()
                ],
            ),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """处理 FastAPI HTTP 异常"""
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.status_code, str(exc.detail), exc.detail, f"HTTP_{exc.status_code}"),
        )

    @app.exception_handler(Exception)
    async def internal_server_error_handler(request: Request, exc: Exception):
        """处理未捕获的服务器错误"""
        logger.error("Unhandled server error", path=request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                500,
                "Internal Server Error",
                "An internal server error occurred",
                "INTERNAL_SERVER_ERROR",
            ),
        )

    @app.get("/healthz")
    async def health_check():
        """健康检查端点"""
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app


# 创建应用实例
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "rc_core.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
        log_level=settings.log_level.lower(),
        access_log=False,  # 使用自定义日志中间件
    )
