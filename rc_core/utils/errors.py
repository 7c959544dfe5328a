"""
ReturnCredit 错误处理系统
遵循 RFC7807 Problem Details 标准
"""
from decimal import Decimal
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field


class ProblemDetail(BaseModel):
    """RFC7807 Problem Details 模型"""
    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "example": {
                "type": "about:blank",
                "title": "Insufficient Balance",
                "status": 400,
                "detail": "wallet balance 20.00 < required 50.00",
                "code": "INSUFFICIENT_BALANCE"
            }
        }
    )

    type: str = Field(default="about:blank")
    title: str
    status: int
    detail: Optional[str] = None
    instance: Optional[str] = None
    code: Optional[str] = None  # 业务错误码


class ReturnCreditException(Exception):
    """ReturnCredit 基础异常类"""

    def __init__(
        self,
        status: int,
        code: str,
        title: str,
        detail: Optional[str] = None,
        **kwargs
    ):
        self.status = status
        self.code = code
        self.title = title
        self.detail = detail
        self.extra = kwargs
        super().__init__(detail or title)

    def to_problem_detail(self, instance: Optional[str] = None) -> ProblemDetail:
        """转换为 Problem Details 格式"""
        return ProblemDetail(
            type="about:blank",
            title=self.title,
            status=self.status,
            detail=self.detail,
            instance=instance,
            code=self.code,
            **self.extra
        )

    def to_response(self, request: Optional[Request] = None) -> JSONResponse:
        """转换为 JSON 响应"""
        instance = str(request.url) if request else None
        problem = self.to_problem_detail(instance)

        return JSONResponse(
            status_code=self.status,
            content={
                "ok": False,
                "error": problem.model_dump(mode="json", exclude_none=True)
            }
        )


# 预定义错误类
class BadRequestError(ReturnCreditException):
    """400 错误请求"""
    def __init__(self, code: str, detail: str, **kwargs):
        super().__init__(
            status=400,
            code=code,
            title="Bad Request",
            detail=detail,
            **kwargs
        )


class InsufficientBalanceError(BadRequestError):
    """400 钱包余额不足（不重试）"""
    def __init__(self, required: Decimal, balance: Decimal):
        self.required = required
        self.balance = balance
        super().__init__(
            code="INSUFFICIENT_BALANCE",
            detail=f"余额不足，需要 {required}，当前余额 {balance}",
            required=str(required),
            balance=str(balance)
        )


class ConfigurationError(BadRequestError):
    """400 配置无效（保留原配置）"""
    def __init__(self, detail: str, code: str = "INVALID_CONFIGURATION"):
        super().__init__(code=code, detail=detail)


class NotFoundError(ReturnCreditException):
    """404 未找到"""
    def __init__(self, code: str, resource: str):
        super().__init__(
            status=404,
            code=code,
            title="Not Found",
            detail=f"{resource} not found"
        )


class ConflictError(ReturnCreditException):
    """409 冲突"""
    def __init__(self, code: str, detail: str):
        super().__init__(
            status=409,
            code=code,
            title="Conflict",
            detail=detail
        )


class ValidationError(ReturnCreditException):
    """422 验证失败"""
    def __init__(self, code: str, detail: str):
        super().__init__(
            status=422,
            code=code,
            title="Validation Failed",
            detail=detail
        )


class InternalServerError(ReturnCreditException):
    """500 内部错误"""
    def __init__(self, code: str = "INTERNAL_ERROR", detail: str = "An internal error occurred"):
        super().__init__(
            status=500,
            code=code,
            title="Internal Server Error",
            detail=detail
        )


class PersistenceError(InternalServerError):
    """500 存储失败，整个操作已回滚"""
    def __init__(self, detail: str = "Operation failed and was rolled back"):
        super().__init__(code="PERSISTENCE_FAILURE", detail=detail)


class ServiceUnavailableError(ReturnCreditException):
    """503 服务不可用"""
    def __init__(self, code: str = "SERVICE_UNAVAILABLE", detail: str = "Service temporarily unavailable"):
        super().__init__(
            status=503,
            code=code,
            title="Service Unavailable",
            detail=detail
        )
