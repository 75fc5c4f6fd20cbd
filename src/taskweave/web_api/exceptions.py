"""
Web API 异常模块

将领域异常、HTTP 异常与请求验证异常映射为统一响应信封。
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status
from fastapi.responses import JSONResponse
from loguru import logger

from taskweave.common.exceptions import (
    AuthenticationError,
    ConflictError,
    DependencyUnmetError,
    NotFoundError,
    TaskweaveException,
    ValidationError,
)
from taskweave.common.time import now_utc
from taskweave.domain.schemas import ErrorDetail, ErrorResponse

# 领域异常 -> HTTP 状态码，按继承顺序匹配
STATUS_MAPPING: list[tuple[type[TaskweaveException], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (DependencyUnmetError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
]

HTTP_ERROR_CODES = {
    status.HTTP_400_BAD_REQUEST: "VALIDATION_ERROR",
    status.HTTP_401_UNAUTHORIZED: "AUTHENTICATION_ERROR",
    status.HTTP_403_FORBIDDEN: "AUTHENTICATION_ERROR",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "VALIDATION_ERROR",
    status.HTTP_409_CONFLICT: "CONFLICT",
}


def status_for(exc: TaskweaveException) -> int:
    for exc_type, status_code in STATUS_MAPPING:
        if isinstance(exc, exc_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_error_response(
    status_code: int,
    message: str,
    error_code: str,
    errors: list[dict[str, Any]] | list[ErrorDetail] | None = None,
) -> JSONResponse:
    """创建统一的错误响应"""
    error_details: list[ErrorDetail] = []
    if errors:
        for err in errors:
            if isinstance(err, dict):
                error_details.append(
                    ErrorDetail(
                        field=err.get("field", ""),
                        message=err.get("message", str(err)),
                    )
                )
            elif isinstance(err, ErrorDetail):
                error_details.append(err)

    resp = ErrorResponse(
        success=False,
        code=status_code,
        message=message,
        error=error_code,
        errors=error_details,
        timestamp=now_utc(),
    )
    return JSONResponse(status_code=status_code, content=resp.model_dump(mode="json"))


async def taskweave_exception_handler(request, exc: TaskweaveException) -> JSONResponse:
    """处理领域异常"""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"内部错误: {exc.message}")
        return create_error_response(status_code, "服务器内部错误", exc.error_code)

    errors = None
    field = getattr(exc, "field", None)
    if field:
        errors = [{"field": field, "message": exc.message}]
    return create_error_response(status_code, exc.message, exc.error_code, errors)


async def http_exception_handler(request, exc: HTTPException) -> JSONResponse:
    """处理 HTTP 异常"""
    error_code = HTTP_ERROR_CODES.get(exc.status_code, "INTERNAL_ERROR")
    return create_error_response(exc.status_code, str(exc.detail), error_code)


async def validation_exception_handler(request, exc) -> JSONResponse:
    """处理请求验证异常"""
    errors: list[dict[str, Any]] = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error.get("loc", []))
        errors.append(
            {
                "field": field,
                "message": error.get("msg", "验证失败"),
            }
        )
    return create_error_response(
        status_code=status.HTTP_400_BAD_REQUEST,
        message="请求参数验证失败",
        error_code="VALIDATION_ERROR",
        errors=errors,
    )


async def general_exception_handler(request, exc: Exception) -> JSONResponse:
    """处理未捕获的异常"""
    logger.exception("未处理异常: {}", exc)
    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="服务器内部错误",
        error_code="INTERNAL_ERROR",
    )
