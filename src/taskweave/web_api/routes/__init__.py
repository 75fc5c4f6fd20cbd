from fastapi import APIRouter, FastAPI, Request

from taskweave.common.config import settings
from taskweave.common.time import now_utc
from taskweave.domain.schemas import BaseResponse, HealthResponse
from taskweave.web_api.response import Messages, success
from taskweave.web_api.routes.v1 import realtime_router, v1_router

api_router = APIRouter()
api_router.include_router(v1_router)

base_router = APIRouter()


@base_router.get(
    "/health",
    response_model=BaseResponse[HealthResponse],
    summary="健康检查",
    tags=["基础"],
)
async def health_check(request: Request):
    hub = getattr(request.app.state, "hub", None)
    payload = HealthResponse(
        status="healthy",
        version=settings.APP_VERSION,
        timestamp=now_utc().isoformat(),
        connections=hub.connection_count if hub else 0,
    )
    return success(payload, message=Messages.QUERY_SUCCESS)


def register_routes(app: FastAPI) -> None:
    """注册所有路由：REST 接口位于 /api，WebSocket 位于 /ws"""
    app.include_router(api_router, prefix="/api")
    app.include_router(realtime_router, tags=["WebSocket"])
    app.include_router(base_router)


__all__ = ["api_router", "register_routes"]
