from fastapi import APIRouter

from taskweave.web_api.routes.v1.tasks import tasks_router
from taskweave.web_api.routes.v1.users import router as users_router
from taskweave.web_api.routes.v1.websocket import realtime_router
from taskweave.web_api.routes.v1.websocket import router as websocket_router

v1_router = APIRouter()

v1_router.include_router(users_router, prefix="/users", tags=["用户"])
v1_router.include_router(tasks_router, prefix="/tasks", tags=["任务"])
v1_router.include_router(websocket_router, prefix="/ws", tags=["WebSocket"])

__all__ = ["v1_router", "realtime_router"]
