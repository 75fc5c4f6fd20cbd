"""WebSocket 实时推送接口"""

import contextlib

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from loguru import logger

from taskweave.common.exceptions import SerializationError
from taskweave.common.serialization import from_json
from taskweave.domain.models import User
from taskweave.domain.schemas import BaseResponse
from taskweave.web_api.deps import CurrentUser, Hub
from taskweave.web_api.response import Messages, success
from taskweave.web_api.websockets.broadcast_hub import BroadcastHub

router = APIRouter()
realtime_router = APIRouter()


@realtime_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    hub: BroadcastHub = websocket.app.state.hub

    try:
        connection_id = await hub.connect(websocket)
    except ConnectionRefusedError:
        return

    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = from_json(text)
            except SerializationError:
                hub.send_error(connection_id, "VALIDATION_ERROR", "消息不是合法的 JSON")
                continue
            if not isinstance(message, dict):
                hub.send_error(connection_id, "VALIDATION_ERROR", "消息必须为 JSON 对象")
                continue
            await hub.handle_client_message(connection_id, message)
    except WebSocketDisconnect:
        logger.info(f"WebSocket 客户端断开连接: {connection_id}")
    except Exception:
        logger.exception("WebSocket 处理失败: {}", connection_id)
        with contextlib.suppress(Exception):
            await websocket.close(code=1011, reason="Internal error")
    finally:
        await hub.disconnect(connection_id)


@router.get("/stats", response_model=BaseResponse[dict], summary="WebSocket 统计")
async def get_websocket_stats(current_user: CurrentUser, hub: Hub):
    return success(hub.get_stats(), message=Messages.QUERY_SUCCESS)


@router.get("/online", response_model=BaseResponse[list[User]], summary="在线用户")
async def get_online_users(current_user: CurrentUser, hub: Hub):
    return success(hub.get_connected_users(), message=Messages.QUERY_SUCCESS)
