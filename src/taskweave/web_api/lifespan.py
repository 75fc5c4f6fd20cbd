"""应用生命周期管理

构建存储、身份服务、广播中心与变更网关，并挂载到 app.state。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from taskweave.application.services.identity_service import IdentityService
from taskweave.application.services.task_gateway import MutationGateway
from taskweave.common.config import settings
from taskweave.infrastructure.store import create_store
from taskweave.web_api.websockets.broadcast_hub import BroadcastHub


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期上下文管理器"""
    try:
        await init_services(app)
        logger.info("应用程序已启动")
        yield
    except Exception as e:
        logger.error(f"启动失败: {e}")
        raise
    finally:
        await shutdown_services(app)


async def init_services(app: FastAPI) -> None:
    """初始化所有应用服务"""
    logger.info("=" * 50)
    logger.info(f"初始化 {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info("=" * 50)

    logger.info("[1/4] 初始化存储")
    app.state.store = create_store("memory")

    logger.info("[2/4] 初始化身份服务")
    app.state.identity = IdentityService(app.state.store)

    logger.info("[3/4] 初始化广播中心")
    app.state.hub = BroadcastHub(identity=app.state.identity)

    logger.info("[4/4] 初始化任务网关")
    app.state.gateway = MutationGateway(app.state.store, publisher=app.state.hub)


async def shutdown_services(app: FastAPI) -> None:
    """关闭所有应用服务"""
    logger.info("正在关闭应用服务...")

    hub = getattr(app.state, "hub", None)
    if hub:
        await hub.shutdown()

    store = getattr(app.state, "store", None)
    if store:
        await store.close()

    logger.info("应用服务已关闭")
