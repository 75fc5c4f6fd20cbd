"""应用工厂模块。

提供 create_app() 工厂函数，用于创建 FastAPI 应用实例。
"""

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware import Middleware
from fastapi.middleware.cors import CORSMiddleware

from taskweave.common.config import settings
from taskweave.common.exceptions import TaskweaveException
from taskweave.common.logging import setup_logging
from taskweave.web_api.exceptions import (
    general_exception_handler,
    http_exception_handler,
    taskweave_exception_handler,
    validation_exception_handler,
)
from taskweave.web_api.lifespan import lifespan


def make_middlewares() -> list[Middleware]:
    """创建中间件列表"""
    return [
        Middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS,
            allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
            allow_methods=settings.CORS_ALLOW_METHODS,
            allow_headers=settings.CORS_ALLOW_HEADERS,
        ),
    ]


def create_app() -> FastAPI:
    """创建并配置 FastAPI 应用。

    Returns:
        FastAPI: 已配置的应用实例。
    """
    setup_logging()
    from taskweave.web_api.routes import register_routes

    app = FastAPI(
        title=settings.APP_TITLE,
        version=settings.APP_VERSION,
        description=settings.APP_DESCRIPTION,
        middleware=make_middlewares(),
        lifespan=lifespan,
    )

    # 注册异常处理器
    app.add_exception_handler(TaskweaveException, taskweave_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # 注册路由
    register_routes(app)

    return app
