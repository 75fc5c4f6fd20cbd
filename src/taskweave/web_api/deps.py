"""
依赖注入模块

提供 FastAPI 路由的依赖注入函数，服务实例由 lifespan 挂在 app.state 上
"""

from typing import Annotated

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from taskweave.application.services.identity_service import IdentityService
from taskweave.application.services.task_gateway import MutationGateway
from taskweave.common.exceptions import AuthenticationError, ValidationError
from taskweave.domain.models import User
from taskweave.web_api.websockets.broadcast_hub import BroadcastHub

# HTTP Bearer 认证方案，缺失凭证时由 get_current_user 统一返回 401
security = HTTPBearer(auto_error=False)


def get_gateway(request: Request) -> MutationGateway:
    return request.app.state.gateway


def get_identity(request: Request) -> IdentityService:
    return request.app.state.identity


def get_hub(request: Request) -> BroadcastHub:
    return request.app.state.hub


async def get_session_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str:
    """提取 Bearer 会话令牌

    Raises:
        AuthenticationError: 未携带凭证
    """
    if not credentials or not credentials.credentials:
        raise AuthenticationError("缺少会话令牌")
    return credentials.credentials


async def get_current_user(
    token: Annotated[str, Depends(get_session_token)],
    identity: Annotated[IdentityService, Depends(get_identity)],
) -> User:
    """获取当前认证用户

    Raises:
        AuthenticationError: 会话无效
    """
    user = await identity.verify_session(token)
    if not user:
        raise AuthenticationError()
    return user


def get_expected_version(
    if_match: Annotated[str | None, Header(alias="If-Match")] = None,
) -> int | None:
    """解析 If-Match 头中的任务版本，兼容 "3" 与 W/"3" 两种写法"""
    if if_match is None:
        return None
    value = if_match.strip()
    if value.startswith("W/"):
        value = value[2:]
    value = value.strip('"')
    if not value.isdigit():
        raise ValidationError("If-Match 必须为任务版本号", field="If-Match")
    return int(value)


# 类型别名，方便使用
CurrentUser = Annotated[User, Depends(get_current_user)]
SessionToken = Annotated[str, Depends(get_session_token)]
Gateway = Annotated[MutationGateway, Depends(get_gateway)]
Identity = Annotated[IdentityService, Depends(get_identity)]
Hub = Annotated[BroadcastHub, Depends(get_hub)]
ExpectedVersion = Annotated[int | None, Depends(get_expected_version)]
