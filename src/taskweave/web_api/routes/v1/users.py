"""用户接口"""

from fastapi import APIRouter, status

from taskweave.domain.models import User
from taskweave.domain.schemas import (
    AuthResponse,
    BaseResponse,
    GlobalStatsResponse,
    UserCreateRequest,
    UserLoginRequest,
    UserStatsResponse,
)
from taskweave.web_api.deps import CurrentUser, Gateway, Hub, Identity, SessionToken
from taskweave.web_api.response import Messages, ResponseCode, success

router = APIRouter()


@router.post(
    "/register",
    response_model=BaseResponse[AuthResponse],
    status_code=status.HTTP_201_CREATED,
    summary="注册用户",
)
async def register(request: UserCreateRequest, identity: Identity):
    user, token = await identity.register(request)
    return success(
        AuthResponse(user=user, session_token=token),
        message=Messages.REGISTER_SUCCESS,
        code=ResponseCode.CREATED,
    )


@router.post("/login", response_model=BaseResponse[AuthResponse], summary="用户登录")
async def login(request: UserLoginRequest, identity: Identity):
    user, token = await identity.login(request.username)
    return success(AuthResponse(user=user, session_token=token), message=Messages.LOGIN_SUCCESS)


@router.get("", response_model=BaseResponse[list[User]], summary="用户列表")
async def list_users(current_user: CurrentUser, identity: Identity):
    return success(await identity.list_users(), message=Messages.QUERY_SUCCESS)


@router.get("/me", response_model=BaseResponse[User], summary="当前用户")
async def get_me(current_user: CurrentUser):
    return success(current_user, message=Messages.QUERY_SUCCESS)


@router.post("/logout", response_model=BaseResponse[None], summary="退出登录")
async def logout(current_user: CurrentUser, token: SessionToken, identity: Identity):
    identity.logout(token)
    return success(message=Messages.LOGOUT_SUCCESS)


@router.get("/stats", response_model=BaseResponse[UserStatsResponse], summary="用户统计")
async def get_user_stats(
    current_user: CurrentUser,
    identity: Identity,
    gateway: Gateway,
    hub: Hub,
):
    """当前用户的任务统计与全局统计"""
    my_tasks = await gateway.list_tasks_for_user(current_user.id)
    all_stats = await gateway.get_stats()
    payload = UserStatsResponse(
        user=current_user,
        task_stats=await gateway.get_stats(my_tasks),
        global_stats=GlobalStatsResponse(
            total_users=len(await identity.list_users()),
            total_tasks=all_stats.total,
            active_sessions=identity.active_sessions,
            tasks_by_status=all_stats.by_status,
        ),
    )
    return success(payload, message=Messages.QUERY_SUCCESS)
