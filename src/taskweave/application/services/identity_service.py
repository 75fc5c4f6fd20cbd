"""身份服务

用户注册、按用户名登录、登出以及会话校验。
会话为进程内的 token -> user_id 映射，无过期策略。
"""

import asyncio

from loguru import logger

from taskweave.common.exceptions import ConflictError, NotFoundError
from taskweave.common.ids import generate_session_token, generate_uuid
from taskweave.common.time import now_utc
from taskweave.domain.models import User
from taskweave.domain.schemas import UserCreateRequest
from taskweave.infrastructure.store.base import Store


class IdentityService:
    """身份服务"""

    def __init__(self, store: Store):
        self._store = store
        self._sessions: dict[str, str] = {}
        self._register_lock = asyncio.Lock()

    async def register(self, request: UserCreateRequest) -> tuple[User, str]:
        """注册用户并创建会话

        Raises:
            ConflictError: 用户名已存在
        """
        async with self._register_lock:
            if await self._store.get_user_by_username(request.username):
                raise ConflictError(f"用户名 {request.username} 已存在")

            user = User(
                id=generate_uuid(),
                username=request.username,
                email=request.email,
                created_at=now_utc(),
            )
            await self._store.put_user(user)

        token = self._create_session(user.id)
        logger.info(f"用户注册成功: {user.username}")
        return user, token

    async def login(self, username: str) -> tuple[User, str]:
        """按用户名登录

        Raises:
            NotFoundError: 用户不存在
        """
        user = await self._store.get_user_by_username(username)
        if not user:
            logger.debug(f"用户不存在: {username}")
            raise NotFoundError("用户", username)

        token = self._create_session(user.id)
        logger.info(f"用户登录: {user.username}")
        return user, token

    def logout(self, token: str) -> bool:
        """销毁会话"""
        user_id = self._sessions.pop(token, None)
        if user_id:
            logger.info(f"用户登出: {user_id}")
        return user_id is not None

    async def verify_session(self, token: str | None) -> User | None:
        """校验会话，返回对应用户；令牌无效时返回 None"""
        if not token:
            return None
        user_id = self._sessions.get(token)
        if not user_id:
            return None
        return await self._store.get_user(user_id)

    async def get_user(self, user_id: str) -> User | None:
        return await self._store.get_user(user_id)

    async def list_users(self) -> list[User]:
        return await self._store.list_users()

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    def _create_session(self, user_id: str) -> str:
        token = generate_session_token()
        self._sessions[token] = user_id
        return token
