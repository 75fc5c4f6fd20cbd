"""
REST 客户端

封装 /api 下的用户与任务接口：
- 成功信封返回 data 并解析为领域模型
- 失败信封按错误码还原为同名领域异常
- GET 列表响应进入 ResponseCache，写操作后按资源前缀失效
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from taskweave.client.response_cache import ResponseCache
from taskweave.common.config import settings
from taskweave.common.exceptions import (
    ERROR_CODE_MAPPING,
    InternalError,
    TaskweaveException,
)
from taskweave.domain.models import Task, User
from taskweave.domain.schemas import (
    TaskCreateRequest,
    TaskDependenciesResponse,
    TaskDetailResponse,
    TaskUpdateRequest,
    UserStatsResponse,
)

TASKS_PREFIX = "/api/tasks"
USERS_PREFIX = "/api/users"

# 无错误码时按 HTTP 状态推断
_STATUS_ERROR_CODES = {
    400: "VALIDATION_ERROR",
    401: "AUTHENTICATION_ERROR",
    404: "NOT_FOUND",
    409: "CONFLICT",
}


def raise_for_envelope(envelope: Any, status_code: int | None = None) -> Any:
    """
    检查响应信封，成功时返回 data

    Raises:
        TaskweaveException: 失败信封对应的领域异常
    """
    if not isinstance(envelope, dict):
        raise InternalError("响应格式错误")
    if envelope.get("success"):
        return envelope.get("data")

    code = envelope.get("error") or _STATUS_ERROR_CODES.get(status_code or 500, "INTERNAL_ERROR")
    exc_cls = ERROR_CODE_MAPPING.get(code, InternalError)
    errors = envelope.get("errors") or []
    field = errors[0].get("field") if errors and isinstance(errors[0], dict) else None
    raise exc_cls.from_remote(envelope.get("message") or code, field=field)


class TaskApiClient:
    """任务服务 REST 客户端"""

    def __init__(
        self,
        base_url: str | None = None,
        cache: ResponseCache | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.cache = cache or ResponseCache(name="api")
        self._timeout = timeout or settings.CLIENT_REQUEST_TIMEOUT
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._session_token: str | None = None

    async def start(self):
        """初始化 HTTP 客户端"""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            trust_env=False,
            transport=self._transport,
            limits=httpx.Limits(
                max_connections=100,
                max_keepalive_connections=20,
                keepalive_expiry=30.0,
            ),
        )
        logger.debug(f"API 客户端已初始化: {self.base_url}")

    async def stop(self):
        """关闭 HTTP 客户端"""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> TaskApiClient:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("HTTP 客户端未初始化，请先调用 start()")
        return self._client

    @property
    def session_token(self) -> str | None:
        return self._session_token

    def set_session_token(self, token: str | None) -> None:
        # 切换身份后缓存不再可信
        self._session_token = token
        self.cache.clear()

    # ==================== 用户 ====================

    async def register(self, username: str, email: str) -> tuple[User, str]:
        data = await self._request(
            "POST", f"{USERS_PREFIX}/register", json={"username": username, "email": email}
        )
        return self._accept_auth(data)

    async def login(self, username: str) -> tuple[User, str]:
        data = await self._request("POST", f"{USERS_PREFIX}/login", json={"username": username})
        return self._accept_auth(data)

    async def logout(self) -> None:
        try:
            await self._request("POST", f"{USERS_PREFIX}/logout")
        finally:
            self.set_session_token(None)

    async def me(self) -> User:
        return User.model_validate(await self._request("GET", f"{USERS_PREFIX}/me"))

    async def list_users(self, use_cache: bool = True) -> list[User]:
        data = await self._request("GET", USERS_PREFIX, use_cache=use_cache)
        return [User.model_validate(item) for item in data]

    async def user_stats(self) -> UserStatsResponse:
        data = await self._request("GET", f"{USERS_PREFIX}/stats")
        return UserStatsResponse.model_validate(data)

    # ==================== 任务 ====================

    async def list_tasks(self, use_cache: bool = True) -> list[Task]:
        data = await self._request("GET", TASKS_PREFIX, use_cache=use_cache)
        return [Task.model_validate(item) for item in data]

    async def list_my_tasks(self, use_cache: bool = True) -> list[Task]:
        data = await self._request("GET", f"{TASKS_PREFIX}/my-tasks", use_cache=use_cache)
        return [Task.model_validate(item) for item in data]

    async def list_blocked(self, use_cache: bool = True) -> list[Task]:
        data = await self._request("GET", f"{TASKS_PREFIX}/blocked", use_cache=use_cache)
        return [Task.model_validate(item) for item in data]

    async def get_task(self, task_id: str) -> TaskDetailResponse:
        data = await self._request("GET", f"{TASKS_PREFIX}/{task_id}")
        return TaskDetailResponse.model_validate(data)

    async def get_dependencies(self, task_id: str) -> TaskDependenciesResponse:
        data = await self._request("GET", f"{TASKS_PREFIX}/{task_id}/dependencies")
        return TaskDependenciesResponse.model_validate(data)

    async def create_task(self, request: TaskCreateRequest) -> Task:
        data = await self._request(
            "POST", TASKS_PREFIX, json=request.model_dump(mode="json")
        )
        return Task.model_validate(data)

    async def update_task(
        self,
        task_id: str,
        request: TaskUpdateRequest,
        expected_version: int | None = None,
    ) -> Task:
        data = await self._request(
            "PUT",
            f"{TASKS_PREFIX}/{task_id}",
            json=request.model_dump(mode="json", exclude_unset=True),
            expected_version=expected_version,
        )
        return Task.model_validate(data)

    async def delete_task(self, task_id: str, expected_version: int | None = None) -> None:
        await self._request(
            "DELETE", f"{TASKS_PREFIX}/{task_id}", expected_version=expected_version
        )

    async def complete_task(self, task_id: str, expected_version: int | None = None) -> Task:
        data = await self._request(
            "PATCH",
            f"{TASKS_PREFIX}/{task_id}/complete",
            expected_version=expected_version,
        )
        return Task.model_validate(data)

    # ==================== 私有方法 ====================

    def _accept_auth(self, data: dict[str, Any]) -> tuple[User, str]:
        user = User.model_validate(data["user"])
        self.set_session_token(data["session_token"])
        return user, data["session_token"]

    def _headers(self, expected_version: int | None) -> dict[str, str]:
        headers = {}
        if self._session_token:
            headers["Authorization"] = f"Bearer {self._session_token}"
        if expected_version is not None:
            headers["If-Match"] = f'"{expected_version}"'
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        expected_version: int | None = None,
        use_cache: bool = False,
    ) -> Any:
        if method == "GET" and use_cache:
            cached = self.cache.get(path)
            if cached is not None:
                return cached

        try:
            response = await self.client.request(
                method, path, json=json, headers=self._headers(expected_version)
            )
        except httpx.HTTPError as e:
            logger.error(f"请求失败 {method} {path}: {e}")
            raise InternalError(f"请求失败: {e}") from e

        try:
            envelope = response.json()
        except ValueError as e:
            raise InternalError(f"响应不是合法 JSON (HTTP {response.status_code})") from e

        try:
            data = raise_for_envelope(envelope, response.status_code)
        except TaskweaveException as e:
            logger.debug(f"{method} {path} 失败 [{e.error_code}]: {e.message}")
            raise

        if method == "GET":
            if use_cache:
                self.cache.set(path, data)
        else:
            self.cache.invalidate(TASKS_PREFIX if path.startswith(TASKS_PREFIX) else USERS_PREFIX)
        return data
