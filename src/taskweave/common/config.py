"""应用配置模块

提供统一的配置管理，支持环境变量和 .env 文件。
"""

import os
from functools import cached_property
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_frontend_port() -> int:
    """获取前端端口，优先级：FRONTEND_PORT > 3000"""
    port_str = os.getenv("FRONTEND_PORT", "").strip()
    if port_str.isdigit():
        return int(port_str)
    return 3000


def _find_project_root() -> Path:
    """查找项目根目录（包含 .env 或 pyproject.toml 的目录）"""
    current = Path(__file__).resolve()

    for parent in current.parents:
        if (parent / ".env").exists():
            return parent

    for parent in current.parents:
        if (parent / "pyproject.toml").exists():
            return parent

    return current.parent.parent.parent.parent


class Settings(BaseSettings):
    """应用配置类"""

    # === 服务器配置 ===
    SERVER_HOST: str = Field(default="0.0.0.0")
    SERVER_PORT: int = Field(default=5000)
    SERVER_RELOAD: bool = Field(default=False)
    FRONTEND_PORT: int = Field(default_factory=_default_frontend_port)
    SERVER_DOMAIN: str = Field(default="localhost")

    # === 日志配置 ===
    LOG_LEVEL: str = Field(default="INFO")
    LOG_TO_FILE: bool = Field(default=False)

    # === 应用信息 ===
    APP_NAME: str = "Taskweave"
    APP_TITLE: str = "Taskweave 协作任务看板"
    APP_DESCRIPTION: str = "基于 FastAPI 的协作任务跟踪服务，支持任务依赖与实时推送"
    APP_VERSION: str = "1.0.0"

    # === CORS 配置 ===
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list[str] = ["*"]
    CORS_ALLOW_HEADERS: list[str] = ["*"]

    @cached_property
    def CORS_ORIGINS(self) -> list[str]:
        origins = [
            f"http://{self.SERVER_DOMAIN}:{self.FRONTEND_PORT}",
            f"http://localhost:{self.FRONTEND_PORT}",
            f"http://127.0.0.1:{self.FRONTEND_PORT}",
        ]
        if self.SERVER_DOMAIN not in ("localhost", "127.0.0.1"):
            origins.append(f"https://{self.SERVER_DOMAIN}")
        return origins

    # === 路径配置 ===
    BASE_DIR: str = Field(default_factory=lambda: str(_find_project_root()))

    @cached_property
    def data_dir(self) -> str:
        """数据目录"""
        return os.path.join(self.BASE_DIR, "data")

    @cached_property
    def LOG_FILE_PATH(self) -> str:
        return os.path.join(self.data_dir, "logs", "app.log")

    # === 任务字段约束 ===
    TASK_TITLE_MAX_LENGTH: int = 200
    TASK_DESCRIPTION_MAX_LENGTH: int = 1000
    USERNAME_MIN_LENGTH: int = 3
    USERNAME_MAX_LENGTH: int = 50

    # === 依赖校验 ===
    DEPENDENCY_CYCLE_CHECK: bool = True

    # === WebSocket 配置 ===
    WEBSOCKET_QUEUE_SIZE: int = 1000
    WEBSOCKET_SEND_TIMEOUT: float = 5.0
    WEBSOCKET_PING_INTERVAL: int = 30
    WEBSOCKET_MAX_TOTAL_CONN: int = 10000

    # === 客户端配置 ===
    API_BASE_URL: str = Field(default="http://localhost:5000")
    WS_URL: str = Field(default="")
    CLIENT_REQUEST_TIMEOUT: float = 10.0
    RECONNECT_BASE_DELAY: float = 1.0
    RECONNECT_MAX_ATTEMPTS: int = 5
    RECONNECT_JITTER: float = 0.0
    RESPONSE_CACHE_TTL: int = 300

    @cached_property
    def ws_endpoint(self) -> str:
        """WebSocket 地址，未配置时由 API_BASE_URL 推导"""
        if self.WS_URL:
            return self.WS_URL
        base = self.API_BASE_URL.rstrip("/")
        if base.startswith("https://"):
            return "wss://" + base[len("https://"):] + "/ws"
        if base.startswith("http://"):
            return "ws://" + base[len("http://"):] + "/ws"
        return f"ws://{base}/ws"

    model_config = SettingsConfigDict(
        env_file=str(_find_project_root() / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_client_config(self) -> "Settings":
        """验证客户端重连配置"""
        if self.RECONNECT_BASE_DELAY <= 0:
            raise ValueError("RECONNECT_BASE_DELAY 必须大于 0")
        if self.RECONNECT_MAX_ATTEMPTS < 1:
            raise ValueError("RECONNECT_MAX_ATTEMPTS 至少为 1")
        if not 0 <= self.RECONNECT_JITTER < 1:
            raise ValueError("RECONNECT_JITTER 取值范围为 [0, 1)")
        return self


# 全局配置实例
settings = Settings()
