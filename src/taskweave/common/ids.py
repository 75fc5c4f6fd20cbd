"""ID 生成模块

提供任务、用户、会话与连接的 ID 生成功能。
"""

import secrets
import time
import uuid


def generate_uuid() -> str:
    """生成 UUID4 字符串

    Returns:
        UUID4 字符串（不含连字符）
    """
    return uuid.uuid4().hex


def generate_id(prefix: str = "") -> str:
    """生成带前缀的唯一 ID

    Args:
        prefix: ID 前缀

    Returns:
        格式: {prefix}_{timestamp}_{random}
    """
    timestamp = int(time.time() * 1000)
    random_part = secrets.token_hex(4)
    if prefix:
        return f"{prefix}_{timestamp}_{random_part}"
    return f"{timestamp}_{random_part}"


def generate_session_token() -> str:
    """生成会话令牌（URL 安全）"""
    return secrets.token_urlsafe(32)


def generate_temp_id() -> str:
    """生成客户端乐观创建使用的临时任务 ID"""
    return generate_id("tmp")


def is_temp_id(task_id: str) -> bool:
    """判断是否为客户端临时 ID"""
    return task_id.startswith("tmp_")
