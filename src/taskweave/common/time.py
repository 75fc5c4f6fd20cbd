"""时间工具模块"""

from datetime import UTC, datetime


def now_utc() -> datetime:
    """获取当前 UTC 时间

    Returns:
        带时区信息的 UTC datetime
    """
    return datetime.now(UTC)


def timestamp_ms() -> int:
    """获取当前时间戳（毫秒）"""
    return int(now_utc().timestamp() * 1000)


def to_iso(dt: datetime | None) -> str | None:
    """转换为 ISO-8601 字符串"""
    if dt is None:
        return None
    return dt.isoformat()
