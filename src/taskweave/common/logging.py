"""日志配置

控制台输出，可选写入滚动文件；所有输出在落地前隐藏会话令牌与邮箱。
"""

import os
import re
import sys

from loguru import logger

from taskweave.common.config import settings

_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} - {message}"

_REDACTIONS = (
    # session_token=xxx / "session_token": "xxx"
    (re.compile(r'(session_token)["\']?\s*[:=]\s*["\']?[A-Za-z0-9_\-.~]+["\']?'), r"\1=***"),
    # Authorization: Bearer xxx
    (re.compile(r"(Authorization)\s*[:=]\s*Bearer\s+[A-Za-z0-9_\-.~]+", re.IGNORECASE), r"\1: Bearer ***"),
    (re.compile(r"[A-Za-z0-9_.+-]+@([A-Za-z0-9-]+\.[A-Za-z0-9.-]+)"), r"***@\1"),
)


def redact(message: str) -> str:
    """隐藏消息中的会话令牌、授权头与邮箱用户名"""
    for pattern, replacement in _REDACTIONS:
        message = pattern.sub(replacement, message)
    return message


def _redact_record(record) -> bool:
    record["message"] = redact(record["message"])
    return True


def setup_logging(level: str | None = None, log_file: str | None = None) -> None:
    """初始化日志

    Args:
        level: 日志级别，默认 settings.LOG_LEVEL
        log_file: 日志文件路径；未指定时仅在 settings.LOG_TO_FILE 开启时写入 settings.LOG_FILE_PATH
    """
    level = level or settings.LOG_LEVEL
    if log_file is None and settings.LOG_TO_FILE:
        log_file = settings.LOG_FILE_PATH

    logger.remove()
    logger.add(sys.stderr, format=_FORMAT, level=level, colorize=True, filter=_redact_record)

    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        logger.add(
            log_file,
            format=_FORMAT,
            level=level,
            rotation="50 MB",
            retention="7 days",
            encoding="utf-8",
            enqueue=True,
            filter=_redact_record,
        )

    logger.info(f"日志初始化完成: level={level}, file={log_file or '-'}")
