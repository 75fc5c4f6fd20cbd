"""
序列化工具模块

WebSocket 帧在服务端与客户端两侧都经由这里编解码。
使用 ujson 替代标准 json 库以提升性能。
"""

from datetime import datetime
from enum import Enum

import ujson
from loguru import logger
from pydantic import BaseModel

from taskweave.common.exceptions import SerializationError


def _default_json_serializer(obj):
    """默认的 JSON 序列化处理器，处理特殊类型"""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if hasattr(obj, "__dict__"):
        return obj.__dict__
    return str(obj)


class Serializer:
    """序列化器类"""

    @staticmethod
    def to_json(obj, ensure_ascii=False, sort_keys=False, default=None):
        """
        将对象序列化为 JSON 字符串

        Args:
            obj: 待序列化的对象
            ensure_ascii: 是否确保 ASCII 编码，默认 False 以支持中文
            sort_keys: 是否对键排序
            default: 自定义序列化处理器

        Returns:
            JSON 字符串

        Raises:
            SerializationError: 序列化失败时抛出
        """
        try:
            serializer = default if default is not None else _default_json_serializer
            return ujson.dumps(
                obj,
                ensure_ascii=ensure_ascii,
                sort_keys=sort_keys,
                default=serializer,
            )
        except (TypeError, ValueError, OverflowError) as e:
            obj_type = type(obj).__name__
            logger.error(f"JSON 序列化失败: 对象类型 {obj_type}, 错误: {e}")
            raise SerializationError(f"无法序列化类型 {obj_type}: {e}") from e

    @staticmethod
    def from_json(data):
        """
        将 JSON 字符串反序列化为对象

        Raises:
            SerializationError: 反序列化失败时抛出
        """
        try:
            return ujson.loads(data)
        except (ValueError, TypeError) as e:
            logger.error(f"JSON 反序列化失败: {e}")
            raise SerializationError(f"无法反序列化 JSON: {e}") from e


# 便捷的模块级函数
def to_json(obj, ensure_ascii=False, sort_keys=False, default=None):
    """便捷的 JSON 序列化函数"""
    return Serializer.to_json(obj, ensure_ascii, sort_keys, default)


def from_json(data):
    """便捷的 JSON 反序列化函数"""
    return Serializer.from_json(data)
