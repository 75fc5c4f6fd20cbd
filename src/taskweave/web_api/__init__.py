"""Taskweave Web API：REST 与 WebSocket 接口"""

from taskweave.web_api.app_factory import create_app

__all__ = ["create_app"]
