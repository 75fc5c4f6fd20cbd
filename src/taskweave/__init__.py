"""Taskweave - 协作任务看板：依赖一致性引擎与实时推送"""

__version__ = "1.0.0"
