"""统一响应工具（Web API）"""

from enum import IntEnum

from taskweave.domain.schemas import BaseResponse


class ResponseCode(IntEnum):
    """HTTP 响应状态码"""

    # 成功
    SUCCESS = 200
    CREATED = 201
    # 客户端错误
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    NOT_FOUND = 404
    CONFLICT = 409
    # 服务端错误
    SERVER_ERROR = 500


class Messages:
    """标准响应消息"""

    # 成功消息
    OPERATION_SUCCESS = "操作成功"
    CREATED_SUCCESS = "创建成功"
    UPDATED_SUCCESS = "更新成功"
    DELETED_SUCCESS = "删除成功"
    QUERY_SUCCESS = "查询成功"
    COMPLETED_SUCCESS = "任务已完成"
    REGISTER_SUCCESS = "注册成功"
    LOGIN_SUCCESS = "登录成功"
    LOGOUT_SUCCESS = "退出成功"


def success(data=None, message=Messages.OPERATION_SUCCESS, code=ResponseCode.SUCCESS):
    """构建成功响应"""
    return BaseResponse(success=True, code=int(code), message=message, data=data)
