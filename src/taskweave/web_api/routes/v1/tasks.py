"""任务接口

所有任务接口都需要有效会话；写操作可通过 If-Match 头携带调用方最后读取的版本。
"""

from fastapi import APIRouter, status

from taskweave.domain.models import Task
from taskweave.domain.schemas import (
    BaseResponse,
    TaskCreateRequest,
    TaskDependenciesResponse,
    TaskDetailResponse,
    TaskUpdateRequest,
)
from taskweave.web_api.deps import CurrentUser, ExpectedVersion, Gateway
from taskweave.web_api.response import Messages, ResponseCode, success

tasks_router = APIRouter()


@tasks_router.post(
    "",
    response_model=BaseResponse[Task],
    status_code=status.HTTP_201_CREATED,
    summary="创建任务",
)
async def create_task(task_data: TaskCreateRequest, current_user: CurrentUser, gateway: Gateway):
    task = await gateway.create_task(task_data)
    return success(task, message=Messages.CREATED_SUCCESS, code=ResponseCode.CREATED)


@tasks_router.get("", response_model=BaseResponse[list[Task]], summary="任务列表")
async def list_tasks(current_user: CurrentUser, gateway: Gateway):
    return success(await gateway.list_tasks(), message=Messages.QUERY_SUCCESS)


@tasks_router.get("/my-tasks", response_model=BaseResponse[list[Task]], summary="我的任务")
async def list_my_tasks(current_user: CurrentUser, gateway: Gateway):
    tasks = await gateway.list_tasks_for_user(current_user.id)
    return success(tasks, message=Messages.QUERY_SUCCESS)


@tasks_router.get("/blocked", response_model=BaseResponse[list[Task]], summary="被阻塞的任务")
async def list_blocked_tasks(current_user: CurrentUser, gateway: Gateway):
    return success(await gateway.get_blocked(), message=Messages.QUERY_SUCCESS)


@tasks_router.get("/{task_id}", response_model=BaseResponse[TaskDetailResponse], summary="任务详情")
async def get_task(task_id: str, current_user: CurrentUser, gateway: Gateway):
    """任务本身、已解析的依赖任务以及依赖它的任务"""
    detail = await gateway.get_task_detail(task_id)
    return success(detail, message=Messages.QUERY_SUCCESS)


@tasks_router.put("/{task_id}", response_model=BaseResponse[Task], summary="更新任务")
async def update_task(
    task_id: str,
    task_data: TaskUpdateRequest,
    current_user: CurrentUser,
    gateway: Gateway,
    expected_version: ExpectedVersion,
):
    task = await gateway.update_task(task_id, task_data, expected_version=expected_version)
    return success(task, message=Messages.UPDATED_SUCCESS)


@tasks_router.delete("/{task_id}", response_model=BaseResponse[dict], summary="删除任务")
async def delete_task(
    task_id: str,
    current_user: CurrentUser,
    gateway: Gateway,
    expected_version: ExpectedVersion,
):
    await gateway.delete_task(task_id, expected_version=expected_version)
    return success({"task_id": task_id}, message=Messages.DELETED_SUCCESS)


@tasks_router.patch("/{task_id}/complete", response_model=BaseResponse[Task], summary="标记完成")
async def complete_task(
    task_id: str,
    current_user: CurrentUser,
    gateway: Gateway,
    expected_version: ExpectedVersion,
):
    task = await gateway.mark_complete(task_id, expected_version=expected_version)
    return success(task, message=Messages.COMPLETED_SUCCESS)


@tasks_router.get(
    "/{task_id}/dependencies",
    response_model=BaseResponse[TaskDependenciesResponse],
    summary="任务依赖关系",
)
async def get_task_dependencies(task_id: str, current_user: CurrentUser, gateway: Gateway):
    payload = TaskDependenciesResponse(
        dependencies=await gateway.get_dependencies(task_id),
        dependents=await gateway.get_dependents(task_id),
    )
    return success(payload, message=Messages.QUERY_SUCCESS)
