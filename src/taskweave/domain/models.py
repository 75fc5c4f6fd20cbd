"""
领域模型

Task 与 User 记录，既是存储层的数据结构，也是线上 JSON 的载体。
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from taskweave.domain.enums import TaskPriority, TaskStatus


class Task(BaseModel):
    """任务"""

    id: str
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=1000)
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.TODO
    assigned_user_id: str | None = None
    dependencies: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    version: int = Field(1, ge=1)

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE


class User(BaseModel):
    """用户，创建后不可变"""

    model_config = ConfigDict(frozen=True)

    id: str
    username: str = Field(..., min_length=3, max_length=50)
    email: str = Field(..., max_length=100)
    created_at: datetime


__all__ = ["Task", "User"]
