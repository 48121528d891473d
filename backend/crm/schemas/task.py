from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

TaskStatus = Literal["pending", "in-progress", "completed", "cancelled"]
TaskPriority = Literal["low", "medium", "high"]


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    status: TaskStatus = "pending"
    priority: TaskPriority = "medium"
    due_date: datetime | None = None
    business_unit_id: str | None = None
    assigned_to_id: str | None = None
    tenant_id: str | None = None


class TaskUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    business_unit_id: str | None = None
    assigned_to_id: str | None = None


class TaskOut(BaseModel):
    id: str
    title: str
    description: str | None
    status: str
    priority: str
    due_date: datetime | None
    tenant_id: str
    business_unit_id: str | None
    assigned_to_id: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
