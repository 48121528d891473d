"""Task routes."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from crm.auth.access import ResourceType
from crm.auth.context import AuthContext
from crm.auth.deps import authorize
from crm.auth.errors import ResourceNotFound
from crm.auth.permissions import Permission
from crm.auth.scoping import (
    apply_creator_defaults,
    ensure_reference,
    ensure_row_in_reach,
    scoped_select,
    tenant_for_create,
)
from crm.database import get_db
from crm.models.task import Task
from crm.schemas.common import PaginatedResponse
from crm.schemas.task import TaskCreate, TaskOut, TaskUpdate
from crm.utils.pagination import paginate

router = APIRouter()

_ID = "task_id"


async def _get_task(db: AsyncSession, task_id: str) -> Task:
    task = await db.get(Task, task_id)
    if task is None:
        raise ResourceNotFound(ResourceType.TASK.value, task_id)
    return task


@router.get("/", response_model=PaginatedResponse[TaskOut])
async def list_tasks(
    status_filter: str | None = Query(None, alias="status"),
    priority: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(authorize(Permission.TASKS_READ)),
):
    stmt = scoped_select(ResourceType.TASK, ctx)
    if status_filter and status_filter != "all":
        stmt = stmt.where(Task.status == status_filter)
    if priority:
        stmt = stmt.where(Task.priority == priority)

    stmt = stmt.order_by(Task.due_date.is_(None), Task.due_date, Task.created_at)
    items, total = await paginate(db, stmt, limit, offset)
    return PaginatedResponse(
        items=[TaskOut.model_validate(t) for t in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(
    task_id: str,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(authorize(Permission.TASKS_READ, ResourceType.TASK, _ID)),
):
    return TaskOut.model_validate(await _get_task(db, task_id))


@router.post("/", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
async def create_task(
    body: TaskCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(authorize(Permission.TASKS_WRITE)),
):
    tenant_id = tenant_for_create(ctx, body.tenant_id)
    data = apply_creator_defaults(
        ctx, body.model_dump(exclude={"tenant_id"}), owner_key="assigned_to_id"
    )
    await ensure_reference(db, ctx, tenant_id, ResourceType.BUSINESS_UNIT, data["business_unit_id"])
    await ensure_reference(db, ctx, tenant_id, ResourceType.USER, data["assigned_to_id"])

    task = Task(tenant_id=tenant_id, **data)
    ensure_row_in_reach(ctx, ResourceType.TASK, task, tenant_id)
    db.add(task)
    await db.flush()
    await db.refresh(task)
    return TaskOut.model_validate(task)


@router.put("/{task_id}", response_model=TaskOut)
async def update_task(
    task_id: str,
    body: TaskUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(authorize(Permission.TASKS_WRITE, ResourceType.TASK, _ID)),
):
    task = await _get_task(db, task_id)
    updates = body.model_dump(exclude_unset=True)
    await ensure_reference(db, ctx, task.tenant_id, ResourceType.BUSINESS_UNIT, updates.get("business_unit_id"))
    await ensure_reference(db, ctx, task.tenant_id, ResourceType.USER, updates.get("assigned_to_id"))

    for key, value in updates.items():
        setattr(task, key, value)
    ensure_row_in_reach(ctx, ResourceType.TASK, task, task.tenant_id)
    await db.flush()
    await db.refresh(task)
    return TaskOut.model_validate(task)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: str,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(authorize(Permission.TASKS_DELETE, ResourceType.TASK, _ID)),
):
    task = await _get_task(db, task_id)
    await db.delete(task)
    await db.flush()
