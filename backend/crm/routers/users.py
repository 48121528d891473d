"""User routes.

Reading users follows the normal gate. Creating, editing and deleting
users is reserved to SYSTEM_ADMIN on top of the users:* permission.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.auth import permission_cache
from crm.auth.access import ResourceType
from crm.auth.context import AuthContext
from crm.auth.deps import authorize
from crm.auth.errors import ResourceNotFound
from crm.auth.password import hash_password
from crm.auth.permissions import Permission, Role
from crm.auth.scoping import ensure_in_tenant, scoped_select
from crm.database import get_db
from crm.errors import BusinessRuleError
from crm.models.tenant import Tenant
from crm.models.user import User
from crm.schemas.common import PaginatedResponse
from crm.schemas.user import UserCreate, UserOut, UserUpdate
from crm.utils.pagination import paginate

router = APIRouter()

_ID = "user_id"


async def _get_user(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise ResourceNotFound(ResourceType.USER.value, user_id)
    return user


async def _ensure_email_free(db: AsyncSession, email: str, exclude_id: str | None = None) -> None:
    stmt = select(User.id).where(User.email == email)
    if exclude_id:
        stmt = stmt.where(User.id != exclude_id)
    if await db.scalar(stmt):
        raise BusinessRuleError(f"Email '{email}' is already registered")


async def _check_placement(
    db: AsyncSession, role: str, tenant_id: str | None, business_unit_id: str | None
) -> None:
    """A user belongs to an existing tenant (SYSTEM_ADMIN may have none) and a BU inside it."""
    if tenant_id is None:
        if role != Role.SYSTEM_ADMIN.value:
            raise BusinessRuleError("tenant_id is required")
        if business_unit_id is not None:
            raise BusinessRuleError("business_unit_id requires a tenant_id")
        return
    if await db.get(Tenant, tenant_id) is None:
        raise BusinessRuleError(f"tenant {tenant_id} does not exist")
    await ensure_in_tenant(db, tenant_id, ResourceType.BUSINESS_UNIT, business_unit_id)


@router.get("/", response_model=PaginatedResponse[UserOut])
async def list_users(
    role: str | None = None,
    status_filter: str | None = Query(None, alias="status"),
    search: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(authorize(Permission.USERS_READ)),
):
    stmt = scoped_select(ResourceType.USER, ctx)
    if role:
        stmt = stmt.where(User.role == role)
    if status_filter and status_filter != "all":
        stmt = stmt.where(User.status == status_filter)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(
            User.email.ilike(pattern),
            User.first_name.ilike(pattern),
            User.last_name.ilike(pattern),
        ))

    items, total = await paginate(db, stmt.order_by(User.email), limit, offset)
    return PaginatedResponse(
        items=[UserOut.model_validate(u) for u in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{user_id}", response_model=UserOut)
async def get_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(authorize(Permission.USERS_READ, ResourceType.USER, _ID)),
):
    return UserOut.model_validate(await _get_user(db, user_id))


@router.post("/", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(authorize(Permission.USERS_WRITE, super_admin_only=True)),
):
    email = body.email.lower()
    await _ensure_email_free(db, email)
    await _check_placement(db, body.role.value, body.tenant_id, body.business_unit_id)

    user = User(
        email=email,
        hashed_password=hash_password(body.password),
        first_name=body.first_name,
        last_name=body.last_name,
        role=body.role.value,
        status=body.status,
        tenant_id=body.tenant_id,
        business_unit_id=body.business_unit_id,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    return UserOut.model_validate(user)


@router.put("/{user_id}", response_model=UserOut)
async def update_user(
    user_id: str,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(
        authorize(Permission.USERS_WRITE, ResourceType.USER, _ID, super_admin_only=True)
    ),
):
    user = await _get_user(db, user_id)
    updates = body.model_dump(exclude_unset=True)

    if updates.get("email"):
        updates["email"] = updates["email"].lower()
        await _ensure_email_free(db, updates["email"], exclude_id=user_id)
    if updates.get("password"):
        updates["hashed_password"] = hash_password(updates["password"])
    updates.pop("password", None)
    if updates.get("role") is not None:
        updates["role"] = updates["role"].value

    if {"role", "tenant_id", "business_unit_id"} & updates.keys():
        await _check_placement(
            db,
            updates.get("role", user.role),
            updates.get("tenant_id", user.tenant_id),
            updates.get("business_unit_id", user.business_unit_id),
        )

    for key, value in updates.items():
        setattr(user, key, value)
    await db.flush()
    await db.refresh(user)

    # A role change alters the user's effective permission set
    await permission_cache.invalidate_after_commit(db, [user.id])
    return UserOut.model_validate(user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(
        authorize(Permission.USERS_DELETE, ResourceType.USER, _ID, super_admin_only=True)
    ),
):
    user = await _get_user(db, user_id)
    if user.id == ctx.user_id:
        raise BusinessRuleError("You cannot delete your own account")
    if user.business_unit_id is not None:
        raise BusinessRuleError("Cannot delete a user assigned to a business unit")

    await db.delete(user)
    await db.flush()
    await permission_cache.invalidate_after_commit(db, [user_id])
