"""Grant administration routes.

Route overview:
  GET /                   the permission catalog
  GET /roles              every role grant (optionally ?role=)
  GET /roles/{role}       grants of one role
  PUT /roles/{role}       grant or revoke one permission for a role
  GET /users/{user_id}    a user's own grants and effective permissions
  PUT /users/{user_id}    grant or revoke one permission for a user

Writes go through crm.auth.store, so they are idempotent and invalidate any
cached permission sets of the affected users.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from crm.auth import store
from crm.auth.access import ResourceType
from crm.auth.context import AuthContext
from crm.auth.deps import authorize, require_permission
from crm.auth.errors import ResourceNotFound
from crm.auth.permissions import PERMISSION_DESCRIPTIONS, Permission, Role, parse_role
from crm.auth.resolver import resolve_effective_permissions
from crm.database import get_db
from crm.errors import BusinessRuleError
from crm.schemas.permission import GrantRequest, PermissionOut, RoleGrantOut, UserGrantsOut

router = APIRouter()


def _role_or_400(value: str) -> Role:
    role = parse_role(value)
    if role is None:
        raise BusinessRuleError(f"Unknown role '{value}'")
    return role


async def _user_grants_out(db: AsyncSession, user_id: str) -> UserGrantsOut:
    return UserGrantsOut(
        user_id=user_id,
        grants=await store.list_user_grants(db, user_id),
        effective=sorted(await resolve_effective_permissions(db, user_id)),
    )


# ── Catalog ──────────────────────────────────────────────────

@router.get("/", response_model=list[PermissionOut])
async def list_permissions(
    _ctx: AuthContext = Depends(require_permission(Permission.PERMISSIONS_READ)),
):
    return [
        PermissionOut(name=p.value, description=PERMISSION_DESCRIPTIONS.get(p))
        for p in sorted(Permission, key=lambda p: p.value)
    ]


# ── Role grants ──────────────────────────────────────────────

@router.get("/roles", response_model=list[RoleGrantOut])
async def list_role_grants(
    role: str | None = None,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(authorize(Permission.PERMISSIONS_READ)),
):
    parsed = _role_or_400(role) if role else None
    return [RoleGrantOut.model_validate(g) for g in await store.list_role_grants(db, parsed)]


@router.get("/roles/{role}", response_model=list[RoleGrantOut])
async def get_role_grants(
    role: str,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(authorize(Permission.PERMISSIONS_READ)),
):
    grants = await store.list_role_grants(db, _role_or_400(role))
    return [RoleGrantOut.model_validate(g) for g in grants]


@router.put("/roles/{role}", response_model=RoleGrantOut)
async def set_role_grant(
    role: str,
    body: GrantRequest,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(authorize(Permission.PERMISSIONS_WRITE)),
):
    parsed = _role_or_400(role)
    await store.upsert_role_permission(db, parsed, body.permission, body.granted)
    return RoleGrantOut(role=parsed.value, permission=body.permission.value, granted=body.granted)


# ── User grants ──────────────────────────────────────────────

@router.get("/users/{user_id}", response_model=UserGrantsOut)
async def get_user_grants(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(
        authorize(Permission.PERMISSIONS_READ, ResourceType.USER, "user_id")
    ),
):
    return await _user_grants_out(db, user_id)


@router.put("/users/{user_id}", response_model=UserGrantsOut)
async def set_user_grant(
    user_id: str,
    body: GrantRequest,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(
        authorize(Permission.PERMISSIONS_WRITE, ResourceType.USER, "user_id")
    ),
):
    if await store.get_user(db, user_id) is None:
        raise ResourceNotFound(ResourceType.USER.value, user_id)
    await store.set_user_permission(db, user_id, body.permission, body.granted)
    return await _user_grants_out(db, user_id)
