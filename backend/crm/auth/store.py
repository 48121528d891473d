"""Role-permission store: reads and idempotent writes of permission grants.

Every write is an upsert keyed by the natural key of the row:
  permissions       name
  role_permissions  (role, permission_id)
  user_permissions  (user_id, permission_id)
Re-running a write any number of times leaves exactly one row with the
last `granted` value. The unique constraints on the tables back this up
when two writers race.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.auth import permission_cache
from crm.auth.permissions import (
    PERMISSION_DESCRIPTIONS,
    ROLE_DEFAULTS,
    Permission,
    Role,
    parse_permission,
)
from crm.errors import UnknownPermissionError
from crm.models.permission import PermissionDefinition, RolePermission, UserPermission
from crm.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleGrant:
    role: str
    permission: str
    granted: bool


# ── Reads ────────────────────────────────────────────────────

async def get_user(db: AsyncSession, user_id: str) -> User | None:
    return await db.get(User, user_id)


async def role_permission_names(db: AsyncSession, role: str) -> set[str]:
    """Names of permissions granted (granted=True) to a role."""
    stmt = (
        select(PermissionDefinition.name)
        .join(RolePermission, RolePermission.permission_id == PermissionDefinition.id)
        .where(RolePermission.role == role, RolePermission.granted.is_(True))
    )
    return set((await db.scalars(stmt)).all())


async def user_permission_names(db: AsyncSession, user_id: str) -> set[str]:
    """Names of permissions granted (granted=True) directly to a user."""
    stmt = (
        select(PermissionDefinition.name)
        .join(UserPermission, UserPermission.permission_id == PermissionDefinition.id)
        .where(UserPermission.user_id == user_id, UserPermission.granted.is_(True))
    )
    return set((await db.scalars(stmt)).all())


async def get_permission(db: AsyncSession, name: str) -> PermissionDefinition | None:
    result = await db.execute(
        select(PermissionDefinition).where(PermissionDefinition.name == name)
    )
    return result.scalar_one_or_none()


async def list_role_grants(db: AsyncSession, role: Role | None = None) -> list[RoleGrant]:
    """All role grant rows (granted and revoked), optionally for one role."""
    stmt = (
        select(RolePermission.role, PermissionDefinition.name, RolePermission.granted)
        .join(PermissionDefinition, PermissionDefinition.id == RolePermission.permission_id)
        .order_by(RolePermission.role, PermissionDefinition.name)
    )
    if role is not None:
        stmt = stmt.where(RolePermission.role == role.value)
    result = await db.execute(stmt)
    return [RoleGrant(role=r, permission=n, granted=g) for r, n, g in result.all()]


async def list_user_grants(db: AsyncSession, user_id: str) -> dict[str, bool]:
    result = await db.execute(
        select(PermissionDefinition.name, UserPermission.granted)
        .join(PermissionDefinition, PermissionDefinition.id == UserPermission.permission_id)
        .where(UserPermission.user_id == user_id)
    )
    return {name: granted for name, granted in result.all()}


# ── Writes ───────────────────────────────────────────────────

def _catalog_member(permission: Permission | str) -> Permission:
    if isinstance(permission, Permission):
        return permission
    member = parse_permission(permission)
    if member is None:
        raise UnknownPermissionError(permission)
    return member


async def upsert_permission(
    db: AsyncSession,
    permission: Permission | str,
    description: str | None = None,
) -> PermissionDefinition:
    """Create the catalog row for a permission, or refresh its description."""
    member = _catalog_member(permission)
    description = description or PERMISSION_DESCRIPTIONS.get(member)

    row = await get_permission(db, member.value)
    if row is None:
        row = PermissionDefinition(name=member.value, description=description)
        db.add(row)
    elif description and row.description != description:
        row.description = description
    await db.flush()
    return row


async def _permission_row(db: AsyncSession, permission: Permission | str) -> PermissionDefinition:
    member = _catalog_member(permission)
    row = await get_permission(db, member.value)
    if row is None:
        row = await upsert_permission(db, member)
    return row


async def upsert_role_permission(
    db: AsyncSession,
    role: Role | str,
    permission: Permission | str,
    granted: bool = True,
) -> RolePermission:
    """Grant (or explicitly revoke) a permission for a role."""
    role = Role(role)
    perm_row = await _permission_row(db, permission)

    result = await db.execute(
        select(RolePermission).where(
            RolePermission.role == role.value,
            RolePermission.permission_id == perm_row.id,
        )
    )
    grant = result.scalar_one_or_none()
    if grant is None:
        grant = RolePermission(role=role.value, permission_id=perm_row.id, granted=granted)
        db.add(grant)
    else:
        grant.granted = granted
    await db.flush()

    logger.info(
        "Role grant %s %s -> %s", role.value, perm_row.name, "granted" if granted else "revoked"
    )
    await _invalidate_role(db, role)
    return grant


async def set_user_permission(
    db: AsyncSession,
    user_id: str,
    permission: Permission | str,
    granted: bool = True,
) -> UserPermission:
    """Grant (or mark as not granted) a permission for one user."""
    perm_row = await _permission_row(db, permission)

    result = await db.execute(
        select(UserPermission).where(
            UserPermission.user_id == user_id,
            UserPermission.permission_id == perm_row.id,
        )
    )
    grant = result.scalar_one_or_none()
    if grant is None:
        grant = UserPermission(user_id=user_id, permission_id=perm_row.id, granted=granted)
        db.add(grant)
    else:
        grant.granted = granted
    await db.flush()

    logger.info(
        "User grant %s %s -> %s", user_id, perm_row.name, "granted" if granted else "revoked"
    )
    await permission_cache.invalidate_after_commit(db, [user_id])
    return grant


async def sync_role_defaults(db: AsyncSession) -> dict[str, int]:
    """Upsert the whole catalog and every default role grant.

    Grant-only: an existing explicit revoke (granted=False) for a default
    pair is turned back into a grant, but rows outside the defaults are
    left alone. Safe to run repeatedly.
    """
    for member in Permission:
        await upsert_permission(db, member)

    grants = 0
    for role, permissions in ROLE_DEFAULTS.items():
        for member in sorted(permissions, key=lambda p: p.value):
            await upsert_role_permission(db, role, member, granted=True)
            grants += 1

    logger.info("Synced %d permissions and %d default role grants", len(Permission), grants)
    return {"permissions": len(Permission), "grants": grants}


async def _invalidate_role(db: AsyncSession, role: Role) -> None:
    if not permission_cache.cache_enabled():
        return
    user_ids = (await db.scalars(select(User.id).where(User.role == role.value))).all()
    await permission_cache.invalidate_after_commit(db, user_ids)
