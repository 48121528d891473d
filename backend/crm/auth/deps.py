"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_auth_context         → verify bearer token, load user + tenant, resolve permissions
  require_permission(...)  → coarse check: the caller holds one permission
  authorize(...)           → identity → permission → per-resource check, in that order;
                             `super_admin_only` adds a SYSTEM_ADMIN check after the permission

Each stage raises one member of crm.auth.errors; the first failure
short-circuits the rest, so the route handler never runs.
"""

import logging

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crm.auth.access import AccessDecision, ResourceType, evaluate_resource_access
from crm.auth.context import AuthContext
from crm.auth.errors import (
    AccountInactive,
    AuthenticationRequired,
    InfrastructureFailure,
    InsufficientPermissions,
    InvalidCredential,
    ResourceAccessDenied,
    ResourceNotFound,
)
from crm.auth.jwt import decode_token
from crm.auth.permissions import Permission
from crm.auth.resolver import resolve_effective_permissions
from crm.config import settings
from crm.database import get_db
from crm.models.tenant import Tenant
from crm.models.user import User

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


# ── Identity ────────────────────────────────────────────────

async def get_auth_context(
    request: Request,
    token: str | None = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> AuthContext:
    """Decode the JWT, load the user and tenant, and resolve permissions.

    Permissions are resolved fresh for every request. The context is also
    stored on `request.state.auth` for middleware and handlers that do not
    declare the dependency.
    """
    if not token:
        raise AuthenticationRequired()

    payload = decode_token(token)
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise InvalidCredential()

    try:
        user = await db.get(User, user_id)
        tenant = await db.get(Tenant, user.tenant_id) if user and user.tenant_id else None
    except SQLAlchemyError as exc:
        logger.error("User lookup failed for %s: %s", user_id, exc)
        raise InfrastructureFailure() from exc

    if user is None:
        raise InvalidCredential("User not found")
    if not user.is_active:
        raise AccountInactive()

    permissions = await resolve_effective_permissions(db, user.id)
    ctx = AuthContext(user=user, tenant=tenant, permissions=frozenset(permissions))
    request.state.auth = ctx
    return ctx


# ── Permission-based access control ─────────────────────────

def _ensure_permission(ctx: AuthContext, permission: Permission) -> None:
    if not ctx.has(permission):
        logger.info(
            "Permission denied: user %s (%s) lacks %s", ctx.user_id, ctx.user.role, permission.value
        )
        raise InsufficientPermissions(permission.value)


def require_permission(permission: Permission):
    """Dependency factory: the caller must hold `permission`.

    Usage:
        @router.get("/")
        async def list_accounts(ctx: AuthContext = Depends(require_permission(Permission.ACCOUNTS_READ))):
            ...
    """
    async def _check(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        _ensure_permission(ctx, permission)
        return ctx

    return _check


def authorize(
    permission: Permission,
    resource_type: ResourceType | None = None,
    id_param: str = "id",
    super_admin_only: bool = False,
):
    """Dependency factory composing the whole gate for one route.

    Routes addressing one resource declare its `resource_type`; the id is
    read from the `id_param` path parameter. When the path has no such
    parameter (a collection route) only the permission is checked and the
    route must scope its query with crm.auth.scoping.scoped_select.

    SYSTEM_ADMIN skips the per-resource check but not the permission check.
    With `super_admin_only` every other role is refused once the permission
    check has passed.
    """
    async def _check(
        request: Request,
        ctx: AuthContext = Depends(get_auth_context),
        db: AsyncSession = Depends(get_db),
    ) -> AuthContext:
        _ensure_permission(ctx, permission)
        if super_admin_only:
            _ensure_super_admin(ctx)

        if resource_type is None:
            return ctx
        resource_id = request.path_params.get(id_param)
        if resource_id is None or ctx.is_super_admin:
            return ctx

        decision = await evaluate_resource_access(db, ctx.user_id, resource_id, resource_type)
        if decision is AccessDecision.ALLOWED:
            return ctx

        logger.info(
            "Resource access %s: user %s -> %s %s",
            decision.value, ctx.user_id, resource_type.value, resource_id,
        )
        if decision is AccessDecision.NOT_FOUND:
            raise ResourceNotFound(resource_type.value, resource_id)
        if decision is AccessDecision.CROSS_TENANT and settings.collapse_cross_tenant_denials:
            raise ResourceNotFound(resource_type.value, resource_id)
        raise ResourceAccessDenied(resource_type.value, resource_id)

    return _check


# ── Role-based access control ───────────────────────────────

def _ensure_super_admin(ctx: AuthContext) -> None:
    if not ctx.is_super_admin:
        logger.info("Role denied: user %s (%s) is not SYSTEM_ADMIN", ctx.user_id, ctx.user.role)
        raise InsufficientPermissions(
            "role:SYSTEM_ADMIN", "Only system administrators can perform this action"
        )
