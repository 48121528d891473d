"""Auth routes: login and current-user profile.

Route overview:
  POST /login  email + password login, returns an access token
  GET  /me     the current user, their tenant, and effective permissions
"""

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.auth.context import AuthContext
from crm.auth.deps import get_auth_context
from crm.auth.errors import AccountInactive, InvalidCredential
from crm.auth.jwt import create_access_token
from crm.auth.password import verify_password
from crm.auth.permissions import is_super_admin
from crm.auth.resolver import resolve_effective_permissions
from crm.database import get_db
from crm.models.tenant import Tenant
from crm.models.user import User
from crm.schemas.auth import LoginRequest, MeOut, TenantSummary, TokenResponse

router = APIRouter()


# ── Helpers ──────────────────────────────────────────────────

def _build_me_out(user: User, tenant: Tenant | None, permissions: set[str] | frozenset[str]) -> MeOut:
    return MeOut(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        role=user.role,
        status=user.status,
        tenant_id=user.tenant_id,
        business_unit_id=user.business_unit_id,
        permissions=sorted(permissions),
        tenant=TenantSummary.model_validate(tenant) if tenant else None,
    )


# ── POST /login ──────────────────────────────────────────────

@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Email + password login.

    Every user except SYSTEM_ADMIN must belong to a tenant to log in.
    """
    result = await db.execute(select(User).where(User.email == body.email.lower()))
    user = result.scalar_one_or_none()

    if not user or not user.hashed_password:
        raise InvalidCredential("Invalid email or password")
    if not verify_password(body.password, user.hashed_password):
        raise InvalidCredential("Invalid email or password")
    if not user.is_active:
        raise AccountInactive()
    if user.tenant_id is None and not is_super_admin(user.role):
        raise AccountInactive("User is not assigned to a tenant")

    user.last_login_at = datetime.utcnow()
    await db.flush()

    tenant = await db.get(Tenant, user.tenant_id) if user.tenant_id else None
    permissions = await resolve_effective_permissions(db, user.id)
    return TokenResponse(
        access_token=create_access_token(user_id=user.id, email=user.email),
        user=_build_me_out(user, tenant, permissions),
    )


# ── GET /me ──────────────────────────────────────────────────

@router.get("/me", response_model=MeOut)
async def me(ctx: AuthContext = Depends(get_auth_context)):
    """Return the current authenticated user's profile and permissions."""
    return _build_me_out(ctx.user, ctx.tenant, ctx.permissions)
