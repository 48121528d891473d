"""Resource access evaluation: may this user act on this specific row?

This is the fine-grained check that runs after the coarse permission check
on routes addressing one resource by id. For a resource type it needs to
know three things about a row, declared once in RESOURCE_SCOPES:

  tenant          directly from a column, or through the row's business unit
  business unit   used to narrow manager-tier roles
  owner           the manager / assignee column used to narrow contributors

Decision, in order:
  1. resource missing                      -> NOT_FOUND
  2. user missing or role unrecognized     -> DENIED
  3. SYSTEM_ADMIN                          -> ALLOWED
  4. different tenant (or user has none)   -> CROSS_TENANT
  5. type not narrowed by role             -> ALLOWED
  6. admin tier                            -> ALLOWED
     manager tier                          -> same business unit
     contributor tier                      -> owner == user
  7. anything else                         -> DENIED
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from sqlalchemy import ColumnElement, null, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crm.auth.errors import InfrastructureFailure
from crm.auth.permissions import ROLE_TIERS, RoleTier, parse_role
from crm.models.account import Account
from crm.models.business_unit import BusinessUnit
from crm.models.customer import Customer
from crm.models.deal import Deal
from crm.models.task import Task
from crm.models.tenant import Tenant
from crm.models.user import User

logger = logging.getLogger(__name__)


class ResourceType(str, enum.Enum):
    ACCOUNT = "account"
    BUSINESS_UNIT = "businessUnit"
    TENANT = "tenant"
    USER = "user"
    CUSTOMER = "customer"
    DEAL = "deal"
    TASK = "task"


class AccessDecision(str, enum.Enum):
    ALLOWED = "allowed"
    NOT_FOUND = "not_found"
    DENIED = "denied"
    CROSS_TENANT = "cross_tenant"


@dataclass(frozen=True)
class ResourceScope:
    model: type
    # Column holding the tenant id; None means "through business_unit_column"
    tenant_column: str | None
    business_unit_column: str | None = None
    owner_column: str | None = None
    narrow_by_role: bool = True

    def tenant_expr(self) -> ColumnElement:
        if self.tenant_column is not None:
            return getattr(self.model, self.tenant_column)
        return BusinessUnit.tenant_id

    def business_unit_expr(self) -> ColumnElement:
        if self.business_unit_column is None:
            return null()
        return getattr(self.model, self.business_unit_column)

    def owner_expr(self) -> ColumnElement:
        if self.owner_column is None:
            return null()
        return getattr(self.model, self.owner_column)

    def join_business_unit(self, stmt):
        """Add the business-unit join needed when the tenant is not a direct column."""
        if self.tenant_column is not None:
            return stmt
        return stmt.join(
            BusinessUnit, BusinessUnit.id == getattr(self.model, self.business_unit_column)
        )


RESOURCE_SCOPES: dict[ResourceType, ResourceScope] = {
    ResourceType.TENANT: ResourceScope(Tenant, tenant_column="id", narrow_by_role=False),
    ResourceType.BUSINESS_UNIT: ResourceScope(
        BusinessUnit,
        tenant_column="tenant_id",
        business_unit_column="id",
        owner_column="manager_id",
        narrow_by_role=False,
    ),
    ResourceType.USER: ResourceScope(
        User, tenant_column="tenant_id", business_unit_column="business_unit_id", owner_column="id"
    ),
    ResourceType.ACCOUNT: ResourceScope(
        Account,
        tenant_column="tenant_id",
        business_unit_column="business_unit_id",
        owner_column="account_manager_id",
    ),
    ResourceType.CUSTOMER: ResourceScope(
        Customer,
        tenant_column=None,
        business_unit_column="business_unit_id",
        owner_column="assigned_to_id",
    ),
    ResourceType.DEAL: ResourceScope(
        Deal,
        tenant_column="tenant_id",
        business_unit_column="business_unit_id",
        owner_column="assigned_to_id",
    ),
    ResourceType.TASK: ResourceScope(
        Task,
        tenant_column="tenant_id",
        business_unit_column="business_unit_id",
        owner_column="assigned_to_id",
    ),
}


@dataclass(frozen=True)
class ResourceRef:
    """The access-relevant keys of one row."""

    tenant_id: str | None
    business_unit_id: str | None
    owner_id: str | None


def parse_resource_type(value: ResourceType | str) -> ResourceType | None:
    try:
        return ResourceType(value)
    except ValueError:
        return None


async def load_resource_ref(
    db: AsyncSession, scope: ResourceScope, resource_id: str
) -> ResourceRef | None:
    stmt = select(
        scope.tenant_expr().label("tenant_id"),
        scope.business_unit_expr().label("business_unit_id"),
        scope.owner_expr().label("owner_id"),
    ).select_from(scope.model)
    stmt = scope.join_business_unit(stmt).where(scope.model.id == resource_id)

    row = (await db.execute(stmt)).first()
    if row is None:
        return None
    return ResourceRef(
        tenant_id=row.tenant_id,
        business_unit_id=row.business_unit_id,
        owner_id=row.owner_id,
    )


def decide(user: User, ref: ResourceRef, scope: ResourceScope) -> AccessDecision:
    """Pure decision for a loaded user and resource."""
    role = parse_role(user.role)
    if role is None:
        logger.warning("User %s has unrecognized role %r; denying", user.id, user.role)
        return AccessDecision.DENIED

    tier = ROLE_TIERS.get(role)
    if tier is RoleTier.SUPER:
        return AccessDecision.ALLOWED

    if user.tenant_id is None or ref.tenant_id != user.tenant_id:
        return AccessDecision.CROSS_TENANT

    if not scope.narrow_by_role:
        return AccessDecision.ALLOWED

    if tier is RoleTier.ADMIN:
        return AccessDecision.ALLOWED
    if tier is RoleTier.MANAGER:
        if user.business_unit_id is not None and ref.business_unit_id == user.business_unit_id:
            return AccessDecision.ALLOWED
        return AccessDecision.DENIED
    if tier is RoleTier.CONTRIBUTOR:
        if ref.owner_id is not None and ref.owner_id == user.id:
            return AccessDecision.ALLOWED
        return AccessDecision.DENIED

    return AccessDecision.DENIED


async def evaluate_resource_access(
    db: AsyncSession,
    user_id: str,
    resource_id: str,
    resource_type: ResourceType | str,
) -> AccessDecision:
    """Decide whether `user_id` may act on one resource instance.

    Read-only. Raises InfrastructureFailure only when the store fails.
    """
    rtype = parse_resource_type(resource_type)
    if rtype is None:
        logger.warning("No access scope for resource type %r; denying", resource_type)
        return AccessDecision.DENIED
    scope = RESOURCE_SCOPES[rtype]

    try:
        ref = await load_resource_ref(db, scope, resource_id)
        if ref is None:
            return AccessDecision.NOT_FOUND
        user = await db.get(User, user_id)
    except SQLAlchemyError as exc:
        logger.error("Resource access lookup failed for %s %s: %s", rtype.value, resource_id, exc)
        raise InfrastructureFailure() from exc

    if user is None:
        return AccessDecision.DENIED
    return decide(user, ref, scope)


async def can_access_resource(
    db: AsyncSession,
    user_id: str,
    resource_id: str,
    resource_type: ResourceType | str,
) -> bool:
    """True only when the user may act on this resource; False for missing user or resource."""
    decision = await evaluate_resource_access(db, user_id, resource_id, resource_type)
    return decision is AccessDecision.ALLOWED
