"""Aggregate model imports so Base.metadata sees every table."""

from crm.models.tenant import Tenant, TenantType  # noqa: F401
from crm.models.business_unit import BusinessUnit  # noqa: F401
from crm.models.user import User, UserStatus  # noqa: F401
from crm.models.permission import (  # noqa: F401
    PermissionDefinition,
    RolePermission,
    UserPermission,
)
from crm.models.account import Account  # noqa: F401
from crm.models.customer import Customer  # noqa: F401
from crm.models.deal import Deal  # noqa: F401
from crm.models.task import Task  # noqa: F401
