"""Permission catalog and role vocabulary for CRM RBAC.

Design:
  - `Permission` is the closed set of permission names. Route guards, the
    grant store and the CLI reference members of this enum, never string
    literals, so a typo fails at import time instead of opening (or closing)
    a route silently.
  - `Role` is the closed set of user roles. `ROLE_TIERS` groups them by how
    the resource evaluator narrows their access inside a tenant.
  - `ROLE_DEFAULTS` is the default role -> permissions mapping. It is only
    used to seed the `role_permissions` table (`sync_role_defaults`); the
    runtime check always reads the table.

Permission naming: `<resource>:<action>`
  Resources: users, customers, deals, tasks, accounts, business-units,
             tenants, reports, permissions
  Actions:   read, write, delete
"""

from __future__ import annotations

import enum


# ── All known permissions ───────────────────────────────────

class Permission(str, enum.Enum):
    USERS_READ = "users:read"
    USERS_WRITE = "users:write"
    USERS_DELETE = "users:delete"

    CUSTOMERS_READ = "customers:read"
    CUSTOMERS_WRITE = "customers:write"
    CUSTOMERS_DELETE = "customers:delete"

    DEALS_READ = "deals:read"
    DEALS_WRITE = "deals:write"
    DEALS_DELETE = "deals:delete"

    TASKS_READ = "tasks:read"
    TASKS_WRITE = "tasks:write"
    TASKS_DELETE = "tasks:delete"

    ACCOUNTS_READ = "accounts:read"
    ACCOUNTS_WRITE = "accounts:write"
    ACCOUNTS_DELETE = "accounts:delete"

    BUSINESS_UNITS_READ = "business-units:read"
    BUSINESS_UNITS_WRITE = "business-units:write"
    BUSINESS_UNITS_DELETE = "business-units:delete"

    TENANTS_READ = "tenants:read"
    TENANTS_WRITE = "tenants:write"
    TENANTS_DELETE = "tenants:delete"

    REPORTS_READ = "reports:read"
    REPORTS_WRITE = "reports:write"

    # Grant administration
    PERMISSIONS_READ = "permissions:read"
    PERMISSIONS_WRITE = "permissions:write"

    def __str__(self) -> str:
        return self.value


ALL_PERMISSIONS: frozenset[Permission] = frozenset(Permission)

PERMISSION_DESCRIPTIONS: dict[Permission, str] = {
    Permission.USERS_READ: "Read user information",
    Permission.USERS_WRITE: "Create and update users",
    Permission.USERS_DELETE: "Delete users",
    Permission.CUSTOMERS_READ: "Read customer information",
    Permission.CUSTOMERS_WRITE: "Create and update customers",
    Permission.CUSTOMERS_DELETE: "Delete customers",
    Permission.DEALS_READ: "Read deal information",
    Permission.DEALS_WRITE: "Create and update deals",
    Permission.DEALS_DELETE: "Delete deals",
    Permission.TASKS_READ: "Read task information",
    Permission.TASKS_WRITE: "Create and update tasks",
    Permission.TASKS_DELETE: "Delete tasks",
    Permission.ACCOUNTS_READ: "Read account information",
    Permission.ACCOUNTS_WRITE: "Create and update accounts",
    Permission.ACCOUNTS_DELETE: "Delete accounts",
    Permission.BUSINESS_UNITS_READ: "Read business unit information",
    Permission.BUSINESS_UNITS_WRITE: "Create and update business units",
    Permission.BUSINESS_UNITS_DELETE: "Delete business units",
    Permission.TENANTS_READ: "Read tenant information",
    Permission.TENANTS_WRITE: "Create and update tenants",
    Permission.TENANTS_DELETE: "Delete tenants",
    Permission.REPORTS_READ: "Read reports",
    Permission.REPORTS_WRITE: "Create and update reports",
    Permission.PERMISSIONS_READ: "Read role and user permission grants",
    Permission.PERMISSIONS_WRITE: "Grant and revoke permissions",
}


_PERMISSION_NAMES: frozenset[str] = frozenset(p.value for p in Permission)


def is_known_permission(name: str) -> bool:
    return name in _PERMISSION_NAMES


def parse_permission(name: str) -> Permission | None:
    """Return the catalog member for `name`, or None if it is not in the catalog."""
    try:
        return Permission(name)
    except ValueError:
        return None


# ── Roles ───────────────────────────────────────────────────

class Role(str, enum.Enum):
    SYSTEM_ADMIN = "SYSTEM_ADMIN"
    HQ_ADMIN = "HQ_ADMIN"
    TENANT_ADMIN = "TENANT_ADMIN"
    SALES_MANAGER = "SALES_MANAGER"
    MARKETING_MANAGER = "MARKETING_MANAGER"
    FINANCE_MANAGER = "FINANCE_MANAGER"
    ACCOUNT_MANAGER = "ACCOUNT_MANAGER"
    SALES_REP = "SALES_REP"
    SUPPORT = "SUPPORT"

    def __str__(self) -> str:
        return self.value


SUPER_ADMIN_ROLE = Role.SYSTEM_ADMIN


def parse_role(value: str | None) -> Role | None:
    """Return the Role for a stored role string, or None if unrecognized."""
    if value is None:
        return None
    try:
        return Role(value)
    except ValueError:
        return None


class RoleTier(str, enum.Enum):
    """How a role is narrowed inside its own tenant."""

    SUPER = "super"            # every tenant, no narrowing
    ADMIN = "admin"            # whole tenant
    MANAGER = "manager"        # own business unit
    CONTRIBUTOR = "contributor"  # records they own or are assigned


ROLE_TIERS: dict[Role, RoleTier] = {
    Role.SYSTEM_ADMIN: RoleTier.SUPER,
    Role.HQ_ADMIN: RoleTier.ADMIN,
    Role.TENANT_ADMIN: RoleTier.ADMIN,
    Role.SALES_MANAGER: RoleTier.MANAGER,
    Role.MARKETING_MANAGER: RoleTier.MANAGER,
    Role.FINANCE_MANAGER: RoleTier.MANAGER,
    Role.ACCOUNT_MANAGER: RoleTier.CONTRIBUTOR,
    Role.SALES_REP: RoleTier.CONTRIBUTOR,
    Role.SUPPORT: RoleTier.CONTRIBUTOR,
}


def is_super_admin(role: str | Role | None) -> bool:
    return role == SUPER_ADMIN_ROLE.value


# ── Role → default permissions ──────────────────────────────

P = Permission

ROLE_DEFAULTS: dict[Role, frozenset[Permission]] = {
    Role.SYSTEM_ADMIN: ALL_PERMISSIONS,

    Role.HQ_ADMIN: frozenset({
        P.ACCOUNTS_READ, P.ACCOUNTS_WRITE, P.ACCOUNTS_DELETE,
        P.CUSTOMERS_READ, P.CUSTOMERS_WRITE, P.CUSTOMERS_DELETE,
        P.DEALS_READ, P.DEALS_WRITE, P.DEALS_DELETE,
        P.TASKS_READ, P.TASKS_WRITE, P.TASKS_DELETE,
        P.USERS_READ, P.USERS_WRITE,
        P.BUSINESS_UNITS_READ, P.BUSINESS_UNITS_WRITE,
        P.REPORTS_READ,
    }),

    Role.TENANT_ADMIN: frozenset({
        P.ACCOUNTS_READ, P.ACCOUNTS_WRITE,
        P.CUSTOMERS_READ, P.CUSTOMERS_WRITE,
        P.DEALS_READ, P.DEALS_WRITE,
        P.TASKS_READ, P.TASKS_WRITE,
        P.USERS_READ, P.BUSINESS_UNITS_READ, P.TENANTS_READ,
        P.REPORTS_READ,
    }),

    Role.SALES_MANAGER: frozenset({
        P.ACCOUNTS_READ, P.ACCOUNTS_WRITE, P.ACCOUNTS_DELETE,
        P.CUSTOMERS_READ, P.CUSTOMERS_WRITE, P.CUSTOMERS_DELETE,
        P.DEALS_READ, P.DEALS_WRITE, P.DEALS_DELETE,
        P.TASKS_READ, P.TASKS_WRITE, P.TASKS_DELETE,
        P.REPORTS_READ,
    }),

    Role.MARKETING_MANAGER: frozenset({
        P.ACCOUNTS_READ,
        P.CUSTOMERS_READ, P.CUSTOMERS_WRITE,
        P.DEALS_READ,
        P.TASKS_READ, P.TASKS_WRITE,
        P.REPORTS_READ,
    }),

    Role.FINANCE_MANAGER: frozenset({
        P.ACCOUNTS_READ,
        P.CUSTOMERS_READ,
        P.DEALS_READ,
        P.REPORTS_READ, P.REPORTS_WRITE,
    }),

    Role.ACCOUNT_MANAGER: frozenset({
        P.ACCOUNTS_READ, P.ACCOUNTS_WRITE,
        P.CUSTOMERS_READ, P.CUSTOMERS_WRITE,
        P.DEALS_READ, P.DEALS_WRITE,
        P.TASKS_READ, P.TASKS_WRITE,
    }),

    Role.SALES_REP: frozenset({
        P.ACCOUNTS_READ,
        P.CUSTOMERS_READ, P.CUSTOMERS_WRITE,
        P.DEALS_READ, P.DEALS_WRITE,
        P.TASKS_READ, P.TASKS_WRITE,
    }),

    Role.SUPPORT: frozenset({
        P.CUSTOMERS_READ,
        P.TASKS_READ, P.TASKS_WRITE,
    }),
}

del P


def has_permission(user_permissions: set[str] | frozenset[str], required: Permission | str) -> bool:
    """Check whether a permission set satisfies a requirement."""
    name = required.value if isinstance(required, Permission) else required
    return name in user_permissions


def role_tier(role: str | Role | None) -> RoleTier | None:
    """Tier of a stored role string; None for unrecognized roles."""
    parsed = parse_role(role)
    if parsed is None:
        return None
    return ROLE_TIERS.get(parsed)
