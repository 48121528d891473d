from dataclasses import dataclass, field

from crm.auth.permissions import Permission, has_permission, is_super_admin
from crm.models.tenant import Tenant
from crm.models.user import User


@dataclass
class AuthContext:
    """What the identity check attaches to an admitted request."""

    user: User
    tenant: Tenant | None
    permissions: frozenset[str] = field(default_factory=frozenset)

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def tenant_id(self) -> str | None:
        return self.user.tenant_id

    @property
    def is_super_admin(self) -> bool:
        return is_super_admin(self.user.role)

    def has(self, permission: Permission | str) -> bool:
        return has_permission(self.permissions, permission)
