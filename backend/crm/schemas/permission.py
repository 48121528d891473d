from pydantic import BaseModel

from crm.auth.permissions import Permission


class PermissionOut(BaseModel):
    name: str
    description: str | None


class GrantRequest(BaseModel):
    permission: Permission
    granted: bool = True


class RoleGrantOut(BaseModel):
    role: str
    permission: str
    granted: bool

    model_config = {"from_attributes": True}


class UserGrantsOut(BaseModel):
    user_id: str
    grants: dict[str, bool]
    effective: list[str]
