from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field

from crm.auth.permissions import Role

UserStatusLiteral = Literal["active", "inactive", "suspended"]


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: Role = Role.SALES_REP
    status: UserStatusLiteral = "active"
    tenant_id: str | None = None
    business_unit_id: str | None = None


class UserUpdate(BaseModel):
    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=8)
    first_name: str | None = None
    last_name: str | None = None
    role: Role | None = None
    status: UserStatusLiteral | None = None
    tenant_id: str | None = None
    business_unit_id: str | None = None


class UserOut(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    role: str
    status: str
    tenant_id: str | None
    business_unit_id: str | None
    last_login_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}
