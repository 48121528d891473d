from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class AccountCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: Literal["company", "individual"] = "company"
    email: str | None = None
    phone: str | None = None
    industry: str | None = None
    credit_limit: float | None = None
    status: Literal["active", "inactive", "suspended"] = "active"
    notes: str | None = None
    business_unit_id: str | None = None
    account_manager_id: str | None = None
    tenant_id: str | None = None


class AccountUpdate(BaseModel):
    name: str | None = None
    type: Literal["company", "individual"] | None = None
    email: str | None = None
    phone: str | None = None
    industry: str | None = None
    credit_limit: float | None = None
    status: Literal["active", "inactive", "suspended"] | None = None
    notes: str | None = None
    business_unit_id: str | None = None
    account_manager_id: str | None = None


class AccountOut(BaseModel):
    id: str
    name: str
    type: str
    email: str | None
    phone: str | None
    industry: str | None
    credit_limit: float | None
    status: str
    notes: str | None
    tenant_id: str
    business_unit_id: str | None
    account_manager_id: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
