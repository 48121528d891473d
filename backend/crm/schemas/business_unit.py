from datetime import datetime

from pydantic import BaseModel, Field


class BusinessUnitCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    location: str | None = None
    city: str | None = None
    country: str | None = None
    email: str | None = None
    phone: str | None = None
    status: str = "active"
    manager_id: str | None = None
    # Ignored for non-SYSTEM_ADMIN callers (pinned to their own tenant)
    tenant_id: str | None = None


class BusinessUnitUpdate(BaseModel):
    name: str | None = None
    location: str | None = None
    city: str | None = None
    country: str | None = None
    email: str | None = None
    phone: str | None = None
    status: str | None = None
    manager_id: str | None = None


class BusinessUnitOut(BaseModel):
    id: str
    name: str
    location: str | None
    city: str | None
    country: str | None
    email: str | None
    phone: str | None
    status: str
    tenant_id: str
    manager_id: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
