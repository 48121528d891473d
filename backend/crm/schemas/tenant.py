from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class TenantCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: Literal["HQ", "SALES_OFFICE"]
    status: Literal["active", "inactive"] = "active"
    description: str | None = None


class TenantUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    type: Literal["HQ", "SALES_OFFICE"] | None = None
    status: Literal["active", "inactive"] | None = None
    description: str | None = None


class TenantOut(BaseModel):
    id: str
    name: str
    type: str
    status: str
    description: str | None
    business_units: int = 0
    created_at: datetime

    model_config = {"from_attributes": True}
