from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class CustomerCreate(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    phone: str | None = None
    company: str | None = None
    status: str = "lead"
    source: str | None = None
    notes: str | None = None
    business_unit_id: str
    assigned_to_id: str | None = None


class CustomerUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    company: str | None = None
    status: str | None = None
    source: str | None = None
    notes: str | None = None
    assigned_to_id: str | None = None


class CustomerOut(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: str
    phone: str | None
    company: str | None
    status: str
    source: str | None
    notes: str | None
    business_unit_id: str
    assigned_to_id: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
