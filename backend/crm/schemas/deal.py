from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

DealStage = Literal[
    "prospecting", "qualification", "proposal", "negotiation", "closed-won", "closed-lost"
]


class DealCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    amount: float = Field(default=0, ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    stage: DealStage = "prospecting"
    probability: int = Field(default=0, ge=0, le=100)
    account_id: str | None = None
    business_unit_id: str | None = None
    assigned_to_id: str | None = None
    tenant_id: str | None = None


class DealUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    amount: float | None = Field(default=None, ge=0)
    currency: str | None = None
    stage: DealStage | None = None
    probability: int | None = Field(default=None, ge=0, le=100)
    account_id: str | None = None
    business_unit_id: str | None = None
    assigned_to_id: str | None = None


class DealOut(BaseModel):
    id: str
    title: str
    description: str | None
    amount: float
    currency: str
    stage: str
    probability: int
    tenant_id: str
    account_id: str | None
    business_unit_id: str | None
    assigned_to_id: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
