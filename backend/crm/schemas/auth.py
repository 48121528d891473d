from pydantic import BaseModel, EmailStr


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TenantSummary(BaseModel):
    id: str
    name: str
    type: str
    status: str

    model_config = {"from_attributes": True}


class MeOut(BaseModel):
    """The authenticated user with their effective permissions."""
    id: str
    email: str
    first_name: str
    last_name: str
    role: str
    status: str
    tenant_id: str | None
    business_unit_id: str | None
    permissions: list[str]
    tenant: TenantSummary | None = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: MeOut
