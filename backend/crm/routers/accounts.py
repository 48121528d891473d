"""Account routes.

Every route declares one permission; `/{account_id}` routes also declare the
`account` resource type so the gate checks tenant, business unit and
account-manager ownership before the handler runs.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from crm.auth.access import ResourceType
from crm.auth.context import AuthContext
from crm.auth.deps import authorize
from crm.auth.errors import ResourceNotFound
from crm.auth.permissions import Permission
from crm.auth.scoping import (
    apply_creator_defaults,
    ensure_reference,
    ensure_row_in_reach,
    scoped_select,
    tenant_for_create,
)
from crm.database import get_db
from crm.models.account import Account
from crm.schemas.account import AccountCreate, AccountOut, AccountUpdate
from crm.schemas.common import PaginatedResponse
from crm.utils.pagination import paginate

router = APIRouter()

_ID = "account_id"


async def _get_account(db: AsyncSession, account_id: str) -> Account:
    account = await db.get(Account, account_id)
    if account is None:
        raise ResourceNotFound(ResourceType.ACCOUNT.value, account_id)
    return account


@router.get("/", response_model=PaginatedResponse[AccountOut])
async def list_accounts(
    status_filter: str | None = Query(None, alias="status"),
    type_filter: str | None = Query(None, alias="type"),
    search: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(authorize(Permission.ACCOUNTS_READ)),
):
    stmt = scoped_select(ResourceType.ACCOUNT, ctx)
    if status_filter and status_filter != "all":
        stmt = stmt.where(Account.status == status_filter)
    if type_filter and type_filter != "all":
        stmt = stmt.where(Account.type == type_filter)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(
            Account.name.ilike(pattern),
            Account.email.ilike(pattern),
            Account.phone.ilike(pattern),
            Account.industry.ilike(pattern),
        ))

    items, total = await paginate(db, stmt.order_by(Account.name), limit, offset)
    return PaginatedResponse(
        items=[AccountOut.model_validate(a) for a in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{account_id}", response_model=AccountOut)
async def get_account(
    account_id: str,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(authorize(Permission.ACCOUNTS_READ, ResourceType.ACCOUNT, _ID)),
):
    return AccountOut.model_validate(await _get_account(db, account_id))


@router.post("/", response_model=AccountOut, status_code=status.HTTP_201_CREATED)
async def create_account(
    body: AccountCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(authorize(Permission.ACCOUNTS_WRITE)),
):
    """Create an account in the caller's tenant.

    Managers default to their own business unit and contributors to owning
    the account, so the creator can still reach what they created.
    """
    tenant_id = tenant_for_create(ctx, body.tenant_id)
    data = apply_creator_defaults(
        ctx, body.model_dump(exclude={"tenant_id"}), owner_key="account_manager_id"
    )

    await ensure_reference(db, ctx, tenant_id, ResourceType.BUSINESS_UNIT, data["business_unit_id"])
    await ensure_reference(db, ctx, tenant_id, ResourceType.USER, data["account_manager_id"])

    account = Account(tenant_id=tenant_id, **data)
    ensure_row_in_reach(ctx, ResourceType.ACCOUNT, account, tenant_id)
    db.add(account)
    await db.flush()
    await db.refresh(account)
    return AccountOut.model_validate(account)


@router.put("/{account_id}", response_model=AccountOut)
async def update_account(
    account_id: str,
    body: AccountUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(authorize(Permission.ACCOUNTS_WRITE, ResourceType.ACCOUNT, _ID)),
):
    account = await _get_account(db, account_id)
    updates = body.model_dump(exclude_unset=True)

    await ensure_reference(db, ctx, account.tenant_id, ResourceType.BUSINESS_UNIT, updates.get("business_unit_id"))
    await ensure_reference(db, ctx, account.tenant_id, ResourceType.USER, updates.get("account_manager_id"))

    for key, value in updates.items():
        setattr(account, key, value)
    ensure_row_in_reach(ctx, ResourceType.ACCOUNT, account, account.tenant_id)
    await db.flush()
    await db.refresh(account)
    return AccountOut.model_validate(account)


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(
    account_id: str,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(authorize(Permission.ACCOUNTS_DELETE, ResourceType.ACCOUNT, _ID)),
):
    account = await _get_account(db, account_id)
    await db.delete(account)
    await db.flush()
