"""Deal routes."""

from fastapi import APIRouter, Depends, Query, status
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
from crm.models.deal import Deal
from crm.schemas.common import PaginatedResponse
from crm.schemas.deal import DealCreate, DealOut, DealUpdate
from crm.utils.pagination import paginate

router = APIRouter()

_ID = "deal_id"

# Referenced rows checked against the deal's tenant and the caller's reach
_REFERENCES = (
    ("business_unit_id", ResourceType.BUSINESS_UNIT),
    ("account_id", ResourceType.ACCOUNT),
    ("assigned_to_id", ResourceType.USER),
)


async def _get_deal(db: AsyncSession, deal_id: str) -> Deal:
    deal = await db.get(Deal, deal_id)
    if deal is None:
        raise ResourceNotFound(ResourceType.DEAL.value, deal_id)
    return deal


@router.get("/", response_model=PaginatedResponse[DealOut])
async def list_deals(
    stage: str | None = None,
    account_id: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(authorize(Permission.DEALS_READ)),
):
    stmt = scoped_select(ResourceType.DEAL, ctx)
    if stage and stage != "all":
        stmt = stmt.where(Deal.stage == stage)
    if account_id:
        stmt = stmt.where(Deal.account_id == account_id)

    items, total = await paginate(db, stmt.order_by(Deal.created_at.desc()), limit, offset)
    return PaginatedResponse(
        items=[DealOut.model_validate(d) for d in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{deal_id}", response_model=DealOut)
async def get_deal(
    deal_id: str,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(authorize(Permission.DEALS_READ, ResourceType.DEAL, _ID)),
):
    return DealOut.model_validate(await _get_deal(db, deal_id))


@router.post("/", response_model=DealOut, status_code=status.HTTP_201_CREATED)
async def create_deal(
    body: DealCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(authorize(Permission.DEALS_WRITE)),
):
    tenant_id = tenant_for_create(ctx, body.tenant_id)
    data = apply_creator_defaults(
        ctx, body.model_dump(exclude={"tenant_id"}), owner_key="assigned_to_id"
    )
    for key, resource_type in _REFERENCES:
        await ensure_reference(db, ctx, tenant_id, resource_type, data[key])

    deal = Deal(tenant_id=tenant_id, **data)
    ensure_row_in_reach(ctx, ResourceType.DEAL, deal, tenant_id)
    db.add(deal)
    await db.flush()
    await db.refresh(deal)
    return DealOut.model_validate(deal)


@router.put("/{deal_id}", response_model=DealOut)
async def update_deal(
    deal_id: str,
    body: DealUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(authorize(Permission.DEALS_WRITE, ResourceType.DEAL, _ID)),
):
    deal = await _get_deal(db, deal_id)
    updates = body.model_dump(exclude_unset=True)
    for key, resource_type in _REFERENCES:
        await ensure_reference(db, ctx, deal.tenant_id, resource_type, updates.get(key))

    for key, value in updates.items():
        setattr(deal, key, value)
    ensure_row_in_reach(ctx, ResourceType.DEAL, deal, deal.tenant_id)
    await db.flush()
    await db.refresh(deal)
    return DealOut.model_validate(deal)


@router.delete("/{deal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_deal(
    deal_id: str,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(authorize(Permission.DEALS_DELETE, ResourceType.DEAL, _ID)),
):
    deal = await _get_deal(db, deal_id)
    await db.delete(deal)
    await db.flush()
