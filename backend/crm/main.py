import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crm.auth.permission_cache import close_redis
from crm.config import settings
from crm.middleware.exceptions import register_exception_handlers
from crm.middleware.security import SecurityHeadersMiddleware
from crm.routers import (
    accounts,
    auth,
    business_units,
    customers,
    deals,
    health,
    permissions,
    tasks,
    tenants,
    users,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Close the permission-cache Redis client on shutdown."""
    logger.info("CRM API starting (environment=%s)", settings.environment)
    try:
        yield
    finally:
        await close_redis()
        logger.info("CRM API stopped")


app = FastAPI(
    title="CRM",
    description="Multi-tenant CRM API with role-based access control",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware (outermost first) ─────────────────────────────
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
# Public
app.include_router(health.router)
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])

# Authenticated (every route declares its permission)
app.include_router(accounts.router, prefix="/api/accounts", tags=["accounts"])
app.include_router(business_units.router, prefix="/api/business-units", tags=["business-units"])
app.include_router(customers.router, prefix="/api/customers", tags=["customers"])
app.include_router(deals.router, prefix="/api/deals", tags=["deals"])
app.include_router(tasks.router, prefix="/api/tasks", tags=["tasks"])
app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(tenants.router, prefix="/api/tenants", tags=["tenants"])
app.include_router(permissions.router, prefix="/api/permissions", tags=["permissions"])
