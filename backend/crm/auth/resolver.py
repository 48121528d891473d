"""Effective permission resolution.

effective(user) = {granted role permissions of user.role}
                ∪ {granted user permissions of user}

User-level rows can only add to the role's set; a `granted=False` user row
does not remove a role grant.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crm.auth import permission_cache, store
from crm.auth.errors import InfrastructureFailure

logger = logging.getLogger(__name__)


async def resolve_effective_permissions(db: AsyncSession, user_id: str) -> set[str]:
    """Return the user's effective permission names.

    A nonexistent user resolves to the empty set. A store failure raises
    InfrastructureFailure rather than returning an empty set.
    """
    cached = await permission_cache.get_cached_permissions(user_id)
    if cached is not None:
        return cached

    try:
        user = await store.get_user(db, user_id)
        if user is None:
            return set()
        role_perms = await store.role_permission_names(db, user.role)
        user_perms = await store.user_permission_names(db, user.id)
    except SQLAlchemyError as exc:
        logger.error("Permission lookup failed for user %s: %s", user_id, exc)
        raise InfrastructureFailure() from exc

    permissions = role_perms | user_perms
    await permission_cache.store_permissions(user_id, permissions)
    return permissions
