"""Management CLI for permission grants.

Usage:
    python -m crm.cli create-tables       # Create every table (dev bootstrap)
    python -m crm.cli sync-permissions    # Upsert the catalog and default role grants
    python -m crm.cli list-grants [ROLE]  # Show role grants, optionally for one role
"""

import asyncio
import sys

from crm.auth import permission_cache, store
from crm.auth.permissions import parse_role
from crm.database import async_session, create_all, engine


async def _create_tables():
    await create_all()
    await engine.dispose()
    print("Tables created.")


async def _sync_permissions():
    async with async_session() as db:
        counts = await store.sync_role_defaults(db)
        await db.commit()
        await permission_cache.invalidate_pending(db)
    await engine.dispose()
    print(f"Synced {counts['permissions']} permission(s), {counts['grants']} role grant(s).")


async def _list_grants(role_name: str | None):
    role = None
    if role_name:
        role = parse_role(role_name)
        if role is None:
            print(f"Unknown role: {role_name}")
            sys.exit(1)

    async with async_session() as db:
        grants = await store.list_role_grants(db, role)
    await engine.dispose()

    for g in grants:
        mark = "+" if g.granted else "-"
        print(f"  {mark} {g.role:<18} {g.permission}")
    print(f"\n{len(grants)} grant(s)")


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "create-tables":
        asyncio.run(_create_tables())
    elif cmd == "sync-permissions":
        asyncio.run(_sync_permissions())
    elif cmd == "list-grants":
        asyncio.run(_list_grants(sys.argv[2] if len(sys.argv) > 2 else None))
    else:
        print("Usage: python -m crm.cli [create-tables|sync-permissions|list-grants [ROLE]]")
