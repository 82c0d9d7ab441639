"""
Store the full permission list on admin accounts that have none.

Admins are granted everything at check time regardless, so this only
brings the stored data in line. Safe to run repeatedly.

Run: python -m bookstore.scripts.migrate_admin_permissions
"""
import asyncio
import logging

from bookstore.core.database import get_db_session
from bookstore.services.user_service import UserService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def migrate() -> int:
    async with get_db_session() as db:
        updated = await UserService(db).backfill_admin_permissions()

    logger.info(f"Admin permission migration complete: {updated} user(s) updated")
    return updated


if __name__ == "__main__":
    asyncio.run(migrate())
