"""
Create the bootstrap admin account.

Reads ADMIN_EMAIL, ADMIN_NAME and ADMIN_PASSWORD from the environment (.env).
Does nothing if a user with that email already exists.

Run: python -m bookstore.scripts.create_admin
"""
import asyncio
import logging
import sys

from bookstore.core.config import settings
from bookstore.core.database import get_db_session, init_models
from bookstore.services.user_service import UserService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def create_admin() -> bool:
    if not settings.ADMIN_PASSWORD:
        logger.error("ADMIN_PASSWORD is not set")
        return False

    await init_models()

    async with get_db_session() as db:
        user, created = await UserService(db).ensure_admin(
            settings.ADMIN_EMAIL, settings.ADMIN_NAME, settings.ADMIN_PASSWORD
        )

    if created:
        logger.info(f"Admin user created: {user.email} (id={user.id})")
    else:
        logger.info(f"Admin user already exists: {user.email} (role={user.role})")
    return True


if __name__ == "__main__":
    sys.exit(0 if asyncio.run(create_admin()) else 1)
