"""
API dependencies

Bearer-token authentication. The token only carries the user id; role,
permissions and the active flag are always read fresh from the database.
"""
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from bookstore.core.database import get_db
from bookstore.core.exceptions import ForbiddenError, UnauthenticatedError
from bookstore.core.permissions import STAFF_ROLES, AnyOfRoles, authorize
from bookstore.core.security import get_token_subject
from bookstore.models.user import User

# Missing header is reported as UNAUTHENTICATED, not FastAPI's default
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Get current authenticated user"""
    user_id = get_token_subject(credentials.credentials if credentials else None)

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise UnauthenticatedError("User not found")

    if not user.is_active:
        raise UnauthenticatedError("Account is disabled")

    return user


async def get_current_staff(user: User = Depends(get_current_user)) -> User:
    """Require an admin console role (admin, manager or staff)"""
    if not authorize(user, AnyOfRoles(STAFF_ROLES)):
        raise ForbiddenError("Access denied. Admin role required.")
    return user
