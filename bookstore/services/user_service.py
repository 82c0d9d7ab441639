"""
User Service

Account creation and login, plus the role/permission management behind the
admin console. Authorization decisions come from bookstore.core.permissions;
this module only applies them.
"""
import logging
import math
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthenticatedError,
)
from bookstore.core.permissions import (
    ROLE_CATALOG,
    Role,
    STAFF_ROLES,
    can_change_role,
    default_permissions_for_role,
    parse_permissions,
    parse_role,
)
from bookstore.core.security import get_password_hash, verify_password
from bookstore.models.user import User

logger = logging.getLogger(__name__)


class UserService:
    """
    Service for user accounts and role assignment.

    Features:
    - Registration and password login
    - Role changes with default permission lists
    - Customer activation, deactivation and deletion
    - Admin permission backfill for legacy accounts
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: int) -> User:
        """
        Raises:
            NotFoundError: No such user
        """
        result = await self.db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if not user:
            raise NotFoundError("User not found", details={"user_id": user_id})
        return user

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def create_user(
        self,
        email: str,
        name: str,
        password: str,
        role: str = Role.CUSTOMER.value,
        permissions: Optional[List[str]] = None,
        phone: Optional[str] = None,
    ) -> User:
        """
        Create a user. Without an explicit permission list the role's
        defaults are stored.

        Raises:
            ConflictError: Email already registered
        """
        if await self.get_by_email(email):
            raise ConflictError("Email already registered", details={"field": "email"})

        role = parse_role(role)
        user = User(
            email=email.strip().lower(),
            name=name,
            phone=phone,
            hashed_password=get_password_hash(password),
            role=role.value,
            permissions=(
                parse_permissions(permissions)
                if permissions is not None
                else default_permissions_for_role(role)
            ),
            is_active=True,
        )
        self.db.add(user)
        await self.db.flush()
        logger.info(f"User created: id={user.id}, role={role.value}")
        return user

    async def authenticate(self, email: str, password: str) -> User:
        """
        Raises:
            UnauthenticatedError: Unknown email, wrong password or disabled account
        """
        user = await self.get_by_email(email)
        if not user or not verify_password(password, user.hashed_password):
            raise UnauthenticatedError("Incorrect email or password")
        if not user.is_active:
            raise UnauthenticatedError("Account is disabled")
        user.record_login()
        await self.db.flush()
        return user

    # =========================================================================
    # ROLE MANAGEMENT
    # =========================================================================

    async def change_role(
        self,
        actor: User,
        user_id: int,
        role: str,
        permissions: Optional[List[str]] = None,
    ) -> User:
        """
        Give a user a new role.

        ``permissions`` replaces the stored list when given (an empty list is
        kept as empty); otherwise the role's defaults apply.

        Raises:
            InvalidArgumentError: Unknown role or permission tag
            NotFoundError: No such user
            ForbiddenError: Self-demotion, or actor lacks manage_permissions
        """
        new_role = parse_role(role)
        new_permissions = (
            parse_permissions(permissions)
            if permissions is not None
            else default_permissions_for_role(new_role)
        )

        target = await self.get_user(user_id)

        decision = can_change_role(actor, target, new_role)
        if not decision:
            raise ForbiddenError(f"Access denied: {decision.reason}")

        previous = target.role
        target.role = new_role.value
        target.permissions = new_permissions
        await self.db.flush()

        logger.info(f"Role changed: user_id={target.id}, {previous} -> {new_role.value}")
        return target

    async def set_active(self, user_id: int, is_active: bool) -> User:
        """
        Activate or deactivate an account. Admin accounts are off limits.

        Raises:
            NotFoundError: No such user
            ForbiddenError: Target is an admin
        """
        user = await self.get_user(user_id)
        if user.role == Role.ADMIN.value:
            raise ForbiddenError("Cannot modify admin user status")
        user.is_active = bool(is_active)
        await self.db.flush()
        return user

    async def delete_user(self, user_id: int) -> None:
        """
        Delete an account together with its subscription history.

        Raises:
            NotFoundError: No such user
            ForbiddenError: Target is an admin
        """
        user = await self.get_user(user_id)
        if user.role == Role.ADMIN.value:
            raise ForbiddenError("Cannot delete admin users")
        await self.db.delete(user)
        await self.db.flush()
        logger.info(f"User deleted: id={user_id}")

    async def list_customers(
        self,
        page: int = 1,
        limit: int = 20,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Customers (role 'user'), newest first, optionally searched by name/email."""
        page = max(page, 1)
        limit = max(limit, 1)

        conditions = [User.role == Role.CUSTOMER.value]
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

        total = (
            await self.db.execute(select(func.count(User.id)).where(*conditions))
        ).scalar_one()

        result = await self.db.execute(
            select(User)
            .where(*conditions)
            .order_by(User.created_at.desc(), User.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )

        return {
            "users": list(result.scalars().all()),
            "total": total,
            "total_pages": math.ceil(total / limit) if total else 0,
            "current_page": page,
        }

    async def list_staff_users(self) -> List[User]:
        """Users holding admin, manager or staff roles."""
        result = await self.db.execute(
            select(User)
            .where(User.role.in_([r.value for r in STAFF_ROLES]))
            .order_by(User.id)
        )
        return list(result.scalars().all())

    async def role_summary(self) -> List[Dict[str, Any]]:
        """Role catalog with each role's default permissions and user count."""
        result = await self.db.execute(
            select(User.role, func.count(User.id)).group_by(User.role)
        )
        counts = {role: n for role, n in result.all()}

        return [
            {
                **entry,
                "permissions": default_permissions_for_role(entry["name"]),
                "user_count": counts.get(entry["name"], 0),
            }
            for entry in ROLE_CATALOG
        ]

    async def backfill_admin_permissions(self) -> int:
        """
        Store the full permission list on admins whose list is empty or
        missing. Access does not depend on it; it keeps the data honest.

        Returns:
            Number of admins updated
        """
        result = await self.db.execute(
            select(User).where(User.role == Role.ADMIN.value)
        )
        full = default_permissions_for_role(Role.ADMIN)

        updated = 0
        for user in result.scalars().all():
            if not user.permissions:
                user.permissions = full
                updated += 1
                logger.info(f"Backfilled admin permissions for user_id={user.id}")

        await self.db.flush()
        return updated

    async def ensure_admin(self, email: str, name: str, password: str) -> tuple:
        """
        Create the bootstrap admin unless the email already exists.

        Returns:
            (user, created)
        """
        existing = await self.get_by_email(email)
        if existing:
            return existing, False
        user = await self.create_user(email, name, password, role=Role.ADMIN.value)
        return user, True
