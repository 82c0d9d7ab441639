"""
Admin user, role and permission management
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.core.audit_log import (
    ACTION_USER_ROLE_CHANGE,
    ACTION_USER_DELETE,
    ACTION_USER_STATUS_CHANGE,
    log_admin_action,
)
from bookstore.core.database import get_db
from bookstore.core.permissions import PERMISSION_CATALOG, Permission, require_permission
from bookstore.models.user import User
from bookstore.schemas.user import (
    PermissionList,
    RoleList,
    RoleUpdate,
    StaffUserList,
    UserList,
    UserResponse,
    UserStatusUpdate,
)
from bookstore.schemas.subscription import Message
from bookstore.services.user_service import UserService

router = APIRouter()


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


# ============================================================================
# ROLES & PERMISSIONS
# ============================================================================

@router.get("/roles", response_model=RoleList)
async def list_roles(
    admin: User = Depends(require_permission(Permission.MANAGE_PERMISSIONS)),
    db: AsyncSession = Depends(get_db)
):
    """Roles with their default permissions and how many users hold each"""
    return RoleList(roles=await UserService(db).role_summary())


@router.get("/permissions", response_model=PermissionList)
async def list_permissions(
    admin: User = Depends(require_permission(Permission.MANAGE_PERMISSIONS)),
):
    return PermissionList(permissions=PERMISSION_CATALOG)


@router.get("/staff-users", response_model=StaffUserList)
async def list_staff_users(
    admin: User = Depends(require_permission(Permission.MANAGE_PERMISSIONS)),
    db: AsyncSession = Depends(get_db)
):
    return StaffUserList(users=await UserService(db).list_staff_users())


@router.put("/users/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: int,
    body: RoleUpdate,
    request: Request,
    admin: User = Depends(require_permission(Permission.MANAGE_PERMISSIONS)),
    db: AsyncSession = Depends(get_db)
):
    """
    Change a user's role. Without an explicit permission list the role's
    defaults are stored. Admins cannot demote themselves.
    """
    user = await UserService(db).change_role(admin, user_id, body.role, body.permissions)

    log_admin_action(
        action=ACTION_USER_ROLE_CHANGE,
        user_id=admin.id,
        user_email=admin.email,
        resource_type="user",
        resource_id=user_id,
        details={"role": user.role, "permissions": user.permissions},
        ip_address=_client_ip(request),
    )
    return user


# ============================================================================
# CUSTOMERS
# ============================================================================

@router.get("/users", response_model=UserList)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    admin: User = Depends(require_permission(Permission.MANAGE_USERS)),
    db: AsyncSession = Depends(get_db)
):
    return await UserService(db).list_customers(page=page, limit=limit, search=search)


@router.put("/users/{user_id}/status", response_model=UserResponse)
async def update_user_status(
    user_id: int,
    body: UserStatusUpdate,
    request: Request,
    admin: User = Depends(require_permission(Permission.MANAGE_USERS)),
    db: AsyncSession = Depends(get_db)
):
    """Activate or deactivate a non-admin account"""
    user = await UserService(db).set_active(user_id, body.is_active)

    log_admin_action(
        action=ACTION_USER_STATUS_CHANGE,
        user_id=admin.id,
        user_email=admin.email,
        resource_type="user",
        resource_id=user_id,
        details={"is_active": user.is_active},
        ip_address=_client_ip(request),
    )
    return user


@router.delete("/users/{user_id}", response_model=Message)
async def delete_user(
    user_id: int,
    request: Request,
    admin: User = Depends(require_permission(Permission.MANAGE_USERS)),
    db: AsyncSession = Depends(get_db)
):
    """Delete a non-admin account and its subscriptions"""
    await UserService(db).delete_user(user_id)

    log_admin_action(
        action=ACTION_USER_DELETE,
        user_id=admin.id,
        user_email=admin.email,
        resource_type="user",
        resource_id=user_id,
        ip_address=_client_ip(request),
    )
    return Message(message="User deleted successfully")
