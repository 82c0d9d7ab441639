"""
Admin subscription management

Read access for any console role. Status overrides, extensions, deletes
and bulk actions are admin only and go to the audit log.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.core.audit_log import (
    ACTION_SUBSCRIPTION_BULK,
    ACTION_SUBSCRIPTION_DELETE,
    ACTION_SUBSCRIPTION_EXTEND,
    ACTION_SUBSCRIPTION_STATUS_OVERRIDE,
    log_admin_action,
)
from bookstore.core.database import get_db
from bookstore.core.permissions import Role, require_roles
from bookstore.api.deps import get_current_staff
from bookstore.models.user import User
from bookstore.schemas.subscription import (
    BulkRequest,
    BulkResult,
    ExtendRequest,
    Message,
    StatusUpdate,
    SubscriptionDetail,
    SubscriptionMessage,
    SubscriptionPage,
    SubscriptionResponse,
    SubscriptionStats,
)
from bookstore.services.subscription_service import SubscriptionService

router = APIRouter()

require_admin = require_roles(Role.ADMIN)


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


@router.get("", response_model=SubscriptionPage)
async def list_subscriptions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    plan: Optional[str] = None,
    search: Optional[str] = None,
    staff: User = Depends(get_current_staff),
    db: AsyncSession = Depends(get_db)
):
    """Paginated subscriptions with owner info, newest first"""
    return await SubscriptionService(db).list_subscriptions(
        page=page, limit=limit, status=status, plan=plan, search=search
    )


@router.get("/stats", response_model=SubscriptionStats)
async def subscription_stats(
    staff: User = Depends(get_current_staff),
    db: AsyncSession = Depends(get_db)
):
    return await SubscriptionService(db).get_stats()


@router.get("/{subscription_id}", response_model=SubscriptionDetail)
async def get_subscription(
    subscription_id: int,
    staff: User = Depends(get_current_staff),
    db: AsyncSession = Depends(get_db)
):
    return await SubscriptionService(db).get(subscription_id)


@router.put("/{subscription_id}/status", response_model=SubscriptionMessage)
async def update_subscription_status(
    subscription_id: int,
    body: StatusUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Override the stored status. No transition guards apply."""
    subscription = await SubscriptionService(db).set_status(subscription_id, body.status)

    log_admin_action(
        action=ACTION_SUBSCRIPTION_STATUS_OVERRIDE,
        user_id=admin.id,
        user_email=admin.email,
        resource_type="subscription",
        resource_id=subscription_id,
        details={"status": subscription.status},
        ip_address=_client_ip(request),
    )

    return SubscriptionMessage(
        message="Subscription status updated successfully",
        subscription=SubscriptionResponse.model_validate(subscription),
    )


@router.put("/{subscription_id}/extend", response_model=SubscriptionMessage)
async def extend_subscription(
    subscription_id: int,
    body: ExtendRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    subscription = await SubscriptionService(db).extend(subscription_id, body.days)

    log_admin_action(
        action=ACTION_SUBSCRIPTION_EXTEND,
        user_id=admin.id,
        user_email=admin.email,
        resource_type="subscription",
        resource_id=subscription_id,
        details={"days": body.days, "end_date": subscription.end_date.isoformat()},
        ip_address=_client_ip(request),
    )

    return SubscriptionMessage(
        message=f"Subscription extended by {body.days} days",
        subscription=SubscriptionResponse.model_validate(subscription),
    )


@router.delete("/{subscription_id}", response_model=Message)
async def delete_subscription(
    subscription_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    await SubscriptionService(db).delete(subscription_id)

    log_admin_action(
        action=ACTION_SUBSCRIPTION_DELETE,
        user_id=admin.id,
        user_email=admin.email,
        resource_type="subscription",
        resource_id=subscription_id,
        ip_address=_client_ip(request),
    )

    return Message(message="Subscription deleted successfully")


@router.post("/bulk", response_model=BulkResult)
async def bulk_subscription_action(
    body: BulkRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Apply cancel, activate or delete to a list of subscription ids"""
    count = await SubscriptionService(db).bulk_action(body.action, body.subscription_ids)

    log_admin_action(
        action=ACTION_SUBSCRIPTION_BULK,
        user_id=admin.id,
        user_email=admin.email,
        resource_type="subscription",
        details={"action": body.action, "ids": body.subscription_ids, "count": count},
        ip_address=_client_ip(request),
    )

    return BulkResult(
        message=f"Bulk {body.action} completed successfully",
        modified_count=count,
    )
