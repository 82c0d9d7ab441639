"""
Subscription routes (customer facing)
"""
from typing import Dict, List, Optional
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.core.database import get_db
from bookstore.core.rate_limit import subscription_write_limit
from bookstore.api.deps import get_current_user
from bookstore.models.user import User
from bookstore.schemas.subscription import (
    AutoRenewUpdate,
    PlanResponse,
    SubscribeRequest,
    SubscriptionMessage,
    SubscriptionResponse,
)
from bookstore.services.subscription_service import SubscriptionService, list_plans

router = APIRouter()


@router.get("/plans", response_model=Dict[str, PlanResponse])
async def get_plans():
    """List the subscription plans"""
    return list_plans()


@router.get("/current", response_model=Optional[SubscriptionResponse])
async def get_current_subscription(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Current user's effectively active subscription, or null"""
    return await SubscriptionService(db).get_current(user.id)


@router.get("/history", response_model=List[SubscriptionResponse])
async def get_subscription_history(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """All of the current user's subscriptions, newest first"""
    return await SubscriptionService(db).get_history(user.id)


@router.post("/subscribe", response_model=SubscriptionMessage, status_code=status.HTTP_201_CREATED)
@subscription_write_limit()
async def subscribe(
    request: Request,
    body: SubscribeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Start a subscription. Payment is verified before this call."""
    subscription = await SubscriptionService(db).subscribe(
        user, body.plan, payment_id=body.payment_id
    )
    return SubscriptionMessage(
        message="Subscription created successfully",
        subscription=SubscriptionResponse.model_validate(subscription),
    )


@router.put("/cancel", response_model=SubscriptionMessage)
@subscription_write_limit()
async def cancel_subscription(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Cancel the active subscription; auto-renew is switched off"""
    subscription = await SubscriptionService(db).cancel(user)
    return SubscriptionMessage(
        message="Subscription cancelled successfully",
        subscription=SubscriptionResponse.model_validate(subscription),
    )


@router.put("/auto-renew", response_model=SubscriptionMessage)
@subscription_write_limit()
async def update_auto_renew(
    request: Request,
    body: AutoRenewUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Turn auto-renew on or off for the active subscription"""
    subscription = await SubscriptionService(db).set_auto_renew(user, body.auto_renew)
    return SubscriptionMessage(
        message="Auto-renew setting updated successfully",
        subscription=SubscriptionResponse.model_validate(subscription),
    )
