"""
Subscription Service

Lifecycle of a user's paid subscription:

    (subscribe) -> active --(cancel)--> cancelled
                      \\----(end_date passes, sweep/next check)--> expired

cancelled and expired are terminal for the guarded transitions. Admins have
two privileged operations outside the state machine: extend() moves end_date
regardless of status, and set_status() writes any status directly.

"Has access" is always is_effectively_active() (status active AND end_date in
the future); the stored status is not trusted on its own.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bookstore.core.exceptions import ConflictError, InvalidArgumentError, NotFoundError
from bookstore.core.utils import utcnow, as_utc
from bookstore.models.subscription import (
    Subscription,
    SubscriptionStatus,
    SUBSCRIPTION_PLANS,
)
from bookstore.models.user import User

logger = logging.getLogger(__name__)

BULK_ACTIONS = ("cancel", "activate", "delete")


def list_plans() -> Dict[str, Dict[str, Any]]:
    """Read-only copy of the plan table."""
    return {
        code: {**plan, "features": list(plan["features"])}
        for code, plan in SUBSCRIPTION_PLANS.items()
    }


def get_plan(plan_code: Optional[str]) -> Dict[str, Any]:
    """
    Look up a plan by code.

    Raises:
        InvalidArgumentError: If the plan is not one of the fixed three
    """
    plan = SUBSCRIPTION_PLANS.get(plan_code or "")
    if plan is None:
        raise InvalidArgumentError("Invalid subscription plan", field="plan")
    return plan


def parse_status(value: Optional[str]) -> SubscriptionStatus:
    try:
        return SubscriptionStatus(value)
    except ValueError:
        raise InvalidArgumentError("Invalid status", field="status")


def is_effectively_active(subscription: Subscription, now: Optional[datetime] = None) -> bool:
    """status == active AND end_date > now."""
    return subscription.is_effectively_active(now)


class SubscriptionService:
    """
    Service for subscription lifecycle and the admin console.

    Args:
        db: Database session (caller owns commit/rollback)
        clock: Returns the current UTC time; injectable for tests
    """

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def now(self) -> datetime:
        return as_utc(self.clock())

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def get(self, subscription_id: int) -> Subscription:
        """Get a subscription by ID, with its user loaded."""
        result = await self.db.execute(
            select(Subscription)
            .options(selectinload(Subscription.user))
            .where(Subscription.id == subscription_id)
        )
        subscription = result.scalar_one_or_none()
        if not subscription:
            raise NotFoundError("Subscription not found", details={"subscription_id": subscription_id})
        return subscription

    async def get_current(self, user_id: int) -> Optional[Subscription]:
        """The user's effectively active subscription, if any."""
        result = await self.db.execute(
            select(Subscription)
            .where(
                Subscription.user_id == user_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.end_date > self.now(),
            )
            .order_by(Subscription.end_date.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def get_history(self, user_id: int) -> List[Subscription]:
        """All of a user's subscriptions, newest first."""
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        )
        return list(result.scalars().all())

    async def _get_stored_active(self, user_id: int) -> Subscription:
        """The row whose stored status is 'active', locked for update."""
        result = await self.db.execute(
            select(Subscription)
            .where(
                Subscription.user_id == user_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
            )
            .with_for_update()
        )
        subscription = result.scalars().first()
        if not subscription:
            raise NotFoundError("No active subscription found")
        return subscription

    # =========================================================================
    # GUARDED TRANSITIONS
    # =========================================================================

    async def _lock_user(self, user_id: int) -> None:
        """Serialize subscribe calls for one user on the user row."""
        result = await self.db.execute(
            select(User.id).where(User.id == user_id).with_for_update()
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError("User not found", details={"user_id": user_id})

    async def _expire_stale(
        self, user_id: int, now: datetime, exclude_id: Optional[int] = None
    ) -> int:
        """Flip this user's overdue 'active' rows to 'expired'."""
        conditions = [
            Subscription.user_id == user_id,
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.end_date <= now,
        ]
        if exclude_id is not None:
            conditions.append(Subscription.id != exclude_id)

        result = await self.db.execute(
            update(Subscription)
            .where(*conditions)
            .values(status=SubscriptionStatus.EXPIRED.value, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    async def subscribe(
        self,
        user: User,
        plan_code: str,
        payment_id: Optional[str] = None,
    ) -> Subscription:
        """
        Create an active subscription for ``user``.

        Payment is assumed settled upstream.

        Raises:
            InvalidArgumentError: Unknown plan
            ConflictError: User already has an effectively active subscription
        """
        plan = get_plan(plan_code)
        now = self.now()

        await self._lock_user(user.id)

        expired = await self._expire_stale(user.id, now)
        if expired:
            logger.info(f"Expired {expired} overdue subscription(s) for user {user.id}")

        existing = await self.get_current(user.id)
        if existing:
            raise ConflictError(
                "You already have an active subscription",
                details={"subscription_id": existing.id},
            )

        subscription = Subscription(
            user_id=user.id,
            plan=plan_code,
            plan_name=plan["name"],
            price=plan["price"],
            features=list(plan["features"]),
            status=SubscriptionStatus.ACTIVE.value,
            start_date=now,
            end_date=now + timedelta(days=plan["duration"]),
            auto_renew=True,
            payment_id=payment_id,
            created_at=now,
            updated_at=now,
        )
        self.db.add(subscription)

        try:
            await self.db.flush()
        except IntegrityError as e:
            # A concurrent subscribe won the partial unique index
            raise ConflictError("You already have an active subscription") from e

        logger.info(
            f"Subscription created: id={subscription.id}, user_id={user.id}, plan={plan_code}"
        )
        return subscription

    async def cancel(self, user: User) -> Subscription:
        """
        Cancel the user's active subscription and turn off auto-renew.

        Raises:
            NotFoundError: No subscription in 'active' state
        """
        subscription = await self._get_stored_active(user.id)
        subscription.status = SubscriptionStatus.CANCELLED.value
        subscription.auto_renew = False
        subscription.updated_at = self.now()
        await self.db.flush()

        logger.info(f"Subscription cancelled: id={subscription.id}, user_id={user.id}")
        return subscription

    async def set_auto_renew(self, user: User, auto_renew: bool) -> Subscription:
        """
        Change auto-renew on the user's active subscription.

        Raises:
            NotFoundError: No subscription in 'active' state
        """
        subscription = await self._get_stored_active(user.id)
        subscription.auto_renew = bool(auto_renew)
        subscription.updated_at = self.now()
        await self.db.flush()
        return subscription

    # =========================================================================
    # PRIVILEGED OPERATIONS (admin only, enforced by the routes)
    # =========================================================================

    async def extend(self, subscription_id: int, days: int) -> Subscription:
        """
        Push end_date out by ``days`` days, whatever the status.

        An expired-looking record can become effectively active again only if
        its stored status is still 'active'; the status is never touched here.

        Raises:
            InvalidArgumentError: days is not a positive integer
            NotFoundError: No such subscription
        """
        if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
            raise InvalidArgumentError("Invalid number of days", field="days")

        subscription = await self.get(subscription_id)
        subscription.end_date = as_utc(subscription.end_date) + timedelta(days=days)
        subscription.updated_at = self.now()
        await self.db.flush()

        logger.info(f"Subscription extended: id={subscription_id}, days={days}")
        return subscription

    async def set_status(self, subscription_id: int, new_status: str) -> Subscription:
        """
        Write ``new_status`` directly, bypassing the transition guards.

        Activating first expires the user's other overdue 'active' rows, so
        only a row that is still effectively active can block it (through the
        one-active-per-user index).

        Raises:
            InvalidArgumentError: Unknown status
            NotFoundError: No such subscription
            ConflictError: Activating would give the user two active rows
        """
        status = parse_status(new_status)
        subscription = await self.get(subscription_id)
        now = self.now()

        if status is SubscriptionStatus.ACTIVE:
            await self._expire_stale(subscription.user_id, now, exclude_id=subscription.id)

        previous = subscription.status
        subscription.status = status.value
        subscription.updated_at = now

        try:
            await self.db.flush()
        except IntegrityError as e:
            raise ConflictError(
                "User already has another active subscription",
                details={"subscription_id": subscription_id},
            ) from e

        logger.info(
            f"Subscription status override: id={subscription_id}, {previous} -> {status.value}"
        )
        return subscription

    async def delete(self, subscription_id: int) -> None:
        """
        Raises:
            NotFoundError: No such subscription
        """
        subscription = await self.get(subscription_id)
        await self.db.delete(subscription)
        await self.db.flush()
        logger.info(f"Subscription deleted: id={subscription_id}")

    async def bulk_action(self, action: str, subscription_ids: Iterable[int]) -> int:
        """
        Apply cancel / activate / delete to many subscriptions at once.

        Returns:
            Number of rows affected

        Raises:
            InvalidArgumentError: Unknown action or empty id list
            ConflictError: Activation would give a user two active rows
        """
        if action not in BULK_ACTIONS:
            raise InvalidArgumentError("Invalid action", field="action")
        ids = list(subscription_ids or [])
        if not ids:
            raise InvalidArgumentError("Invalid request data", field="subscription_ids")

        now = self.now()

        if action == "delete":
            statement = delete(Subscription).where(Subscription.id.in_(ids))
        elif action == "cancel":
            statement = (
                update(Subscription)
                .where(Subscription.id.in_(ids))
                .values(status=SubscriptionStatus.CANCELLED.value, auto_renew=False, updated_at=now)
            )
        else:
            statement = (
                update(Subscription)
                .where(Subscription.id.in_(ids))
                .values(status=SubscriptionStatus.ACTIVE.value, updated_at=now)
            )

        try:
            result = await self.db.execute(
                statement.execution_options(synchronize_session="fetch")
            )
        except IntegrityError as e:
            raise ConflictError("A user would end up with two active subscriptions") from e

        count = result.rowcount or 0
        logger.info(f"Bulk {action} applied to {count} subscription(s)")
        return count

    # =========================================================================
    # ADMIN CONSOLE QUERIES
    # =========================================================================

    async def list_subscriptions(
        self,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        plan: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Paginated subscription listing, newest first.

        ``search`` matches the owner's name or email, case-insensitively.
        """
        page = max(page, 1)
        limit = max(limit, 1)

        conditions = []
        if status:
            conditions.append(Subscription.status == parse_status(status).value)
        if plan:
            get_plan(plan)
            conditions.append(Subscription.plan == plan)
        if search:
            pattern = f"%{search}%"
            user_ids = select(User.id).where(
                or_(User.name.ilike(pattern), User.email.ilike(pattern))
            )
            conditions.append(Subscription.user_id.in_(user_ids))

        total = (
            await self.db.execute(
                select(func.count(Subscription.id)).where(*conditions)
            )
        ).scalar_one()

        result = await self.db.execute(
            select(Subscription)
            .options(selectinload(Subscription.user))
            .where(*conditions)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )

        return {
            "subscriptions": list(result.scalars().all()),
            "pagination": {
                "current": page,
                "pages": math.ceil(total / limit) if total else 0,
                "total": total,
            },
        }

    async def get_stats(self) -> Dict[str, Any]:
        """
        Totals by state, this month's revenue and plan distribution.

        "active" counts effectively active rows only. Revenue sums subscriptions
        created since the first of the current UTC month that are active or
        expired.
        """
        now = self.now()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

        async def count(*conditions) -> int:
            result = await self.db.execute(
                select(func.count(Subscription.id)).where(*conditions)
            )
            return result.scalar_one()

        total = await count()
        active = await count(
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.end_date > now,
        )
        expired = await count(Subscription.status == SubscriptionStatus.EXPIRED.value)
        cancelled = await count(Subscription.status == SubscriptionStatus.CANCELLED.value)

        revenue = (
            await self.db.execute(
                select(func.coalesce(func.sum(Subscription.price), 0)).where(
                    Subscription.created_at >= month_start,
                    Subscription.status.in_([
                        SubscriptionStatus.ACTIVE.value,
                        SubscriptionStatus.EXPIRED.value,
                    ]),
                )
            )
        ).scalar_one()

        distribution = await self.db.execute(
            select(Subscription.plan, func.count(Subscription.id)).group_by(Subscription.plan)
        )

        return {
            "total": total,
            "active": active,
            "expired": expired,
            "cancelled": cancelled,
            "monthly_revenue": float(revenue or 0),
            "plan_distribution": {plan: n for plan, n in distribution.all()},
        }

    # =========================================================================
    # EXPIRY SWEEP
    # =========================================================================

    async def expire_overdue(self, now: Optional[datetime] = None) -> int:
        """
        Flip every stored-'active' subscription whose end_date has passed.

        Returns:
            Number of subscriptions expired
        """
        now = as_utc(now) if now else self.now()
        result = await self.db.execute(
            update(Subscription)
            .where(
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.end_date <= now,
            )
            .values(status=SubscriptionStatus.EXPIRED.value, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

