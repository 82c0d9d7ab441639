"""
Tests for SubscriptionService: lifecycle, effective activity, admin
overrides, bulk actions and console queries.
"""
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, patch
from sqlalchemy.exc import IntegrityError

from bookstore.core.exceptions import ConflictError, InvalidArgumentError, NotFoundError
from bookstore.core.utils import as_utc
from bookstore.models.subscription import Subscription, SubscriptionStatus
from bookstore.services.subscription_service import (
    SubscriptionService,
    get_plan,
    is_effectively_active,
    list_plans,
)

from conftest import T0


class TestPlans:

    def test_plan_table(self):
        plans = list_plans()
        assert set(plans) == {"basic", "standard", "premium"}
        assert plans["basic"]["price"] == 99
        assert plans["standard"]["price"] == 299
        assert plans["premium"]["price"] == 599
        assert all(p["duration"] == 30 for p in plans.values())
        assert len(plans["premium"]["features"]) == 7

    def test_list_plans_is_a_copy(self):
        list_plans()["basic"]["features"].append("Free coffee")
        assert "Free coffee" not in list_plans()["basic"]["features"]

    @pytest.mark.parametrize("code", ["gold", "", None, "BASIC"])
    def test_unknown_plan(self, code):
        with pytest.raises(InvalidArgumentError):
            get_plan(code)


class TestSubscribe:

    @pytest.mark.asyncio
    async def test_subscribe_creates_active_row(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)

        sub = await service.subscribe(user, "basic", payment_id="pay_123")

        assert sub.status == SubscriptionStatus.ACTIVE.value
        assert sub.plan == "basic"
        assert sub.plan_name == "Basic Plan"
        assert sub.price == 99
        assert sub.auto_renew is True
        assert sub.payment_id == "pay_123"
        assert sub.has_feature("Mobile app access")
        assert not sub.has_feature("Exclusive content")
        assert as_utc(sub.start_date) == T0
        assert as_utc(sub.end_date) == T0 + timedelta(days=30)
        assert is_effectively_active(sub, T0)

    @pytest.mark.asyncio
    async def test_unknown_plan_creates_nothing(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)

        with pytest.raises(InvalidArgumentError):
            await service.subscribe(user, "platinum")
        assert await service.get_history(user.id) == []

    @pytest.mark.asyncio
    async def test_second_subscribe_conflicts(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        await service.subscribe(user, "basic")

        with pytest.raises(ConflictError):
            await service.subscribe(user, "premium")

    @pytest.mark.asyncio
    async def test_subscribe_after_end_date_passes(self, db, make_user, clock):
        """Stored status is still 'active' but the period is over."""
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        first = await service.subscribe(user, "basic")
        await db.commit()

        clock.advance(timedelta(days=31))
        assert await service.get_current(user.id) is None

        second = await service.subscribe(user, "standard")
        await db.refresh(first)

        assert first.status == SubscriptionStatus.EXPIRED.value
        assert second.status == SubscriptionStatus.ACTIVE.value
        assert as_utc(second.end_date) == T0 + timedelta(days=61)

    @pytest.mark.asyncio
    async def test_subscribe_after_cancel(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        await service.subscribe(user, "basic")
        await service.cancel(user)

        sub = await service.subscribe(user, "premium")
        assert sub.status == SubscriptionStatus.ACTIVE.value
        assert len(await service.get_history(user.id)) == 2

    @pytest.mark.asyncio
    async def test_storage_rejects_two_active_rows(self, db, make_user, clock):
        user = await make_user()
        for plan in ("basic", "standard"):
            db.add(Subscription(
                user_id=user.id,
                plan=plan,
                plan_name=plan,
                price=1,
                features=[],
                status=SubscriptionStatus.ACTIVE.value,
                start_date=T0,
                end_date=T0 + timedelta(days=30),
            ))

        with pytest.raises(IntegrityError):
            await db.flush()
        await db.rollback()

    @pytest.mark.asyncio
    async def test_index_conflict_surfaces_as_conflict(self, db, make_user, clock):
        """A concurrent subscribe that slipped past the read still loses."""
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        await service.subscribe(user, "basic")
        await db.commit()
        user_id = user.id

        with patch.object(service, "get_current", AsyncMock(return_value=None)):
            with pytest.raises(ConflictError):
                await service.subscribe(user, "premium")
        await db.rollback()

        assert len(await service.get_history(user_id)) == 1


class TestCurrentAndHistory:

    @pytest.mark.asyncio
    async def test_current_respects_end_date(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        sub = await service.subscribe(user, "standard")

        clock.advance(timedelta(days=29))
        assert (await service.get_current(user.id)).id == sub.id

        clock.advance(timedelta(days=2))
        assert await service.get_current(user.id) is None
        # Nothing rewrote the row; the check alone hides it
        assert sub.status == SubscriptionStatus.ACTIVE.value
        assert not is_effectively_active(sub, clock())

    @pytest.mark.asyncio
    async def test_standard_plan_past_end_date(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        sub = await service.subscribe(user, "standard")
        assert sub.price == 299
        assert as_utc(sub.end_date) - as_utc(sub.start_date) == timedelta(days=30)

        clock.advance(timedelta(days=31))
        assert sub.status == SubscriptionStatus.ACTIVE.value
        assert not is_effectively_active(sub, clock())

        normalized = await service.set_status(sub.id, "expired")
        assert normalized.status == SubscriptionStatus.EXPIRED.value
        assert as_utc(normalized.end_date) == T0 + timedelta(days=30)

    @pytest.mark.asyncio
    async def test_history_newest_first(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        first = await service.subscribe(user, "basic")
        await service.cancel(user)
        clock.advance(timedelta(hours=1))
        second = await service.subscribe(user, "premium")

        history = await service.get_history(user.id)
        assert [s.id for s in history] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_history_is_per_user(self, db, make_user, clock):
        alice = await make_user()
        bob = await make_user()
        service = SubscriptionService(db, clock=clock)
        await service.subscribe(alice, "basic")

        assert await service.get_history(bob.id) == []


class TestCancelAndAutoRenew:

    @pytest.mark.asyncio
    async def test_cancel(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        await service.subscribe(user, "basic")

        sub = await service.cancel(user)
        assert sub.status == SubscriptionStatus.CANCELLED.value
        assert sub.auto_renew is False
        assert await service.get_current(user.id) is None

    @pytest.mark.asyncio
    async def test_cancel_twice(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        await service.subscribe(user, "basic")
        await service.cancel(user)

        with pytest.raises(NotFoundError):
            await service.cancel(user)

    @pytest.mark.asyncio
    async def test_cancel_without_subscription(self, db, make_user, clock):
        user = await make_user()
        with pytest.raises(NotFoundError):
            await SubscriptionService(db, clock=clock).cancel(user)

    @pytest.mark.asyncio
    async def test_auto_renew_toggle(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        await service.subscribe(user, "basic")

        assert (await service.set_auto_renew(user, False)).auto_renew is False
        assert (await service.set_auto_renew(user, True)).auto_renew is True

    @pytest.mark.asyncio
    async def test_auto_renew_needs_active_subscription(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        await service.subscribe(user, "basic")
        await service.cancel(user)

        with pytest.raises(NotFoundError):
            await service.set_auto_renew(user, True)


class TestPrivilegedOperations:

    @pytest.mark.asyncio
    async def test_extend_is_exact(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        sub = await service.subscribe(user, "basic")

        extended = await service.extend(sub.id, 10)
        assert as_utc(extended.end_date) == T0 + timedelta(days=40)

    @pytest.mark.asyncio
    async def test_extend_ignores_status(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        sub = await service.subscribe(user, "basic")
        await service.cancel(user)

        extended = await service.extend(sub.id, 5)
        assert extended.status == SubscriptionStatus.CANCELLED.value
        assert as_utc(extended.end_date) == T0 + timedelta(days=35)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("days", [0, -3, True, 2.5, "7"])
    async def test_extend_rejects_bad_days(self, db, make_user, clock, days):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        sub = await service.subscribe(user, "basic")

        with pytest.raises(InvalidArgumentError):
            await service.extend(sub.id, days)

    @pytest.mark.asyncio
    async def test_extend_missing(self, db, clock):
        with pytest.raises(NotFoundError):
            await SubscriptionService(db, clock=clock).extend(999, 5)

    @pytest.mark.asyncio
    async def test_set_status_bypasses_guards(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        sub = await service.subscribe(user, "basic")
        await service.cancel(user)

        revived = await service.set_status(sub.id, "active")
        assert revived.status == SubscriptionStatus.ACTIVE.value
        assert (await service.get_current(user.id)).id == sub.id

        pending = await service.set_status(sub.id, "pending")
        assert pending.status == SubscriptionStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_set_status_rejects_unknown(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        sub = await service.subscribe(user, "basic")

        with pytest.raises(InvalidArgumentError):
            await service.set_status(sub.id, "paused")

    @pytest.mark.asyncio
    async def test_set_status_cannot_create_second_active(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        old = await service.subscribe(user, "basic")
        await service.cancel(user)
        await service.subscribe(user, "premium")
        await db.commit()

        with pytest.raises(ConflictError):
            await service.set_status(old.id, "active")
        await db.rollback()

    @pytest.mark.asyncio
    async def test_set_status_active_expires_overdue_rows(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        old = await service.subscribe(user, "basic")
        await service.cancel(user)
        current = await service.subscribe(user, "premium")
        await db.commit()

        clock.advance(timedelta(days=40))
        revived = await service.set_status(old.id, "active")

        assert revived.status == SubscriptionStatus.ACTIVE.value
        assert current.status == SubscriptionStatus.EXPIRED.value
        assert not is_effectively_active(revived, clock())

    @pytest.mark.asyncio
    async def test_set_status_active_keeps_overdue_target(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        sub = await service.subscribe(user, "basic")

        clock.advance(timedelta(days=40))
        again = await service.set_status(sub.id, "active")
        assert again.status == SubscriptionStatus.ACTIVE.value

    @pytest.mark.asyncio
    async def test_delete(self, db, make_user, clock):
        user = await make_user()
        service = SubscriptionService(db, clock=clock)
        sub = await service.subscribe(user, "basic")

        await service.delete(sub.id)
        with pytest.raises(NotFoundError):
            await service.get(sub.id)
        with pytest.raises(NotFoundError):
            await service.delete(sub.id)


class TestBulkActions:

    @pytest.mark.asyncio
    async def test_bulk_cancel(self, db, make_user, clock):
        service = SubscriptionService(db, clock=clock)
        ids = []
        for _ in range(3):
            user = await make_user()
            ids.append((await service.subscribe(user, "basic")).id)

        count = await service.bulk_action("cancel", ids[:2])
        assert count == 2

        statuses = [(await service.get(i)).status for i in ids]
        assert statuses == ["cancelled", "cancelled", "active"]
        assert (await service.get(ids[0])).auto_renew is False

    @pytest.mark.asyncio
    async def test_bulk_delete_skips_unknown_ids(self, db, make_user, clock):
        service = SubscriptionService(db, clock=clock)
        user = await make_user()
        sub = await service.subscribe(user, "basic")

        assert await service.bulk_action("delete", [sub.id, 12345]) == 1
        assert await service.get_history(user.id) == []

    @pytest.mark.asyncio
    async def test_bulk_activate(self, db, make_user, clock):
        service = SubscriptionService(db, clock=clock)
        user = await make_user()
        sub = await service.subscribe(user, "basic")
        await service.cancel(user)

        assert await service.bulk_action("activate", [sub.id]) == 1
        assert (await service.get(sub.id)).status == "active"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action,ids", [
        ("archive", [1]),
        ("cancel", []),
    ])
    async def test_bulk_rejects_bad_input(self, db, clock, action, ids):
        with pytest.raises(InvalidArgumentError):
            await SubscriptionService(db, clock=clock).bulk_action(action, ids)


class TestConsoleQueries:

    @pytest.mark.asyncio
    async def test_stats(self, db, make_user, clock):
        service = SubscriptionService(db, clock=clock)
        await service.subscribe(await make_user(), "basic")
        await service.subscribe(await make_user(), "standard")
        cancelled_user = await make_user()
        await service.subscribe(cancelled_user, "premium")
        await service.cancel(cancelled_user)

        stats = await service.get_stats()

        assert stats["total"] == 3
        assert stats["active"] == 2
        assert stats["expired"] == 0
        assert stats["cancelled"] == 1
        assert stats["monthly_revenue"] == 398
        assert stats["plan_distribution"] == {"basic": 1, "standard": 1, "premium": 1}

    @pytest.mark.asyncio
    async def test_stats_active_excludes_overdue(self, db, make_user, clock):
        service = SubscriptionService(db, clock=clock)
        await service.subscribe(await make_user(), "basic")

        clock.advance(timedelta(days=31))
        stats = await service.get_stats()
        assert stats["total"] == 1
        assert stats["active"] == 0

    @pytest.mark.asyncio
    async def test_list_filters_and_pagination(self, db, make_user, clock):
        service = SubscriptionService(db, clock=clock)
        for plan in ("basic", "basic", "premium"):
            await service.subscribe(await make_user(), plan)

        page = await service.list_subscriptions(page=1, limit=2)
        assert page["pagination"] == {"current": 1, "pages": 2, "total": 3}
        assert len(page["subscriptions"]) == 2

        basic = await service.list_subscriptions(plan="basic")
        assert basic["pagination"]["total"] == 2

        active = await service.list_subscriptions(status="active")
        assert active["pagination"]["total"] == 3
        assert (await service.list_subscriptions(status="cancelled"))["pagination"]["total"] == 0

    @pytest.mark.asyncio
    async def test_list_search_by_owner(self, db, make_user, clock):
        service = SubscriptionService(db, clock=clock)
        await service.subscribe(await make_user(name="Ada Lovelace"), "basic")
        await service.subscribe(await make_user(name="Alan Turing"), "basic")

        result = await service.list_subscriptions(search="lovelace")
        assert result["pagination"]["total"] == 1
        assert result["subscriptions"][0].user.name == "Ada Lovelace"

    @pytest.mark.asyncio
    async def test_list_rejects_bad_filters(self, db, clock):
        service = SubscriptionService(db, clock=clock)
        with pytest.raises(InvalidArgumentError):
            await service.list_subscriptions(status="paused")
        with pytest.raises(InvalidArgumentError):
            await service.list_subscriptions(plan="gold")
