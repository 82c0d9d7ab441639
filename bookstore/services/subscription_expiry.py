"""
Subscription Expiry Sweep

Background service that normalizes the stored status of subscriptions whose
end date has passed. Run on an interval by the scheduler in bookstore.main.

Access checks never wait for this sweep: they use is_effectively_active().
"""
import logging

from bookstore.core.database import get_db_session
from bookstore.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


async def expire_overdue_subscriptions() -> dict:
    """
    Expire every overdue 'active' subscription.

    Returns:
        dict with the number of subscriptions expired
    """
    stats = {"subscriptions_expired": 0}

    async with get_db_session() as db:
        stats["subscriptions_expired"] = await SubscriptionService(db).expire_overdue()

    if stats["subscriptions_expired"]:
        logger.info(f"Expiry sweep: {stats['subscriptions_expired']} subscription(s) expired")
    else:
        logger.debug("Expiry sweep: nothing to expire")

    return stats
