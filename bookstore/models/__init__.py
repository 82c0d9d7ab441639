from bookstore.models.user import User
from bookstore.models.subscription import (
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
    SUBSCRIPTION_PLANS,
)
