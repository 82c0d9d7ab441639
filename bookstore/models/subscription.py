"""
Subscription model

A user may hold many subscriptions over time. At most one row per user may
carry status 'active'; the partial unique index enforces it at the storage
level so concurrent subscribe calls cannot both win.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Column, Integer, String, Float, Boolean, ForeignKey, DateTime, JSON,
    Index, CheckConstraint,
)
from sqlalchemy.orm import relationship

from bookstore.core.database import Base
from bookstore.core.utils import as_utc


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle states."""
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SubscriptionPlan(str, Enum):
    BASIC = "basic"
    STANDARD = "standard"
    PREMIUM = "premium"


# Fixed plan table - duration in days
SUBSCRIPTION_PLANS = {
    SubscriptionPlan.BASIC.value: {
        "name": "Basic Plan",
        "price": 99,
        "duration": 30,
        "features": [
            "Access to PDF books",
            "Basic customer support",
            "Mobile app access",
        ],
        "description": "Perfect for casual readers",
    },
    SubscriptionPlan.STANDARD.value: {
        "name": "Standard Plan",
        "price": 299,
        "duration": 30,
        "features": [
            "Access to PDF books",
            "Priority customer support",
            "Mobile app access",
            "Offline reading",
            "Bookmarks & notes",
        ],
        "description": "Great for regular readers",
    },
    SubscriptionPlan.PREMIUM.value: {
        "name": "Premium Plan",
        "price": 599,
        "duration": 30,
        "features": [
            "Access to PDF books",
            "Premium customer support",
            "Mobile app access",
            "Offline reading",
            "Bookmarks & notes",
            "Exclusive content",
            "Early access to new releases",
        ],
        "description": "Ultimate reading experience",
    },
}


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # Plan snapshot at subscribe time
    plan = Column(String(20), nullable=False)
    plan_name = Column(String(50), nullable=False)
    price = Column(Float, nullable=False)
    features = Column(JSON, nullable=False, default=list)

    status = Column(String(20), nullable=False, default=SubscriptionStatus.PENDING.value)
    start_date = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    end_date = Column(DateTime(timezone=True), nullable=False)
    auto_renew = Column(Boolean, nullable=False, default=True)
    payment_id = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    user = relationship("User", back_populates="subscriptions")

    __table_args__ = (
        Index('ix_subscriptions_user_status', 'user_id', 'status'),
        Index('ix_subscriptions_end_date', 'end_date'),
        Index(
            'uq_subscriptions_one_active_per_user',
            'user_id',
            unique=True,
            postgresql_where=(status == SubscriptionStatus.ACTIVE.value),
            sqlite_where=(status == SubscriptionStatus.ACTIVE.value),
        ),
        CheckConstraint(
            "status IN ('pending', 'active', 'expired', 'cancelled')",
            name='ck_subscriptions_status',
        ),
        CheckConstraint(
            "plan IN ('basic', 'standard', 'premium')",
            name='ck_subscriptions_plan',
        ),
    )

    def __repr__(self):
        return f"<Subscription(id={self.id}, user_id={self.user_id}, plan='{self.plan}', status='{self.status}')>"

    def is_effectively_active(self, now: Optional[datetime] = None) -> bool:
        """
        Active status AND an end date still in the future.

        The stored status alone is not enough: nothing flips it to
        'expired' the moment end_date passes.
        """
        if self.status != SubscriptionStatus.ACTIVE.value or self.end_date is None:
            return False
        now = as_utc(now) or datetime.now(timezone.utc)
        return as_utc(self.end_date) > now

    @property
    def is_active(self) -> bool:
        return self.is_effectively_active()

    def has_feature(self, feature: str) -> bool:
        return feature in (self.features or [])
