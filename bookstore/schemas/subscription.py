from datetime import datetime
from typing import Optional, List, Dict
from pydantic import BaseModel, ConfigDict, Field

from bookstore.schemas.user import UserSummary


# ============================================================================
# PLAN SCHEMAS
# ============================================================================
class PlanResponse(BaseModel):
    name: str
    price: float
    duration: int
    features: List[str]
    description: str


# ============================================================================
# SUBSCRIPTION SCHEMAS
# ============================================================================
class SubscribeRequest(BaseModel):
    plan: str
    payment_id: Optional[str] = None


class AutoRenewUpdate(BaseModel):
    auto_renew: bool


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    plan: str
    plan_name: str
    price: float
    features: List[str] = []
    status: str
    start_date: datetime
    end_date: datetime
    auto_renew: bool
    payment_id: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SubscriptionDetail(SubscriptionResponse):
    user: Optional[UserSummary] = None


class SubscriptionMessage(BaseModel):
    message: str
    subscription: SubscriptionResponse


class Message(BaseModel):
    message: str


# ============================================================================
# ADMIN SCHEMAS
# ============================================================================
class StatusUpdate(BaseModel):
    status: str


class ExtendRequest(BaseModel):
    days: int


class BulkRequest(BaseModel):
    action: str
    subscription_ids: List[int] = Field(default_factory=list)


class BulkResult(BaseModel):
    message: str
    modified_count: int


class Pagination(BaseModel):
    current: int
    pages: int
    total: int


class SubscriptionPage(BaseModel):
    subscriptions: List[SubscriptionDetail]
    pagination: Pagination


class SubscriptionStats(BaseModel):
    total: int
    active: int
    expired: int
    cancelled: int
    monthly_revenue: float
    plan_distribution: Dict[str, int]
