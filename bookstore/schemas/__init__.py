from bookstore.schemas.user import UserCreate, UserLogin, UserResponse, Token, RoleUpdate, UserStatusUpdate
from bookstore.schemas.subscription import (
    PlanResponse, SubscribeRequest, SubscriptionResponse, SubscriptionDetail, SubscriptionStats,
)
