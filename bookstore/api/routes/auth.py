"""
Authentication routes

Rate limited to slow down credential stuffing. Tokens are returned in the
response body and sent back as ``Authorization: Bearer <token>``.
"""
import logging
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.core.database import get_db
from bookstore.core.rate_limit import auth_limit
from bookstore.core.security import access_token_for
from bookstore.api.deps import get_current_user
from bookstore.models.user import User
from bookstore.schemas.user import Token, UserCreate, UserLogin, UserResponse
from bookstore.services.user_service import UserService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
@auth_limit()
async def register(
    request: Request,
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db)
):
    """Register a customer account and return an access token"""
    user = await UserService(db).create_user(
        email=user_data.email,
        name=user_data.name,
        password=user_data.password,
        phone=user_data.phone,
    )

    return Token(access_token=access_token_for(user.id))


@router.post("/login", response_model=Token)
@auth_limit()
async def login(
    request: Request,
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db)
):
    """Exchange email/password for an access token"""
    user = await UserService(db).authenticate(credentials.email, credentials.password)
    logger.info(f"Login: user_id={user.id}")
    return Token(access_token=access_token_for(user.id))


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)):
    """Get current user profile"""
    return user
