from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, EmailStr, Field


# ============================================================================
# AUTH SCHEMAS
# ============================================================================
class UserCreate(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=6)
    phone: Optional[str] = None


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


# ============================================================================
# USER SCHEMAS
# ============================================================================
class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    phone: Optional[str] = None
    role: str
    permissions: Optional[List[str]] = None
    is_active: bool
    created_at: Optional[datetime] = None


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str


class UserList(BaseModel):
    users: List[UserResponse]
    total: int
    total_pages: int
    current_page: int


class StaffUserList(BaseModel):
    users: List[UserResponse]


# ============================================================================
# ROLE / PERMISSION SCHEMAS
# ============================================================================
class RoleUpdate(BaseModel):
    role: str
    permissions: Optional[List[str]] = None


class UserStatusUpdate(BaseModel):
    is_active: bool


class PermissionInfo(BaseModel):
    name: str
    display_name: str
    description: str


class PermissionList(BaseModel):
    permissions: List[PermissionInfo]


class RoleInfo(BaseModel):
    name: str
    display_name: str
    description: str
    permissions: List[str]
    user_count: int


class RoleList(BaseModel):
    roles: List[RoleInfo]
