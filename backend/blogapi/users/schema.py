from pydantic import EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime

from ..models import CustomModel, Pagination
from .models import UserRole


class UserCreate(CustomModel):
    username: str = Field(..., min_length=3, max_length=30, json_schema_extra={"example": "alice"})
    password: str = Field(..., min_length=6, json_schema_extra={"example": "secret1"})
    email: Optional[EmailStr] = Field(None, json_schema_extra={"example": "alice@example.com"})
    full_name: Optional[str] = Field(None, max_length=100, json_schema_extra={"example": "Alice Liddell"})

    @field_validator("username", mode="before")
    @classmethod
    def _strip_username(cls, v):
        return v.strip() if isinstance(v, str) else v


class UserUpdate(CustomModel):
    """Profile patch. Omitted fields are left alone, explicit null clears the field."""
    email: Optional[EmailStr] = Field(None, json_schema_extra={"example": "new_email@example.com"})
    full_name: Optional[str] = Field(None, max_length=100, json_schema_extra={"example": "Alice L."})

class UserStatusUpdate(CustomModel):
    is_active: bool

class UserPublic(CustomModel):
    id: str
    username: str
    role: UserRole
    email: Optional[str] = None
    full_name: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

class UserListData(CustomModel):
    users: list[UserPublic]
    pagination: Pagination

class RoleCounts(CustomModel):
    admin: int
    user: int

class StatusCounts(CustomModel):
    active: int
    inactive: int

class UserStats(CustomModel):
    total: int
    by_role: RoleCounts
    by_status: StatusCounts
    new_this_month: int
