# backend/blogapi/posts/schemas.py
from datetime import datetime
from typing import Literal, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from ..exceptions import ValidationError
from ..models import CustomModel, Pagination
from .models import PostCategory

SortField = Literal["createdAt", "updatedAt", "title", "category"]
SortOrder = Literal["asc", "desc"]

M = TypeVar("M", bound=BaseModel)


class PostCreate(CustomModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    category: PostCategory

    @field_validator("title", "content", mode="before")
    @classmethod
    def _strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


class PostPatch(CustomModel):
    """
    Partial update. Fields that were not sent stay untouched
    (`model_dump(exclude_unset=True)`); blank form values count as not sent.
    """
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = Field(None, min_length=1)
    category: Optional[PostCategory] = None
    remove_thumbnail: bool = False

    @field_validator("title", "content", mode="before")
    @classmethod
    def _strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


def parse_form(model: Type[M], **fields) -> M:
    """Validate multipart form fields, reporting the first problem as a 400."""
    try:
        return model.model_validate(fields)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(f"{location}: {first['msg']}" if location else first["msg"])


class AuthorOut(CustomModel):
    id: str
    username: str


class PostOut(CustomModel):
    id: str
    title: str
    content: str
    category: PostCategory
    thumbnail: Optional[str] = None
    author: Optional[AuthorOut] = None
    created_at: datetime
    updated_at: datetime


class PostListData(CustomModel):
    posts: list[PostOut]
    pagination: Pagination


class ExportFilters(CustomModel):
    category: Optional[str] = None
    search: Optional[str] = None
    author: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
