import math
from datetime import datetime, timezone
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, field_serializer
from pydantic.alias_generators import to_camel

T = TypeVar("T")


def as_utc(value: datetime) -> datetime:
    """Naive datetimes coming back from the database are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CustomModel(BaseModel):
    """
    Common base for every Pydantic schema in the project.
    Keeps the API data policy in one place: camelCase on the wire,
    snake_case in Python, ORM objects accepted directly.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        extra="forbid",
    )

    @field_serializer("created_at", "updated_at", check_fields=False)
    def serialize_timestamp(self, value: Optional[datetime], _info):
        if isinstance(value, datetime):
            return as_utc(value).isoformat()
        return value


class Pagination(CustomModel):
    current_page: int
    total_pages: int
    total_count: int
    has_next: bool
    has_prev: bool
    limit: int

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> "Pagination":
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_count=total,
            has_next=page < total_pages,
            has_prev=page > 1,
            limit=limit,
        )


class ApiResponse(CustomModel, Generic[T]):
    """Success envelope shared by every JSON endpoint."""
    success: bool = True
    message: str
    data: Optional[T] = None
