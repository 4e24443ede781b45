# backend/blogapi/posts/models.py
from enum import Enum as PyEnum
import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Enum as SQLEnum, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base
from ..users.models import utcnow


class PostCategory(str, PyEnum):
    TECH = "tech"
    LIFESTYLE = "lifestyle"
    BUSINESS = "business"
    EDUCATION = "education"
    HEALTH = "health"
    ENTERTAINMENT = "entertainment"
    OTHER = "other"


class Post(Base):
    __tablename__ = "posts"
    __table_args__ = (
        Index("ix_posts_author_created", "author_id", "created_at"),
        Index("ix_posts_category_created", "category", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    author_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    category = Column(
        SQLEnum(PostCategory, name="post_category", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    thumbnail = Column(String(255), nullable=True)  # public path, /uploads/<file>
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    author = relationship("User")

    def __repr__(self) -> str:
        return f"Post(id={self.id!r}, title={self.title!r}, category={self.category!r}, author_id={self.author_id!r})"
    def __str__(self) -> str:
        return self.title
