"""
SQLAlchemy ORM models for users, documents, blog posts and analytics
"""
from __future__ import annotations

import math
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """DateTime that always hands back timezone-aware UTC values.

    SQLite drops tzinfo on the way in, so naive values read back are
    re-labelled as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class Base(DeclarativeBase):
    """Declarative base for all mdpress tables."""

    pass


class PostStatus(str, Enum):
    """Lifecycle states of a blog post."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


# ----- Identity -----
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)


class RefreshToken(Base):
    """One live session; only the sha256 of the issued token is stored."""

    __tablename__ = "refresh_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)


# ----- Document store -----
class Folder(Base):
    __tablename__ = "folders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    parent_id: Mapped[Optional[int]] = mapped_column(ForeignKey("folders.id"), nullable=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    is_open: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)


class File(Base):
    """A markdown document."""

    __tablename__ = "files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, default="")
    parent_id: Mapped[Optional[int]] = mapped_column(ForeignKey("folders.id"), nullable=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)


# ----- Publishing -----
class PostTag(Base):
    """Ordered tag of a blog post; one row per tag."""

    __tablename__ = "post_tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    post_id: Mapped[int] = mapped_column(ForeignKey("blog_posts.id"), nullable=False)
    tag: Mapped[str] = mapped_column(String(100), nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (Index("ix_post_tags_tag", "tag"), Index("ix_post_tags_post", "post_id"))


class BlogPost(Base):
    __tablename__ = "blog_posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, default="")
    excerpt: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    status: Mapped[str] = mapped_column(String(16), default=PostStatus.DRAFT.value)
    published_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    source_document_id: Mapped[Optional[int]] = mapped_column(ForeignKey("files.id"), nullable=True)

    views: Mapped[int] = mapped_column(Integer, default=0)
    likes: Mapped[int] = mapped_column(Integer, default=0)
    shares: Mapped[int] = mapped_column(Integer, default=0)
    read_time: Mapped[int] = mapped_column(Integer, default=0)

    seo_title: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    seo_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    seo_image: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    tag_rows: Mapped[List[PostTag]] = relationship(
        order_by=PostTag.position,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("slug", name="uq_blog_posts_slug"),
        UniqueConstraint("user_id", "source_document_id", name="uq_blog_posts_user_document"),
        CheckConstraint("status IN ('draft', 'published', 'archived')", name="ck_blog_posts_status"),
        CheckConstraint("views >= 0 AND likes >= 0 AND shares >= 0", name="ck_blog_posts_counters"),
        Index("ix_blog_posts_status_published", "status", "published_at"),
    )

    @property
    def tags(self) -> List[str]:
        return [row.tag for row in self.tag_rows]

    def set_tags(self, tags: List[str]) -> None:
        self.tag_rows = [PostTag(tag=tag, position=i) for i, tag in enumerate(tags)]

    def apply_status(self, status: PostStatus, now: Optional[datetime] = None) -> None:
        """Change status; published_at is stamped on the first publish only."""
        self.status = status.value
        if status == PostStatus.PUBLISHED and self.published_at is None:
            self.published_at = now or utcnow()

    def refresh_derived(self, words_per_minute: int = 200) -> None:
        """Recompute fields derived from the body."""
        words = len((self.content or "").split())
        self.read_time = math.ceil(words / words_per_minute)


class BlogLike(Base):
    __tablename__ = "blog_likes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    post_id: Mapped[int] = mapped_column(ForeignKey("blog_posts.id"), index=True, nullable=False)
    liked_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    __table_args__ = (UniqueConstraint("user_id", "post_id", name="uq_blog_likes_user_post"),)


class DailyAnalytics(Base):
    """Per-post, per-day interaction bucket."""

    __tablename__ = "daily_analytics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    post_id: Mapped[int] = mapped_column(ForeignKey("blog_posts.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)

    views: Mapped[int] = mapped_column(Integer, default=0)
    unique_views: Mapped[int] = mapped_column(Integer, default=0)
    likes: Mapped[int] = mapped_column(Integer, default=0)
    shares: Mapped[int] = mapped_column(Integer, default=0)
    avg_time_on_page: Mapped[float] = mapped_column(Float, default=0.0)
    bounce_rate: Mapped[float] = mapped_column(Float, default=0.0)

    # Not populated yet: lists of {"source"|"country"|"device": str, "count": int}
    referrers: Mapped[List[Any]] = mapped_column(JSON, default=list)
    countries: Mapped[List[Any]] = mapped_column(JSON, default=list)
    devices: Mapped[List[Any]] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    __table_args__ = (UniqueConstraint("post_id", "day", name="uq_daily_analytics_post_day"),)
