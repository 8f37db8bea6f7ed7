from datetime import date, datetime
from typing import List, Optional, Literal
from pydantic import BaseModel, ConfigDict, Field

from . import orm

PostStatusType = Literal["draft", "published", "archived"]
InteractionType = Literal["like", "share", "view"]


# ----- Auth -----

class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=320, description="Account email")
    password: str = Field(..., min_length=1, description="Account password")


class LoginRequest(BaseModel):
    email: str = Field(..., description="Account email")
    password: str = Field(..., description="Account password")


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., description="Refresh token from login or a previous refresh")


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = Field(None, description="Session to revoke")


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    created_at: datetime


class TokenPair(BaseModel):
    """Tokens issued by register, login and refresh"""
    access_token: str = Field(..., description="Short-lived bearer token")
    refresh_token: str = Field(..., description="Long-lived token for /auth/refresh")
    token_type: str = Field("bearer")
    user: UserOut


# ----- Documents -----

class FolderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    parent_id: Optional[int] = None
    is_open: bool = False
    created_at: datetime
    updated_at: datetime


class FileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    content: str
    parent_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class DocumentTreeOut(BaseModel):
    folders: List[FolderOut] = Field(default_factory=list)
    files: List[FileOut] = Field(default_factory=list)


class CreateItemRequest(BaseModel):
    name: str = Field(..., description="File or folder name")
    parent_id: Optional[int] = Field(None, description="Parent folder; null for the root")


class UpdateFileRequest(BaseModel):
    name: Optional[str] = None
    content: Optional[str] = None
    parent_id: Optional[int] = None


class UpdateFolderRequest(BaseModel):
    name: Optional[str] = None
    parent_id: Optional[int] = None
    is_open: Optional[bool] = None


class PreviewOut(BaseModel):
    id: int
    html: str = Field(..., description="Rendered markdown body")


# ----- Blog posts -----

class PublishRequest(BaseModel):
    """Publish a markdown document as a blog post"""
    source_document_id: int = Field(..., description="Document to publish")
    title: str = Field(..., description="Post title")
    excerpt: Optional[str] = Field(None, description="Summary; derived from the body when omitted")
    tags: List[str] = Field(default_factory=list, description="Tags; normalised to lowercase")
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None
    seo_image: Optional[str] = None


class UpdatePostRequest(BaseModel):
    """Direct edit of post fields; omitted fields are left unchanged"""
    title: Optional[str] = None
    excerpt: Optional[str] = None
    tags: Optional[List[str]] = None
    status: Optional[PostStatusType] = None
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None
    seo_image: Optional[str] = None


class TrackRequest(BaseModel):
    type: InteractionType = Field(..., description="Interaction kind")


class BlogPostSummary(BaseModel):
    """Blog post summary for listing pages"""
    id: int
    slug: str = Field(..., description="URL-friendly identifier for the post")
    title: str
    excerpt: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    status: PostStatusType
    published_at: Optional[datetime] = None
    user_id: int
    source_document_id: Optional[int] = None
    document_name: Optional[str] = Field(None, description="Name of the source document, if it still exists")
    views: int = 0
    likes: int = 0
    shares: int = 0
    read_time: int = Field(0, description="Estimated reading time in minutes")
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None
    seo_image: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_post(cls, post: orm.BlogPost, document_name: Optional[str] = None, **extra):
        return cls(
            id=post.id,
            slug=post.slug,
            title=post.title,
            excerpt=post.excerpt,
            tags=post.tags,
            status=post.status,
            published_at=post.published_at,
            user_id=post.user_id,
            source_document_id=post.source_document_id,
            document_name=document_name,
            views=post.views or 0,
            likes=post.likes or 0,
            shares=post.shares or 0,
            read_time=post.read_time or 0,
            seo_title=post.seo_title,
            seo_description=post.seo_description,
            seo_image=post.seo_image,
            created_at=post.created_at,
            updated_at=post.updated_at,
            **extra,
        )


class BlogPostOut(BlogPostSummary):
    """Complete blog post with its markdown body"""
    content: str = Field("", description="Markdown body")

    @classmethod
    def from_post(cls, post: orm.BlogPost, document_name: Optional[str] = None, **extra):
        return super().from_post(post, document_name, content=post.content or "", **extra)


class SearchHitOut(BlogPostSummary):
    score: int = Field(..., description="Weighted relevance score")
    matched_fields: List[str] = Field(default_factory=list, description="Fields that matched the query")


class SearchResponse(BaseModel):
    results: List[SearchHitOut]
    total_count: int
    page: int
    page_size: int
    total_pages: int
    suggestions: List[str]
    has_more: bool
    query: str


# ----- Interactions and analytics -----

class InteractionOut(BaseModel):
    post_id: int
    views: int
    likes: int
    shares: int
    is_liked: Optional[bool] = None


class LikeStatusOut(BaseModel):
    is_liked: bool
    total_likes: int


class DailyAnalyticsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    post_id: int
    day: date
    views: int
    unique_views: int
    likes: int
    shares: int
    avg_time_on_page: float
    bounce_rate: float


class AnalyticsTotalsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    views: int = 0
    unique_views: int = 0
    likes: int = 0
    shares: int = 0
    avg_time_on_page: float = 0.0


class PeriodOut(BaseModel):
    days: int
    start_date: date
    end_date: date


class PostAnalyticsOut(BaseModel):
    post: BlogPostSummary
    analytics: List[DailyAnalyticsOut]
    totals: AnalyticsTotalsOut
    period: PeriodOut


class DashboardOut(BaseModel):
    totals: AnalyticsTotalsOut
    analytics: List[DailyAnalyticsOut]
    top_posts: List[BlogPostSummary]
    recent_posts: List[BlogPostSummary]
    post_count: int
    published_count: int
    period: PeriodOut
