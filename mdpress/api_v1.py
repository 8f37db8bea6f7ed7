"""
API v1 routes with proper versioning
"""
from fastapi import APIRouter, Query, Depends, status
from typing import Optional
import re
import time

from .api_auth import auth_router
from .api_files import files_router
from .api_models import (
    HealthResponse, MessageResponse, MetricsResponse, PaginatedResponse,
    paginated_response
)
from .config import get_settings, get_security_settings
from .dependencies import (
    get_analytics_service, get_container, get_current_user, get_interaction_service,
    get_optional_user, get_publication_service, get_search_service
)
from .exceptions import InvalidInputError
from .interactions import AnalyticsService, InteractionService
from .logging import logger, metrics
from .models import (
    BlogPostOut, BlogPostSummary, DailyAnalyticsOut, AnalyticsTotalsOut, DashboardOut,
    InteractionOut, LikeStatusOut, PeriodOut, PostAnalyticsOut, PublishRequest,
    SearchHitOut, SearchResponse, TrackRequest, UpdatePostRequest
)
from .orm import PostStatus
from .query_builder import SortField, SortOrder
from . import services
from .services import PublicationService, SearchService
from .text import parse_tag_filter

settings = get_settings()
security_settings = get_security_settings()
_started_at = time.time()

# Create v1 router (prefix will be added when mounting)
v1_router = APIRouter()
blogs_router = APIRouter(prefix="/blogs", tags=["blogs"])


def sanitize_input(value: Optional[str], max_length: int = 200) -> Optional[str]:
    """Truncate and strip control characters from free-text input"""
    if not value:
        return value
    value = value[:max_length]
    value = re.sub(r'[\x00-\x1F\x7F-\x9F]', '', value)
    return value.strip()


def sanitize_slug(slug: str) -> str:
    """Slugs only ever contain lowercase letters, digits and hyphens"""
    if not re.match(r'^[a-z0-9-]+$', slug):
        raise InvalidInputError("slug", "invalid slug format")
    return slug


# ----- Public -----

@blogs_router.get("/public",
    response_model=PaginatedResponse[BlogPostSummary],
    summary="List published posts",
    description="""
    Published posts, newest first. `search` keeps posts where any text field,
    tag or the source document name contains the string; `tags` is a
    comma-separated filter matching posts with any of the tags. No ranking.
    """
)
async def list_public_posts(
    page: int = Query(1, ge=1, description="Page number, 1-based"),
    limit: int = Query(10, ge=1, le=100, description="Posts per page"),
    search: Optional[str] = Query(None, description="Case-insensitive substring filter"),
    tags: Optional[str] = Query(None, description="Comma-separated tags"),
    publication: PublicationService = Depends(get_publication_service)
):
    request = services.PublicListRequest(
        page=page,
        limit=limit,
        search=sanitize_input(search, security_settings.max_query_length),
        tags=parse_tag_filter(tags),
    )
    result = await publication.list_public_posts(request)
    return paginated_response(
        items=[BlogPostSummary.from_post(post, name) for post, name in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


@blogs_router.get("/public/{slug}",
    response_model=BlogPostOut,
    summary="Read a published post",
    description="Fetching a post by slug counts as one view."
)
async def get_public_post(
    slug: str,
    publication: PublicationService = Depends(get_publication_service)
):
    post, document_name = await publication.get_public_post(sanitize_slug(slug))
    return BlogPostOut.from_post(post, document_name)


@blogs_router.post("/public/{post_id}/track",
    response_model=InteractionOut,
    summary="Record a like, share or view",
    description="Likes toggle and require authentication; shares and views are anonymous."
)
async def track_interaction(
    post_id: int,
    body: TrackRequest,
    user_id: Optional[int] = Depends(get_optional_user),
    interactions: InteractionService = Depends(get_interaction_service)
):
    result = await interactions.track(post_id, body.type, user_id)
    return InteractionOut(
        post_id=result.post_id,
        views=result.views,
        likes=result.likes,
        shares=result.shares,
        is_liked=result.is_liked,
    )


@blogs_router.get("/public/{post_id}/like-status", response_model=LikeStatusOut)
async def like_status(
    post_id: int,
    user_id: Optional[int] = Depends(get_optional_user),
    interactions: InteractionService = Depends(get_interaction_service)
):
    result = await interactions.like_status(post_id, user_id)
    return LikeStatusOut(is_liked=result.is_liked, total_likes=result.total_likes)


@blogs_router.get("/search",
    response_model=SearchResponse,
    summary="Ranked search",
    description="""
    Weighted substring search: title 10, SEO title 8, excerpt 6, any tag 5,
    document name 5, body 3, SEO description 2. Results carry their score and
    matched fields; suggestions are the most frequent tags among all hits.
    """
)
async def search_posts(
    q: str = Query(..., description="Search query"),
    page: int = Query(1, description="Page number; values below 1 are clamped"),
    page_size: int = Query(10, description="Results per page; clamped to 1-50"),
    tags: Optional[str] = Query(None, description="Comma-separated tag filter"),
    sort_by: SortField = Query(SortField.RELEVANCE, description="relevance, date, views or likes"),
    sort_order: SortOrder = Query(SortOrder.DESC, description="asc or desc; relevance is always best first"),
    include_own: bool = Query(False, description="Also search the caller's unpublished posts"),
    user_id: Optional[int] = Depends(get_optional_user),
    search_service: SearchService = Depends(get_search_service)
):
    request = services.SearchRequest(
        query=sanitize_input(q, security_settings.max_query_length) or "",
        tags=parse_tag_filter(tags),
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_order=sort_order,
        include_own=include_own,
    )
    result = await search_service.search(request, user_id)
    return SearchResponse(
        results=[
            SearchHitOut.from_post(hit.post, hit.document_name,
                                   score=hit.score, matched_fields=hit.matched_fields)
            for hit in result.hits
        ],
        total_count=result.total_count,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
        suggestions=result.suggestions,
        has_more=result.has_more,
        query=result.query,
    )


# ----- Authenticated -----

@blogs_router.post("/publish",
    response_model=BlogPostOut,
    status_code=status.HTTP_201_CREATED,
    summary="Publish a document",
    description="Creates the document's post, or republishes it with the document's current body."
)
async def publish(
    body: PublishRequest,
    user_id: int = Depends(get_current_user),
    publication: PublicationService = Depends(get_publication_service)
):
    request = services.PublishRequest(**body.model_dump())
    post = await publication.publish(user_id, request)
    return BlogPostOut.from_post(post)


@blogs_router.get("", response_model=PaginatedResponse[BlogPostSummary], summary="List own posts")
async def list_own_posts(
    status_filter: Optional[PostStatus] = Query(None, alias="status"),
    source_document_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user_id: int = Depends(get_current_user),
    publication: PublicationService = Depends(get_publication_service)
):
    request = services.PostListRequest(
        status=status_filter,
        source_document_id=source_document_id,
        page=page,
        limit=limit,
    )
    result = await publication.list_user_posts(user_id, request)
    return paginated_response(
        items=[BlogPostSummary.from_post(post, name) for post, name in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


@blogs_router.get("/dashboard", response_model=DashboardOut, summary="Analytics across all own posts")
async def dashboard(
    days: int = Query(30, ge=1, le=3650),
    user_id: int = Depends(get_current_user),
    analytics: AnalyticsService = Depends(get_analytics_service)
):
    result = await analytics.dashboard(user_id, days)
    return DashboardOut(
        totals=AnalyticsTotalsOut.model_validate(result.totals),
        analytics=[DailyAnalyticsOut.model_validate(row) for row in result.days],
        top_posts=[BlogPostSummary.from_post(post) for post in result.top_posts],
        recent_posts=[BlogPostSummary.from_post(post) for post in result.recent_posts],
        post_count=result.post_count,
        published_count=result.published_count,
        period=PeriodOut(days=result.period_days, start_date=result.start_date, end_date=result.end_date),
    )


@blogs_router.get("/{post_id}", response_model=BlogPostOut)
async def get_own_post(
    post_id: int,
    user_id: int = Depends(get_current_user),
    publication: PublicationService = Depends(get_publication_service)
):
    post, document_name = await publication.get_user_post(user_id, post_id)
    return BlogPostOut.from_post(post, document_name)


@blogs_router.put("/{post_id}", response_model=BlogPostOut, summary="Edit post fields")
async def update_post(
    post_id: int,
    body: UpdatePostRequest,
    user_id: int = Depends(get_current_user),
    publication: PublicationService = Depends(get_publication_service)
):
    post = await publication.update_post(user_id, post_id, body.model_dump(exclude_unset=True))
    return BlogPostOut.from_post(post)


@blogs_router.delete("/{post_id}", response_model=MessageResponse,
                     summary="Delete a post with its likes and analytics")
async def delete_post(
    post_id: int,
    user_id: int = Depends(get_current_user),
    publication: PublicationService = Depends(get_publication_service)
):
    await publication.delete_post(user_id, post_id)
    return MessageResponse(message="Post deleted")


@blogs_router.get("/{post_id}/analytics", response_model=PostAnalyticsOut)
async def post_analytics(
    post_id: int,
    days: int = Query(30, ge=1, le=3650),
    user_id: int = Depends(get_current_user),
    analytics: AnalyticsService = Depends(get_analytics_service)
):
    result = await analytics.post_analytics(user_id, post_id, days)
    return PostAnalyticsOut(
        post=BlogPostSummary.from_post(result.post),
        analytics=[DailyAnalyticsOut.model_validate(row) for row in result.days],
        totals=AnalyticsTotalsOut.model_validate(result.totals),
        period=PeriodOut(days=result.period_days, start_date=result.start_date, end_date=result.end_date),
    )


# ----- Operational -----

@v1_router.get("/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Reports `healthy` when the database answers, `unhealthy` otherwise."
)
async def health_check():
    """Database reachability probe"""
    try:
        await get_container().database.ping()
        database_ok = True
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        database_ok = False

    return HealthResponse(
        status="healthy" if database_ok else "unhealthy",
        version=settings.app_version,
        checks={"database": "ok" if database_ok else "unreachable"},
        uptime_seconds=time.time() - _started_at,
    )


@v1_router.get("/metrics", response_model=MetricsResponse, summary="In-memory performance metrics")
async def get_metrics():
    """Get application metrics"""
    return MetricsResponse(performance=await metrics.get_summary())


v1_router.include_router(auth_router)
v1_router.include_router(files_router)
v1_router.include_router(blogs_router)
