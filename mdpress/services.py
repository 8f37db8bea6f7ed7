"""
Service layer for publishing and searching blog posts
"""
from typing import Any, Callable, List, Mapping, Optional, Protocol, Tuple
from dataclasses import dataclass, field
import time

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings, get_security_settings
from .database import Database
from .exceptions import DocumentNotFoundError, InvalidInputError, PostNotFoundError
from .interactions import InteractionKind, purge_post_interactions
from .logging import logger, metrics, track_performance
from .orm import BlogPost, File, PostStatus, utcnow
from .query_builder import (
    PaginationCriteria,
    PostIdIs,
    SlugIs,
    SortField,
    SortOrder,
    TextContains,
    create_post_query,
    visibility_scope,
)
from .ranking import SearchHit, rank, score_candidates, suggest_tags
from .slugs import base_slug, first_available
from .text import clamp_excerpt, create_excerpt, normalize_tags


class ViewRecorder(Protocol):
    """Anything that can count a view of a post"""

    async def track(self, post_id: int, kind: Any, caller_id: Optional[int] = None):
        ...


@dataclass
class PublishRequest:
    """Request parameters for publishing a document"""
    source_document_id: int
    title: str
    excerpt: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None
    seo_image: Optional[str] = None


@dataclass
class PostListRequest:
    """Request parameters for listing a user's own posts"""
    status: Optional[PostStatus] = None
    source_document_id: Optional[int] = None
    page: int = 1
    limit: int = 10


@dataclass
class PublicListRequest:
    """Request parameters for the public, filter-only listing"""
    page: int = 1
    limit: int = 10
    search: Optional[str] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class SearchRequest:
    """Request parameters for ranked search"""
    query: str
    tags: List[str] = field(default_factory=list)
    page: int = 1
    page_size: int = 10
    sort_by: SortField = SortField.RELEVANCE
    sort_order: SortOrder = SortOrder.DESC  # ignored for relevance
    include_own: bool = False


@dataclass
class PostPage:
    """One page of posts with their source document names"""
    items: List[Tuple[BlogPost, Optional[str]]]
    total: int
    page: int
    limit: int
    total_pages: int


@dataclass
class SearchResult:
    hits: List[SearchHit]
    total_count: int
    page: int
    page_size: int
    total_pages: int
    suggestions: List[str]
    query: str

    @property
    def has_more(self) -> bool:
        return self.page < self.total_pages


class PublicationService:
    """Turns documents into blog posts and manages their lifecycle"""

    def __init__(
        self,
        database: Database,
        views: ViewRecorder,
        clock: Callable[[], float] = time.time,
    ):
        self.database = database
        self.views = views
        self.clock = clock
        self.settings = get_settings()
        self.security_settings = get_security_settings()

    def _clean_tags(self, tags) -> List[str]:
        tags = normalize_tags(tags)
        limits = self.security_settings
        if len(tags) > limits.max_tags_per_post:
            raise InvalidInputError("tags", f"at most {limits.max_tags_per_post} tags allowed")
        for tag in tags:
            if len(tag) > limits.max_tag_length:
                raise InvalidInputError("tags", f"tag '{tag[:20]}...' is longer than {limits.max_tag_length}")
        return tags

    async def _claim_slug(
        self,
        session: AsyncSession,
        title: str,
        document_name: Optional[str],
        exclude_id: Optional[int] = None,
    ) -> str:
        """
        First free slug for ``title`` as seen by this transaction.

        Two writers can still pick the same value; the unique constraint
        rejects the second flush and the unit of work is retried.
        """
        base = base_slug(title, document_name, clock=self.clock)
        stmt = select(BlogPost.slug).where(
            or_(BlogPost.slug == base, BlogPost.slug.like(f"{base}-%"))
        )
        if exclude_id is not None:
            stmt = stmt.where(BlogPost.id != exclude_id)
        taken = (await session.scalars(stmt)).all()
        return first_available(base, taken)

    @track_performance("publish")
    async def publish(self, user_id: int, request: PublishRequest) -> BlogPost:
        """
        Publish a document, creating its post or updating the existing one.

        Raises:
            InvalidInputError: blank title or bad tags
            DocumentNotFoundError: document missing or owned by someone else
            ConflictError: slug could not be claimed within the retry bound
        """
        title = (request.title or "").strip()
        if not title:
            raise InvalidInputError("title", "must not be empty")
        if request.source_document_id is None:
            raise InvalidInputError("source_document_id", "is required")
        tags = self._clean_tags(request.tags)
        max_length = self.settings.excerpt_max_length

        async def unit(session: AsyncSession) -> BlogPost:
            document = await session.scalar(
                select(File).where(File.id == request.source_document_id, File.user_id == user_id)
            )
            if document is None:
                raise DocumentNotFoundError(request.source_document_id)

            post = await session.scalar(
                select(BlogPost).where(
                    BlogPost.user_id == user_id,
                    BlogPost.source_document_id == document.id,
                )
            )
            now = utcnow()
            created = post is None
            if created:
                post = BlogPost(
                    user_id=user_id,
                    source_document_id=document.id,
                    views=0,
                    likes=0,
                    shares=0,
                    created_at=now,
                )
            title_changed = created or post.title != title

            post.title = title
            post.content = document.content or ""
            if request.excerpt is None:
                post.excerpt = create_excerpt(post.content, max_length)
            else:
                post.excerpt = clamp_excerpt(request.excerpt, max_length)
            post.set_tags(tags)
            post.seo_title = request.seo_title
            post.seo_description = request.seo_description
            post.seo_image = request.seo_image
            post.apply_status(PostStatus.PUBLISHED, now)
            post.refresh_derived(self.settings.words_per_minute)
            post.updated_at = now

            if title_changed:
                post.slug = await self._claim_slug(
                    session, title, document.name, exclude_id=None if created else post.id
                )
            if created:
                # Added only once the slug is set so autoflush never sees a null slug
                session.add(post)
            await session.flush()
            return post

        post = await self.database.run_with_retry(
            unit, "slug", max_retries=self.settings.publish_max_retries
        )
        await metrics.increment("posts_published_total")
        logger.info("Post published",
                    user_id=user_id,
                    post_id=post.id,
                    slug=post.slug,
                    document_id=request.source_document_id)
        return post

    async def list_user_posts(self, user_id: int, request: PostListRequest) -> PostPage:
        pagination = PaginationCriteria(
            page=request.page,
            page_size=request.limit,
            max_page_size=self.settings.public_list_max_page_size,
        )
        query = create_post_query().filter_by_owner(user_id)
        if request.status is not None:
            query.filter_by_status(request.status)
        if request.source_document_id is not None:
            query.filter_by_document(request.source_document_id)

        async with self.database.session_scope() as session:
            total = await session.scalar(query.build_count())
            rows = (await session.execute(
                query.sort_by(SortField.DATE, SortOrder.DESC).paginate(pagination).build()
            )).all()

        return PostPage(
            items=[(post, name) for post, name in rows],
            total=total or 0,
            page=pagination.page,
            limit=pagination.page_size,
            total_pages=pagination.total_pages(total or 0),
        )

    async def get_user_post(self, user_id: int, post_id: int) -> Tuple[BlogPost, Optional[str]]:
        query = create_post_query().filter_by_owner(user_id).where(PostIdIs(post_id))
        async with self.database.session_scope() as session:
            row = (await session.execute(query.build())).first()
        if row is None:
            raise PostNotFoundError(post_id)
        return row[0], row[1]

    async def update_post(self, user_id: int, post_id: int, changes: Mapping[str, Any]) -> BlogPost:
        """
        Edit post fields directly.

        Recognised keys: title, excerpt, tags, status, seo_title,
        seo_description, seo_image. Absent keys are left untouched.
        """
        title = None
        if "title" in changes:
            title = (changes["title"] or "").strip()
            if not title:
                raise InvalidInputError("title", "must not be empty")
        tags = self._clean_tags(changes["tags"]) if "tags" in changes else None
        status = None
        if changes.get("status") is not None:
            try:
                status = PostStatus(changes["status"])
            except ValueError:
                raise InvalidInputError("status", f"unknown status '{changes['status']}'")

        async def unit(session: AsyncSession) -> BlogPost:
            post = await session.scalar(
                select(BlogPost).where(BlogPost.id == post_id, BlogPost.user_id == user_id)
            )
            if post is None:
                raise PostNotFoundError(post_id)
            now = utcnow()

            if "excerpt" in changes:
                post.excerpt = clamp_excerpt(changes["excerpt"], self.settings.excerpt_max_length)
            if tags is not None:
                post.set_tags(tags)
            for key in ("seo_title", "seo_description", "seo_image"):
                if key in changes:
                    setattr(post, key, changes[key])
            if status is not None:
                post.apply_status(status, now)

            if title is not None and title != post.title:
                document_name = None
                if post.source_document_id is not None:
                    document_name = await session.scalar(
                        select(File.name).where(File.id == post.source_document_id)
                    )
                post.title = title
                post.slug = await self._claim_slug(session, title, document_name, exclude_id=post.id)

            post.refresh_derived(self.settings.words_per_minute)
            post.updated_at = now
            await session.flush()
            return post

        post = await self.database.run_with_retry(
            unit, "slug", max_retries=self.settings.publish_max_retries
        )
        logger.info("Post updated", user_id=user_id, post_id=post_id, fields=sorted(changes))
        return post

    async def delete_post(self, user_id: int, post_id: int) -> None:
        async with self.database.session_scope() as session:
            post = await session.scalar(
                select(BlogPost).where(BlogPost.id == post_id, BlogPost.user_id == user_id)
            )
            if post is None:
                raise PostNotFoundError(post_id)
            await purge_post_interactions(session, post_id)
            await session.delete(post)

        await metrics.increment("posts_deleted_total")
        logger.info("Post deleted", user_id=user_id, post_id=post_id)

    async def get_public_post(self, slug: str) -> Tuple[BlogPost, Optional[str]]:
        """Published post by slug; counts as a view"""
        query = create_post_query().filter_by_status(PostStatus.PUBLISHED).where(SlugIs(slug))
        async with self.database.session_scope() as session:
            row = (await session.execute(query.build())).first()
        if row is None:
            raise PostNotFoundError(slug)

        post, document_name = row
        counters = await self.views.track(post.id, InteractionKind.VIEW)
        post.views = counters.views
        return post, document_name

    async def list_public_posts(self, request: PublicListRequest) -> PostPage:
        """Published posts filtered by tags and a plain substring search, newest first"""
        pagination = PaginationCriteria(
            page=request.page,
            page_size=request.limit,
            max_page_size=self.settings.public_list_max_page_size,
        )
        query = (
            create_post_query()
            .filter_by_status(PostStatus.PUBLISHED)
            .filter_by_tags(normalize_tags(request.tags))
        )
        search = (request.search or "").strip()
        if search:
            query.where(TextContains(search))

        async with self.database.session_scope() as session:
            total = await session.scalar(query.build_count())
            rows = (await session.execute(
                query.sort_by(SortField.DATE, SortOrder.DESC).paginate(pagination).build()
            )).all()

        return PostPage(
            items=[(post, name) for post, name in rows],
            total=total or 0,
            page=pagination.page,
            limit=pagination.page_size,
            total_pages=pagination.total_pages(total or 0),
        )


class SearchService:
    """Ranked full-text search over visible posts"""

    def __init__(self, database: Database):
        self.database = database
        self.settings = get_settings()
        self.security_settings = get_security_settings()

    @track_performance("search")
    async def search(self, request: SearchRequest, caller_id: Optional[int] = None) -> SearchResult:
        """
        Score every visible candidate, rank, then slice the requested page.

        Raises:
            InvalidInputError: empty or overly long query
        """
        query_text = (request.query or "").strip()
        if not query_text:
            raise InvalidInputError("q", "search query is required")
        if len(query_text) > self.security_settings.max_query_length:
            raise InvalidInputError("q", "query too long")

        pagination = PaginationCriteria(
            page=request.page,
            page_size=request.page_size,
            max_page_size=self.settings.search_max_page_size,
        )
        query = (
            create_post_query()
            .where(visibility_scope(caller_id, request.include_own))
            .filter_by_tags(normalize_tags(request.tags))
        )

        async with self.database.session_scope() as session:
            rows = (await session.execute(query.build())).all()

        hits = rank(score_candidates(rows, query_text), request.sort_by, request.sort_order)
        total = len(hits)

        await metrics.increment("search_queries_total", labels={
            "sort_by": request.sort_by.value,
            "include_own": str(request.include_own).lower(),
        })
        logger.info("Search performed",
                    query=query_text,
                    candidates=len(rows),
                    results_count=total,
                    user_id=caller_id)

        return SearchResult(
            hits=pagination.slice(hits),
            total_count=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=pagination.total_pages(total),
            suggestions=await self._suggestions(hits),
            query=query_text,
        )

    async def _suggestions(self, hits: List[SearchHit]) -> List[str]:
        """Tag suggestions are best effort; failures degrade to none"""
        try:
            return suggest_tags(hits, self.settings.search_suggestion_limit)
        except Exception as e:
            logger.error("Suggestion computation failed", error=str(e), exc_info=True)
            await metrics.increment("search_suggestion_errors_total")
            return []
