"""
Like/share/view tracking with per-day analytics buckets, and analytics rollups
"""
from typing import Any, Callable, List, Optional
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import Database
from .exceptions import InvalidInputError, PostNotFoundError, UnauthorizedError
from .logging import logger, metrics
from .orm import BlogLike, BlogPost, DailyAnalytics, PostStatus, utcnow


class InteractionKind(str, Enum):
    LIKE = "like"
    SHARE = "share"
    VIEW = "view"


def parse_kind(kind: Any) -> InteractionKind:
    try:
        return InteractionKind(kind)
    except ValueError:
        raise InvalidInputError("type", f"unknown interaction '{kind}'")


def _floored(column, delta: int):
    """``column + delta`` evaluated in SQL, never below zero"""
    if delta >= 0:
        return column + delta
    return case((column + delta >= 0, column + delta), else_=0)


@dataclass
class InteractionDelta:
    """
    Counter changes caused by one interaction.

    Applied to the post counters and to the day bucket in the same
    transaction, so both change or neither does.
    """
    post_id: int
    owner_id: int
    views: int = 0
    likes: int = 0
    shares: int = 0

    async def apply(self, session: AsyncSession, day: date) -> None:
        await session.execute(
            update(BlogPost)
            .where(BlogPost.id == self.post_id)
            .values(
                views=_floored(BlogPost.views, self.views),
                likes=_floored(BlogPost.likes, self.likes),
                shares=_floored(BlogPost.shares, self.shares),
            )
            .execution_options(synchronize_session=False)
        )

        bucket_id = await session.scalar(
            select(DailyAnalytics.id).where(
                DailyAnalytics.post_id == self.post_id,
                DailyAnalytics.day == day,
            )
        )
        if bucket_id is None:
            # A concurrent insert for the same (post, day) fails the unique
            # constraint and the caller retries the whole interaction
            session.add(DailyAnalytics(
                post_id=self.post_id,
                user_id=self.owner_id,
                day=day,
                views=max(0, self.views),
                unique_views=0,
                likes=max(0, self.likes),
                shares=max(0, self.shares),
                avg_time_on_page=0.0,
                bounce_rate=0.0,
                referrers=[],
                countries=[],
                devices=[],
                created_at=utcnow(),
            ))
            await session.flush()
        else:
            await session.execute(
                update(DailyAnalytics)
                .where(DailyAnalytics.id == bucket_id)
                .values(
                    views=_floored(DailyAnalytics.views, self.views),
                    likes=_floored(DailyAnalytics.likes, self.likes),
                    shares=_floored(DailyAnalytics.shares, self.shares),
                )
                .execution_options(synchronize_session=False)
            )


@dataclass
class InteractionResult:
    post_id: int
    views: int
    likes: int
    shares: int
    is_liked: Optional[bool] = None


@dataclass
class LikeStatus:
    is_liked: bool
    total_likes: int


@dataclass
class AnalyticsTotals:
    views: int = 0
    unique_views: int = 0
    likes: int = 0
    shares: int = 0
    avg_time_on_page: float = 0.0


@dataclass
class PostAnalytics:
    post: BlogPost
    days: List[DailyAnalytics]
    totals: AnalyticsTotals
    period_days: int
    start_date: date
    end_date: date


@dataclass
class Dashboard:
    totals: AnalyticsTotals
    days: List[DailyAnalytics]
    top_posts: List[BlogPost]
    recent_posts: List[BlogPost]
    post_count: int
    published_count: int
    period_days: int
    start_date: date
    end_date: date


class InteractionService:
    """Records likes, shares and views on blog posts"""

    def __init__(self, database: Database, today: Callable[[], date] = date.today):
        self.database = database
        self.today = today
        self.settings = get_settings()

    async def track(self, post_id: int, kind: Any, caller_id: Optional[int] = None) -> InteractionResult:
        """
        Apply one interaction.

        Likes toggle and need a caller. Shares and views only increment.
        """
        kind = parse_kind(kind)
        if kind == InteractionKind.LIKE and caller_id is None:
            raise UnauthorizedError("Authentication required to like posts")

        async def unit(session: AsyncSession) -> InteractionResult:
            owner_id = await session.scalar(select(BlogPost.user_id).where(BlogPost.id == post_id))
            if owner_id is None:
                raise PostNotFoundError(post_id)

            delta = InteractionDelta(post_id=post_id, owner_id=owner_id)
            is_liked = None

            if kind == InteractionKind.LIKE:
                # The DELETE row count decides the toggle; a row removed by a
                # concurrent unlike is not counted twice
                removed = (await session.execute(
                    delete(BlogLike).where(BlogLike.user_id == caller_id, BlogLike.post_id == post_id)
                )).rowcount
                if removed:
                    delta.likes = -1
                    is_liked = False
                else:
                    session.add(BlogLike(user_id=caller_id, post_id=post_id, liked_at=utcnow()))
                    await session.flush()
                    delta.likes = 1
                    is_liked = True
            elif kind == InteractionKind.SHARE:
                delta.shares = 1
            else:
                delta.views = 1

            await delta.apply(session, self.today())

            row = (await session.execute(
                select(BlogPost.views, BlogPost.likes, BlogPost.shares).where(BlogPost.id == post_id)
            )).one()
            return InteractionResult(post_id, row.views, row.likes, row.shares, is_liked)

        result = await self.database.run_with_retry(
            unit, "interaction", max_retries=self.settings.publish_max_retries
        )
        await metrics.increment("interactions_total", labels={"type": kind.value})
        logger.debug("Interaction tracked", post_id=post_id, type=kind.value, user_id=caller_id)
        return result

    async def like_status(self, post_id: int, caller_id: Optional[int] = None) -> LikeStatus:
        async with self.database.session_scope() as session:
            likes = await session.scalar(select(BlogPost.likes).where(BlogPost.id == post_id))
            if likes is None:
                raise PostNotFoundError(post_id)
            is_liked = False
            if caller_id is not None:
                is_liked = await session.scalar(
                    select(BlogLike.id).where(BlogLike.user_id == caller_id, BlogLike.post_id == post_id)
                ) is not None
        return LikeStatus(is_liked=is_liked, total_likes=likes)


async def purge_post_interactions(session: AsyncSession, post_id: int) -> None:
    """Remove likes and day buckets of a post about to be deleted"""
    await session.execute(delete(BlogLike).where(BlogLike.post_id == post_id))
    await session.execute(delete(DailyAnalytics).where(DailyAnalytics.post_id == post_id))


def _totals(rows: List[DailyAnalytics]) -> AnalyticsTotals:
    totals = AnalyticsTotals()
    for row in rows:
        totals.views += row.views or 0
        totals.unique_views += row.unique_views or 0
        totals.likes += row.likes or 0
        totals.shares += row.shares or 0
        totals.avg_time_on_page += row.avg_time_on_page or 0.0
    if rows:
        totals.avg_time_on_page = totals.avg_time_on_page / len(rows)
    return totals


class AnalyticsService:
    """Read-side rollups over the per-day buckets"""

    def __init__(self, database: Database, today: Callable[[], date] = date.today):
        self.database = database
        self.today = today

    def _window(self, days: int):
        if days < 1:
            raise InvalidInputError("days", "must be at least 1")
        end = self.today()
        return end - timedelta(days=days), end

    async def post_analytics(self, user_id: int, post_id: int, days: int = 30) -> PostAnalytics:
        start, end = self._window(days)
        async with self.database.session_scope() as session:
            post = await session.scalar(
                select(BlogPost).where(BlogPost.id == post_id, BlogPost.user_id == user_id)
            )
            if post is None:
                raise PostNotFoundError(post_id)
            rows = list((await session.scalars(
                select(DailyAnalytics)
                .where(DailyAnalytics.post_id == post_id, DailyAnalytics.day >= start)
                .order_by(DailyAnalytics.day.desc())
            )).all())

        return PostAnalytics(
            post=post,
            days=rows,
            totals=_totals(rows),
            period_days=days,
            start_date=start,
            end_date=end,
        )

    async def dashboard(self, user_id: int, days: int = 30) -> Dashboard:
        start, end = self._window(days)
        async with self.database.session_scope() as session:
            rows = list((await session.scalars(
                select(DailyAnalytics)
                .join(BlogPost, BlogPost.id == DailyAnalytics.post_id)
                .where(BlogPost.user_id == user_id, DailyAnalytics.day >= start)
                .order_by(DailyAnalytics.day.desc(), DailyAnalytics.post_id)
            )).all())

            top_posts = list((await session.scalars(
                select(BlogPost)
                .where(BlogPost.user_id == user_id)
                .order_by(BlogPost.views.desc(), BlogPost.id)
                .limit(5)
            )).all())
            recent_posts = list((await session.scalars(
                select(BlogPost)
                .where(BlogPost.user_id == user_id)
                .order_by(BlogPost.published_at.desc().nulls_last(), BlogPost.created_at.desc())
                .limit(5)
            )).all())

            counts = (await session.execute(
                select(
                    func.count(BlogPost.id),
                    func.count(case((BlogPost.status == PostStatus.PUBLISHED.value, 1))),
                ).where(BlogPost.user_id == user_id)
            )).one()

        return Dashboard(
            totals=_totals(rows),
            days=rows,
            top_posts=top_posts,
            recent_posts=recent_posts,
            post_count=counts[0],
            published_count=counts[1],
            period_days=days,
            start_date=start,
            end_date=end,
        )
