"""
Tests for like/share/view tracking and analytics rollups
"""
import asyncio
from datetime import date, timedelta

import pytest
from sqlalchemy import func, select

from mdpress.exceptions import InvalidInputError, PostNotFoundError, UnauthorizedError
from mdpress.interactions import AnalyticsService, InteractionService
from mdpress.orm import BlogLike, BlogPost, DailyAnalytics
from mdpress.services import PublishRequest


@pytest.fixture
async def post(publication, alice, make_document):
    doc = await make_document(alice, "liked.md", "body")
    return await publication.publish(alice, PublishRequest(source_document_id=doc.id, title="Likeable"))


async def count_likes(database, post_id):
    async with database.session_scope() as session:
        return await session.scalar(select(func.count(BlogLike.id)).where(BlogLike.post_id == post_id))


async def bucket(database, post_id, day=None):
    async with database.session_scope() as session:
        stmt = select(DailyAnalytics).where(DailyAnalytics.post_id == post_id)
        if day is not None:
            stmt = stmt.where(DailyAnalytics.day == day)
        return await session.scalar(stmt)


async def test_like_toggles(interactions, database, post, bob):
    first = await interactions.track(post.id, "like", bob)
    assert first.is_liked is True
    assert first.likes == 1
    assert await count_likes(database, post.id) == 1

    second = await interactions.track(post.id, "like", bob)
    assert second.is_liked is False
    assert second.likes == 0
    assert await count_likes(database, post.id) == 0


async def test_even_number_of_likes_leaves_no_row(interactions, database, post, alice, bob):
    await interactions.track(post.id, "like", alice)
    for _ in range(4):
        await interactions.track(post.id, "like", bob)

    status = await interactions.like_status(post.id, bob)
    assert status.is_liked is False
    assert status.total_likes == 1
    assert await count_likes(database, post.id) == 1


async def test_concurrent_toggles_keep_row_and_counter_in_step(interactions, database, post, bob):
    results = await asyncio.gather(*(interactions.track(post.id, "like", bob) for _ in range(4)))
    assert sorted(result.is_liked for result in results) == [False, False, True, True]

    async with database.session_scope() as session:
        stored = await session.get(BlogPost, post.id)
    assert stored.likes == 0
    assert await count_likes(database, post.id) == 0

    await asyncio.gather(*(interactions.track(post.id, "like", bob) for _ in range(3)))
    async with database.session_scope() as session:
        stored = await session.get(BlogPost, post.id)
    assert stored.likes == 1
    assert await count_likes(database, post.id) == 1


async def test_like_requires_authentication(interactions, post):
    with pytest.raises(UnauthorizedError):
        await interactions.track(post.id, "like")


async def test_share_and_view_are_anonymous(interactions, database, post):
    await interactions.track(post.id, "share")
    result = await interactions.track(post.id, "view")
    assert result.shares == 1
    assert result.views == 1
    assert result.is_liked is None

    row = await bucket(database, post.id)
    assert (row.views, row.shares, row.likes) == (1, 1, 0)
    assert row.user_id == post.user_id


async def test_unknown_post_and_kind(interactions, post):
    with pytest.raises(PostNotFoundError):
        await interactions.track(9999, "view")
    with pytest.raises(InvalidInputError):
        await interactions.track(post.id, "bookmark")


async def test_like_counter_floored_at_zero(interactions, database, post, bob):
    await interactions.track(post.id, "like", bob)
    # Simulate drift between the counter and the like rows
    async with database.session_scope() as session:
        stored = await session.get(BlogPost, post.id)
        stored.likes = 0

    result = await interactions.track(post.id, "like", bob)
    assert result.likes == 0
    assert result.is_liked is False


async def test_each_day_gets_its_own_bucket(database, post):
    days = iter([date(2024, 3, 1), date(2024, 3, 1), date(2024, 3, 2)])
    tracker = InteractionService(database, today=lambda: next(days))
    for _ in range(3):
        await tracker.track(post.id, "view")

    assert (await bucket(database, post.id, date(2024, 3, 1))).views == 2
    assert (await bucket(database, post.id, date(2024, 3, 2))).views == 1


async def test_like_status_anonymous(interactions, post, bob):
    await interactions.track(post.id, "like", bob)
    status = await interactions.like_status(post.id)
    assert status.is_liked is False
    assert status.total_likes == 1
    with pytest.raises(PostNotFoundError):
        await interactions.like_status(9999)


async def test_post_analytics_window(database, post, alice, bob):
    today = date(2024, 6, 30)
    old = InteractionService(database, today=lambda: today - timedelta(days=40))
    recent = InteractionService(database, today=lambda: today - timedelta(days=2))
    await old.track(post.id, "view")
    await recent.track(post.id, "view")
    await recent.track(post.id, "share")
    await recent.track(post.id, "like", bob)

    report = await AnalyticsService(database, today=lambda: today).post_analytics(alice, post.id, days=30)
    assert [row.day for row in report.days] == [today - timedelta(days=2)]
    assert report.totals.views == 1
    assert report.totals.shares == 1
    assert report.totals.likes == 1
    assert report.start_date == today - timedelta(days=30)

    with pytest.raises(PostNotFoundError):
        await AnalyticsService(database).post_analytics(bob, post.id)
    with pytest.raises(InvalidInputError):
        await AnalyticsService(database).post_analytics(alice, post.id, days=0)


async def test_dashboard(database, publication, interactions, make_document, post, alice):
    doc = await make_document(alice, "second.md")
    second = await publication.publish(alice, PublishRequest(source_document_id=doc.id, title="Second"))
    await publication.update_post(alice, second.id, {"status": "draft"})
    for _ in range(3):
        await interactions.track(second.id, "view")
    await interactions.track(post.id, "view")

    board = await AnalyticsService(database).dashboard(alice)
    assert board.post_count == 2
    assert board.published_count == 1
    assert board.totals.views == 4
    assert [p.id for p in board.top_posts] == [second.id, post.id]
    assert len(board.recent_posts) == 2
