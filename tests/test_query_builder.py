"""
Unit tests for query builder functionality
"""
import pytest
from datetime import datetime, timezone

from mdpress.orm import BlogPost, File, PostStatus, User
from mdpress.query_builder import (
    AllOf, AnyOf, HasAnyTag, OwnedBy, PaginationCriteria, SortField, SortOrder,
    StatusIs, TextContains, create_post_query, visibility_scope
)


@pytest.fixture
async def sample_posts(database):
    """Two users, three posts in different states"""
    async with database.session_scope() as session:
        u1 = User(email="one@example.com", password_hash="x")
        u2 = User(email="two@example.com", password_hash="x")
        session.add_all([u1, u2])
        await session.flush()

        doc = File(name="Quarterly Report.md", content="", user_id=u1.id)
        session.add(doc)
        await session.flush()

        posts = [
            BlogPost(slug="post-1", title="First Post", content="alpha", user_id=u1.id,
                     status="published", published_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
                     views=5, likes=1, shares=0, source_document_id=doc.id),
            BlogPost(slug="post-2", title="Second Post", content="beta", user_id=u2.id,
                     status="published", published_at=datetime(2025, 1, 2, tzinfo=timezone.utc),
                     views=1, likes=4, shares=0),
            BlogPost(slug="post-3", title="Third Post", content="gamma", user_id=u1.id,
                     status="draft", views=9, likes=0, shares=0),
        ]
        posts[0].set_tags(["tag1", "tag2"])
        posts[1].set_tags(["tag2", "tag3"])
        posts[2].set_tags(["tag1"])
        session.add_all(posts)

    return {"users": (u1.id, u2.id), "posts": [p.id for p in posts]}


async def run(database, query):
    async with database.session_scope() as session:
        return [(post.slug, name) for post, name in (await session.execute(query.build())).all()]


async def test_filter_by_status(database, sample_posts):
    rows = await run(database, create_post_query().filter_by_status(PostStatus.PUBLISHED)
                     .sort_by(SortField.DATE, SortOrder.ASC))
    assert [slug for slug, _ in rows] == ["post-1", "post-2"]


async def test_filter_by_tags_matches_any(database, sample_posts):
    rows = await run(database, create_post_query().filter_by_tags(["tag3", "missing"]))
    assert [slug for slug, _ in rows] == ["post-2"]


async def test_empty_tag_filter_is_ignored(database, sample_posts):
    rows = await run(database, create_post_query().filter_by_tags([]))
    assert len(rows) == 3


async def test_document_name_is_joined(database, sample_posts):
    rows = dict(await run(database, create_post_query()))
    assert rows["post-1"] == "Quarterly Report.md"
    assert rows["post-2"] is None


async def test_anonymous_visibility_only_published(database, sample_posts):
    owner, _ = sample_posts["users"]
    for scope in (visibility_scope(None, True), visibility_scope(owner, False)):
        rows = await run(database, create_post_query().where(scope))
        assert {slug for slug, _ in rows} == {"post-1", "post-2"}


async def test_include_own_adds_drafts_of_caller_only(database, sample_posts):
    owner, other = sample_posts["users"]
    rows = await run(database, create_post_query().where(visibility_scope(owner, True)))
    assert {slug for slug, _ in rows} == {"post-1", "post-2", "post-3"}

    rows = await run(database, create_post_query().where(visibility_scope(other, True)))
    assert {slug for slug, _ in rows} == {"post-1", "post-2"}


async def test_combinators(database, sample_posts):
    owner, _ = sample_posts["users"]
    both = AllOf([OwnedBy(owner), HasAnyTag(("tag1",)), StatusIs(PostStatus.DRAFT)])
    rows = await run(database, create_post_query().where(both))
    assert [slug for slug, _ in rows] == ["post-3"]

    assert await run(database, create_post_query().where(AnyOf([]))) == []
    assert len(await run(database, create_post_query().where(AllOf([])))) == 3


async def test_text_contains_matches_document_name(database, sample_posts):
    rows = await run(database, create_post_query().where(TextContains("quarterly")))
    assert [slug for slug, _ in rows] == ["post-1"]


async def test_sort_by_views_and_count(database, sample_posts):
    query = create_post_query().sort_by(SortField.VIEWS, SortOrder.DESC)
    rows = await run(database, query)
    assert [slug for slug, _ in rows] == ["post-3", "post-1", "post-2"]

    async with database.session_scope() as session:
        assert await session.scalar(create_post_query().filter_by_tags(["tag1"]).build_count()) == 2


async def test_paginate(database, sample_posts):
    query = (create_post_query()
             .sort_by(SortField.LIKES, SortOrder.DESC)
             .paginate(PaginationCriteria(page=2, page_size=1)))
    assert [slug for slug, _ in await run(database, query)] == ["post-1"]


def test_pagination_criteria_clamps():
    criteria = PaginationCriteria(page=0, page_size=500, max_page_size=50)
    assert criteria.page == 1
    assert criteria.page_size == 50
    assert PaginationCriteria(page=3, page_size=0).page_size == 1
    assert PaginationCriteria(page=3, page_size=10).offset == 20


def test_pagination_total_pages_and_slice():
    criteria = PaginationCriteria(page=2, page_size=2)
    assert criteria.total_pages(5) == 3
    assert criteria.total_pages(0) == 0
    assert criteria.slice([1, 2, 3, 4, 5]) == [3, 4]
