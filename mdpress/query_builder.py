"""
Query builder pattern for blog post filtering, sorting and pagination
"""
from typing import List, Optional, Protocol, Sequence
from dataclasses import dataclass
from enum import Enum
import math

from sqlalchemy import Select, and_, false, func, or_, select, true
from sqlalchemy.sql.elements import ColumnElement

from .orm import BlogPost, File, PostStatus, PostTag


class SortOrder(Enum):
    """Sort order enumeration"""
    ASC = "asc"
    DESC = "desc"


class SortField(Enum):
    """Available sort fields"""
    RELEVANCE = "relevance"
    DATE = "date"
    VIEWS = "views"
    LIKES = "likes"


class PostPredicate(Protocol):
    """Anything that can render itself as a boolean clause over BlogPost"""

    def clause(self) -> ColumnElement[bool]:
        ...


@dataclass(frozen=True)
class StatusIs:
    """Post is in the given lifecycle state"""
    status: PostStatus

    def clause(self) -> ColumnElement[bool]:
        return BlogPost.status == self.status.value


@dataclass(frozen=True)
class OwnedBy:
    """Post belongs to the given user"""
    user_id: int

    def clause(self) -> ColumnElement[bool]:
        return BlogPost.user_id == self.user_id


@dataclass(frozen=True)
class HasAnyTag:
    """Post carries at least one of the given (already normalised) tags"""
    tags: Sequence[str]

    def clause(self) -> ColumnElement[bool]:
        if not self.tags:
            return false()
        tagged = select(PostTag.post_id).where(PostTag.tag.in_(list(self.tags)))
        return BlogPost.id.in_(tagged)


@dataclass(frozen=True)
class SourceDocumentIs:
    """Post was published from the given document"""
    document_id: int

    def clause(self) -> ColumnElement[bool]:
        return BlogPost.source_document_id == self.document_id


@dataclass(frozen=True)
class PostIdIs:
    post_id: int

    def clause(self) -> ColumnElement[bool]:
        return BlogPost.id == self.post_id


@dataclass(frozen=True)
class SlugIs:
    slug: str

    def clause(self) -> ColumnElement[bool]:
        return BlogPost.slug == self.slug


@dataclass(frozen=True)
class TextContains:
    """Any text field, tag or the source document name contains ``needle``, ignoring case"""
    needle: str

    def clause(self) -> ColumnElement[bool]:
        needle = self.needle
        tagged = select(PostTag.post_id).where(PostTag.tag.icontains(needle, autoescape=True))
        named = select(File.id).where(File.name.icontains(needle, autoescape=True))
        return or_(
            BlogPost.title.icontains(needle, autoescape=True),
            BlogPost.content.icontains(needle, autoescape=True),
            BlogPost.excerpt.icontains(needle, autoescape=True),
            BlogPost.seo_title.icontains(needle, autoescape=True),
            BlogPost.seo_description.icontains(needle, autoescape=True),
            BlogPost.id.in_(tagged),
            BlogPost.source_document_id.in_(named),
        )


@dataclass(frozen=True)
class AllOf:
    """Boolean AND of predicates; empty means everything"""
    predicates: Sequence[PostPredicate]

    def clause(self) -> ColumnElement[bool]:
        if not self.predicates:
            return true()
        return and_(*(p.clause() for p in self.predicates))


@dataclass(frozen=True)
class AnyOf:
    """Boolean OR of predicates; empty means nothing"""
    predicates: Sequence[PostPredicate]

    def clause(self) -> ColumnElement[bool]:
        if not self.predicates:
            return false()
        return or_(*(p.clause() for p in self.predicates))


def visibility_scope(user_id: Optional[int], include_own: bool) -> PostPredicate:
    """
    Posts a caller may see.

    Anonymous callers, or callers not asking for their own material, only see
    published posts. Otherwise: own posts in any state plus everyone's
    published posts.
    """
    published = StatusIs(PostStatus.PUBLISHED)
    if user_id is None or not include_own:
        return published
    return AnyOf([OwnedBy(user_id), published])


@dataclass
class SortCriteria:
    """Encapsulates sorting criteria"""
    field: SortField = SortField.DATE
    order: SortOrder = SortOrder.DESC


@dataclass
class PaginationCriteria:
    """1-based page with a bounded page size"""
    page: int = 1
    page_size: int = 10
    max_page_size: int = 50

    def __post_init__(self):
        self.page = max(1, self.page)
        self.page_size = max(1, min(self.max_page_size, self.page_size))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def slice(self, items: List) -> List:
        return items[self.offset:self.offset + self.page_size]

    def total_pages(self, total: int) -> int:
        return math.ceil(total / self.page_size) if total else 0


class PostQuery:
    """Fluent builder for SELECT statements over blog posts and their document names"""

    def __init__(self):
        self._predicates: List[PostPredicate] = []
        self._sort_criteria: Optional[SortCriteria] = None
        self._pagination: Optional[PaginationCriteria] = None

    def where(self, predicate: PostPredicate) -> 'PostQuery':
        """Add a predicate; predicates are ANDed together"""
        self._predicates.append(predicate)
        return self

    def filter_by_status(self, status: PostStatus) -> 'PostQuery':
        return self.where(StatusIs(status))

    def filter_by_owner(self, user_id: int) -> 'PostQuery':
        return self.where(OwnedBy(user_id))

    def filter_by_tags(self, tags: Sequence[str]) -> 'PostQuery':
        """Filter posts sharing any tag; an empty list leaves the query unchanged"""
        if tags:
            self.where(HasAnyTag(tuple(tags)))
        return self

    def filter_by_document(self, document_id: int) -> 'PostQuery':
        return self.where(SourceDocumentIs(document_id))

    def sort_by(self, field: SortField, order: SortOrder = SortOrder.DESC) -> 'PostQuery':
        """Sort in SQL; relevance cannot be expressed here and falls back to date"""
        self._sort_criteria = SortCriteria(field, order)
        return self

    def paginate(self, pagination: PaginationCriteria) -> 'PostQuery':
        self._pagination = pagination
        return self

    @property
    def predicate(self) -> PostPredicate:
        return AllOf(list(self._predicates))

    def build(self) -> Select:
        """Statement yielding ``(BlogPost, document_name)`` rows"""
        stmt = (
            select(BlogPost, File.name)
            .outerjoin(File, File.id == BlogPost.source_document_id)
            .where(self.predicate.clause())
        )

        if self._sort_criteria:
            stmt = stmt.order_by(*self._order_by(self._sort_criteria))

        if self._pagination:
            stmt = stmt.offset(self._pagination.offset).limit(self._pagination.page_size)

        return stmt

    def build_count(self) -> Select:
        """Statement counting matching posts, ignoring sort and pagination"""
        return select(func.count(BlogPost.id)).where(self.predicate.clause())

    @staticmethod
    def _order_by(criteria: SortCriteria) -> list:
        column = {
            SortField.VIEWS: BlogPost.views,
            SortField.LIKES: BlogPost.likes,
        }.get(criteria.field, BlogPost.published_at)

        if criteria.order == SortOrder.DESC:
            primary = column.desc().nulls_last()
        else:
            primary = column.asc().nulls_first()
        return [primary, BlogPost.created_at.desc(), BlogPost.id.asc()]


def create_post_query() -> PostQuery:
    """Factory function to create a new PostQuery"""
    return PostQuery()
