"""
Relevance scoring and ordering of search candidates
"""
from typing import Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass, field
from collections import Counter
from datetime import datetime, timezone

from .orm import BlogPost
from .query_builder import SortField, SortOrder

# Field -> weight. A field contributes its weight once when the query is a
# case-insensitive substring of it.
FIELD_WEIGHTS: Dict[str, int] = {
    "title": 10,
    "seo_title": 8,
    "excerpt": 6,
    "tags": 5,
    "document_name": 5,
    "content": 3,
    "seo_description": 2,
}

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class SearchHit:
    """A candidate post together with its relevance score"""
    post: BlogPost
    document_name: Optional[str] = None
    score: int = 0
    matched_fields: List[str] = field(default_factory=list)


def _contains(value: Optional[str], needle: str) -> bool:
    return bool(value) and needle in value.lower()


def score_post(post: BlogPost, query: str, document_name: Optional[str] = None) -> Tuple[int, List[str]]:
    """Weighted field-match score and the fields that matched"""
    needle = query.strip().lower()
    if not needle:
        return 0, []

    checks = {
        "title": _contains(post.title, needle),
        "seo_title": _contains(post.seo_title, needle),
        "excerpt": _contains(post.excerpt, needle),
        "tags": any(needle in tag.lower() for tag in post.tags),
        "document_name": _contains(document_name, needle),
        "content": _contains(post.content, needle),
        "seo_description": _contains(post.seo_description, needle),
    }

    matched = [name for name, hit in checks.items() if hit]
    return sum(FIELD_WEIGHTS[name] for name in matched), matched


def score_candidates(rows: Sequence[Tuple[BlogPost, Optional[str]]], query: str) -> List[SearchHit]:
    """Score ``(post, document_name)`` rows and keep only those with a positive score"""
    hits = []
    for post, document_name in rows:
        score, matched = score_post(post, query, document_name)
        if score > 0:
            hits.append(SearchHit(post, document_name, score, matched))
    return hits


def _published(hit: SearchHit) -> datetime:
    return hit.post.published_at or _OLDEST


def rank(hits: List[SearchHit], sort_by: SortField = SortField.RELEVANCE,
         order: SortOrder = SortOrder.DESC) -> List[SearchHit]:
    """
    Order hits by the requested field.

    Relevance always puts the best match first: score, then publication
    date, both descending. ``order`` applies to date, views and likes.
    Anything still tied keeps ascending post id order.
    """
    reverse = sort_by == SortField.RELEVANCE or order == SortOrder.DESC
    keys = {
        SortField.RELEVANCE: lambda h: (h.score, _published(h)),
        SortField.DATE: _published,
        SortField.VIEWS: lambda h: h.post.views or 0,
        SortField.LIKES: lambda h: h.post.likes or 0,
    }

    # Stable sorts (reverse included) keep the ascending id order for ties
    ordered = sorted(hits, key=lambda h: h.post.id)
    return sorted(ordered, key=keys[sort_by], reverse=reverse)


def suggest_tags(hits: Sequence[SearchHit], limit: int = 10) -> List[str]:
    """Most frequent tags among hits, ties broken alphabetically"""
    counts: Counter = Counter()
    for hit in hits:
        counts.update(hit.post.tags)
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [tag for tag, _ in ranked[:limit]]
