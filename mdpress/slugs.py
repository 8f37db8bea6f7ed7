"""
Slug generation and collision-free suffix selection.

A slug is derived from the post title, falling back to the source document
name and finally to a timestamp. Uniqueness is enforced by the database; the
helpers here only pick the first candidate that is not already taken.
"""
import re
import time
from typing import Callable, Iterable, Optional

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_DOCUMENT_EXTENSION = re.compile(r"\.(md|markdown|txt)$", re.IGNORECASE)


def normalize_slug(text: Optional[str]) -> str:
    """Lowercase, collapse every non-alphanumeric run into one hyphen, trim hyphens."""
    if not text:
        return ""
    return _NON_ALNUM.sub("-", text.lower()).strip("-")


def document_stem(name: Optional[str]) -> str:
    """Document display name without its markdown/text extension."""
    return _DOCUMENT_EXTENSION.sub("", (name or "").strip())


def base_slug(
    title: str,
    document_name: Optional[str] = None,
    clock: Callable[[], float] = time.time,
) -> str:
    """
    Pick the base slug for a post.

    Tries the title, then the document name, then ``blog-<epoch millis>``,
    so the result is never empty.
    """
    slug = normalize_slug(title)
    if not slug:
        slug = normalize_slug(document_stem(document_name))
    if not slug:
        slug = f"blog-{int(clock() * 1000)}"
    return slug


def first_available(base: str, taken: Iterable[str]) -> str:
    """
    Return ``base`` if free, else the first free ``base-1``, ``base-2``, ...

    ``taken`` may contain unrelated slugs sharing the prefix; they are ignored.
    """
    taken = set(taken)
    if base not in taken:
        return base
    counter = 1
    while f"{base}-{counter}" in taken:
        counter += 1
    return f"{base}-{counter}"
