"""
Markdown text helpers: rendering, plain-text extraction, excerpts and tags
"""
from typing import Iterable, List, Optional
import re

import frontmatter
import markdown
from bs4 import BeautifulSoup

_MARKDOWN_EXTENSIONS = ["extra", "sane_lists", "toc"]


def strip_front_matter(content: str) -> str:
    """Drop a leading YAML front matter block, if any"""
    if not content or not content.startswith("---"):
        return content or ""
    try:
        return frontmatter.loads(content).content
    except Exception:
        # Malformed front matter is treated as ordinary text
        return content


def render_markdown(content: str) -> str:
    """Render a markdown document body to HTML"""
    return markdown.markdown(strip_front_matter(content), extensions=_MARKDOWN_EXTENSIONS)


def markdown_to_text(content: str) -> str:
    """Plain text of a markdown document, whitespace collapsed"""
    html = render_markdown(content)
    text = BeautifulSoup(html, "html.parser").get_text()
    return re.sub(r"\s+", " ", text).strip()


def create_excerpt(content: str, max_length: int = 300) -> str:
    """Excerpt from the document text, cut on a word boundary when one is close"""
    plain_text = markdown_to_text(content)

    if len(plain_text) <= max_length:
        return plain_text

    # Leave room for the ellipsis
    limit = max_length - 3
    truncated = plain_text[:limit]
    last_space = truncated.rfind(' ')

    if last_space > limit * 0.8:
        return truncated[:last_space] + '...'
    return truncated + '...'


def clamp_excerpt(excerpt: Optional[str], max_length: int = 300) -> Optional[str]:
    """Trim a caller-supplied excerpt to the stored limit"""
    if excerpt is None:
        return None
    excerpt = excerpt.strip()
    return excerpt[:max_length]


def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """Lowercase and trim tags, dropping empties and repeats but keeping order"""
    result: List[str] = []
    for tag in tags or []:
        tag = str(tag).strip().lower()
        if tag and tag not in result:
            result.append(tag)
    return result


def parse_tag_filter(tags: Optional[str]) -> List[str]:
    """Parse a comma-separated ``tags`` query parameter"""
    if not tags:
        return []
    return normalize_tags(tags.split(","))
