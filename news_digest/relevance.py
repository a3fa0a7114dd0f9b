"""Keyword and same-day relevance checks for feed items."""

import re
from collections.abc import Iterable
from datetime import datetime

from .models import FeedItem


def compile_keywords(patterns: Iterable[str]) -> list[re.Pattern]:
    """Compile keyword patterns for case-insensitive matching.

    Blank patterns are ignored. A pattern that is not a valid regular
    expression is matched as literal text instead.
    """
    compiled = []
    for pattern in patterns:
        pattern = pattern.strip()
        if not pattern:
            continue
        try:
            compiled.append(re.compile(pattern, re.IGNORECASE))
        except re.error:
            compiled.append(re.compile(re.escape(pattern), re.IGNORECASE))
    return compiled


def matches_keywords(
    title: str, description: str, keywords: Iterable[re.Pattern]
) -> bool:
    """Return True if any keyword occurs in the title or description."""
    text = f"{title or ''} {description or ''}".lower()
    return any(keyword.search(text) for keyword in keywords)


def is_same_day(published: datetime | None, now: datetime) -> bool:
    """Return True if ``published`` falls on the same calendar day as ``now``.

    The comparison happens in ``now``'s time zone. Naive datetimes are
    assumed to already be expressed in that zone.
    """
    if published is None:
        return False

    if published.tzinfo is not None and now.tzinfo is not None:
        published = published.astimezone(now.tzinfo)

    return published.date() == now.date()


def is_relevant(
    title: str,
    description: str,
    keywords: Iterable[re.Pattern],
    now: datetime,
    published: datetime | None,
) -> bool:
    """An item is relevant iff it matches a keyword and was published today."""
    return matches_keywords(title, description, keywords) and is_same_day(
        published, now
    )


def is_item_relevant(
    item: FeedItem, keywords: Iterable[re.Pattern], now: datetime
) -> bool:
    return is_relevant(item.title, item.content, keywords, now, item.published)
