"""Result filtering, deduplication and ranking.

Responsibilities:
- Drop results older than a caller-supplied recency window
- Flag results whose URL occurs more than once, then collapse to the first
  occurrence
- Sort by recency, newest first
- Count distinct source domains for report metrics

Every function here is pure: lists in, new lists out.

Undated results always pass the recency filter but always rank last, so
"recent" and "fresh" are deliberately not symmetric.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from radar.models import SearchResultItem
from radar.search import hostname

logger = logging.getLogger(__name__)

#: Title prefix marking a result whose URL was returned more than once.
DUPLICATE_MARKER = "🔁 "

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ── Dates ──────────────────────────────────────────────────────────────────


def parse_date(value: str) -> Optional[datetime]:
    """Parse a provider date string into an aware UTC datetime.

    Returns ``None`` for empty or unparseable input. Naive values are taken
    to be UTC.

    Examples:
        >>> parse_date("2025-01-01").isoformat()
        '2025-01-01T00:00:00+00:00'
        >>> parse_date("3 days ago") is None
        True
    """
    if not value:
        return None
    try:
        parsed = date_parser.parse(value)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def item_timestamp(item: SearchResultItem) -> datetime:
    """Sort key for ranking; undated items resolve to the epoch."""
    return parse_date(item.date) or _EPOCH


# ── Recency filter ─────────────────────────────────────────────────────────


def filter_recent(
    items: list[SearchResultItem],
    window_months: int,
    now: Optional[datetime] = None,
) -> list[SearchResultItem]:
    """Keep items dated within the last *window_months* months.

    Items without a parseable date are kept.

    Args:
        items: Normalised results.
        window_months: Age window in calendar months.
        now: Reference time; defaults to the current UTC time.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - relativedelta(months=window_months)

    kept: list[SearchResultItem] = []
    for item in items:
        published = parse_date(item.date)
        if published is None or published >= cutoff:
            kept.append(item)

    logger.debug(
        "Recency filter (%d months): kept %d of %d", window_months, len(kept), len(items)
    )
    return kept


# ── Deduplication ──────────────────────────────────────────────────────────


def mark_duplicates(items: list[SearchResultItem]) -> list[SearchResultItem]:
    """Flag every item whose URL appears more than once.

    Flagged items get ``duplicate=True`` and a ``DUPLICATE_MARKER`` title
    prefix (added at most once). Nothing is removed.
    """
    counts = Counter(item.url for item in items if item.url)
    marked: list[SearchResultItem] = []
    for item in items:
        if counts[item.url] > 1:
            title = item.title
            if not title.startswith(DUPLICATE_MARKER):
                title = f"{DUPLICATE_MARKER}{title}"
            item = item.model_copy(update={"title": title, "duplicate": True})
        marked.append(item)
    return marked


def deduplicate(items: list[SearchResultItem]) -> list[SearchResultItem]:
    """Remove repeated URLs, keeping the first occurrence.

    Items without a URL are dropped since they cannot be deduplicated.
    """
    seen: set[str] = set()
    unique: list[SearchResultItem] = []

    for item in items:
        if item.url and item.url not in seen:
            seen.add(item.url)
            unique.append(item)

    return unique


# ── Ranking ────────────────────────────────────────────────────────────────


def rank(items: list[SearchResultItem]) -> list[SearchResultItem]:
    """Stable sort, newest first; undated items last in input order."""
    return sorted(items, key=item_timestamp, reverse=True)


def count_domains(items: list[SearchResultItem]) -> int:
    """Number of distinct hostnames across *items*."""
    return len({host for host in (hostname(item.url) for item in items) if host})
