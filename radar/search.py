"""Search fan-out and result normalisation.

Responsibilities:
- Issue one search-provider request per query, concurrently, with each
  query failing independently of its siblings
- Record a debug trail entry per query (text, success flag, count or error)
- Locate the item array inside a provider response whose shape varies
- Map raw provider items onto ``SearchResultItem`` via explicit lookup tables

Both lookup tables are ordered: the first path or key that yields a usable
value wins.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional
from urllib.parse import urlparse

import httpx

from radar.errors import ConfigurationError
from radar.models import SearchResultItem

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

# ── Lookup tables ──────────────────────────────────────────────────────────

#: Where a provider response may keep its item array, in priority order.
ITEM_ARRAY_PATHS: tuple[tuple[str, ...], ...] = (
    ("results",),
    ("results", "web"),
    ("hits",),
    ("items",),
    ("organic",),
    ("web", "results"),
)

#: Canonical field → provider keys to try, in priority order. Dotted keys
#: reach into nested objects.
FIELD_SOURCES: dict[str, tuple[str, ...]] = {
    "title": ("title", "headline"),
    "url": ("url", "link"),
    "snippet": ("snippet", "description"),
    "source": ("source", "domain"),
    "date": ("date", "publishedDate", "createdAt"),
    "image": ("image", "thumbnail_url", "thumbnail", "media.thumbnail", "media.image"),
}


# ── Extraction ─────────────────────────────────────────────────────────────


def _dig(data: Any, path: tuple[str, ...]) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def extract_items(data: Any) -> list[dict[str, Any]]:
    """Return the raw item array from a provider response, or ``[]``.

    Examples:
        >>> extract_items({"results": {"web": [{"url": "u"}]}})
        [{'url': 'u'}]
        >>> extract_items({"unexpected": 1})
        []
    """
    if not isinstance(data, dict):
        return []
    for path in ITEM_ARRAY_PATHS:
        candidate = _dig(data, path)
        if isinstance(candidate, list):
            return [item for item in candidate if isinstance(item, dict)]
    return []


def lookup(raw: dict[str, Any], field_name: str) -> Any:
    """Return the first non-empty value for *field_name* in *raw*."""
    for key in FIELD_SOURCES[field_name]:
        value = _dig(raw, tuple(key.split(".")))
        if value not in (None, "", [], {}):
            return value
    return None


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        # Some providers wrap image URLs as {"src": ...} / {"url": ...}.
        return str(value.get("src") or value.get("url") or "")
    return str(value).strip()


def _as_date(value: Any) -> str:
    """Render a provider date as text; numbers are epoch milliseconds.

    Out-of-range timestamps become ``""`` so the item is treated as undated.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()
        except (OverflowError, OSError, ValueError):
            logger.debug("Ignoring out-of-range timestamp %r", value)
            return ""
    return _as_text(value)


def normalize_item(
    raw: dict[str, Any],
    query: str = "",
    require_url: bool = True,
) -> Optional[SearchResultItem]:
    """Map one raw provider item onto a ``SearchResultItem``.

    Args:
        raw: Provider item.
        query: The query that produced it.
        require_url: When True, items with neither ``url`` nor ``link`` are
            dropped (v2). When False they are kept with an empty url (v1).
    """
    url = _as_text(lookup(raw, "url"))
    if require_url and not url:
        return None

    image = _as_text(lookup(raw, "image"))
    return SearchResultItem(
        title=_as_text(lookup(raw, "title")),
        url=url,
        snippet=_as_text(lookup(raw, "snippet")),
        source=_as_text(lookup(raw, "source")),
        date=_as_date(lookup(raw, "date")),
        image=image or None,
        query=query or str(raw.get("query") or ""),
    )


def normalize_items(
    raw_items: list[dict[str, Any]],
    require_url: bool = True,
) -> list[SearchResultItem]:
    """Normalise a batch of query-tagged raw items."""
    normalized: list[SearchResultItem] = []
    for raw in raw_items:
        item = normalize_item(raw, str(raw.get("query") or ""), require_url=require_url)
        if item is not None:
            normalized.append(item)
    return normalized


_WWW_PREFIX = re.compile(r"^www\.")


def hostname(url: str) -> str:
    """Return the bare hostname of *url*, stripping any ``www.`` prefix."""
    try:
        return _WWW_PREFIX.sub("", urlparse(url).hostname or "")
    except ValueError:
        return ""


# ── Fan-out ────────────────────────────────────────────────────────────────


@dataclass
class FanOutResult:
    """Flattened output of one fan-out over a query list."""

    items: list[dict[str, Any]] = field(default_factory=list)
    """Raw provider items, each tagged with its originating ``query``."""

    trail: list[dict[str, Any]] = field(default_factory=list)
    """One entry per query: ``{query, ok, count, keys}`` or ``{query, ok, error}``."""


class SearchClient:
    """Runs queries against the search provider.

    Requests are sent with an ``X-API-Key`` header and a single ``query``
    parameter. A ``transport`` may be injected (e.g. ``httpx.MockTransport``)
    for tests.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self._transport = transport

    def ensure_configured(self) -> None:
        """Raise ``ConfigurationError`` if the provider key is absent."""
        if not self.settings.search_api_key:
            raise ConfigurationError(
                "Search provider API key missing. Set YOU_DOT_COM in server environment."
            )

    async def search(self, client: httpx.AsyncClient, query: str) -> dict[str, Any]:
        """Run one query and return the decoded provider response."""
        response = await client.get(
            self.settings.search_url,
            params={"query": query},
            headers={"X-API-Key": self.settings.search_api_key},
        )
        response.raise_for_status()
        payload = response.json()
        return payload if isinstance(payload, dict) else {}

    async def _fan_out(self, queries: list[str]) -> FanOutResult:
        async with httpx.AsyncClient(
            timeout=self.settings.search_timeout,
            transport=self._transport,
        ) as client:
            settled = await asyncio.gather(
                *(self.search(client, query) for query in queries),
                return_exceptions=True,
            )

        result = FanOutResult()
        for query, outcome in zip(queries, settled):
            if isinstance(outcome, Exception):
                logger.warning("Search failed query=%r: %s", query, outcome)
                result.trail.append({"query": query, "ok": False, "error": str(outcome) or type(outcome).__name__})
                continue

            items = extract_items(outcome)
            logger.debug("Search ok query=%r count=%d", query, len(items))
            result.trail.append(
                {"query": query, "ok": True, "count": len(items), "keys": sorted(outcome)}
            )
            result.items.extend({**item, "query": query} for item in items)
        return result

    def search_many(self, queries: list[str]) -> FanOutResult:
        """Run every query concurrently and collect whatever succeeded.

        A failing query contributes no items and a failed trail entry; it
        never aborts its siblings.

        Raises:
            ConfigurationError: If no provider key is configured. Raised
                before any request is made.
        """
        self.ensure_configured()
        logger.info("Search fan-out start: %d queries", len(queries))
        result = asyncio.run(self._fan_out(queries))
        logger.info(
            "Search fan-out complete: %d items, %d/%d queries ok",
            len(result.items),
            sum(1 for entry in result.trail if entry["ok"]),
            len(queries),
        )
        return result
