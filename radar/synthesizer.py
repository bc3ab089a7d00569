"""Report synthesis from ranked search results.

Provides two levels of synthesis:

1. **Sections** (v1) — ``Synthesizer.synthesize_sections()``:
   one LLM call that groups results into themed sections. The reply is read
   as a fenced JSON block first, then as a lenient XML-like ``<report>``
   document. If neither yields a report, a deterministic report is built
   straight from the results, grouped by originating query.

2. **Narrative** (v2) — ``Synthesizer.summarize_recent()``:
   a short paragraph over a sample of the most recent results. A
   deterministic default is returned whenever the call fails.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Optional

from bs4 import BeautifulSoup

from radar.aggregator import count_domains, item_timestamp
from radar.errors import UpstreamError
from radar.models import ReportSection, SectionItem
from radar.prompts import (
    SUMMARY_SYSTEM,
    SYNTHESIS_SYSTEM,
    build_summary_prompt,
    build_synthesis_prompt,
)

if TYPE_CHECKING:
    from config.settings import Settings
    from radar.llm import LLMClient
    from radar.models import RadarProfile, SearchResultItem

logger = logging.getLogger(__name__)

MAX_FALLBACK_SECTIONS = 6
MAX_FALLBACK_ITEMS = 10
_FALLBACK_TITLE_CHARS = 50

_JSON_BLOCK = re.compile(r"```json\s*([\s\S]*?)```")
_XML_BLOCK = re.compile(r"```xml\s*([\s\S]*?)```")
_ANY_BLOCK = re.compile(r"```\s*([\s\S]*?)```")
_NS_PREFIX = re.compile(r"<(/?)[A-Za-z_][\w.-]*:")
_BARE_AMPERSAND = re.compile(r"&(?!(?:[A-Za-z]+|#\d+|#x[0-9A-Fa-f]+);)")


class ReportParseError(ValueError):
    """The synthesis reply contained no usable report."""


# ── Result types ───────────────────────────────────────────────────────────


@dataclass
class SynthesisResult:
    """Sections and summary produced for a v1 report."""

    summary: str
    sections: list[ReportSection] = field(default_factory=list)
    debug: dict[str, Any] = field(default_factory=dict)
    format: str = "fallback"
    """Which reader produced the sections: ``json``, ``xml`` or ``fallback``."""


# ── JSON reader ────────────────────────────────────────────────────────────


def _tags(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(tag) for tag in value if tag not in (None, "")]
    return []


def _section_from_mapping(section: dict[str, Any]) -> ReportSection:
    items = section.get("items") if isinstance(section.get("items"), list) else []
    return ReportSection(
        title=str(section.get("title") or ""),
        items=[
            SectionItem(
                headline=str(item.get("headline") or ""),
                url=str(item.get("url") or ""),
                source=str(item.get("source") or ""),
                snippet=str(item.get("snippet") or ""),
                tags=_tags(item.get("tags")),
                image=str(item["image"]) if item.get("image") else None,
            )
            for item in items
            if isinstance(item, dict)
        ],
    )


def parse_json_report(content: str) -> Optional[tuple[str, list[ReportSection]]]:
    """Read a fenced ```json report, or return None if there isn't a usable one.

    The block may hold the report directly or under a ``report`` key, and
    must have a ``summary`` or ``sections`` to count.
    """
    match = _JSON_BLOCK.search(content)
    if not match:
        return None

    try:
        parsed = json.loads(match.group(1).strip())
    except ValueError as exc:
        logger.debug("JSON block unreadable, falling back to XML: %s", exc)
        return None

    report = parsed.get("report", parsed) if isinstance(parsed, dict) else None
    if not isinstance(report, dict) or not (report.get("summary") or report.get("sections")):
        logger.debug("JSON block doesn't match the report shape, falling back to XML")
        return None

    sections = report.get("sections") if isinstance(report.get("sections"), list) else []
    return (
        str(report.get("summary") or ""),
        [_section_from_mapping(s) for s in sections if isinstance(s, dict)],
    )


# ── XML-like reader ────────────────────────────────────────────────────────


def _report_fragment(content: str) -> str:
    """Cut the ``<report>…</report>`` span out of *content*.

    Looks inside a fenced ```xml block first, then any fenced block, then the
    raw text.

    Raises:
        ReportParseError: If no ``<report`` opening tag exists anywhere.
    """
    candidates = []
    for pattern in (_XML_BLOCK, _ANY_BLOCK):
        match = pattern.search(content)
        if match:
            candidates.append(match.group(1))
    candidates.append(content)

    for text in candidates:
        text = _NS_PREFIX.sub(r"<\1", text)
        start = text.find("<report")
        if start < 0:
            continue
        fragment = text[start:]
        end = fragment.rfind("</report>")
        if end >= 0:
            fragment = fragment[: end + len("</report>")]
        return fragment

    raise ReportParseError("no <report> element in synthesis response")


def _clean_markup(xml: str) -> str:
    xml = xml.replace("&nbsp;", " ")
    return _BARE_AMPERSAND.sub("&amp;", xml).strip()


def _child_text(node: Any, tag: str) -> str:
    child = node.find(tag, recursive=False) or node.find(tag)
    return child.get_text(strip=True) if child is not None else ""


def parse_xml_report(content: str) -> tuple[str, list[ReportSection]]:
    """Read an XML-like ``<report>`` document leniently.

    Namespace prefixes are stripped, bare ampersands escaped, unclosed tags
    recovered by the parser, and single children treated like lists.

    Raises:
        ReportParseError: If no report with a summary or sections is found.
    """
    soup = BeautifulSoup(_clean_markup(_report_fragment(content)), "xml")
    report = soup.find("report")
    if report is None:
        raise ReportParseError("<report> element could not be parsed")

    container = report.find("sections") or report
    sections = []
    for section in container.find_all("section"):
        items = []
        for item in section.find_all("item"):
            image = _child_text(item, "image")
            items.append(
                SectionItem(
                    headline=_child_text(item, "headline"),
                    url=_child_text(item, "url"),
                    source=_child_text(item, "source"),
                    snippet=_child_text(item, "snippet"),
                    tags=[tag.get_text(strip=True) for tag in item.find_all("tag") if tag.get_text(strip=True)],
                    image=image or None,
                )
            )
        sections.append(ReportSection(title=_child_text(section, "title"), items=items))

    summary_node = report.find("summary", recursive=False) or report.find("summary")
    summary = summary_node.get_text(strip=True) if summary_node is not None else ""
    if not summary and not sections:
        raise ReportParseError("<report> element has neither summary nor sections")
    return summary, sections


# ── Fallback ───────────────────────────────────────────────────────────────


def _fallback_item(item: SearchResultItem) -> SectionItem:
    return SectionItem(
        headline=item.title or "No title",
        url=item.url,
        source=item.source or "Unknown",
        snippet=item.snippet,
        tags=[],
        image=item.image or None,
    )


def build_fallback_sections(items: list[SearchResultItem]) -> list[ReportSection]:
    """Group results by originating query into at most six capped sections."""
    groups: dict[str, list[SectionItem]] = {}
    for item in items:
        groups.setdefault(item.query or "General Results", []).append(_fallback_item(item))

    sections = []
    for query, group in list(groups.items())[:MAX_FALLBACK_SECTIONS]:
        title = query if len(query) <= _FALLBACK_TITLE_CHARS else query[:_FALLBACK_TITLE_CHARS] + "..."
        sections.append(ReportSection(title=title, items=group[:MAX_FALLBACK_ITEMS]))
    return sections


def fallback_summary(items: list[SearchResultItem]) -> str:
    return (
        "Report generated from search results. "
        f"Found {len(items)} unique sources across {count_domains(items)} domains."
    )


# ── Synthesizer ────────────────────────────────────────────────────────────


class Synthesizer:
    """Turns ranked results into report prose via the LLM."""

    def __init__(self, llm: LLMClient, settings: Settings) -> None:
        self.llm = llm
        self.settings = settings

    def parse(self, content: str, items: list[SearchResultItem]) -> SynthesisResult:
        """Read a synthesis reply, falling back to a grouped-by-query report."""
        parsed = parse_json_report(content)
        if parsed is not None:
            logger.info("Synthesis parsed format=json sections=%d", len(parsed[1]))
            return SynthesisResult(summary=parsed[0], sections=parsed[1], format="json")

        try:
            summary, sections = parse_xml_report(content)
        except ReportParseError as exc:
            xml_match = _XML_BLOCK.search(content)
            unparsed = xml_match.group(1).strip() if xml_match else content
            logger.warning(
                "Synthesis reply unparseable (%s); building report from %d results",
                exc, len(items),
            )
            return SynthesisResult(
                summary=fallback_summary(items),
                sections=build_fallback_sections(items),
                debug={
                    "parseError": {
                        "message": str(exc),
                        "unparsedContent": unparsed,
                        "rawResponse": content,
                    },
                    "fallbackUsed": True,
                },
            )

        logger.info(
            "Synthesis parsed format=xml sections=%d items=%d",
            len(sections), sum(len(s.items) for s in sections),
        )
        return SynthesisResult(summary=summary, sections=sections, format="xml")

    def synthesize_sections(
        self,
        items: list[SearchResultItem],
        profile: RadarProfile,
    ) -> SynthesisResult:
        """Produce the summary and themed sections of a v1 report.

        Raises:
            UpstreamError: If the synthesis call itself fails. Unparseable
                replies never raise; they yield the fallback report.
        """
        if not items:
            logger.warning("No search results to synthesize")

        prompt = build_synthesis_prompt(items, profile)
        completion = self.llm.complete(
            prompt,
            SYNTHESIS_SYSTEM,
            max_tokens=self.settings.synthesis_max_tokens,
        )
        return self.parse(completion.content, items)

    def summarize_recent(
        self,
        items: list[SearchResultItem],
        default: str,
        now: Optional[datetime] = None,
    ) -> str:
        """Write a 2–4 sentence narrative over the most recent results.

        Samples up to ``summary_sample_size`` items from the last
        ``summary_window_days`` days, or the newest items overall when none
        fall in that window. Returns *default* when there is nothing to
        summarise or the call fails.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=self.settings.summary_window_days)
        within = [item for item in items if item_timestamp(item) >= cutoff]
        sample = (within or items)[: self.settings.summary_sample_size]
        if not sample:
            return default

        label = f"the past {self.settings.summary_window_days} days" if within else "recent items"
        try:
            completion = self.llm.complete(build_summary_prompt(sample, label), SUMMARY_SYSTEM)
        except UpstreamError:
            logger.exception("Narrative summary failed; keeping default")
            return default
        return completion.content.strip() or default
