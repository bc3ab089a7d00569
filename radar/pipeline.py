"""
Report generation pipelines.

Flow
────
resolve queries → search fan-out → normalise → recency filter →
[mark duplicates] → deduplicate → rank → [relevance scoring] →
synthesise → persist

Two coexisting strategies share the front half:

* ``run_v1`` — legacy: 3-month window, LLM-written themed sections, report
  metrics. A failed save is fatal.
* ``run_v2`` — current: 1-month window, duplicate marking, batch relevance
  scoring with a keep threshold, optional narrative summary. A failed save
  is logged and the unsaved report is still returned.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Optional

from radar import store
from radar.aggregator import count_domains, deduplicate, filter_recent, mark_duplicates, rank
from radar.errors import InvalidRequestError, NotFoundError, PersistenceError
from radar.models import (
    FlatReport,
    FreshnessWindow,
    Metrics,
    Radar,
    ReportInputs,
    ScoredItem,
    SectionedReport,
)
from radar.planner import coerce_plan, resolve_queries
from radar.scorer import RelevanceScorer
from radar.search import normalize_items
from radar.synthesizer import Synthesizer

if TYPE_CHECKING:
    from config.settings import Settings
    from radar.llm import LLMClient
    from radar.models import SearchResultItem
    from radar.search import SearchClient

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Outcome of one pipeline run."""

    report_id: Optional[str]
    """Store id of the saved report; None if saving failed (v2 only)."""

    report: dict[str, Any]
    """The report document as stored (camelCase, ``None`` values stripped)."""


@dataclass
class _Collected:
    queries: list[str]
    items: list[SearchResultItem]
    trail: list[dict[str, Any]]
    total: int


class ReportPipeline:
    """Runs report generation for one radar at a time."""

    def __init__(
        self,
        settings: Settings,
        search_client: SearchClient,
        llm: LLMClient,
    ) -> None:
        self.settings = settings
        self.search_client = search_client
        self.llm = llm

    # ── Shared stages ──────────────────────────────────────────────────────

    def load_radar(self, radar_id: str) -> Radar:
        document = store.get_document("radars", radar_id)
        if document is None:
            logger.warning("Radar not found id=%s", radar_id)
            raise NotFoundError("Radar not found")
        return Radar.model_validate(document)

    def _collect(
        self,
        radar: Radar,
        window_months: int,
        require_url: bool,
        now: datetime,
    ) -> _Collected:
        queries = resolve_queries(radar.query_plan, self.settings.max_queries)
        if not queries:
            logger.warning("No search queries available for radar id=%s", radar.id)
            raise InvalidRequestError("No search queries available")

        fan_out = self.search_client.search_many(queries)
        items = normalize_items(fan_out.items, require_url=require_url)
        return _Collected(
            queries=queries,
            items=filter_recent(items, window_months, now=now),
            trail=fan_out.trail,
            total=len(items),
        )

    def _persist(
        self,
        radar_id: str,
        report: SectionedReport | FlatReport,
        fatal: bool,
    ) -> RunResult:
        """Sanitise *report* for storage and append it to the radar's history."""
        document = store.sanitize_for_storage(report.model_dump(by_alias=True, mode="json"))
        collection = store.reports_collection(radar_id)
        try:
            report_id = store.create_document(collection, document)
        except (sqlite3.Error, OSError) as exc:
            if fatal:
                logger.error("Failed to save report for radar id=%s: %s", radar_id, exc)
                raise PersistenceError(f"Failed to save report: {exc}") from exc
            logger.warning("Report generated but failed to save for radar id=%s: %s", radar_id, exc)
            report_id = None
        return RunResult(report_id=report_id, report=document)

    # ── v1 ─────────────────────────────────────────────────────────────────

    def run_v1(self, radar_id: str, now: Optional[datetime] = None) -> RunResult:
        """Generate, save and return a sectioned report.

        Raises:
            ConfigurationError: If the search key is missing.
            NotFoundError: If the radar does not exist.
            InvalidRequestError: If the radar has no queries.
            UpstreamError: If the synthesis call fails.
            PersistenceError: If the report cannot be saved.
        """
        self.search_client.ensure_configured()
        now = now or datetime.now(timezone.utc)
        radar = self.load_radar(radar_id)

        collected = self._collect(radar, self.settings.v1_recency_months, require_url=False, now=now)
        unique = rank(deduplicate(collected.items))
        logger.info("Search summary: %d unique of %d total", len(unique), collected.total)

        synthesis = Synthesizer(self.llm, self.settings).synthesize_sections(unique, radar.profile)

        debug = dict(synthesis.debug)
        if collected.trail:
            debug["searchResponses"] = collected.trail

        report = SectionedReport(
            summary=synthesis.summary,
            sections=synthesis.sections,
            metrics=Metrics(total_sources=len(unique), unique_domains=count_domains(unique)),
            freshness_window=FreshnessWindow(
                from_iso=(now - timedelta(days=1)).isoformat(),
                to_iso=now.isoformat(),
            ),
            inputs=ReportInputs(
                query_plan_hash=coerce_plan(radar.query_plan).model_dump_json(by_alias=True),
                api_version="1.0",
            ),
            debug=debug,
        )
        result = self._persist(radar_id, report, fatal=True)
        logger.info("Report v1 saved id=%s radar=%s", result.report_id, radar_id)
        return result

    # ── v2 ─────────────────────────────────────────────────────────────────

    def run_v2(self, radar_id: str, now: Optional[datetime] = None) -> RunResult:
        """Generate a scored flat report, saving it if possible.

        Raises:
            ConfigurationError: If the search key is missing.
            NotFoundError: If the radar does not exist.
            InvalidRequestError: If the radar has no queries.
        """
        self.search_client.ensure_configured()
        now = now or datetime.now(timezone.utc)
        radar = self.load_radar(radar_id)

        collected = self._collect(radar, self.settings.v2_recency_months, require_url=True, now=now)
        marked = mark_duplicates(collected.items)
        unique = rank(deduplicate(marked))
        logger.info(
            "Search summary: %d unique of %d total, %d duplicated urls",
            len(unique), collected.total,
            len({item.url for item in marked if item.duplicate}),
        )

        scorer = RelevanceScorer(
            self.llm,
            batch_size=self.settings.score_batch_size,
            threshold=self.settings.score_threshold,
        )
        kept = scorer.select(
            unique,
            radar.profile.role,
            radar.profile.industry,
            limit=self.settings.max_report_items,
        )

        default_summary = (
            f"Kept {len(kept)} of {len(unique)} unique results "
            f"(> {self.settings.score_threshold:g}) from {len(collected.queries)} queries"
        )
        summary = Synthesizer(self.llm, self.settings).summarize_recent(unique, default_summary, now=now)

        report = FlatReport(
            summary=summary,
            items=[_scored_item(item) for item in kept],
            query_count=len(collected.queries),
            result_count=len(unique),
            generated_at=now.isoformat(),
            debug={
                "scoring": {"threshold": self.settings.score_threshold, "kept": len(kept)},
                "searchResponses": collected.trail,
            },
        )
        result = self._persist(radar_id, report, fatal=False)
        logger.info("Report v2 done id=%s radar=%s items=%d", result.report_id, radar_id, len(kept))
        return result


def _scored_item(item: SearchResultItem) -> ScoredItem:
    return ScoredItem(
        title=item.title or "No title",
        url=item.url,
        snippet=item.snippet,
        source=item.source or "Unknown",
        date=item.date,
        image=item.image or "",
        score=item.score,
    )

