"""LLM relevance scoring for v2 reports.

Ranked items are sent to the LLM in fixed-size batches, one batch at a time,
and each batch is asked for a strict JSON array of ``{url, score}`` pairs on
a 0.0–5.0 scale. A batch whose call fails or whose reply cannot be parsed is
skipped; its items stay unscored and therefore never pass the threshold.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any

from radar.errors import UpstreamError
from radar.prompts import SCORING_SYSTEM, build_scoring_prompt

if TYPE_CHECKING:
    from radar.llm import LLMClient
    from radar.models import SearchResultItem

logger = logging.getLogger(__name__)

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")

MIN_SCORE = 0.0
MAX_SCORE = 5.0


def batched(items: list[Any], size: int) -> list[list[Any]]:
    """Split *items* into consecutive chunks of at most *size*, in order."""
    size = max(size, 1)
    return [items[start:start + size] for start in range(0, len(items), size)]


def parse_scores(content: str) -> dict[str, float]:
    """Extract ``url → score`` pairs from a scoring reply.

    The first bracket-delimited span is decoded as JSON. Rows without a URL
    or with a non-numeric or out-of-range score are ignored.

    Raises:
        ValueError: If no JSON array can be decoded from *content*.
    """
    match = _JSON_ARRAY.search(content or "")
    if not match:
        raise ValueError("no JSON array in scoring response")

    rows = json.loads(match.group(0))
    if not isinstance(rows, list):
        raise ValueError("scoring response is not a JSON array")

    scores: dict[str, float] = {}
    for row in rows:
        if not isinstance(row, dict):
            continue
        url = row.get("url")
        score = row.get("score")
        if not url or isinstance(score, bool) or not isinstance(score, (int, float)):
            continue
        if not MIN_SCORE <= score <= MAX_SCORE:
            logger.debug("Ignoring out-of-range score %r for %s", score, url)
            continue
        scores[str(url)] = float(score)
    return scores


class RelevanceScorer:
    """Scores ranked items for a role/industry and applies the keep threshold."""

    def __init__(self, llm: LLMClient, batch_size: int = 5, threshold: float = 4.5) -> None:
        self.llm = llm
        self.batch_size = batch_size
        self.threshold = threshold

    def score(self, items: list[SearchResultItem], role: str, industry: str) -> dict[str, float]:
        """Score every item batch by batch and return the merged URL → score map."""
        scores: dict[str, float] = {}
        batches = batched(items, self.batch_size)

        for index, batch in enumerate(batches):
            prompt = build_scoring_prompt(batch, role, industry)
            try:
                completion = self.llm.complete(prompt, SCORING_SYSTEM)
                batch_scores = parse_scores(completion.content)
            except (UpstreamError, ValueError) as exc:
                logger.debug("Skipping scoring batch %d/%d: %s", index + 1, len(batches), exc)
                continue
            scores.update(batch_scores)

        logger.info("Scored %d of %d items in %d batches", len(scores), len(items), len(batches))
        return scores

    def select(
        self,
        items: list[SearchResultItem],
        role: str,
        industry: str,
        limit: int = 50,
    ) -> list[SearchResultItem]:
        """Return items scoring strictly above the threshold, in input order.

        Args:
            items: Ranked, deduplicated items.
            role: Reader role used in the scoring prompt.
            industry: Reader industry used in the scoring prompt.
            limit: Maximum number of items returned.
        """
        scores = self.score(items, role, industry)
        kept = [
            item.model_copy(update={"score": scores[item.url]})
            for item in items
            if item.url in scores and scores[item.url] > self.threshold
        ]
        return kept[:limit]
