"""Query plans: generation from a profile and resolution for a report run.

Flow
────
1. generate_plan(profile, llm)
     → one LLM call returning a ```mermaid quadrant chart and a ```xml
       <queryPlan> document, parsed into (diagram, QueryPlan)

2. resolve_queries(stored_plan)
     → the ordered, capped list of queries a report run will execute.
       Stored plans may be JSON strings or mappings; both are accepted and
       anything unreadable degrades to an empty plan.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any, Optional

from bs4 import BeautifulSoup

from radar.errors import PlanParseError
from radar.models import MAX_FINAL_QUERIES, QueryPlan
from radar.prompts import PLAN_SYSTEM, build_plan_prompt

if TYPE_CHECKING:
    from radar.llm import LLMClient
    from radar.models import RadarProfile

logger = logging.getLogger(__name__)

_MERMAID_BLOCK = re.compile(r"```mermaid\s*([\s\S]*?)```")
_XML_BLOCK = re.compile(r"```xml\s*([\s\S]*?)```")


# ── Plan resolution ────────────────────────────────────────────────────────


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(entry) for entry in value if entry is not None and str(entry).strip()]


def coerce_plan(stored: Any) -> QueryPlan:
    """Normalise a stored plan representation into a ``QueryPlan``.

    Accepts a ``QueryPlan``, a mapping, or a JSON-encoded string. Fails soft:
    unparseable JSON and unexpected types produce an empty plan.
    """
    if isinstance(stored, QueryPlan):
        return stored

    if isinstance(stored, str):
        try:
            stored = json.loads(stored) if stored.strip() else {}
        except ValueError:
            logger.warning("Stored query plan is not valid JSON; using an empty plan")
            stored = {}

    if not isinstance(stored, dict):
        return QueryPlan()

    return QueryPlan(
        queries=_string_list(stored.get("queries")),
        final_queries=_string_list(stored.get("finalQueries")),
        sources_hint=_string_list(stored.get("sourcesHint")),
        last_llm_prompt=str(stored.get("lastLLMPrompt") or ""),
    )


def resolve_queries(stored: Any, max_queries: int = MAX_FINAL_QUERIES) -> list[str]:
    """Return the queries a report run should execute.

    ``finalQueries`` wins when non-empty, otherwise ``queries`` is used.

    Examples:
        >>> resolve_queries({"finalQueries": ["a", "b"], "queries": ["a", "b", "c"]})
        ['a', 'b']
        >>> resolve_queries('{"queries": ["x"]}')
        ['x']
        >>> resolve_queries("not json")
        []
    """
    plan = coerce_plan(stored)
    queries = plan.final_queries or plan.queries
    return queries[:max_queries]


# ── Plan generation ────────────────────────────────────────────────────────


def _texts(parent: Any, tag: str) -> list[str]:
    if parent is None:
        return []
    return [
        node.get_text(strip=True)
        for node in parent.find_all(tag)
        if node.get_text(strip=True)
    ]


def parse_plan_response(content: str) -> tuple[str, Optional[QueryPlan]]:
    """Extract the mermaid diagram and query plan from a plan-generation reply.

    Returns:
        ``(diagram, plan)``; the diagram is ``""`` and the plan ``None`` when
        the corresponding block is missing or unreadable.
    """
    diagram = ""
    plan: Optional[QueryPlan] = None

    mermaid_match = _MERMAID_BLOCK.search(content)
    if mermaid_match:
        diagram = mermaid_match.group(1).strip()

    xml_match = _XML_BLOCK.search(content)
    if xml_match:
        soup = BeautifulSoup(xml_match.group(1).strip(), "xml")
        root = soup.find("queryPlan")
        if root is not None:
            queries = _texts(root.find("queries"), "query")
            prompt_node = root.find("lastLLMPrompt")
            plan = QueryPlan(
                queries=queries,
                final_queries=queries[:MAX_FINAL_QUERIES],
                sources_hint=_texts(root.find("sourcesHint"), "source"),
                last_llm_prompt=prompt_node.get_text(strip=True) if prompt_node else "",
            )
        else:
            logger.warning("XML block in plan response has no <queryPlan> root")

    return diagram, plan


def generate_plan(
    profile: RadarProfile,
    llm: LLMClient,
    refinement: Optional[str] = None,
) -> tuple[str, QueryPlan]:
    """Ask the LLM for a topic diagram and query plan for *profile*.

    Args:
        profile: The radar profile to plan for.
        llm: Completion client.
        refinement: Free-text notes appended when refining an existing radar.

    Returns:
        ``(mermaid_diagram, plan)`` with ``plan.last_llm_prompt`` set to the
        exact prompt that was sent.

    Raises:
        PlanParseError: If either block is missing from the response.
        UpstreamError: If the LLM call fails.
    """
    prompt = build_plan_prompt(profile, refinement)
    completion = llm.complete(prompt, PLAN_SYSTEM)
    diagram, plan = parse_plan_response(completion.content)

    if not diagram or plan is None:
        logger.error(
            "Plan response missing blocks: mermaid=%s plan=%s",
            bool(diagram), plan is not None,
        )
        raise PlanParseError(
            "Failed to parse LLM response. Expected mermaid and xml code blocks."
        )

    plan = plan.model_copy(update={"last_llm_prompt": prompt})
    logger.info("Generated plan with %d queries", len(plan.queries))
    return diagram, plan
