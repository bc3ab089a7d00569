"""Prompt templates for plan generation, synthesis, scoring, summaries and sharing."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from radar.models import RadarProfile, SearchResultItem, ShareItem, VoiceProfile

# ── Plan generation ────────────────────────────────────────────────────────

PLAN_SYSTEM = """You are a research planner that creates personalized industry scanning radars.

Given a user's profile (role, industry, audience, geography, priorities, topics to avoid), output exactly two code blocks:

1. A ```mermaid block containing a quadrantChart of the topics reports will cover:

quadrantChart
    title Distribution of Topics
    x-axis Low Relevance --> High Relevance
    y-axis Low Priority --> High Priority
    quadrant-1 Focus Areas
    quadrant-2 Key Topics
    quadrant-3 Watchlist
    quadrant-4 Secondary Interests
    Topic name: [0.25, 0.75]

Coordinates are [x, y] between 0.0 and 1.0, and every topic needs unique coordinates.

2. A ```xml block with the query plan:

<queryPlan>
  <queries>
    <query>...</query>
  </queries>
  <sourcesHint>
    <source>...</source>
  </sourcesHint>
  <lastLLMPrompt>...</lastLLMPrompt>
</queryPlan>

Write 8-15 specific, actionable queries that will find recent content. Avoid generic queries and put any site filters or date modifiers directly in the query strings."""


def build_plan_prompt(profile: RadarProfile, refinement: Optional[str] = None) -> str:
    """Render a profile as the plan-generation user prompt."""
    parts = [f"Role: {profile.role}", f"Industry: {profile.industry}"]
    if profile.product_focus:
        parts.append(f"Product Focus: {profile.product_focus}")
    parts.append(f"Audience: {profile.audience}")
    if profile.geography:
        parts.append(f"Geography: {', '.join(profile.geography)}")
    if profile.priorities:
        parts.append(f"Priorities: {', '.join(profile.priorities)}")
    if profile.avoid:
        parts.append(f"Avoid: {', '.join(profile.avoid)}")

    prompt = "\n".join(parts)
    if refinement:
        prompt += f"\n\nRefinement notes: {refinement}"
    return prompt


# ── Section synthesis (v1) ─────────────────────────────────────────────────

SYNTHESIS_SYSTEM = """You are a report synthesizer that creates structured daily industry scan reports.

Group the search results into 3-6 themed sections of 2-5 items each and write a 2-3 sentence summary of the main themes. For every item give a headline, the exact URL from the results, the source name, a 1-2 sentence snippet explaining why it matters, and 2-4 short hyphenated tags. Include an image URL only when the results provide one.

Use this XML-like structure. Formatting is flexible; content quality matters more than strict XML:

<report>
<summary>...</summary>
<sections>
<section>
<title>...</title>
<items>
<item>
<headline>...</headline>
<url>...</url>
<source>...</source>
<snippet>...</snippet>
<tags><tag>...</tag></tags>
<image>...</image>
</item>
</items>
</section>
</sections>
</report>"""


def build_synthesis_prompt(items: list[SearchResultItem], profile: RadarProfile) -> str:
    """Embed the ranked results and profile context in one synthesis prompt."""
    lines = []
    for index, item in enumerate(items, start=1):
        lines.append(
            f"{index}. {item.title or 'No title'}\n"
            f"   URL: {item.url}\n"
            f"   Source: {item.source}\n"
            f"   {item.snippet}\n"
            f"   Date: {item.date or 'Unknown'}"
        )

    return (
        "User profile context:\n"
        f"Role: {profile.role}\n"
        f"Industry: {profile.industry}\n"
        f"Audience: {profile.audience}\n"
        f"Priorities: {', '.join(profile.priorities) or 'None specified'}\n"
        f"Avoid: {', '.join(profile.avoid) or 'None'}\n\n"
        f"Search results ({len(items)} items):\n"
        + "\n\n".join(lines)
        + "\n\nGroup these results into themed sections and answer in the XML-like "
        "format from the system prompt."
    )


# ── Relevance scoring (v2) ─────────────────────────────────────────────────

SCORING_SYSTEM = (
    "You are a strict evaluator. Score each item from 0.0 to 5.0 for how valuable "
    "it is to the specified role and industry. Return ONLY JSON: an array of "
    "objects [{ url: string, score: number }]. No prose."
)


def build_scoring_prompt(batch: list[SearchResultItem], role: str, industry: str) -> str:
    entries = []
    for index, item in enumerate(batch, start=1):
        entry = f"{index}. {item.title}\n- url: {item.url}\n- source: {item.source}"
        if item.date:
            entry += f"\n- date: {item.date}"
        if item.snippet:
            entry += f"\n- snippet: {item.snippet}"
        entries.append(entry)

    return (
        f"Role: {role or '(unspecified)'}\n"
        f"Industry: {industry or '(unspecified)'}\n\n"
        "Evaluate the following items and return JSON only with an array of "
        "{ url, score } (0.0-5.0).\n\n" + "\n\n".join(entries)
    )


# ── Narrative summary (v2) ─────────────────────────────────────────────────

SUMMARY_SYSTEM = (
    "You are a concise tech analyst. Given a set of recent links, produce a 2-4 "
    "sentence summary highlighting key themes, trends, and notable releases. "
    "Keep it objective and compact (max ~80 words)."
)


def build_summary_prompt(sample: list[SearchResultItem], window_label: str) -> str:
    lines = []
    for index, item in enumerate(sample, start=1):
        header = " · ".join(part for part in (f"{index}. {item.title}", item.source, item.date) if part)
        lines.append(f"{header}\n   {item.snippet}" if item.snippet else header)

    return (
        "Summarize these items (title, source, optional snippet, date) from "
        f"{window_label}:\n\n" + "\n".join(lines)
    )


# ── Share snippets ─────────────────────────────────────────────────────────

SHARE_SYSTEM = """You generate short, shareable snippets (140-220 characters) in the user's writing style.

Write one blip that:
- Is 140-220 characters
- Includes the item's URL
- Matches the user's writing style
- Uses no hashtags unless the user typically uses them
- Engages the reader briefly

Reply with the blip only."""


def build_share_prompt(item: ShareItem, voice: VoiceProfile) -> str:
    return (
        "My voice profile:\n"
        f"- Tone hints: {', '.join(voice.tone_hints) or 'professional, concise'}\n"
        f"- Sample phrases: {'; '.join(voice.sample_phrases) or 'none provided'}\n\n"
        "Item to share:\n"
        f"- Headline: {item.headline or item.title or 'No title'}\n"
        f"- Source: {item.source}\n"
        f"- Snippet: {item.snippet}\n"
        f"- URL: {item.url}\n\n"
        "Create a share snippet for this item in my voice."
    )
