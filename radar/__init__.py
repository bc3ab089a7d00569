"""
industry-radar core package.

Modules
───────
models       — Pydantic data models (RadarProfile, QueryPlan, SearchResultItem, reports)
planner      — plan generation from a profile; query resolution for report runs
search       — concurrent search fan-out and provider response normalisation
aggregator   — recency filter, duplicate marking, deduplication, ranking
scorer       — batched LLM relevance scoring with a keep threshold
synthesizer  — section synthesis with JSON → XML → fallback parsing; narrative summary
pipeline     — v1 and v2 report generation runs
store        — SQLite-backed document store (radars and report history)
llm          — completion client over the Anthropic Messages API
prompts      — prompt templates
share        — share blips for report items in the user's voice
errors       — exception hierarchy carrying HTTP statuses
"""
