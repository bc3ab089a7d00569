"""
Pydantic models shared across the radar pipeline.

Stored documents use camelCase field names; every model below accepts both
the Python attribute name and the stored alias, and dumps with the alias when
``by_alias=True`` is passed.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

#: Hard cap on the executable prefix of a query plan.
MAX_FINAL_QUERIES = 15


class _Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Radar configuration ────────────────────────────────────────────────────


class RadarProfile(_Document):
    """Who the radar is for. At least one priority is required."""

    role: str = Field(min_length=1)
    industry: str = Field(min_length=1)
    product_focus: Optional[str] = None
    audience: str = ""
    geography: list[str] = Field(default_factory=list)
    priorities: list[str] = Field(min_length=1)
    avoid: list[str] = Field(default_factory=list)


class QueryPlan(_Document):
    """Search queries and source hints derived from a profile."""

    queries: list[str] = Field(default_factory=list)
    final_queries: list[str] = Field(default_factory=list)
    sources_hint: list[str] = Field(default_factory=list)
    last_llm_prompt: str = Field(default="", alias="lastLLMPrompt")

    @field_validator("final_queries")
    @classmethod
    def _cap_final_queries(cls, value: list[str]) -> list[str]:
        return value[:MAX_FINAL_QUERIES]


class Radar(_Document):
    """A saved radar. ``query_plan`` may be a JSON string or a mapping."""

    id: Optional[str] = None
    owner_id: str = ""
    title: str = ""
    profile: RadarProfile
    mermaid_diagram: str = ""
    query_plan: Any = None
    settings: dict[str, Any] = Field(default_factory=dict)


# ── Search results ─────────────────────────────────────────────────────────


class SearchResultItem(_Document):
    """A normalised search hit. Built per run, never stored on its own."""

    title: str = ""
    url: str = ""
    snippet: str = ""
    source: str = ""
    date: str = ""
    image: Optional[str] = None
    query: str = ""
    score: Optional[float] = Field(default=None, ge=0.0, le=5.0)
    duplicate: bool = False


# ── Reports ────────────────────────────────────────────────────────────────


class SectionItem(_Document):
    headline: str = ""
    url: str = ""
    source: str = ""
    snippet: str = ""
    tags: list[str] = Field(default_factory=list)
    image: Optional[str] = None


class ReportSection(_Document):
    title: str = ""
    items: list[SectionItem] = Field(default_factory=list)


class ScoredItem(_Document):
    title: str
    url: str
    snippet: str = ""
    source: str = ""
    date: str = ""
    image: str = ""
    score: float = Field(ge=0.0, le=5.0)


class Metrics(_Document):
    total_sources: int = 0
    unique_domains: int = 0


class FreshnessWindow(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_iso: str = Field(alias="fromISO")
    to_iso: str = Field(alias="toISO")


class ReportInputs(_Document):
    query_plan_hash: str = ""
    api_version: str = "1.0"


class SectionedReport(_Document):
    """Legacy (v1) report: an LLM-written summary plus thematic sections."""

    version: Literal["v1"] = "v1"
    summary: str = ""
    sections: list[ReportSection] = Field(default_factory=list)
    metrics: Metrics = Field(default_factory=Metrics)
    freshness_window: Optional[FreshnessWindow] = None
    inputs: Optional[ReportInputs] = None
    debug: dict[str, Any] = Field(default_factory=dict)


class FlatReport(_Document):
    """Current (v2) report: a flat list of relevance-scored items."""

    version: Literal["v2"] = "v2"
    summary: str = ""
    items: list[ScoredItem] = Field(default_factory=list)
    query_count: int = 0
    result_count: int = 0
    generated_at: str = ""
    debug: dict[str, Any] = Field(default_factory=dict)


Report = Annotated[Union[SectionedReport, FlatReport], Field(discriminator="version")]

_report_adapter: TypeAdapter[Report] = TypeAdapter(Report)


def parse_report(data: dict[str, Any]) -> SectionedReport | FlatReport:
    """Load a stored report document into its typed variant.

    Documents written before the ``version`` discriminant existed are legacy
    sectioned reports.
    """
    payload = dict(data)
    payload.setdefault("version", "v1")
    return _report_adapter.validate_python(payload)


# ── Sharing ────────────────────────────────────────────────────────────────


class VoiceProfile(_Document):
    """How a user writes, stored on ``users/<id>.voiceProfile``."""

    tone_hints: list[str] = Field(default_factory=list)
    sample_phrases: list[str] = Field(default_factory=list)


class ShareItem(_Document):
    """The report item being shared; v1 items carry ``headline``, v2 ``title``."""

    headline: str = ""
    title: str = ""
    url: str = ""
    source: str = ""
    snippet: str = ""
