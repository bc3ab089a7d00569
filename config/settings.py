"""Application settings — all configuration loaded from environment variables.

Usage:
    from config.settings import Settings
    settings = Settings()
    settings.validate()   # raises ValueError if ANTHROPIC_API_KEY is missing
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


@dataclass
class Settings:
    """Centralised application configuration.

    All values are read from environment variables at instantiation time
    so that tests can override them by patching ``os.environ``.
    """

    # ── API Keys ────────────────────────────────────────────────────────────
    anthropic_api_key: str = field(
        default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY", "")
    )
    search_api_key: str = field(
        default_factory=lambda: os.environ.get("YOU_DOT_COM", "")
    )

    # ── Flask ───────────────────────────────────────────────────────────────
    debug: bool = field(
        default_factory=lambda: os.environ.get("FLASK_DEBUG", "0") == "1"
    )
    port: int = field(default_factory=lambda: _env_int("PORT", 5001))

    # ── Search ──────────────────────────────────────────────────────────────
    search_url: str = field(
        default_factory=lambda: os.environ.get(
            "SEARCH_API_URL", "https://api.ydc-index.io/v1/search"
        )
    )
    search_timeout: float = field(
        default_factory=lambda: _env_float("SEARCH_TIMEOUT", 30.0)
    )
    #: Upper bound on queries executed per report run.
    max_queries: int = field(
        default_factory=lambda: _env_int("MAX_SEARCH_QUERIES", 15)
    )

    # ── AI Models ───────────────────────────────────────────────────────────
    llm_base_url: Optional[str] = field(
        default_factory=lambda: os.environ.get("LLM_BASE_URL") or None
    )
    llm_model: str = field(
        default_factory=lambda: os.environ.get("LLM_MODEL", "claude-haiku-4-5")
    )
    llm_temperature: float = field(
        default_factory=lambda: _env_float("LLM_TEMPERATURE", 0.7)
    )
    llm_max_tokens: int = field(
        default_factory=lambda: _env_int("LLM_MAX_TOKENS", 1000)
    )
    #: Section synthesis emits a full XML report, so it needs more room.
    synthesis_max_tokens: int = field(
        default_factory=lambda: _env_int("SYNTHESIS_MAX_TOKENS", 4000)
    )
    llm_timeout: float = field(
        default_factory=lambda: _env_float("LLM_TIMEOUT", 60.0)
    )

    # ── Report pipeline ─────────────────────────────────────────────────────
    v1_recency_months: int = field(
        default_factory=lambda: _env_int("V1_RECENCY_MONTHS", 3)
    )
    v2_recency_months: int = field(
        default_factory=lambda: _env_int("V2_RECENCY_MONTHS", 1)
    )
    score_batch_size: int = field(
        default_factory=lambda: _env_int("SCORE_BATCH_SIZE", 5)
    )
    score_threshold: float = field(
        default_factory=lambda: _env_float("SCORE_THRESHOLD", 4.5)
    )
    max_report_items: int = field(
        default_factory=lambda: _env_int("MAX_REPORT_ITEMS", 50)
    )
    summary_sample_size: int = field(
        default_factory=lambda: _env_int("SUMMARY_SAMPLE_SIZE", 30)
    )
    summary_window_days: int = field(
        default_factory=lambda: _env_int("SUMMARY_WINDOW_DAYS", 7)
    )

    def validate(self) -> None:
        """Raise ``ValueError`` if any required setting is missing."""
        if not self.anthropic_api_key:
            raise ValueError(
                "ANTHROPIC_API_KEY environment variable is not set. "
                "Copy .env.example to .env and add your key."
            )
