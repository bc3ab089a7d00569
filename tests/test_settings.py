"""Tests for config/settings.py"""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from config.settings import Settings


class TestSettings:
    @patch.dict(
        os.environ,
        {"YOU_DOT_COM": "yk", "SCORE_THRESHOLD": "4.0", "V2_RECENCY_MONTHS": "2", "LLM_BASE_URL": ""},
    )
    def test_reads_environment(self):
        settings = Settings()
        assert settings.search_api_key == "yk"
        assert settings.score_threshold == 4.0
        assert settings.v2_recency_months == 2
        assert settings.llm_base_url is None

    def test_validate_requires_llm_key(self):
        with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
            Settings(anthropic_api_key="").validate()

    def test_validate_passes_with_key(self):
        Settings(anthropic_api_key="test-key").validate()
