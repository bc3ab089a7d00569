"""Tests for radar/scorer.py — batch relevance scoring."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from radar.errors import UpstreamError
from radar.llm import Completion
from radar.models import SearchResultItem
from radar.scorer import RelevanceScorer, batched, parse_scores


def make_items(count: int) -> list[SearchResultItem]:
    return [
        SearchResultItem(title=f"Item {i}", url=f"https://news.test/{i}", source="News")
        for i in range(count)
    ]


def reply(scores: dict) -> Completion:
    return Completion(
        content=json.dumps([{"url": url, "score": score} for url, score in scores.items()]),
        model="m",
    )


class TestBatched:
    def test_chunks_in_order(self):
        assert batched(list(range(12)), 5) == [[0, 1, 2, 3, 4], [5, 6, 7, 8, 9], [10, 11]]

    def test_empty(self):
        assert batched([], 5) == []


class TestParseScores:
    def test_reads_array_inside_prose(self):
        content = 'Sure! [{"url": "a", "score": 4.7}, {"url": "b", "score": 2}] Hope it helps.'
        assert parse_scores(content) == {"a": 4.7, "b": 2.0}

    def test_ignores_bad_rows(self):
        content = json.dumps(
            [
                {"url": "a", "score": 7},
                {"url": "b", "score": "high"},
                {"url": "c", "score": True},
                {"score": 4.9},
                "junk",
                {"url": "d", "score": 0},
            ]
        )
        assert parse_scores(content) == {"d": 0.0}

    def test_no_array_raises(self):
        with pytest.raises(ValueError):
            parse_scores("I could not score these.")


class TestRelevanceScorer:
    def test_keeps_only_items_above_threshold(self):
        items = make_items(2)
        llm = MagicMock()
        llm.complete.return_value = reply({items[0].url: 4.7, items[1].url: 4.2})

        kept = RelevanceScorer(llm).select(items, "PM", "SaaS")

        assert [item.url for item in kept] == [items[0].url]
        assert kept[0].score == 4.7

    def test_threshold_is_strict(self):
        items = make_items(1)
        llm = MagicMock()
        llm.complete.return_value = reply({items[0].url: 4.5})

        assert RelevanceScorer(llm).select(items, "PM", "SaaS") == []

    def test_sends_batches_of_five(self):
        items = make_items(12)
        llm = MagicMock()
        llm.complete.return_value = Completion(content="[]", model="m")

        RelevanceScorer(llm).score(items, "PM", "SaaS")

        prompts = [call.args[0] for call in llm.complete.call_args_list]
        assert [prompt.count("- url: ") for prompt in prompts] == [5, 5, 2]

    def test_failed_batch_is_skipped(self):
        items = make_items(7)
        llm = MagicMock()
        llm.complete.side_effect = [
            UpstreamError("timeout"),
            reply({items[5].url: 4.8, items[6].url: 4.9}),
        ]

        kept = RelevanceScorer(llm).select(items, "PM", "SaaS")

        assert [item.url for item in kept] == [items[5].url, items[6].url]

    def test_unparseable_batch_is_skipped(self):
        items = make_items(6)
        llm = MagicMock()
        llm.complete.side_effect = [
            Completion(content="no idea", model="m"),
            reply({items[5].url: 5.0}),
        ]

        kept = RelevanceScorer(llm).select(items, "PM", "SaaS")

        assert [item.url for item in kept] == [items[5].url]

    def test_preserves_input_order_and_limit(self):
        items = make_items(4)
        llm = MagicMock()
        llm.complete.return_value = reply({item.url: 5.0 - i * 0.1 for i, item in enumerate(reversed(items))})

        kept = RelevanceScorer(llm).select(items, "PM", "SaaS", limit=3)

        assert [item.url for item in kept] == [item.url for item in items[:3]]
