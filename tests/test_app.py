"""
Tests for web/app.py — HTTP surface, error bodies and request ids.

The LLM and the report pipeline are patched out; the document store runs on a
temporary SQLite file.

Run with: pytest tests/test_app.py
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest

import radar.store as store
from radar.errors import InvalidRequestError, UpstreamError
from radar.llm import Completion
from radar.pipeline import RunResult
from web.app import app

PLAN_REPLY = """```mermaid
quadrantChart
    title Topics
```

```xml
<queryPlan>
  <queries><query>SaaS pricing news</query><query>billing launches</query></queries>
  <sourcesHint><source>blogs</source></sourcesHint>
</queryPlan>
```"""

PROFILE = {"role": "PM", "industry": "SaaS", "priorities": ["pricing"]}


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    monkeypatch.setenv("DB_PATH", str(tmp_path / "test_radar.db"))
    store.init_db()
    yield


@pytest.fixture
def client():
    app.config["TESTING"] = True
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def plan_llm():
    llm = MagicMock()
    llm.complete.return_value = Completion(content=PLAN_REPLY, model="m")
    with patch("web.app._llm", return_value=llm):
        yield llm


def create_radar(**fields) -> str:
    data = {"ownerId": "owner-1", "title": "SaaS - PM", "profile": PROFILE, "mermaidDiagram": "old", "queryPlan": ""}
    data.update(fields)
    return store.create_document("radars", data)


# ── Request ids ────────────────────────────────────────────────────────────


class TestRequestId:
    def test_generated_when_absent(self, client):
        response = client.get("/api/radars/missing")
        assert response.headers["X-Request-ID"]
        assert response.get_json()["requestId"] == response.headers["X-Request-ID"]

    def test_echoes_incoming_header(self, client):
        response = client.get("/api/radars/missing", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"
        assert response.get_json()["requestId"] == "abc123"


# ── Radars ─────────────────────────────────────────────────────────────────


class TestCreateRadar:
    def test_missing_profile(self, client):
        response = client.post("/api/radars", json={"ownerId": "o"})
        assert response.status_code == 400
        assert response.get_json()["error"] == "profile is required"

    def test_invalid_profile(self, client):
        response = client.post("/api/radars", json={"ownerId": "o", "profile": {"role": "PM", "industry": "SaaS"}})
        assert response.status_code == 400
        assert "priorities" in response.get_json()["error"]

    def test_owner_required_for_new_radar(self, client):
        response = client.post("/api/radars", json={"profile": PROFILE})
        assert response.status_code == 400
        assert response.get_json()["error"] == "ownerId is required to create a radar"

    def test_creates_radar_and_stores_plan(self, client, plan_llm):
        response = client.post("/api/radars", json={"ownerId": "owner-1", "profile": PROFILE})

        assert response.status_code == 200
        body = response.get_json()
        assert body["success"] is True
        assert body["mermaidDiagram"].startswith("quadrantChart")
        assert body["queryPlan"]["finalQueries"] == ["SaaS pricing news", "billing launches"]

        radar = store.get_document("radars", body["radarId"])
        assert radar["ownerId"] == "owner-1"
        assert radar["title"] == "SaaS - PM"
        stored_plan = json.loads(radar["queryPlan"])
        assert stored_plan["queries"] == ["SaaS pricing news", "billing launches"]
        assert stored_plan["lastLLMPrompt"] == plan_llm.complete.call_args.args[0]

    def test_updates_existing_radar(self, client, plan_llm):
        radar_id = create_radar()

        response = client.post("/api/radars", json={"radarId": radar_id, "profile": PROFILE})

        assert response.get_json()["radarId"] == radar_id
        assert store.get_document("radars", radar_id)["mermaidDiagram"].startswith("quadrantChart")

    def test_unparseable_plan_is_upstream_error(self, client):
        llm = MagicMock()
        llm.complete.return_value = Completion(content="no blocks here", model="m")
        with patch("web.app._llm", return_value=llm):
            response = client.post("/api/radars", json={"ownerId": "o", "profile": PROFILE})

        assert response.status_code == 502
        assert "Failed to parse LLM response" in response.get_json()["error"]


class TestGetRadar:
    def test_not_found(self, client):
        response = client.get("/api/radars/missing")
        assert response.status_code == 404
        assert response.get_json()["error"] == "Radar not found"

    def test_found(self, client):
        radar_id = create_radar()
        body = client.get(f"/api/radars/{radar_id}").get_json()
        assert body["radar"]["id"] == radar_id
        assert body["radar"]["profile"]["role"] == "PM"


class TestRefineRadar:
    def test_refinement_required(self, client):
        radar_id = create_radar()
        response = client.patch(f"/api/radars/{radar_id}", json={})
        assert response.status_code == 400

    def test_unknown_radar(self, client, plan_llm):
        response = client.patch("/api/radars/missing", json={"refinementMessage": "more EU"})
        assert response.status_code == 404

    def test_returns_previous_diagram(self, client, plan_llm):
        radar_id = create_radar()

        body = client.patch(f"/api/radars/{radar_id}", json={"refinementMessage": "more EU"}).get_json()

        assert body["previousMermaidDiagram"] == "old"
        assert body["mermaidDiagram"].startswith("quadrantChart")
        assert plan_llm.complete.call_args.args[0].endswith("Refinement notes: more EU")


# ── Reports ────────────────────────────────────────────────────────────────


class TestRunRoutes:
    def test_run_v2(self, client):
        pipeline = MagicMock()
        pipeline.run_v2.return_value = RunResult(report_id="rep-1", report={"version": "v2", "items": []})
        with patch("web.app._pipeline", return_value=pipeline):
            response = client.post("/api/radars/r1/run/v2")

        body = response.get_json()
        assert response.status_code == 200
        assert body["reportId"] == "rep-1"
        assert body["report"]["version"] == "v2"
        pipeline.run_v2.assert_called_once_with("r1")

    def test_run_v2_unsaved_report(self, client):
        pipeline = MagicMock()
        pipeline.run_v2.return_value = RunResult(report_id=None, report={"version": "v2"})
        with patch("web.app._pipeline", return_value=pipeline):
            body = client.post("/api/radars/r1/run/v2").get_json()

        assert body["reportId"] is None
        assert body["report"] == {"version": "v2"}

    def test_run_v1_accepts_fresh_run(self, client):
        pipeline = MagicMock()
        pipeline.run_v1.return_value = RunResult(report_id="rep-1", report={"version": "v1"})
        with patch("web.app._pipeline", return_value=pipeline):
            response = client.post("/api/radars/r1/run", json={"freshRun": True})

        assert response.status_code == 200
        pipeline.run_v1.assert_called_once_with("r1")

    def test_pipeline_errors_map_to_status(self, client):
        pipeline = MagicMock()
        pipeline.run_v1.side_effect = InvalidRequestError("No search queries available")
        with patch("web.app._pipeline", return_value=pipeline):
            response = client.post("/api/radars/r1/run")

        assert response.status_code == 400
        assert response.get_json()["error"] == "No search queries available"

    def test_unexpected_error_is_500(self, client):
        pipeline = MagicMock()
        pipeline.run_v1.side_effect = RuntimeError("boom")
        with patch("web.app._pipeline", return_value=pipeline):
            response = client.post("/api/radars/r1/run")

        assert response.status_code == 500
        assert response.get_json()["error"] == "boom"
        assert response.get_json()["requestId"]


class TestLatestReport:
    def test_none_yet(self, client):
        body = client.get("/api/radars/r1/reports/latest").get_json()
        assert body["report"] is None

    def test_returns_newest(self, client):
        collection = store.reports_collection("r1")
        store.create_document(collection, {"summary": "first"})
        store.create_document(collection, {"summary": "second"})

        body = client.get("/api/radars/r1/reports/latest").get_json()

        assert body["report"]["summary"] == "second"


# ── LLM proxy ──────────────────────────────────────────────────────────────


class TestLLMRoute:
    def test_prompt_required(self, client):
        response = client.post("/api/llm", json={})
        assert response.status_code == 400
        assert response.get_json()["error"] == "Prompt is required"

    def test_returns_completion(self, client):
        llm = MagicMock()
        llm.complete.return_value = Completion(content="Hi!", model="m", usage={"input_tokens": 1, "output_tokens": 2})
        with patch("web.app._llm", return_value=llm):
            body = client.post("/api/llm", json={"prompt": "Hello", "model": "x"}).get_json()

        assert body == {"content": "Hi!", "model": "m", "usage": {"input_tokens": 1, "output_tokens": 2}}
        assert llm.complete.call_args.kwargs["model"] == "x"

    def test_upstream_failure(self, client):
        llm = MagicMock()
        llm.complete.side_effect = UpstreamError("LLM request failed: timeout")
        with patch("web.app._llm", return_value=llm):
            response = client.post("/api/llm", json={"prompt": "Hello"})

        assert response.status_code == 502


# ── Sharing ────────────────────────────────────────────────────────────────


SHARE_ITEM = {"title": "Acme moves to usage billing", "url": "https://acme.test/post", "source": "Acme Blog"}


class TestShareRoute:
    @pytest.mark.parametrize(
        "body",
        [
            {"itemIndex": 0, "item": SHARE_ITEM},
            {"reportId": "rep-1", "item": SHARE_ITEM},
            {"reportId": "rep-1", "itemIndex": 0},
        ],
    )
    def test_required_fields(self, client, body):
        response = client.post("/api/share", json=body)
        assert response.status_code == 400
        assert response.get_json()["error"] == "reportId, itemIndex, and item are required"

    def test_item_index_zero_is_valid(self, client):
        llm = MagicMock()
        llm.complete.return_value = Completion(content="Blip https://acme.test/post", model="m")
        with patch("web.app._llm", return_value=llm):
            response = client.post("/api/share", json={"reportId": "rep-1", "itemIndex": 0, "item": SHARE_ITEM})

        assert response.status_code == 200
        body = response.get_json()
        assert body["success"] is True
        assert body["text"] == "Blip https://acme.test/post"
        assert body["requestId"]

    def test_uses_voice_profile_and_logs_interaction(self, client):
        user_id = store.create_document("users", {"voiceProfile": {"toneHints": ["wry"], "samplePhrases": []}})
        llm = MagicMock()
        llm.complete.return_value = Completion(content="Blip", model="m")
        with patch("web.app._llm", return_value=llm):
            client.post(
                "/api/share",
                json={"reportId": "rep-1", "itemIndex": 2, "item": SHARE_ITEM, "userId": user_id, "radarId": "r1"},
            )

        assert "Tone hints: wry" in llm.complete.call_args.args[0]
        interaction = store.latest_document("interactions")
        assert interaction["type"] == "share"
        assert interaction["payload"] == {"reportId": "rep-1", "itemIndex": 2, "snippet": "Blip"}

    def test_no_interaction_without_radar(self, client):
        llm = MagicMock()
        llm.complete.return_value = Completion(content="Blip", model="m")
        with patch("web.app._llm", return_value=llm):
            client.post("/api/share", json={"reportId": "rep-1", "itemIndex": 1, "item": SHARE_ITEM, "userId": "u1"})

        assert store.latest_document("interactions") is None

    def test_llm_failure(self, client):
        llm = MagicMock()
        llm.complete.side_effect = UpstreamError("LLM request failed: timeout")
        with patch("web.app._llm", return_value=llm):
            response = client.post("/api/share", json={"reportId": "rep-1", "itemIndex": 0, "item": SHARE_ITEM})

        assert response.status_code == 502
        assert response.get_json()["requestId"]
