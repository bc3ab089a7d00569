"""
Flask web server for Industry Radar.

Routes
──────
POST   /api/radars                          Create/update a radar and generate its plan
GET    /api/radars/<id>                     Fetch a radar
PATCH  /api/radars/<id>                     Refine a radar's plan with free-text notes
POST   /api/radars/<id>/run                 Generate a sectioned (v1) report
POST   /api/radars/<id>/run/v2              Generate a scored (v2) report
GET    /api/radars/<id>/reports/latest      Most recent report, or null
POST   /api/llm                             Raw completion: {prompt, systemPrompt?, model?}
POST   /api/share                           Share blip for a report item in the user's voice

Every response carries an ``X-Request-ID`` header; error bodies are
``{"error": ..., "requestId": ...}``.
"""

from __future__ import annotations

import logging
import os
import sys
import time
import uuid

from dotenv import load_dotenv
from flask import Flask, g, has_request_context, jsonify, request
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

# Allow running as `python web/app.py` from the project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

load_dotenv()

from config.settings import Settings
from radar import store
from radar.errors import InvalidRequestError, NotFoundError, RadarError
from radar.llm import DEFAULT_SYSTEM_PROMPT, LLMClient
from radar.models import Radar, RadarProfile, ShareItem
from radar.pipeline import ReportPipeline
from radar.planner import generate_plan
from radar.search import SearchClient
from radar.share import load_voice_profile, record_share, write_share_snippet


class RequestIdFilter(logging.Filter):
    """Stamp every log record with the current request's correlation id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = g.get("request_id", "-") if has_request_context() else "-"
        return True


_handler = logging.StreamHandler()
_handler.addFilter(RequestIdFilter())
_handler.setFormatter(
    logging.Formatter("%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s")
)
logging.basicConfig(level=logging.INFO, handlers=[_handler])
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Initialise the document store on startup
store.init_db()


# ── Wiring ─────────────────────────────────────────────────────────────────


def _llm() -> LLMClient:
    return LLMClient(Settings())


def _pipeline() -> ReportPipeline:
    settings = Settings()
    return ReportPipeline(settings, SearchClient(settings), LLMClient(settings))


def _json_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _ok(**payload):
    return jsonify({**payload, "requestId": g.request_id})


# ── Request lifecycle ──────────────────────────────────────────────────────


@app.before_request
def _start_request():
    g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    g.started = time.monotonic()


@app.after_request
def _finish_request(response):
    response.headers["X-Request-ID"] = g.get("request_id", "")
    logger.info(
        "%s %s -> %d (%.0f ms)",
        request.method, request.path, response.status_code,
        (time.monotonic() - g.get("started", time.monotonic())) * 1000,
    )
    return response


# ── Errors ─────────────────────────────────────────────────────────────────


def _error(message: str, status: int):
    return jsonify({"error": message, "requestId": g.get("request_id")}), status


@app.errorhandler(RadarError)
def handle_radar_error(exc: RadarError):
    logger.warning("%s: %s", type(exc).__name__, exc)
    return _error(str(exc), exc.status_code)


@app.errorhandler(ValidationError)
def handle_validation_error(exc: ValidationError):
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    logger.warning("Invalid request body: %s", exc)
    return _error(f"Invalid {location or 'request'}: {first.get('msg', 'invalid value')}", 400)


@app.errorhandler(Exception)
def handle_unexpected_error(exc: Exception):
    if isinstance(exc, HTTPException):
        return exc
    logger.exception("Unhandled error")
    return _error(str(exc) or "Internal server error", 500)


# ── Radars ─────────────────────────────────────────────────────────────────


def _load_radar(radar_id: str) -> dict:
    document = store.get_document("radars", radar_id)
    if document is None:
        raise NotFoundError("Radar not found")
    return document


@app.route("/api/radars", methods=["POST"])
def create_radar():
    """Create a radar if needed, then generate and store its plan.

    Body: ``{"profile": {...}, "radarId"?: str, "ownerId"?: str, "title"?: str}``.
    ``ownerId`` is required when no radar with ``radarId`` exists.
    """
    body = _json_body()
    if not body.get("profile"):
        raise InvalidRequestError("profile is required")
    profile = RadarProfile.model_validate(body["profile"])

    radar_id = body.get("radarId")
    existing = store.get_document("radars", radar_id) if radar_id else None
    if existing is None:
        owner_id = body.get("ownerId")
        if not owner_id:
            raise InvalidRequestError("ownerId is required to create a radar")
        radar = Radar(
            owner_id=owner_id,
            title=body.get("title") or f"{profile.industry} - {profile.role}",
            profile=profile,
            query_plan="",
            settings={"defaultFreshRun": False, "maxResultsPerQuery": 10},
        )
        radar_id = store.create_document(
            "radars", radar.model_dump(by_alias=True, exclude={"id"})
        )

    diagram, plan = generate_plan(profile, _llm())
    store.update_document(
        "radars",
        radar_id,
        {
            "profile": profile.model_dump(by_alias=True),
            "mermaidDiagram": diagram,
            "queryPlan": plan.model_dump_json(by_alias=True),
        },
    )

    return _ok(
        success=True,
        radarId=radar_id,
        mermaidDiagram=diagram,
        queryPlan=plan.model_dump(by_alias=True),
    )


@app.route("/api/radars/<radar_id>")
def get_radar(radar_id: str):
    return _ok(success=True, radar=_load_radar(radar_id))


@app.route("/api/radars/<radar_id>", methods=["PATCH"])
def refine_radar(radar_id: str):
    """Regenerate a radar's plan with refinement notes appended to the prompt.

    Body: ``{"refinementMessage": str, "profile"?: {...}}``.
    """
    body = _json_body()
    refinement = body.get("refinementMessage")
    if not refinement:
        raise InvalidRequestError("refinementMessage is required")

    current = _load_radar(radar_id)
    profile = RadarProfile.model_validate(body.get("profile") or current.get("profile"))

    diagram, plan = generate_plan(profile, _llm(), refinement=refinement)
    update = {
        "mermaidDiagram": diagram,
        "queryPlan": plan.model_dump_json(by_alias=True),
    }
    if body.get("profile"):
        update["profile"] = profile.model_dump(by_alias=True)
    store.update_document("radars", radar_id, update)

    return _ok(
        success=True,
        radarId=radar_id,
        mermaidDiagram=diagram,
        queryPlan=plan.model_dump(by_alias=True),
        previousMermaidDiagram=current.get("mermaidDiagram", ""),
    )


# ── Reports ────────────────────────────────────────────────────────────────


@app.route("/api/radars/<radar_id>/run", methods=["POST"])
def run_report(radar_id: str):
    """Generate a sectioned report. Body: ``{"freshRun"?: bool}``."""
    fresh_run = bool(_json_body().get("freshRun", False))
    logger.info("Report v1 requested radar=%s fresh_run=%s", radar_id, fresh_run)
    result = _pipeline().run_v1(radar_id)
    return _ok(success=True, reportId=result.report_id, report=result.report)


@app.route("/api/radars/<radar_id>/run/v2", methods=["POST"])
def run_report_v2(radar_id: str):
    logger.info("Report v2 requested radar=%s", radar_id)
    result = _pipeline().run_v2(radar_id)
    return _ok(success=True, reportId=result.report_id, report=result.report)


@app.route("/api/radars/<radar_id>/reports/latest")
def latest_report(radar_id: str):
    report = store.latest_document(store.reports_collection(radar_id))
    return _ok(success=True, report=report)


# ── LLM proxy ──────────────────────────────────────────────────────────────


@app.route("/api/llm", methods=["POST"])
def llm_completion():
    """Run one completion. Body: ``{"prompt": str, "systemPrompt"?: str, "model"?: str}``."""
    body = _json_body()
    prompt = body.get("prompt")
    if not prompt:
        raise InvalidRequestError("Prompt is required")

    completion = _llm().complete(
        prompt,
        body.get("systemPrompt") or DEFAULT_SYSTEM_PROMPT,
        model=body.get("model"),
    )
    return jsonify(
        {"content": completion.content, "model": completion.model, "usage": completion.usage}
    )


# ── Sharing ────────────────────────────────────────────────────────────────


@app.route("/api/share", methods=["POST"])
def share_item():
    """Write a share blip for one report item in the user's voice.

    Body: ``{"reportId": str, "itemIndex": int, "item": {...}, "radarId"?: str, "userId"?: str}``.
    The share is logged to ``interactions`` when both ``userId`` and ``radarId`` are given.
    """
    body = _json_body()
    report_id = body.get("reportId")
    item_index = body.get("itemIndex")
    if not report_id or item_index is None or not body.get("item"):
        raise InvalidRequestError("reportId, itemIndex, and item are required")

    item = ShareItem.model_validate(body["item"])
    user_id = body.get("userId")
    radar_id = body.get("radarId")

    snippet = write_share_snippet(item, load_voice_profile(user_id), _llm())
    if user_id and radar_id:
        record_share(user_id, radar_id, report_id, item_index, snippet)

    return _ok(success=True, text=snippet)


# ── Entry point ────────────────────────────────────────────────────────────

if __name__ == "__main__":
    settings = Settings()
    settings.validate()
    app.run(debug=settings.debug, host="0.0.0.0", port=settings.port)
