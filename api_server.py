from __future__ import annotations

import logging
from datetime import datetime

from flask import Flask, Response, request

from statusbrief.brief_text import render_with_active_template
from statusbrief.config import Settings
from statusbrief.pipeline import build_brief_for_settings, clear_last_good, load_last_good
from statusbrief.storage import get_runtime_updated_at


app = Flask(__name__)
settings = Settings.from_env()
settings.ensure_state_paths()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(levelname)s - %(message)s",
)


def _parse_now_arg(raw: str | None) -> datetime | None:
    text = str(raw or "").strip()
    if not text:
        return None
    return datetime.fromisoformat(text.replace("Z", "+00:00"))


@app.get("/health")
def health() -> tuple[dict, int]:
    return {"status": "ok"}, 200


@app.get("/brief.json")
def brief_get() -> tuple[dict, int]:
    raw = request.args.get(settings.data_param_name)
    try:
        now = _parse_now_arg(request.args.get("now"))
    except ValueError:
        return {"status": "error", "error": "now must be an ISO datetime."}, 400
    result = build_brief_for_settings(settings, raw, now=now)
    return result.to_payload(), 200


@app.get("/brief.txt")
def brief_text_get() -> Response | tuple[dict, int]:
    raw = request.args.get(settings.data_param_name)
    try:
        now = _parse_now_arg(request.args.get("now"))
    except ValueError:
        return {"status": "error", "error": "now must be an ISO datetime."}, 400
    result = build_brief_for_settings(settings, raw, now=now)
    rendered = render_with_active_template(settings, result.brief)
    if not rendered["ok"]:
        return {"status": "error", "error": rendered["error"]}, 500
    return Response(rendered["text"] + "\n", status=200, mimetype="text/plain")


@app.get("/brief/last-good")
def last_good_get() -> tuple[dict, int]:
    if not settings.enable_last_good_cache:
        return {"status": "error", "error": "Last-good cache is disabled."}, 404
    document = load_last_good(settings.runtime_db_file, settings.cache_key)
    if document is None:
        return {"status": "error", "error": "No last-good brief document stored."}, 404
    updated_at = get_runtime_updated_at(settings.runtime_db_file, settings.cache_key)
    return {
        "status": "ok",
        "document": document,
        "updated_at_utc": updated_at.isoformat() if updated_at else None,
    }, 200


@app.delete("/brief/last-good")
def last_good_delete() -> tuple[dict, int]:
    if not settings.enable_last_good_cache:
        return {"status": "error", "error": "Last-good cache is disabled."}, 404
    clear_last_good(settings.runtime_db_file, settings.cache_key)
    return {"status": "ok"}, 200


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=settings.api_port)
