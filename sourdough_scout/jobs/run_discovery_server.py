"""HTTP entrypoint that triggers discovery runs (Cloud Run friendly)."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict

from flask import Flask, jsonify, request

from sourdough_scout.core.config import get_settings
from sourdough_scout.jobs.run_discovery import run_discovery_job

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & executor ----------
app = Flask(__name__)
_executor = ThreadPoolExecutor(max_workers=2)

# ---------- Routes ----------


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reads settings only, never touches the DB."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "worker_port_config": getattr(settings, "worker_port", None),
                "search_configured": bool(settings.outscraper_api_key),
                "social_configured": bool(settings.serpapi_api_key),
            }
        ),
        200,
    )


@app.post("/discover")
def enqueue_discovery() -> Any:
    """
    Enqueue a discovery run.
    Required JSON fields: city
    Optional: state (str), neighborhoods (list of str), persist (bool)
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}

    city = str(payload.get("city") or "").strip()
    if not city:
        return jsonify({"error": "missing fields: city"}), 400

    state = payload.get("state")
    state = str(state).strip() if state else None

    neighborhoods = payload.get("neighborhoods") or []
    if not isinstance(neighborhoods, list) or not all(isinstance(item, str) for item in neighborhoods):
        return jsonify({"error": "neighborhoods must be a list of strings"}), 400

    job_args = dict(
        city=city,
        state=state,
        neighborhoods=neighborhoods,
        persist=bool(payload.get("persist", True)),
    )

    logger.info("Queueing discovery job: %s", job_args)
    _executor.submit(_run_job_safe, job_args)

    return jsonify({"data": {"status": "queued"}}), 202


# ---------- Internals ----------


def _run_job_safe(job_args: Dict[str, Any]) -> None:
    try:
        run_discovery_job(**job_args)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Discovery job failed: %s", exc)


def main() -> None:
    port = int(os.getenv("PORT") or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
