from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from flask import Flask, Response, jsonify, request, stream_with_context
from flask_cors import CORS
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import AppConfig, ConfigStore, load_config
from ..core.models import TelemetryEntry, utc_now
from ..core.processor import LogProcessor
from ..data.generator import TelemetryGenerator
from .events import EventBroadcaster


logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

ENDPOINTS = [
    {"path": "/health", "method": "GET", "description": "Health check endpoint"},
    {"path": "/api", "method": "GET", "description": "API documentation"},
    {"path": "/api/logs", "method": "POST", "description": "Submit CMCD logs for analysis"},
    {"path": "/api/config", "method": "GET", "description": "Get current anomaly detection configuration"},
    {"path": "/api/config", "method": "PUT", "description": "Update anomaly detection configuration"},
    {"path": "/api/test/generate", "method": "POST", "description": "Generate test data"},
    {"path": "/api/events", "method": "GET", "description": "Server-sent stream of anomalies and active sessions"},
]


class DetectionConfigUpdate(BaseModel):
    """Range checks applied to config updates before they reach the store."""

    model_config = ConfigDict(extra="forbid")

    bufferingThresholdMs: Optional[float] = Field(None, ge=0)
    qualityDegradationThreshold: Optional[float] = Field(None, ge=0, le=1)
    startupDelayThresholdMs: Optional[float] = Field(None, ge=0)
    bandwidthFluctuationThresholdPercent: Optional[float] = Field(None, ge=0, le=100)
    minSampleSize: Optional[int] = Field(None, ge=1)
    analysisWindowSizeMs: Optional[int] = Field(None, gt=0)


def parse_entries(body: Any) -> List[TelemetryEntry]:
    """Validate a request body holding one entry or a list of entries.

    Missing timestamps default to the current time. Raises ValueError or
    pydantic's ValidationError before any entry is accepted.
    """
    items = body if isinstance(body, list) else [body]
    entries: List[TelemetryEntry] = []
    for item in items:
        if not isinstance(item, dict):
            raise ValueError("each log entry must be a JSON object")
        if item.get("timestamp") is None:
            item = {**item, "timestamp": utc_now()}
        entries.append(TelemetryEntry.model_validate(item))
    return entries


def _error(message: str, details: Any, status: int) -> Response:
    resp = jsonify({"error": message, "details": details})
    resp.status_code = status
    return resp


def create_app(
    processor: LogProcessor,
    store: ConfigStore,
    broadcaster: EventBroadcaster,
    *,
    generator: Optional[TelemetryGenerator] = None,
    generator_count: int = 20,
    cors_origins: Sequence[str] = ("*",),
) -> Flask:
    app = Flask(__name__)
    CORS(app, origins=list(cors_origins))
    gen = generator or TelemetryGenerator()

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"})

    @app.route("/api", methods=["GET"])
    def api_docs():
        return jsonify({"version": API_VERSION, "endpoints": ENDPOINTS})

    @app.route("/api/logs", methods=["POST"])
    def submit_logs():
        body = request.get_json(silent=True)
        if body is None:
            return _error("Invalid log format", "request body must be JSON", 400)
        try:
            entries = parse_entries(body)
        except ValidationError as ve:
            return _error("Invalid log format", ve.errors(include_url=False, include_context=False), 400)
        except ValueError as exc:
            return _error("Invalid log format", str(exc), 400)

        for entry in entries:
            processor.submit(entry)
        logger.info("Processed %d log entries", len(entries))
        return jsonify({"status": "ok", "processed": len(entries)})

    @app.route("/api/config", methods=["GET"])
    def get_config():
        return jsonify(store.get().to_wire())

    @app.route("/api/config", methods=["PUT"])
    def update_config():
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            return _error("Invalid configuration", "request body must be a JSON object", 400)
        try:
            update = DetectionConfigUpdate.model_validate(body)
        except ValidationError as ve:
            return _error("Invalid configuration", ve.errors(include_url=False, include_context=False), 400)

        current = store.update(update.model_dump(exclude_none=True))
        return jsonify({"status": "ok", "message": "Configuration updated", "config": current.to_wire()})

    @app.route("/api/test/generate", methods=["POST"])
    def generate_test_data():
        body: Dict[str, Any] = request.get_json(silent=True) or {}
        if not isinstance(body, dict):
            return _error("Failed to generate test data", "request body must be a JSON object", 400)
        count = body.get("count") or generator_count
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            return _error("Failed to generate test data", "count must be a non-negative integer", 400)

        entries = gen.generate(count)
        for entry in entries:
            processor.submit(entry)
        logger.info("Generated %d test log entries", len(entries))
        return jsonify({
            "status": "ok",
            "generated": len(entries),
            "message": f"Generated {len(entries)} test log entries",
        })

    @app.route("/api/events", methods=["GET"])
    def events():
        q = broadcaster.subscribe()
        return Response(
            stream_with_context(broadcaster.stream(q)),
            mimetype="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    return app


def build_runtime(cfg: AppConfig) -> tuple[ConfigStore, EventBroadcaster, LogProcessor]:
    rt = cfg.runtime
    store = ConfigStore(rt.detection)
    broadcaster = EventBroadcaster(queue_size=rt.subscriber_queue_size)
    processor = LogProcessor(
        store,
        broadcaster,
        capacity=rt.buffer_capacity,
        interval_ms=rt.processing_interval_ms,
        simulation_batch_size=rt.simulation_batch_size,
        simulation_flush_ms=rt.simulation_flush_ms,
    )
    return store, broadcaster, processor


def serve(host: Optional[str] = None, port: Optional[int] = None, config: Optional[AppConfig] = None) -> None:
    cfg = config or load_config()
    store, broadcaster, processor = build_runtime(cfg)
    app = create_app(
        processor,
        store,
        broadcaster,
        generator_count=cfg.runtime.generator_count,
        cors_origins=cfg.env.CORS_ORIGINS,
    )
    processor.start()
    bind_host = host or cfg.env.HOST
    bind_port = cfg.env.PORT if port is None else port
    logger.info("Server running on port %d", bind_port)
    try:
        app.run(bind_host, bind_port, debug=False, threaded=True)
    finally:
        processor.stop()


if __name__ == "__main__":  # pragma: no cover
    serve()
