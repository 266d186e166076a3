"""State server routes: the store side of StateSync, plus the session media."""

from pathlib import Path

import structlog
from flask import Blueprint, current_app, jsonify, request, send_file

from syncforge.models import TimelineState
from syncforge.statesync import VERSION_KEY, StaleStateError, TransportError, parse_version

logger = structlog.get_logger(__name__)

bp = Blueprint("web", __name__)

MEDIA_TRACKS = ("video", "audio")


def _transport():
    return current_app.config["TRANSPORT"]


@bp.route("/")
def index():
    return jsonify({"service": "syncforge", "status": "ok"})


@bp.route("/api/state", methods=["GET"])
def get_state():
    try:
        record = _transport().pull()
    except TransportError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(record)


@bp.route("/api/state", methods=["PUT"])
def put_state():
    record = request.get_json(silent=True)
    if not isinstance(record, dict):
        return jsonify({"error": "Expected a JSON object"}), 400

    fields = {k: v for k, v in record.items() if k != VERSION_KEY}
    try:
        version = parse_version(record)
        TimelineState.from_record(fields)
    except (ValueError, TypeError) as e:
        return jsonify({"error": str(e)}), 400

    try:
        _transport().push(record)
    except StaleStateError as e:
        return jsonify({"error": str(e), "pushed": e.pushed, "stored": e.stored}), 409

    logger.debug("State stored", version=version)
    return jsonify({"version": version})


@bp.route("/api/media/<track>")
def media(track: str):
    if track not in MEDIA_TRACKS:
        return jsonify({"error": f"Unknown track '{track}'"}), 404

    try:
        record = _transport().pull()
    except TransportError as e:
        return jsonify({"error": str(e)}), 404

    value = record.get(f"{track}_path")
    if not isinstance(value, str):
        return jsonify({"error": f"No {track} path in the stored state"}), 404
    path = Path(value)
    if not path.exists():
        return jsonify({"error": f"Media file not found: {path}"}), 404
    return send_file(path, conditional=True)
