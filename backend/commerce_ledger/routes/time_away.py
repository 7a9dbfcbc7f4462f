# Overview: Flask API routes for the seller time-away window.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError, error_response
from ..services import time_away_service
from ..decorators import require_auth
from ..validation import TimeAwayRequest


time_away_bp = Blueprint("time_away", __name__, url_prefix="/api/seller-hub")


@time_away_bp.get("/time-away")
@require_auth
def get_time_away_route():
    try:
        time_away = time_away_service.get_time_away(g.member_id)
        if not time_away:
            return jsonify({"time_away": None}), 200
        return jsonify({"time_away": time_away_service.describe_time_away(time_away)}), 200
    except Exception:
        current_app.logger.exception("Failed to load time away")
        return jsonify({"error": "Failed to load time away"}), 500


@time_away_bp.post("/time-away")
@require_auth
def set_time_away_route():
    """Request body: {"start_at": "2026-07-01T00:00:00Z", "end_at": "2026-07-30T00:00:00Z"}."""
    try:
        body = TimeAwayRequest.from_json(request.get_json(silent=True))
        time_away = time_away_service.set_time_away(g.member_id, body.start_at, body.end_at)
        return jsonify({"time_away": time_away_service.describe_time_away(time_away)}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to save time away")
        return jsonify({"error": "Failed to save time away"}), 500


@time_away_bp.delete("/time-away")
@require_auth
def clear_time_away_route():
    try:
        cleared = time_away_service.clear_time_away(g.member_id)
        return jsonify({"cleared": cleared}), 200
    except Exception:
        current_app.logger.exception("Failed to clear time away")
        return jsonify({"error": "Failed to clear time away"}), 500
