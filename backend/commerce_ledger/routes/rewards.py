# Overview: Flask API routes for the points economy; scans, rewards and redemption.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError, error_response
from ..services import points_service
from ..decorators import require_auth
from ..validation import RewardCreateRequest, ScanRequest


rewards_bp = Blueprint("rewards", __name__, url_prefix="/api/rewards")


@rewards_bp.get("/")
def list_rewards_route():
    """Active rewards that still have redemptions left."""
    try:
        rewards = points_service.list_available_rewards()
        return jsonify({"rewards": [r.to_dict() for r in rewards]}), 200
    except Exception:
        current_app.logger.exception("Failed to list rewards")
        return jsonify({"error": "Failed to list rewards"}), 500


@rewards_bp.post("/")
@require_auth
def create_reward_route():
    """
    Business owner (sponsor or seller plan) publishes a reward.

    Request body:
    {"business_id": 1, "title": "Free coffee", "points_required": 100, "redemption_limit": 50}
    """
    try:
        body = RewardCreateRequest.from_json(request.get_json(silent=True))
        reward = points_service.create_reward(g.member_id, body)
        return jsonify({"reward": reward.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create reward")
        return jsonify({"error": "Failed to create reward"}), 500


@rewards_bp.get("/points")
@require_auth
def points_summary_route():
    try:
        return jsonify(points_service.get_points_summary(g.member_id)), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load points")
        return jsonify({"error": "Failed to load points"}), 500


@rewards_bp.post("/scan")
@require_auth
def scan_route():
    """
    Scan a business QR code.

    Returns:
        200: {"points_awarded", "total_points"}
        429: already scanned this business today
    """
    try:
        body = ScanRequest.from_json(request.get_json(silent=True))
        result = points_service.scan_business(g.member_id, body.business_id)
        return jsonify({
            "points_awarded": result["points_awarded"],
            "total_points": result["total_points"],
        }), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record scan")
        return jsonify({"error": "Failed to record scan"}), 500


@rewards_bp.post("/<int:reward_id>/redeem")
@require_auth
def redeem_route(reward_id: int):
    try:
        result = points_service.redeem_reward(g.member_id, reward_id)
        return jsonify({
            "redemption": result["redemption"].to_dict(),
            "remaining_points": result["remaining_points"],
            "reward": result["reward"].to_dict(),
        }), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to redeem reward")
        return jsonify({"error": "Failed to redeem reward"}), 500
