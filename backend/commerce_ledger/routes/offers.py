# Overview: Flask API routes for resale offers; create, respond and list.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError, error_response
from ..services import offer_service
from ..decorators import require_auth
from ..validation import OfferCreateRequest


offers_bp = Blueprint("resale_offers", __name__, url_prefix="/api/resale-offers")


@offers_bp.get("/")
@require_auth
def list_offers_route():
    """Query params: role=buyer|seller (default buyer), status (optional)."""
    try:
        offers = offer_service.list_offers(
            g.member_id,
            role=request.args.get("role", "buyer"),
            status=request.args.get("status") or None,
        )
        return jsonify({"offers": [o.to_dict() for o in offers]}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list offers")
        return jsonify({"error": "Failed to list offers"}), 500


@offers_bp.post("/")
@require_auth
def create_offer_route():
    """Request body: {"store_item_id": 3, "amount_cents": 5000, "message": "..."}."""
    try:
        body = OfferCreateRequest.from_json(request.get_json(silent=True))
        offer = offer_service.create_offer(g.member_id, body)
        return jsonify({"offer": offer.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create offer")
        return jsonify({"error": "Failed to create offer"}), 500


@offers_bp.patch("/<int:offer_id>")
@require_auth
def respond_offer_route(offer_id: int):
    """
    Seller: {"status": "accepted" | "declined" | "countered", "counter_amount_cents": 7000, "seller_response": "..."}
    Buyer (on a counter): {"status": "accepted" | "declined"}
    """
    try:
        offer = offer_service.respond_to_offer(offer_id, g.member_id, request.get_json(silent=True))
        return jsonify({"offer": offer.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to respond to offer")
        return jsonify({"error": "Failed to respond to offer"}), 500
