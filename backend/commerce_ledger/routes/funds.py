# Overview: Flask API routes for seller funds; balance summary and payouts.

from flask import Blueprint, jsonify, g, current_app

from ..errors import LedgerError, error_response
from ..services import ledger_service, refund_service
from ..services.member_service import require_seller_plan
from ..decorators import require_auth


funds_bp = Blueprint("seller_funds", __name__, url_prefix="/api/seller-funds")


@funds_bp.get("/")
@require_auth
def funds_summary_route():
    """Balance, lifetime figures, available funds and the last 50 ledger entries."""
    try:
        require_seller_plan(g.member_id)
        summary = ledger_service.get_funds_summary(g.member_id)
        return jsonify(summary), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load seller funds")
        return jsonify({"error": "Failed to load seller funds"}), 500


@funds_bp.post("/payout")
@require_auth
def payout_route():
    """
    Pay out the full available balance.

    Returns:
        200: {"amount_cents", "transfer_reference", "operation"}
        400: no verified payout destination
        402: available below the minimum payout (shortfall_cents)
        502: gateway refused; reservation released
    """
    try:
        result = refund_service.request_payout(g.member_id)
        return jsonify({
            "amount_cents": result["amount_cents"],
            "transfer_reference": result["transfer_reference"],
            "operation": result["operation"].to_dict(),
        }), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to send payout")
        return jsonify({"error": "Failed to send payout"}), 500
