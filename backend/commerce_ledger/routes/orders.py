# Overview: Flask API routes for orders; fulfillment, refund requests, refunds, cancel and relist.

# backend/commerce_ledger/routes/orders.py
"""
Order API Routes

DESIGN:
- Checkout intake and sale crediting are service-to-service (system token)
- Fulfillment, refund execution and relist are seller actions
- Refund requests are buyer actions; cash cancel is either party
- Every body is parsed into its request type before the service is called
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError, error_response
from ..services import order_service, refund_service, ledger_service
from ..decorators import require_auth, require_system
from ..validation import (
    CancelRequest,
    CheckoutRequest,
    OrderStatusUpdate,
    RefundRequestBody,
    ShipTogetherRequest,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _flag(name: str) -> bool:
    return request.args.get(name, "").lower() in ("1", "true", "yes")


# =============================================================================
# CHECKOUT INTAKE (system)
# =============================================================================

@orders_bp.post("/")
@require_system
def create_orders_route():
    """
    Record a completed checkout: one paid order per seller.

    Request body:
    {
        "buyer_id": 7,
        "payment_reference": "pi_123",   (omit for cash)
        "items": [{"store_item_id": 3, "quantity": 1, "fulfillment_type": "ship"}],
        "shipping_by_seller": {"4": 500}
    }

    Returns:
        201: {"orders": [...]}
    """
    try:
        checkout = CheckoutRequest.from_json(request.get_json(silent=True))
        orders = order_service.create_orders(checkout)
        return jsonify({"orders": [o.to_dict() for o in orders]}), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create orders")
        return jsonify({"error": "Failed to create orders"}), 500


@orders_bp.post("/<int:order_id>/credit-sale")
@require_system
def credit_sale_route(order_id: int):
    """Credit the seller for a card order. Idempotent."""
    try:
        txn = ledger_service.credit_sale(order_id)
        return jsonify({"transaction": txn.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to credit sale")
        return jsonify({"error": "Failed to credit sale"}), 500


# =============================================================================
# READS
# =============================================================================

@orders_bp.get("/")
@require_auth
def list_orders_route():
    """
    List orders.

    Query params:
        role: buyer (default) or seller
        needs_shipment: 1 for paid orders awaiting shipment (seller)
        canceled: 1 for canceled cash orders (seller)
    """
    try:
        role = request.args.get("role", "buyer")
        if role == "seller":
            orders = order_service.list_seller_orders(
                g.member_id,
                needs_shipment=_flag("needs_shipment"),
                canceled=_flag("canceled"),
            )
        elif role == "buyer":
            orders = order_service.list_buyer_orders(g.member_id)
        else:
            return jsonify({"error": "role must be buyer or seller"}), 400
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Failed to list orders"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order_for_party(order_id, g.member_id)
        return jsonify({"order": order.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Failed to get order"}), 500


# =============================================================================
# FULFILLMENT (seller)
# =============================================================================

@orders_bp.patch("/<int:order_id>")
@require_auth
def update_order_route(order_id: int):
    """
    Mark shipped / delivered, or confirm delivery.

    Request body:
    {"status": "shipped" | "delivered"} or {"delivery_confirmed": true}
    """
    try:
        update = OrderStatusUpdate.from_json(request.get_json(silent=True))
        order = order_service.update_order_status(order_id, g.member_id, update)
        return jsonify({"order": order.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Failed to update order"}), 500


@orders_bp.post("/ship-together")
@require_auth
def ship_together_route():
    """Request body: {"order_ids": [10, 11]}. The first id is the primary order."""
    try:
        body = ShipTogetherRequest.from_json(request.get_json(silent=True))
        orders = order_service.ship_orders_together(g.member_id, body.order_ids)
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to ship orders together")
        return jsonify({"error": "Failed to ship orders together"}), 500


# =============================================================================
# REFUNDS, CANCEL, RELIST
# =============================================================================

@orders_bp.post("/<int:order_id>/request-refund")
@require_auth
def request_refund_route(order_id: int):
    """
    Buyer asks for a refund.

    Request body:
    {"reason": "Order Arrived Damaged", "note": "Box was crushed"}
    {"reason": "Other", "other_reason": "...", "note": "..."}
    """
    try:
        body = RefundRequestBody.from_json(request.get_json(silent=True))
        order = order_service.request_refund(order_id, g.member_id, body)
        return jsonify({"order": order.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to request refund")
        return jsonify({"error": "Failed to request refund"}), 500


@orders_bp.post("/<int:order_id>/refund")
@require_auth
def refund_route(order_id: int):
    """
    Seller refunds a card order in full.

    Returns:
        200: refunded order
        402: insufficient available funds (shortfall_cents)
        502: gateway refused; nothing changed
        500: gateway refunded but ledger update failed (operation_id)
    """
    try:
        order = refund_service.refund_order(order_id, g.member_id)
        return jsonify({"order": order.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to refund order")
        return jsonify({"error": "Failed to refund order"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_route(order_id: int):
    """Cancel a cash order. Request body: {"reason": "...", "note": "..."} (optional)."""
    try:
        body = CancelRequest.from_json(request.get_json(silent=True))
        order = order_service.cancel_order(order_id, g.member_id, body)
        return jsonify({"order": order.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Failed to cancel order"}), 500


@orders_bp.post("/<int:order_id>/relist")
@require_auth
def relist_route(order_id: int):
    try:
        order = order_service.relist_order(order_id, g.member_id)
        return jsonify({"order": order.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to relist order")
        return jsonify({"error": "Failed to relist order"}), 500
