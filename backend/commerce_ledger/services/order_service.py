"""
Order & Fulfillment Service

WHY: An order is the unit of fulfillment and of seller crediting. This module
owns every status change that does not move money through the gateway
(refund execution lives in refund_service).

LIFECYCLE:
- paid -> shipped -> delivered
- paid -> delivered (pickup / local delivery)
- paid -> refunded (refund_service only)
- paid -> canceled (cash orders only)

Nothing leaves refunded or canceled. Inventory is restored by a refund or by
an explicit relist of a canceled cash order, never twice.
"""

from __future__ import annotations

from collections import OrderedDict

from flask import current_app

from ..extensions import db
from ..models import GatewayOperation, OrderItem, StoreItem, StoreOrder
from ..errors import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    OrderStateError,
    ValidationError,
)
from ..time_utils import utcnow
from ..validation import CancelRequest, CheckoutRequest, OrderStatusUpdate, RefundRequestBody
from . import badge_service
from .concurrency import lock_for_update, run_with_retry
from .hooks import dispatch
from .ledger_service import _credit_sale_locked
from .member_service import get_member, require_seller_plan
from .points_service import award_purchase_points
from .time_away_service import seller_items_hidden


# =============================================================================
# ORDER STATUS CONSTANTS
# =============================================================================

ORDER_STATUS_PAID = "paid"
ORDER_STATUS_SHIPPED = "shipped"
ORDER_STATUS_DELIVERED = "delivered"
ORDER_STATUS_REFUNDED = "refunded"
ORDER_STATUS_CANCELED = "canceled"

# Transitions reachable through update_order_status.
# refunded/canceled have dedicated operations.
ALLOWED_TRANSITIONS = {
    ORDER_STATUS_PAID: {ORDER_STATUS_SHIPPED, ORDER_STATUS_DELIVERED},
    ORDER_STATUS_SHIPPED: {ORDER_STATUS_DELIVERED},
}


def _load_order_locked(order_id: int) -> StoreOrder:
    order = lock_for_update(db.session.query(StoreOrder).filter_by(id=order_id)).first()
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def refund_in_flight(order_id: int) -> bool:
    """True while a refund journal row for the order is pending or awaiting reconciliation."""
    return db.session.query(GatewayOperation.id).filter(
        GatewayOperation.order_id == order_id,
        GatewayOperation.kind == "refund",
        GatewayOperation.status.in_(("pending", "needs_reconciliation")),
    ).first() is not None


def _reject_if_refunding(order: StoreOrder) -> None:
    if refund_in_flight(order.id):
        raise OrderStateError(
            "A refund for this order is in progress",
            current_status=order.status,
        )


def _restore_inventory(order: StoreOrder) -> None:
    """Put every line item quantity back on its store item. Caller owns the transaction."""
    for line in order.items:
        item = lock_for_update(db.session.query(StoreItem).filter_by(id=line.store_item_id)).first()
        if item:
            item.quantity += line.quantity
    order.inventory_restored_at = utcnow()


# =============================================================================
# CHECKOUT INTAKE
# =============================================================================

def create_orders(request: CheckoutRequest) -> list[StoreOrder]:
    """
    Turn a completed checkout into one paid order per seller.

    Card orders are credited to the seller and earn the buyer purchase
    points in the same transaction. Cash orders are settled off-platform
    and are never credited.
    """
    get_member(request.buyer_id)
    is_cash = request.payment_reference is None

    def _op():
        now = utcnow()
        items: dict[int, StoreItem] = {}
        by_seller: "OrderedDict[int, list]" = OrderedDict()

        for line in request.lines:
            item = items.get(line.store_item_id)
            if item is None:
                item = lock_for_update(
                    db.session.query(StoreItem).filter_by(id=line.store_item_id)
                ).first()
                if not item:
                    raise NotFoundError(f"Store item {line.store_item_id} not found")
                if item.status != "active":
                    raise InvalidStateError(f"{item.title} is not available")
                if item.member_id == request.buyer_id:
                    raise ValidationError("You cannot buy your own item")
                if seller_items_hidden(item.member_id, now):
                    raise InvalidStateError(f"{item.title} is unavailable while the seller is away")
                items[item.id] = item

            if item.quantity < line.quantity:
                raise InvalidStateError(
                    f"Insufficient stock for {item.title}",
                    available=item.quantity,
                    requested=line.quantity,
                )
            item.quantity -= line.quantity
            by_seller.setdefault(item.member_id, []).append((item, line))

        orders = []
        for seller_id, lines in by_seller.items():
            subtotal = sum(item.price_cents * line.quantity for item, line in lines)
            shipping = request.shipping_by_seller.get(seller_id, 0)
            order = StoreOrder(
                buyer_id=request.buyer_id,
                seller_id=seller_id,
                subtotal_cents=subtotal,
                shipping_cost_cents=shipping,
                total_cents=subtotal + shipping,
                status=ORDER_STATUS_PAID,
                payment_reference=request.payment_reference,
            )
            db.session.add(order)
            db.session.flush()

            for item, line in lines:
                db.session.add(OrderItem(
                    order_id=order.id,
                    store_item_id=item.id,
                    quantity=line.quantity,
                    unit_price_cents=item.price_cents,
                    fulfillment_type=line.fulfillment_type,
                ))
            db.session.flush()

            if not is_cash:
                _credit_sale_locked(order)
                order.points_awarded = award_purchase_points(request.buyer_id, order.total_cents)
            orders.append(order)

        db.session.commit()
        return orders

    orders = run_with_retry(_op)
    current_app.logger.info(
        "Checkout for buyer %s created orders %s", request.buyer_id, [o.id for o in orders]
    )
    if not is_cash:
        dispatch(badge_service.award_local_business_pro_badge, request.buyer_id)
    return orders


# =============================================================================
# READS
# =============================================================================

def get_order_for_party(order_id: int, actor_id: int) -> StoreOrder:
    order = db.session.get(StoreOrder, order_id)
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    if actor_id not in (order.buyer_id, order.seller_id):
        raise AuthorizationError("Not your order")
    return order


def list_buyer_orders(buyer_id: int) -> list[StoreOrder]:
    return db.session.query(StoreOrder).filter_by(buyer_id=buyer_id).order_by(
        StoreOrder.created_at.desc(), StoreOrder.id.desc()
    ).all()


def list_seller_orders(seller_id: int, *, needs_shipment: bool = False, canceled: bool = False) -> list[StoreOrder]:
    """
    Seller order views.

    needs_shipment: paid orders not already shipped inside another package.
    canceled: canceled cash orders (candidates for relist).
    """
    require_seller_plan(seller_id)
    query = db.session.query(StoreOrder).filter(StoreOrder.seller_id == seller_id)
    if needs_shipment:
        query = query.filter(
            StoreOrder.status == ORDER_STATUS_PAID,
            StoreOrder.shipped_with_order_id.is_(None),
        )
    elif canceled:
        query = query.filter(StoreOrder.status == ORDER_STATUS_CANCELED)
    return query.order_by(StoreOrder.created_at.desc(), StoreOrder.id.desc()).all()


# =============================================================================
# FULFILLMENT
# =============================================================================

def update_order_status(order_id: int, actor_id: int, update: OrderStatusUpdate) -> StoreOrder:
    """
    Seller marks an order shipped or delivered, or confirms delivery.

    The seller-tier badge hook is dispatched after the commit; its failure
    never affects the status change.
    """
    became_delivered = False

    def _op():
        nonlocal became_delivered
        became_delivered = False
        order = _load_order_locked(order_id)
        if order.seller_id != actor_id:
            raise AuthorizationError("Only the seller can update this order")
        _reject_if_refunding(order)

        now = utcnow()
        if update.status is not None:
            allowed = ALLOWED_TRANSITIONS.get(order.status, set())
            if update.status not in allowed:
                raise OrderStateError(
                    f"Cannot move order from {order.status} to {update.status}",
                    current_status=order.status,
                )
            order.status = update.status
            if update.status == ORDER_STATUS_DELIVERED:
                order.delivery_confirmed_at = now
                became_delivered = True
        elif update.delivery_confirmed:
            if order.status not in (ORDER_STATUS_SHIPPED, ORDER_STATUS_DELIVERED):
                raise OrderStateError(
                    "Delivery can only be confirmed on shipped or delivered orders",
                    current_status=order.status,
                )
            if order.delivery_confirmed_at is None:
                order.delivery_confirmed_at = now

        order.updated_at = now
        db.session.commit()
        return order

    order = run_with_retry(_op)
    if became_delivered:
        dispatch(badge_service.award_seller_tier_badges, order.seller_id)
    return order


def ship_orders_together(actor_id: int, order_ids: list[int]) -> list[StoreOrder]:
    """
    Mark several paid orders for the same buyer as shipped in one package.

    The first order is primary; the others point to it.
    """
    order_ids = list(dict.fromkeys(order_ids))
    if len(order_ids) < 2:
        raise ValidationError("Select at least two orders to ship together")

    def _op():
        orders = [_load_order_locked(order_id) for order_id in order_ids]
        if any(o.seller_id != actor_id for o in orders):
            raise AuthorizationError("Only the seller can ship these orders")
        if len({o.buyer_id for o in orders}) != 1:
            raise ValidationError("Orders must belong to the same buyer")
        not_paid = [o.id for o in orders if o.status != ORDER_STATUS_PAID]
        if not_paid:
            raise OrderStateError("Only paid orders can be shipped", order_ids=not_paid)
        refunding = [o.id for o in orders if refund_in_flight(o.id)]
        if refunding:
            raise OrderStateError("A refund is in progress for some of these orders", order_ids=refunding)

        now = utcnow()
        primary = orders[0]
        for order in orders:
            order.status = ORDER_STATUS_SHIPPED
            order.updated_at = now
            if order is not primary:
                order.shipped_with_order_id = primary.id
        db.session.commit()
        return orders

    return run_with_retry(_op)


# =============================================================================
# REFUND REQUEST / CANCEL / RELIST
# =============================================================================

def request_refund(order_id: int, actor_id: int, body: RefundRequestBody) -> StoreOrder:
    """Buyer asks the seller for a refund. Moves no money."""
    def _op():
        order = _load_order_locked(order_id)
        if order.buyer_id != actor_id:
            raise AuthorizationError("Only the buyer can request a refund")
        if order.is_cash_order:
            raise OrderStateError("Cash orders cannot be refunded; cancel the order instead")
        if order.status != ORDER_STATUS_PAID:
            raise OrderStateError(
                f"Refunds can only be requested on paid orders (order is {order.status})",
                current_status=order.status,
            )
        if order.refund_requested_at is not None:
            raise OrderStateError("Refund already requested")

        now = utcnow()
        order.refund_requested_at = now
        order.refund_reason = body.combined()
        order.updated_at = now
        db.session.commit()
        return order

    return run_with_retry(_op)


def cancel_order(order_id: int, actor_id: int, body: CancelRequest) -> StoreOrder:
    """Cancel a paid cash order. Inventory stays sold until the seller relists."""
    def _op():
        order = _load_order_locked(order_id)
        if actor_id not in (order.buyer_id, order.seller_id):
            raise AuthorizationError("Not your order")
        if not order.is_cash_order:
            raise OrderStateError("Card orders must be refunded, not canceled")
        if order.status != ORDER_STATUS_PAID:
            raise OrderStateError(
                f"Only paid orders can be canceled (order is {order.status})",
                current_status=order.status,
            )

        order.status = ORDER_STATUS_CANCELED
        order.cancel_reason = body.reason
        order.cancel_note = body.note
        order.updated_at = utcnow()
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Order %s canceled by member %s", order.id, actor_id)
    return order


def relist_order(order_id: int, actor_id: int) -> StoreOrder:
    """Seller restores inventory from a canceled cash order, once."""
    def _op():
        order = _load_order_locked(order_id)
        if order.seller_id != actor_id:
            raise AuthorizationError("Only the seller can relist items")
        if order.status != ORDER_STATUS_CANCELED or not order.is_cash_order:
            raise OrderStateError("Only canceled cash orders can be relisted", current_status=order.status)
        if order.inventory_restored_at is not None:
            raise OrderStateError("Items from this order were already relisted")

        _restore_inventory(order)
        order.updated_at = utcnow()
        db.session.commit()
        return order

    return run_with_retry(_op)
