from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class StoreOrder(db.Model):
    """
    Purchase from a single seller.

    WHY: The order is the unit of fulfillment and of seller crediting.
    A checkout with items from several sellers produces one order per seller.

    LIFECYCLE:
    - paid -> shipped -> delivered
    - paid -> delivered (pickup / local delivery)
    - paid -> refunded (card orders, seller-executed)
    - paid -> canceled (cash orders)

    Immutable once refunded or canceled, except inventory_restored_at.
    """
    __tablename__ = "store_orders"
    __table_args__ = (
        db.CheckConstraint(
            "total_cents = subtotal_cents + shipping_cost_cents",
            name="ck_store_orders_total",
        ),
        db.Index("ix_store_orders_seller_status", "seller_id", "status"),
        db.Index("ix_store_orders_buyer_created", "buyer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=False, index=True)

    # All amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False)
    shipping_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="paid", index=True)

    # NULL => cash order
    payment_reference = db.Column(db.String(128), nullable=True, index=True)

    refund_requested_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refund_reason = db.Column(db.String(512), nullable=True)

    cancel_reason = db.Column(db.String(255), nullable=True)
    cancel_note = db.Column(db.String(512), nullable=True)

    delivery_confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    inventory_restored_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Set on orders that shipped in the same package as another order
    shipped_with_order_id = db.Column(db.Integer, db.ForeignKey("store_orders.id"), nullable=True)

    points_awarded = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    buyer = db.relationship("Member", foreign_keys=[buyer_id])
    seller = db.relationship("Member", foreign_keys=[seller_id])
    primary_order = db.relationship("StoreOrder", remote_side=[id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_cash_order(self) -> bool:
        return not self.payment_reference

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "subtotal_cents": self.subtotal_cents,
            "shipping_cost_cents": self.shipping_cost_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "is_cash_order": self.is_cash_order,
            "refund_requested_at": to_utc_z(self.refund_requested_at),
            "refund_reason": self.refund_reason,
            "cancel_reason": self.cancel_reason,
            "cancel_note": self.cancel_note,
            "delivery_confirmed_at": to_utc_z(self.delivery_confirmed_at),
            "inventory_restored_at": to_utc_z(self.inventory_restored_at),
            "shipped_with_order_id": self.shipped_with_order_id,
            "points_awarded": self.points_awarded,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Line item on an order; unit price is frozen at purchase time."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("store_orders.id"), nullable=False, index=True)
    store_item_id = db.Column(db.Integer, db.ForeignKey("store_items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    fulfillment_type = db.Column(db.String(16), nullable=True)  # ship, pickup, local_delivery

    order = db.relationship(
        "StoreOrder",
        backref=db.backref("items", lazy=True, order_by="OrderItem.id"),
    )
    store_item = db.relationship("StoreItem")

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "store_item_id": self.store_item_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "fulfillment_type": self.fulfillment_type,
        }
