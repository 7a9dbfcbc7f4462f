from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ResaleOffer(db.Model):
    """
    Buyer price offer on a resale listing.

    LIFECYCLE:
    - pending -> accepted | declined | countered   (seller, once)
    - countered -> accepted | declined             (buyer, once)

    counter_amount_cents is set iff status == countered (or the offer
    passed through countered before the buyer answered).
    """
    __tablename__ = "resale_offers"
    __table_args__ = (
        db.Index("ix_resale_offers_item_buyer_status", "store_item_id", "buyer_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_item_id = db.Column(db.Integer, db.ForeignKey("store_items.id"), nullable=False, index=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    message = db.Column(db.String(2000), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    seller_response = db.Column(db.String(1000), nullable=True)
    counter_amount_cents = db.Column(db.Integer, nullable=True)
    responded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store_item = db.relationship("StoreItem", backref=db.backref("offers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def seller_id(self) -> int | None:
        return self.store_item.member_id if self.store_item else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_item_id": self.store_item_id,
            "seller_id": self.seller_id,
            "buyer_id": self.buyer_id,
            "amount_cents": self.amount_cents,
            "message": self.message,
            "status": self.status,
            "seller_response": self.seller_response,
            "counter_amount_cents": self.counter_amount_cents,
            "responded_at": to_utc_z(self.responded_at),
            "created_at": to_utc_z(self.created_at),
        }


class SellerTimeAway(db.Model):
    """
    Seller absence window. One row per seller.

    Derived fields (allow-sales-through, active, items hidden) are computed
    on read by time_away_service, never stored.
    """
    __tablename__ = "seller_time_away"
    __table_args__ = (
        db.UniqueConstraint("member_id", name="uq_seller_time_away_member"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=False, index=True)
    start_at = db.Column(db.DateTime(timezone=True), nullable=False)
    end_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
