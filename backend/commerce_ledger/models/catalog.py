from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Business(db.Model):
    """Local business whose QR code members scan for points."""
    __tablename__ = "businesses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    categories = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    owner = db.relationship("Member", backref=db.backref("businesses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "member_id": self.member_id,
            "name": self.name,
            "categories": list(self.categories or []),
            "created_at": to_utc_z(self.created_at),
        }


class CategoryPointsConfig(db.Model):
    """
    Category -> points per scan.

    Maintained by admin tooling; read-only for the points economy.
    """
    __tablename__ = "category_points_configs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    category = db.Column(db.String(64), nullable=False, unique=True)
    points_per_scan = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "points_per_scan": self.points_per_scan,
        }


class StoreItem(db.Model):
    """
    Storefront listing.

    The ledger only increments/decrements quantity; everything else is
    owned by the catalog outside this subsystem.
    """
    __tablename__ = "store_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_store_items_quantity_nonnegative"),
        db.Index("ix_store_items_member_status", "member_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    listing_type = db.Column(db.String(16), nullable=False, default="new")  # new, resale
    status = db.Column(db.String(16), nullable=False, default="active")  # active, draft, archived

    accept_offers = db.Column(db.Boolean, nullable=False, default=False)
    min_offer_cents = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    seller = db.relationship("Member", backref=db.backref("store_items", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "member_id": self.member_id,
            "title": self.title,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "listing_type": self.listing_type,
            "status": self.status,
            "accept_offers": self.accept_offers,
            "min_offer_cents": self.min_offer_cents,
            "created_at": to_utc_z(self.created_at),
        }
