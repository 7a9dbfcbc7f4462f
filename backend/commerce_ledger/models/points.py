from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class QRScan(db.Model):
    """
    One business QR scan by a member.

    Unique per (member, business, UTC day): the constraint is what stops two
    concurrent scans from both awarding points.
    """
    __tablename__ = "qr_scans"
    __table_args__ = (
        db.UniqueConstraint("member_id", "business_id", "scan_day", name="uq_qr_scans_member_business_day"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=False, index=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    points_awarded = db.Column(db.Integer, nullable=False)
    scanned_at = db.Column(db.DateTime(timezone=True), nullable=False)
    scan_day = db.Column(db.Date, nullable=False)

    business = db.relationship("Business")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "member_id": self.member_id,
            "business_id": self.business_id,
            "points_awarded": self.points_awarded,
            "scanned_at": to_utc_z(self.scanned_at),
            "scan_day": self.scan_day.isoformat() if self.scan_day else None,
        }


class Reward(db.Model):
    """
    Redeemable reward published by a business.

    INVARIANT: times_redeemed <= redemption_limit. Once equal, status is
    redeemed_out and the reward disappears from listings.
    """
    __tablename__ = "rewards"
    __table_args__ = (
        db.CheckConstraint("times_redeemed <= redemption_limit", name="ck_rewards_redemption_limit"),
        db.Index("ix_rewards_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    points_required = db.Column(db.Integer, nullable=False)
    redemption_limit = db.Column(db.Integer, nullable=False)
    times_redeemed = db.Column(db.Integer, nullable=False, default=0)
    cash_value_cents = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="active")  # active, redeemed_out

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    business = db.relationship("Business", backref=db.backref("rewards", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "business_name": self.business.name if self.business else None,
            "title": self.title,
            "description": self.description,
            "points_required": self.points_required,
            "redemption_limit": self.redemption_limit,
            "times_redeemed": self.times_redeemed,
            "cash_value_cents": self.cash_value_cents,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class RewardRedemption(db.Model):
    """Append-only record of a reward redemption."""
    __tablename__ = "reward_redemptions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=False, index=True)
    reward_id = db.Column(db.Integer, db.ForeignKey("rewards.id"), nullable=False, index=True)
    points_spent = db.Column(db.Integer, nullable=False)
    redeemed_at = db.Column(db.DateTime(timezone=True), nullable=False)

    reward = db.relationship("Reward")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "member_id": self.member_id,
            "reward_id": self.reward_id,
            "points_spent": self.points_spent,
            "redeemed_at": to_utc_z(self.redeemed_at),
        }
