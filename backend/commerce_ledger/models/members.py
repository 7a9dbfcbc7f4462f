from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Member(db.Model):
    """
    Platform member (buyer, seller, business owner).

    WHY: Holds the point counter and the payout destination. Identity,
    profile and login live outside this subsystem; only the fields the
    ledger reads or mutates are modeled here.

    INVARIANT: points >= 0 (enforced by CHECK constraint and by the
    redemption precondition).
    """
    __tablename__ = "members"
    __table_args__ = (
        db.CheckConstraint("points >= 0", name="ck_members_points_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    display_name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=True, unique=True)

    points = db.Column(db.Integer, nullable=False, default=0)

    # External connected-account id used as the payout destination
    payout_account_id = db.Column(db.String(128), nullable=True)
    payout_verified = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Member id={self.id} name={self.display_name!r}>"

    @property
    def has_payout_destination(self) -> bool:
        return bool(self.payout_account_id) and bool(self.payout_verified)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "email": self.email,
            "points": self.points,
            "has_payout_destination": self.has_payout_destination,
            "created_at": to_utc_z(self.created_at),
        }


class Subscription(db.Model):
    """
    Member plan subscription.

    PLANS:
    - subscribe: top-tier member plan (doubles scan points)
    - seller: required for refunds, payouts and time away
    - sponsor: may publish rewards for owned businesses
    """
    __tablename__ = "subscriptions"
    __table_args__ = (
        db.Index("ix_subscriptions_member_plan_status", "member_id", "plan", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=False, index=True)
    plan = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="active")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    member = db.relationship("Member", backref=db.backref("subscriptions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "member_id": self.member_id,
            "plan": self.plan,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class MemberBadge(db.Model):
    """Achievement badge held by a member. One row per (member, slug)."""
    __tablename__ = "member_badges"
    __table_args__ = (
        db.UniqueConstraint("member_id", "slug", name="uq_member_badges_member_slug"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=False, index=True)
    slug = db.Column(db.String(64), nullable=False)
    awarded_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "member_id": self.member_id,
            "slug": self.slug,
            "awarded_at": to_utc_z(self.awarded_at),
        }
