# Overview: Member lookups and plan checks shared by the ledger services.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Member, Subscription
from ..errors import AuthorizationError, NotFoundError


def get_member(member_id: int) -> Member:
    member = db.session.get(Member, member_id)
    if not member:
        raise NotFoundError(f"Member {member_id} not found")
    return member


def has_active_plan(member_id: int, *plans: str) -> bool:
    """True if the member holds an active subscription on any of the plans."""
    return db.session.query(Subscription.id).filter(
        Subscription.member_id == member_id,
        Subscription.plan.in_(plans),
        Subscription.status == "active",
    ).first() is not None


def is_top_tier(member_id: int) -> bool:
    return has_active_plan(member_id, current_app.config["TOP_TIER_PLAN"])


def require_seller_plan(member_id: int) -> None:
    if not has_active_plan(member_id, current_app.config["SELLER_PLAN"]):
        raise AuthorizationError("Seller plan required")


def set_payout_destination(member_id: int, account_id: str | None, verified: bool) -> Member:
    """Record the connected account payouts are sent to (operator / onboarding flow)."""
    member = get_member(member_id)
    member.payout_account_id = account_id or None
    member.payout_verified = bool(account_id) and verified
    db.session.commit()
    return member
