# Overview: Achievement badge evaluation invoked through fire-and-forget hooks.

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import MemberBadge, QRScan, StoreOrder
from ..time_utils import utcnow


SELLER_TIERS = [
    (10, "bronze_seller"),
    (100, "silver_seller"),
    (500, "gold_seller"),
    (1000, "platinum_seller"),
]

SCANNER_TIERS = [
    (10, "super_scanner"),
    (50, "elite_scanner"),
]

LOCAL_BUSINESS_PRO_CENTS = 100_000


def ensure_member_badge(member_id: int, slug: str) -> bool:
    """Award a badge once. Returns True if newly awarded."""
    existing = db.session.query(MemberBadge).filter_by(member_id=member_id, slug=slug).first()
    if existing:
        return False
    db.session.add(MemberBadge(member_id=member_id, slug=slug, awarded_at=utcnow()))
    try:
        db.session.commit()
    except IntegrityError:
        # Awarded concurrently by another hook
        db.session.rollback()
        return False
    return True


def award_seller_tier_badges(seller_id: int) -> list[str]:
    """Called after an order becomes delivered."""
    delivered = db.session.query(func.count(StoreOrder.id)).filter(
        StoreOrder.seller_id == seller_id,
        StoreOrder.status == "delivered",
    ).scalar() or 0

    awarded = []
    for threshold, slug in SELLER_TIERS:
        if delivered >= threshold and ensure_member_badge(seller_id, slug):
            awarded.append(slug)
    return awarded


def award_local_business_pro_badge(buyer_id: int) -> bool:
    """Called after a purchase; lifetime spend on live orders >= $1000."""
    spent = db.session.query(func.coalesce(func.sum(StoreOrder.total_cents), 0)).filter(
        StoreOrder.buyer_id == buyer_id,
        StoreOrder.status.in_(["paid", "shipped", "delivered"]),
    ).scalar() or 0
    if spent >= LOCAL_BUSINESS_PRO_CENTS:
        return ensure_member_badge(buyer_id, "local_business_pro")
    return False


def award_scanner_badges(member_id: int) -> list[str]:
    """Called after a scan; counts distinct businesses scanned."""
    distinct_businesses = db.session.query(
        func.count(func.distinct(QRScan.business_id))
    ).filter(QRScan.member_id == member_id).scalar() or 0

    awarded = []
    for threshold, slug in SCANNER_TIERS:
        if distinct_businesses >= threshold and ensure_member_badge(member_id, slug):
            awarded.append(slug)
    return awarded


def get_member_badges(member_id: int) -> list[MemberBadge]:
    return db.session.query(MemberBadge).filter_by(member_id=member_id).order_by(MemberBadge.awarded_at).all()
