# Overview: Seller time-away window; derived visibility computed on read.

"""
Seller Time Away

WHY: Sellers may step away without delisting everything. Items stay
sellable for at most MAX_ALLOW_SALES_DAYS after the window starts, so a
seller cannot hide inventory indefinitely while still claiming availability.

DERIVED (never stored):
- allow_sales_through = min(start + MAX_ALLOW_SALES_DAYS, end)
- is_active = start <= now <= end
- items_hidden = allow_sales_through < now <= end
"""

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import SellerTimeAway
from ..errors import ValidationError
from ..time_utils import utcnow, to_utc_z
from .member_service import require_seller_plan


def allow_sales_through(start_at: datetime, end_at: datetime) -> datetime:
    cap = start_at + timedelta(days=current_app.config["MAX_ALLOW_SALES_DAYS"])
    return cap if cap <= end_at else end_at


def describe_time_away(time_away: SellerTimeAway, now: datetime | None = None) -> dict:
    now = now or utcnow()
    through = allow_sales_through(time_away.start_at, time_away.end_at)
    return {
        "id": time_away.id,
        "start_at": to_utc_z(time_away.start_at),
        "end_at": to_utc_z(time_away.end_at),
        "allow_sales_through": to_utc_z(through),
        "is_active": time_away.start_at <= now <= time_away.end_at,
        "items_hidden": through < now <= time_away.end_at,
    }


def get_time_away(member_id: int) -> SellerTimeAway | None:
    return db.session.query(SellerTimeAway).filter_by(member_id=member_id).first()


def set_time_away(member_id: int, start_at: datetime, end_at: datetime) -> SellerTimeAway:
    """Create or replace the seller's time-away window."""
    require_seller_plan(member_id)
    if end_at <= start_at:
        raise ValidationError("Start and end dates required; end must be after start.")

    time_away = get_time_away(member_id)
    if time_away:
        time_away.start_at = start_at
        time_away.end_at = end_at
    else:
        time_away = SellerTimeAway(member_id=member_id, start_at=start_at, end_at=end_at)
        db.session.add(time_away)
    db.session.commit()
    return time_away


def clear_time_away(member_id: int) -> bool:
    deleted = db.session.query(SellerTimeAway).filter_by(member_id=member_id).delete()
    db.session.commit()
    return bool(deleted)


def seller_items_hidden(member_id: int, now: datetime | None = None) -> bool:
    """True while the seller's items are hidden by their time-away window."""
    time_away = get_time_away(member_id)
    if not time_away:
        return False
    return describe_time_away(time_away, now)["items_hidden"]
