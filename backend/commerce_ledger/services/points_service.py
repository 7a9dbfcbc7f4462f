# Overview: Points economy; business scans, purchase points and reward redemption.

"""
Points Economy

INVARIANTS:
- Member.points never goes negative (CHECK constraint + explicit shortfall check)
- One scan per (member, business, UTC day); the unique constraint makes
  racing scans fail instead of double awarding
- Reward.times_redeemed never exceeds redemption_limit
- A reward that reaches its limit is flipped to redeemed_out in a separate
  commit after the redemption itself
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Business, CategoryPointsConfig, Member, QRScan, Reward, RewardRedemption
from ..errors import (
    AuthorizationError,
    InsufficientPointsError,
    InvalidStateError,
    NotFoundError,
    RateLimitedError,
    ValidationError,
)
from ..time_utils import utcnow, utc_day
from ..validation import RewardCreateRequest
from . import badge_service
from .concurrency import lock_for_update, run_with_retry
from .hooks import dispatch
from .member_service import get_member, has_active_plan, is_top_tier


REWARD_STATUS_ACTIVE = "active"
REWARD_STATUS_REDEEMED_OUT = "redeemed_out"


def _lock_member(member_id: int) -> Member:
    member = lock_for_update(db.session.query(Member).filter_by(id=member_id)).first()
    if not member:
        raise NotFoundError(f"Member {member_id} not found")
    return member


def base_points_for_business(business: Business) -> int:
    """Highest configured points-per-scan among the business's categories, else the default."""
    categories = business.categories or []
    best = None
    if categories:
        best = db.session.query(func.max(CategoryPointsConfig.points_per_scan)).filter(
            CategoryPointsConfig.category.in_(categories)
        ).scalar()
    if best is None:
        return current_app.config["DEFAULT_POINTS_PER_SCAN"]
    return best


def award_purchase_points(member_id: int, total_cents: int) -> int:
    """
    Credit purchase points inside the caller's transaction.

    1 point per PURCHASE_CENTS_PER_POINT cents; top-tier subscribers get
    the subscriber multiplier.
    """
    points = total_cents // current_app.config["PURCHASE_CENTS_PER_POINT"]
    if points <= 0:
        return 0
    if is_top_tier(member_id):
        points *= current_app.config["SUBSCRIBER_SCAN_MULTIPLIER"]
    member = _lock_member(member_id)
    member.points += points
    return points


# =============================================================================
# SCANS
# =============================================================================

def scan_business(member_id: int, business_id: int, now: datetime | None = None) -> dict:
    """
    Award points for scanning a business's QR code.

    Returns {"points_awarded", "total_points", "scan"}.
    """
    business = db.session.get(Business, business_id)
    if not business:
        raise NotFoundError("Business not found")
    if business.member_id == member_id:
        raise ValidationError("You cannot scan your own business")

    def _op():
        scanned_at = now or utcnow()
        day = utc_day(scanned_at)

        already = db.session.query(QRScan.id).filter_by(
            member_id=member_id, business_id=business_id, scan_day=day
        ).first()
        if already:
            raise RateLimitedError("You can only scan this business once per day")

        award = base_points_for_business(business)
        if is_top_tier(member_id):
            award *= current_app.config["SUBSCRIBER_SCAN_MULTIPLIER"]

        member = _lock_member(member_id)
        scan = QRScan(
            member_id=member_id,
            business_id=business_id,
            points_awarded=award,
            scanned_at=scanned_at,
            scan_day=day,
        )
        db.session.add(scan)
        member.points += award
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise RateLimitedError("You can only scan this business once per day")
        return {"points_awarded": award, "total_points": member.points, "scan": scan}

    result = run_with_retry(_op)
    dispatch(badge_service.award_scanner_badges, member_id)
    return result


# =============================================================================
# REWARDS
# =============================================================================

def list_available_rewards() -> list[Reward]:
    return db.session.query(Reward).filter(
        Reward.status == REWARD_STATUS_ACTIVE,
        Reward.times_redeemed < Reward.redemption_limit,
    ).order_by(Reward.points_required, Reward.id).all()


def create_reward(member_id: int, request: RewardCreateRequest) -> Reward:
    """Business owner on a sponsor or seller plan publishes a reward."""
    business = db.session.get(Business, request.business_id)
    if not business:
        raise NotFoundError("Business not found")
    if business.member_id != member_id:
        raise AuthorizationError("Only the business owner can create rewards")
    config = current_app.config
    if not has_active_plan(member_id, config["SPONSOR_PLAN"], config["SELLER_PLAN"]):
        raise AuthorizationError("Sponsor or seller plan required")

    reward = Reward(
        business_id=business.id,
        title=request.title,
        description=request.description,
        points_required=request.points_required,
        redemption_limit=request.redemption_limit,
        times_redeemed=0,
        cash_value_cents=request.cash_value_cents,
        status=REWARD_STATUS_ACTIVE,
    )
    db.session.add(reward)
    db.session.commit()
    return reward


def redeem_reward(member_id: int, reward_id: int) -> dict:
    """
    Spend points on a reward.

    Returns {"redemption", "remaining_points", "reward"}.
    """
    def _op():
        reward = lock_for_update(db.session.query(Reward).filter_by(id=reward_id)).first()
        if not reward:
            raise NotFoundError("Reward not found")
        if reward.status != REWARD_STATUS_ACTIVE or reward.times_redeemed >= reward.redemption_limit:
            raise InvalidStateError("This reward is no longer available")

        member = _lock_member(member_id)
        if member.points < reward.points_required:
            raise InsufficientPointsError(
                "Not enough points",
                shortfall_points=reward.points_required - member.points,
            )

        member.points -= reward.points_required
        reward.times_redeemed += 1
        redemption = RewardRedemption(
            member_id=member_id,
            reward_id=reward.id,
            points_spent=reward.points_required,
            redeemed_at=utcnow(),
        )
        db.session.add(redemption)
        db.session.commit()
        return redemption, member.points

    redemption, remaining = run_with_retry(_op)

    def _flip():
        reward = lock_for_update(db.session.query(Reward).filter_by(id=reward_id)).first()
        if reward.status == REWARD_STATUS_ACTIVE and reward.times_redeemed >= reward.redemption_limit:
            reward.status = REWARD_STATUS_REDEEMED_OUT
            db.session.commit()
        return reward

    reward = run_with_retry(_flip)
    return {"redemption": redemption, "remaining_points": remaining, "reward": reward}


def get_points_summary(member_id: int, limit: int = 20) -> dict:
    member = get_member(member_id)
    scans = db.session.query(QRScan).filter_by(member_id=member_id).order_by(
        QRScan.scanned_at.desc(), QRScan.id.desc()
    ).limit(limit).all()
    redemptions = db.session.query(RewardRedemption).filter_by(member_id=member_id).order_by(
        RewardRedemption.redeemed_at.desc(), RewardRedemption.id.desc()
    ).limit(limit).all()
    return {
        "points": member.points,
        "is_top_tier": is_top_tier(member_id),
        "recent_scans": [s.to_dict() for s in scans],
        "recent_redemptions": [r.to_dict() for r in redemptions],
    }
