"""
Points economy tests.

Verifies:
- Scan award from category config, default, and subscriber multiplier
- One scan per business per UTC day; next day allowed
- Reward redemption limits, insufficient points, redeemed_out flip
"""

from datetime import datetime

import pytest

from commerce_ledger.errors import (
    AuthorizationError,
    InsufficientPointsError,
    InvalidStateError,
    NotFoundError,
    RateLimitedError,
    ValidationError,
)
from commerce_ledger.models import Member, MemberBadge, QRScan, Reward, RewardRedemption
from commerce_ledger.services import badge_service, points_service
from commerce_ledger.validation import RewardCreateRequest


@pytest.fixture
def owner(make_member):
    return make_member("Olive Owner", plans=("sponsor",))


def _reward(db_session, business, *, points_required=100, limit=1):
    reward = Reward(
        business_id=business.id,
        title="Free coffee",
        points_required=points_required,
        redemption_limit=limit,
        times_redeemed=0,
        status="active",
    )
    db_session.add(reward)
    db_session.commit()
    return reward


class TestScan:
    def test_subscriber_daily_scan(self, db_session, make_member, owner, make_business, set_category_points):
        set_category_points("retail", 10)
        business = make_business(owner, categories=("retail",))
        subscriber = make_member("Sub", plans=("subscribe",))

        first = points_service.scan_business(subscriber.id, business.id, now=datetime(2026, 5, 1, 9, 0))
        assert first["points_awarded"] == 20
        assert first["total_points"] == 20

        with pytest.raises(RateLimitedError):
            points_service.scan_business(subscriber.id, business.id, now=datetime(2026, 5, 1, 23, 59))
        assert db_session.get(Member, subscriber.id).points == 20

        next_day = points_service.scan_business(subscriber.id, business.id, now=datetime(2026, 5, 2, 0, 1))
        assert next_day["total_points"] == 40
        assert db_session.query(QRScan).filter_by(member_id=subscriber.id).count() == 2

    def test_highest_category_wins(self, db_session, buyer, owner, make_business, set_category_points):
        set_category_points("retail", 10)
        set_category_points("restaurant", 15)
        business = make_business(owner, categories=("retail", "restaurant"))

        result = points_service.scan_business(buyer.id, business.id)
        assert result["points_awarded"] == 15

    def test_default_points(self, db_session, buyer, owner, make_business):
        business = make_business(owner, categories=("unconfigured",))
        assert points_service.scan_business(buyer.id, business.id)["points_awarded"] == 10

    def test_self_scan_rejected(self, db_session, owner, make_business):
        business = make_business(owner)
        with pytest.raises(ValidationError):
            points_service.scan_business(owner.id, business.id)

    def test_unknown_business(self, db_session, buyer):
        with pytest.raises(NotFoundError):
            points_service.scan_business(buyer.id, 999)

    def test_scanner_badge_hook(self, db_session, buyer, owner, make_business, monkeypatch):
        monkeypatch.setattr(badge_service, "SCANNER_TIERS", [(1, "super_scanner")])
        business = make_business(owner)

        points_service.scan_business(buyer.id, business.id)

        assert db_session.query(MemberBadge).filter_by(member_id=buyer.id, slug="super_scanner").count() == 1


class TestRedeem:
    def test_single_use_reward(self, db_session, make_member, owner, make_business):
        business = make_business(owner)
        reward = _reward(db_session, business, points_required=100, limit=1)
        first = make_member("First", points=150)
        second = make_member("Second", points=500)

        result = points_service.redeem_reward(first.id, reward.id)

        assert result["remaining_points"] == 50
        assert result["reward"].status == "redeemed_out"
        assert result["reward"].times_redeemed == 1
        assert points_service.list_available_rewards() == []

        with pytest.raises(InvalidStateError):
            points_service.redeem_reward(second.id, reward.id)
        assert db_session.get(Member, second.id).points == 500

    def test_insufficient_points_unchanged(self, db_session, make_member, owner, make_business):
        business = make_business(owner)
        reward = _reward(db_session, business, points_required=100, limit=5)
        member = make_member("Poor", points=30)

        with pytest.raises(InsufficientPointsError) as exc_info:
            points_service.redeem_reward(member.id, reward.id)

        assert exc_info.value.shortfall_points == 70
        assert db_session.get(Member, member.id).points == 30
        assert db_session.get(Reward, reward.id).times_redeemed == 0
        assert db_session.query(RewardRedemption).count() == 0

    def test_multi_use_stays_listed(self, db_session, make_member, owner, make_business):
        business = make_business(owner)
        reward = _reward(db_session, business, points_required=10, limit=2)
        member = make_member("Rich", points=100)

        points_service.redeem_reward(member.id, reward.id)

        assert [r.id for r in points_service.list_available_rewards()] == [reward.id]
        points_service.redeem_reward(member.id, reward.id)
        assert points_service.list_available_rewards() == []
        assert db_session.get(Reward, reward.id).status == "redeemed_out"

    def test_unknown_reward(self, db_session, buyer):
        with pytest.raises(NotFoundError):
            points_service.redeem_reward(buyer.id, 999)


class TestCreateReward:
    def test_owner_with_plan(self, db_session, owner, make_business):
        business = make_business(owner)
        request = RewardCreateRequest.from_json({
            "business_id": business.id,
            "title": "10% off",
            "points_required": 50,
            "redemption_limit": 20,
        })

        reward = points_service.create_reward(owner.id, request)

        assert reward.status == "active"
        assert reward.times_redeemed == 0

    def test_owner_without_plan(self, db_session, make_member, make_business):
        plain_owner = make_member("Plain")
        business = make_business(plain_owner)
        request = RewardCreateRequest(business_id=business.id, title="x", points_required=1, redemption_limit=1)

        with pytest.raises(AuthorizationError):
            points_service.create_reward(plain_owner.id, request)

    def test_not_owner(self, db_session, buyer, owner, make_business):
        business = make_business(owner)
        request = RewardCreateRequest(business_id=business.id, title="x", points_required=1, redemption_limit=1)

        with pytest.raises(AuthorizationError):
            points_service.create_reward(buyer.id, request)

    def test_zero_points_rejected(self):
        with pytest.raises(ValidationError):
            RewardCreateRequest.from_json({
                "business_id": 1, "title": "x", "points_required": 0, "redemption_limit": 1,
            })


def test_points_summary(db_session, buyer, owner, make_business):
    business = make_business(owner)
    points_service.scan_business(buyer.id, business.id)

    summary = points_service.get_points_summary(buyer.id)

    assert summary["points"] == 10
    assert summary["is_top_tier"] is False
    assert len(summary["recent_scans"]) == 1
    assert summary["recent_redemptions"] == []
