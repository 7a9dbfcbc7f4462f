"""
Resale offer negotiation tests.

Verifies:
- Offer creation rules (resale, accepts offers, minimum, one pending, daily cap)
- Seller and buyer response paths and terminal states
- Unrelated actors are rejected
"""

import pytest

from commerce_ledger.errors import (
    AuthorizationError,
    InvalidOfferStateError,
    InvalidStateError,
    RateLimitedError,
    ValidationError,
)
from commerce_ledger.services import offer_service
from commerce_ledger.validation import OfferCreateRequest


@pytest.fixture
def resale_item(make_item, seller):
    return make_item(seller, price_cents=10000, listing_type="resale", accept_offers=True, min_offer_cents=40)


def _offer(buyer, item, amount):
    return offer_service.create_offer(buyer.id, OfferCreateRequest(store_item_id=item.id, amount_cents=amount))


class TestCreateOffer:
    def test_pending_on_create(self, db_session, buyer, resale_item):
        offer = _offer(buyer, resale_item, 50)
        assert offer.status == "pending"
        assert offer.seller_id == resale_item.member_id

    def test_below_minimum(self, db_session, buyer, resale_item):
        with pytest.raises(ValidationError):
            _offer(buyer, resale_item, 39)

    def test_own_item(self, db_session, seller, resale_item):
        with pytest.raises(ValidationError):
            _offer(seller, resale_item, 50)

    def test_item_not_taking_offers(self, db_session, buyer, seller, make_item):
        item = make_item(seller, listing_type="resale", accept_offers=False)
        with pytest.raises(InvalidStateError):
            _offer(buyer, item, 50)

    def test_new_listing_not_taking_offers(self, db_session, buyer, seller, make_item):
        item = make_item(seller, listing_type="new", accept_offers=True)
        with pytest.raises(InvalidStateError):
            _offer(buyer, item, 50)

    def test_out_of_stock(self, db_session, buyer, seller, make_item):
        item = make_item(seller, listing_type="resale", accept_offers=True, quantity=0)
        with pytest.raises(InvalidStateError):
            _offer(buyer, item, 50)

    def test_one_pending_per_buyer(self, db_session, buyer, resale_item):
        _offer(buyer, resale_item, 50)
        with pytest.raises(InvalidOfferStateError):
            _offer(buyer, resale_item, 60)

    def test_daily_cap(self, db_session, buyer, seller, resale_item):
        for amount in (50, 60, 70):
            offer = _offer(buyer, resale_item, amount)
            offer_service.respond_to_offer(offer.id, seller.id, {"status": "declined"})

        with pytest.raises(RateLimitedError):
            _offer(buyer, resale_item, 80)


class TestNegotiation:
    def test_counter_then_buyer_declines(self, db_session, buyer, seller, resale_item):
        offer = _offer(buyer, resale_item, 50)

        countered = offer_service.respond_to_offer(
            offer.id, seller.id, {"status": "countered", "counter_amount_cents": 70, "seller_response": "Meet me?"}
        )
        assert countered.status == "countered"
        assert countered.counter_amount_cents == 70

        declined = offer_service.respond_to_offer(offer.id, buyer.id, {"status": "declined"})
        assert declined.status == "declined"

        with pytest.raises(InvalidOfferStateError):
            offer_service.respond_to_offer(offer.id, buyer.id, {"status": "accepted"})
        with pytest.raises(InvalidOfferStateError):
            offer_service.respond_to_offer(offer.id, seller.id, {"status": "accepted"})

    def test_seller_accepts(self, db_session, buyer, seller, resale_item):
        offer = _offer(buyer, resale_item, 50)
        accepted = offer_service.respond_to_offer(offer.id, seller.id, {"status": "accepted"})
        assert accepted.status == "accepted"
        assert accepted.responded_at is not None

    def test_counter_needs_positive_amount(self, db_session, buyer, seller, resale_item):
        offer = _offer(buyer, resale_item, 50)
        with pytest.raises(ValidationError):
            offer_service.respond_to_offer(offer.id, seller.id, {"status": "countered", "counter_amount_cents": 0})

    def test_seller_cannot_answer_counter(self, db_session, buyer, seller, resale_item):
        offer = _offer(buyer, resale_item, 50)
        offer_service.respond_to_offer(offer.id, seller.id, {"status": "countered", "counter_amount_cents": 70})

        with pytest.raises(InvalidOfferStateError):
            offer_service.respond_to_offer(offer.id, seller.id, {"status": "accepted"})

    def test_buyer_cannot_answer_own_pending(self, db_session, buyer, resale_item):
        offer = _offer(buyer, resale_item, 50)
        with pytest.raises(AuthorizationError):
            offer_service.respond_to_offer(offer.id, buyer.id, {"status": "accepted"})

    def test_buyer_cannot_counter(self, db_session, buyer, seller, resale_item):
        offer = _offer(buyer, resale_item, 50)
        offer_service.respond_to_offer(offer.id, seller.id, {"status": "countered", "counter_amount_cents": 70})

        with pytest.raises(ValidationError):
            offer_service.respond_to_offer(offer.id, buyer.id, {"status": "countered", "counter_amount_cents": 60})

    def test_stranger_rejected(self, db_session, make_member, buyer, resale_item):
        stranger = make_member("Stranger")
        offer = _offer(buyer, resale_item, 50)
        with pytest.raises(AuthorizationError):
            offer_service.respond_to_offer(offer.id, stranger.id, {"status": "accepted"})


def test_listings_by_role(db_session, buyer, seller, resale_item):
    offer = _offer(buyer, resale_item, 50)

    assert [o.id for o in offer_service.list_offers(buyer.id, role="buyer")] == [offer.id]
    assert [o.id for o in offer_service.list_offers(seller.id, role="seller")] == [offer.id]
    assert offer_service.list_offers(seller.id, role="seller", status="accepted") == []
    assert offer_service.list_offers(seller.id, role="buyer") == []
