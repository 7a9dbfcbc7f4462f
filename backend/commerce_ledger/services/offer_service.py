# Overview: Resale offer negotiation; one round of counter-offer between buyer and seller.

"""
Resale Offers

STATES:
- pending   -> accepted | declined | countered   (seller)
- countered -> accepted | declined               (buyer)
- accepted, declined: terminal

No ledger side effects; an accepted offer is settled through checkout.
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import ResaleOffer, StoreItem
from ..errors import (
    AuthorizationError,
    InvalidOfferStateError,
    InvalidStateError,
    NotFoundError,
    RateLimitedError,
    ValidationError,
)
from ..time_utils import utcnow
from ..validation import BuyerOfferResponse, OfferCreateRequest, SellerOfferResponse
from .concurrency import lock_for_update, run_with_retry
from .member_service import get_member
from .time_away_service import seller_items_hidden


OFFER_STATUS_PENDING = "pending"
OFFER_STATUS_ACCEPTED = "accepted"
OFFER_STATUS_DECLINED = "declined"
OFFER_STATUS_COUNTERED = "countered"


def create_offer(buyer_id: int, request: OfferCreateRequest) -> ResaleOffer:
    get_member(buyer_id)

    def _op():
        now = utcnow()
        item = lock_for_update(db.session.query(StoreItem).filter_by(id=request.store_item_id)).first()
        if not item:
            raise NotFoundError("Item not found")
        if item.member_id == buyer_id:
            raise ValidationError("You cannot make an offer on your own item")
        if item.status != "active" or item.listing_type != "resale" or not item.accept_offers:
            raise InvalidStateError("This item is not accepting offers")
        if item.quantity <= 0:
            raise InvalidStateError("This item is out of stock")
        if seller_items_hidden(item.member_id, now):
            raise InvalidStateError("This seller is away and not accepting offers")
        if item.min_offer_cents is not None and request.amount_cents < item.min_offer_cents:
            raise ValidationError(
                "Offer is below the seller's minimum",
                min_offer_cents=item.min_offer_cents,
            )

        pending = db.session.query(ResaleOffer.id).filter_by(
            store_item_id=item.id, buyer_id=buyer_id, status=OFFER_STATUS_PENDING
        ).first()
        if pending:
            raise InvalidOfferStateError("You already have a pending offer on this item")

        recent = db.session.query(func.count(ResaleOffer.id)).filter(
            ResaleOffer.store_item_id == item.id,
            ResaleOffer.buyer_id == buyer_id,
            ResaleOffer.created_at >= now - timedelta(hours=24),
        ).scalar() or 0
        if recent >= current_app.config["OFFERS_PER_ITEM_PER_DAY"]:
            raise RateLimitedError("Too many offers on this item today; try again later")

        offer = ResaleOffer(
            store_item_id=item.id,
            buyer_id=buyer_id,
            amount_cents=request.amount_cents,
            message=request.message,
            status=OFFER_STATUS_PENDING,
            created_at=now,
        )
        db.session.add(offer)
        db.session.commit()
        return offer

    return run_with_retry(_op)


def respond_to_offer(offer_id: int, actor_id: int, body: dict) -> ResaleOffer:
    """
    Apply the acting party's response.

    The acting party is derived from the offer; the body is then validated
    as that party's response type.
    """
    def _op():
        offer = lock_for_update(db.session.query(ResaleOffer).filter_by(id=offer_id)).first()
        if not offer:
            raise NotFoundError("Offer not found")

        if actor_id == offer.seller_id:
            if offer.status != OFFER_STATUS_PENDING:
                raise InvalidOfferStateError(
                    f"Offer is {offer.status}; the seller can only respond to pending offers",
                    current_status=offer.status,
                )
            response = SellerOfferResponse.from_json(body)
            offer.status = response.status
            offer.seller_response = response.seller_response
            if response.status == OFFER_STATUS_COUNTERED:
                offer.counter_amount_cents = response.counter_amount_cents
        elif actor_id == offer.buyer_id:
            if offer.status == OFFER_STATUS_PENDING:
                raise AuthorizationError("Only the seller can respond to a pending offer")
            if offer.status != OFFER_STATUS_COUNTERED:
                raise InvalidOfferStateError(
                    f"Offer is {offer.status}; the buyer can only respond to counter offers",
                    current_status=offer.status,
                )
            response = BuyerOfferResponse.from_json(body)
            offer.status = response.status
        else:
            raise AuthorizationError("Not your offer")

        offer.responded_at = utcnow()
        db.session.commit()
        return offer

    return run_with_retry(_op)


def list_offers(member_id: int, *, role: str = "buyer", status: str | None = None) -> list[ResaleOffer]:
    """Offers the member made (buyer) or received on their items (seller)."""
    query = db.session.query(ResaleOffer)
    if role == "seller":
        query = query.join(StoreItem, ResaleOffer.store_item_id == StoreItem.id).filter(
            StoreItem.member_id == member_id
        )
    elif role == "buyer":
        query = query.filter(ResaleOffer.buyer_id == member_id)
    else:
        raise ValidationError("role must be buyer or seller")
    if status:
        query = query.filter(ResaleOffer.status == status)
    return query.order_by(ResaleOffer.created_at.desc(), ResaleOffer.id.desc()).all()
