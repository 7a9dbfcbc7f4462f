from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Maximum amount: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical amounts
MAX_AMOUNT_CENTS = 999_999_999

REFUND_REASONS = (
    "Changed my mind",
    "Didn't mean to order",
    "Order Arrived Damaged",
    "Wrong Item Delivered",
    "Other",
)

CANCEL_REASONS = REFUND_REASONS

FULFILLMENT_TYPES = ("ship", "pickup", "local_delivery")


def _body(data: Any) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{key} must be a plain integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def require_int(data: dict, key: str, *, minimum: int | None = None, maximum: int = MAX_AMOUNT_CENTS) -> int:
    if data.get(key) is None:
        raise ValidationError(f"{key} is required")
    return optional_int(data, key, minimum=minimum, maximum=maximum)


def optional_int(data: dict, key: str, *, minimum: int | None = None, maximum: int = MAX_AMOUNT_CENTS) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    result = _coerce_int(key, value)
    if minimum is not None and result < minimum:
        raise ValidationError(f"{key} must be at least {minimum}")
    if result > maximum:
        raise ValidationError(f"{key} must be at most {maximum}")
    return result


def optional_str(data: dict, key: str, *, max_length: int) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{key} must be at most {max_length} characters")
    return value or None


def require_datetime(data: dict, key: str) -> datetime:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} must be an ISO-8601 datetime")
    try:
        parsed = parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")
    if parsed is None:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")
    return parsed


def _reason_text(data: dict, allowed: tuple[str, ...]) -> Optional[str]:
    """Fixed reason list; "Other" may carry free text in other_reason."""
    reason = data.get("reason")
    if reason is None:
        return None
    if reason not in allowed:
        raise ValidationError(f"reason must be one of {list(allowed)}")
    if reason == "Other":
        other = optional_str(data, "other_reason", max_length=255)
        return f"Other: {other}" if other else "Other"
    return reason


# =============================================================================
# ORDERS
# =============================================================================

@dataclass(frozen=True)
class CheckoutLine:
    store_item_id: int
    quantity: int
    fulfillment_type: str = "ship"


@dataclass(frozen=True)
class CheckoutRequest:
    """
    Completed checkout handed over by the checkout flow (system caller).

    payment_reference None => cash checkout.
    shipping_by_seller maps seller id -> shipping cents for that seller's order.
    """
    buyer_id: int
    lines: list[CheckoutLine]
    payment_reference: Optional[str] = None
    shipping_by_seller: dict[int, int] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Any) -> "CheckoutRequest":
        data = _body(data)
        buyer_id = require_int(data, "buyer_id", minimum=1)

        raw_items = data.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError("At least one item required")

        lines = []
        for raw in raw_items:
            if not isinstance(raw, dict):
                raise ValidationError("Each item must be an object")
            fulfillment = raw.get("fulfillment_type") or "ship"
            if fulfillment not in FULFILLMENT_TYPES:
                raise ValidationError(f"fulfillment_type must be one of {list(FULFILLMENT_TYPES)}")
            lines.append(CheckoutLine(
                store_item_id=require_int(raw, "store_item_id", minimum=1),
                quantity=require_int(raw, "quantity", minimum=1, maximum=10_000),
                fulfillment_type=fulfillment,
            ))

        shipping = {}
        raw_shipping = data.get("shipping_by_seller") or {}
        if not isinstance(raw_shipping, dict):
            raise ValidationError("shipping_by_seller must be an object")
        for seller_key, cents in raw_shipping.items():
            seller_id = _coerce_int("shipping_by_seller key", seller_key)
            shipping[seller_id] = require_int({"shipping": cents}, "shipping", minimum=0)

        payment_reference = optional_str(data, "payment_reference", max_length=128)
        if payment_reference is None and any(line.fulfillment_type == "ship" for line in lines):
            raise ValidationError("Pay in cash is only available when all items are Pickup or Local Delivery.")

        return cls(
            buyer_id=buyer_id,
            lines=lines,
            payment_reference=payment_reference,
            shipping_by_seller=shipping,
        )


ORDER_STATUS_TARGETS = ("shipped", "delivered")


@dataclass(frozen=True)
class OrderStatusUpdate:
    status: Optional[str] = None
    delivery_confirmed: bool = False

    @classmethod
    def from_json(cls, data: Any) -> "OrderStatusUpdate":
        data = _body(data)
        status = data.get("status")
        if status is not None and status not in ORDER_STATUS_TARGETS:
            raise ValidationError(f"status must be one of {list(ORDER_STATUS_TARGETS)}")
        delivery_confirmed = data.get("delivery_confirmed") is True
        if status is None and not delivery_confirmed:
            raise ValidationError("No valid update")
        return cls(status=status, delivery_confirmed=delivery_confirmed)


@dataclass(frozen=True)
class ShipTogetherRequest:
    order_ids: list[int]

    @classmethod
    def from_json(cls, data: Any) -> "ShipTogetherRequest":
        data = _body(data)
        raw = data.get("order_ids")
        if not isinstance(raw, list) or not raw:
            raise ValidationError("order_ids must be a non-empty list")
        ids = [_coerce_int("order_ids", v) for v in raw]
        if len(set(ids)) != len(ids):
            raise ValidationError("order_ids must not repeat")
        return cls(order_ids=ids)


@dataclass(frozen=True)
class RefundRequestBody:
    """Buyer's refund request: fixed reason plus optional note."""
    reason: Optional[str] = None
    note: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> "RefundRequestBody":
        data = _body(data)
        return cls(
            reason=_reason_text(data, REFUND_REASONS),
            note=optional_str(data, "note", max_length=255),
        )

    def combined(self) -> Optional[str]:
        if self.reason and self.note:
            return f"{self.reason} | Note: {self.note}"
        return self.reason or self.note


@dataclass(frozen=True)
class CancelRequest:
    reason: Optional[str] = None
    note: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> "CancelRequest":
        data = _body(data)
        return cls(
            reason=_reason_text(data, CANCEL_REASONS),
            note=optional_str(data, "note", max_length=512),
        )


# =============================================================================
# POINTS & REWARDS
# =============================================================================

@dataclass(frozen=True)
class ScanRequest:
    business_id: int

    @classmethod
    def from_json(cls, data: Any) -> "ScanRequest":
        data = _body(data)
        if data.get("business_id") is None:
            raise ValidationError("Missing business_id")
        return cls(business_id=require_int(data, "business_id", minimum=1))


@dataclass(frozen=True)
class RewardCreateRequest:
    business_id: int
    title: str
    points_required: int
    redemption_limit: int
    description: Optional[str] = None
    cash_value_cents: Optional[int] = None

    @classmethod
    def from_json(cls, data: Any) -> "RewardCreateRequest":
        data = _body(data)
        title = optional_str(data, "title", max_length=255)
        if not title:
            raise ValidationError("title is required")
        return cls(
            business_id=require_int(data, "business_id", minimum=1),
            title=title,
            points_required=require_int(data, "points_required", minimum=1),
            redemption_limit=require_int(data, "redemption_limit", minimum=1),
            description=optional_str(data, "description", max_length=2000),
            cash_value_cents=optional_int(data, "cash_value_cents", minimum=0),
        )


# =============================================================================
# RESALE OFFERS
# =============================================================================

@dataclass(frozen=True)
class OfferCreateRequest:
    store_item_id: int
    amount_cents: int
    message: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> "OfferCreateRequest":
        data = _body(data)
        return cls(
            store_item_id=require_int(data, "store_item_id", minimum=1),
            amount_cents=require_int(data, "amount_cents", minimum=1),
            message=optional_str(data, "message", max_length=2000),
        )


SELLER_OFFER_RESPONSES = ("accepted", "declined", "countered")
BUYER_OFFER_RESPONSES = ("accepted", "declined")


@dataclass(frozen=True)
class SellerOfferResponse:
    """Seller's answer to a pending offer."""
    status: str
    seller_response: Optional[str] = None
    counter_amount_cents: Optional[int] = None

    @classmethod
    def from_json(cls, data: Any) -> "SellerOfferResponse":
        data = _body(data)
        status = data.get("status")
        if status not in SELLER_OFFER_RESPONSES:
            raise ValidationError(f"status must be one of {list(SELLER_OFFER_RESPONSES)}")
        counter = optional_int(data, "counter_amount_cents")
        if status == "countered":
            if counter is None or counter < 1:
                raise ValidationError("Counter offer requires a valid counter_amount_cents")
        else:
            counter = None
        return cls(
            status=status,
            seller_response=optional_str(data, "seller_response", max_length=1000),
            counter_amount_cents=counter,
        )


@dataclass(frozen=True)
class BuyerOfferResponse:
    """Buyer's answer to a counter offer."""
    status: str

    @classmethod
    def from_json(cls, data: Any) -> "BuyerOfferResponse":
        data = _body(data)
        status = data.get("status")
        if status not in BUYER_OFFER_RESPONSES:
            raise ValidationError(f"status must be one of {list(BUYER_OFFER_RESPONSES)}")
        return cls(status=status)


# =============================================================================
# TIME AWAY
# =============================================================================

@dataclass(frozen=True)
class TimeAwayRequest:
    start_at: datetime
    end_at: datetime

    @classmethod
    def from_json(cls, data: Any) -> "TimeAwayRequest":
        data = _body(data)
        start_at = require_datetime(data, "start_at")
        end_at = require_datetime(data, "end_at")
        if end_at <= start_at:
            raise ValidationError("Start and end dates required; end must be after start.")
        return cls(start_at=start_at, end_at=end_at)
