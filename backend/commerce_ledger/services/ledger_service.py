# Overview: Service-layer operations for the seller ledger; balance rows and append-only transactions.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Member, SellerBalance, SellerBalanceTransaction, StoreOrder
from ..errors import InvalidStateError, NotFoundError
from .concurrency import lock_for_update, run_with_retry
"""
Seller Ledger Invariants (authoritative)

- SellerBalanceTransaction is append-only; no updates, no deletes.
- Balance rows change only inside the same DB transaction that appends
  the transaction explaining the change (append_balance_transaction).
- balance = sum(transactions) = earned - paid_out - |returns|.
- A sale is credited at most once per order (unique order_id + type).
"""

TXN_SALE = "sale"
TXN_RETURN = "return"
TXN_PAYOUT = "payout"

VALID_TXN_TYPES = [TXN_SALE, TXN_RETURN, TXN_PAYOUT]


def compute_platform_fee(total_cents: int) -> int:
    """
    Platform fee retained on an order.

    fee = max(min_fee, floor(total * bps / 10000)), capped at the total so
    the seller's share is never negative.
    """
    bps = current_app.config["PLATFORM_FEE_BPS"]
    min_fee = current_app.config["PLATFORM_FEE_MIN_CENTS"]
    fee = max(min_fee, (total_cents * bps) // 10000)
    return min(fee, total_cents)


def seller_share(total_cents: int) -> int:
    """What the seller earns on a sale, and what a refund takes back."""
    return total_cents - compute_platform_fee(total_cents)


def ensure_seller_balance(member_id: int, *, lock: bool = True) -> SellerBalance:
    """
    Fetch (optionally locked) or lazily create the seller's balance row.

    Caller owns the transaction.
    """
    query = db.session.query(SellerBalance).filter_by(member_id=member_id)
    if lock:
        query = lock_for_update(query)
    balance = query.first()
    if balance:
        return balance

    balance = SellerBalance(
        member_id=member_id,
        balance_cents=0,
        total_earned_cents=0,
        total_paid_out_cents=0,
        reserved_cents=0,
    )
    db.session.add(balance)
    db.session.flush()
    return balance


def append_balance_transaction(
    *,
    balance: SellerBalance,
    txn_type: str,
    amount_cents: int,
    description: str,
    order_id: int | None = None,
    transfer_reference: str | None = None,
    gateway_operation_id: int | None = None,
) -> SellerBalanceTransaction:
    """
    Apply a signed amount to a (locked) balance row and append the
    transaction that explains it.

    - sale: increments balance and lifetime earned
    - return: decrements balance
    - payout: decrements balance, increments lifetime paid out
    """
    if txn_type not in VALID_TXN_TYPES:
        raise ValueError(f"Invalid ledger transaction type: {txn_type}")
    if txn_type == TXN_SALE and amount_cents < 0:
        raise ValueError("Sale amount must not be negative")
    if txn_type in (TXN_RETURN, TXN_PAYOUT) and amount_cents > 0:
        raise ValueError(f"{txn_type} amount must not be positive")

    balance.balance_cents += amount_cents
    if txn_type == TXN_SALE:
        balance.total_earned_cents += amount_cents
    elif txn_type == TXN_PAYOUT:
        balance.total_paid_out_cents += -amount_cents

    txn = SellerBalanceTransaction(
        member_id=balance.member_id,
        type=txn_type,
        amount_cents=amount_cents,
        order_id=order_id,
        transfer_reference=transfer_reference,
        gateway_operation_id=gateway_operation_id,
        description=description,
    )
    db.session.add(txn)
    db.session.flush()
    return txn


def order_label(order: StoreOrder) -> str:
    return f"Order #{order.id:06d}"


def format_cents(amount_cents: int) -> str:
    sign = "-" if amount_cents < 0 else ""
    return f"{sign}${abs(amount_cents) / 100:.2f}"


# =============================================================================
# SALE CREDIT
# =============================================================================

def _credit_sale_locked(order: StoreOrder) -> SellerBalanceTransaction:
    """
    Credit a card order to its seller. Caller owns the transaction and has
    the order row locked.

    Idempotent: returns the existing sale transaction if one exists.
    """
    if order.is_cash_order:
        raise InvalidStateError("Cash orders are settled outside the platform and are never credited")
    if order.status in ("refunded", "canceled"):
        raise InvalidStateError(f"Cannot credit a {order.status} order")

    existing = db.session.query(SellerBalanceTransaction).filter_by(
        order_id=order.id, type=TXN_SALE
    ).first()
    if existing:
        return existing

    balance = ensure_seller_balance(order.seller_id)
    amount = seller_share(order.total_cents)
    return append_balance_transaction(
        balance=balance,
        txn_type=TXN_SALE,
        amount_cents=amount,
        order_id=order.id,
        description=f"Sale: {order_label(order)}",
    )


def credit_sale(order_id: int) -> SellerBalanceTransaction:
    """
    Credit the seller for a completed card order (system operation).

    Safe to call repeatedly: the unique (order_id, type) constraint and the
    existence check make the credit happen exactly once.
    """
    def _op():
        order = lock_for_update(db.session.query(StoreOrder).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        txn = _credit_sale_locked(order)
        db.session.commit()
        return txn

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_funds_summary(member_id: int, limit: int = 50) -> dict:
    """
    Seller funds view: balance, lifetime figures, recent ledger entries and
    whether payouts can be sent.
    """
    balance = db.session.query(SellerBalance).filter_by(member_id=member_id).first()
    member = db.session.get(Member, member_id)
    transactions = db.session.query(SellerBalanceTransaction).filter_by(
        member_id=member_id
    ).order_by(
        SellerBalanceTransaction.created_at.desc(), SellerBalanceTransaction.id.desc()
    ).limit(limit).all()

    return {
        "balance_cents": balance.balance_cents if balance else 0,
        "total_earned_cents": balance.total_earned_cents if balance else 0,
        "total_paid_out_cents": balance.total_paid_out_cents if balance else 0,
        "reserved_cents": balance.reserved_cents if balance else 0,
        "available_cents": balance.available_cents if balance else 0,
        "transactions": [t.to_dict() for t in transactions],
        "has_payout_destination": bool(member and member.has_payout_destination),
    }


def verify_seller_ledger(member_id: int) -> dict:
    """
    Check both balance identities for one seller.

    Returns a dict with the computed figures and an `ok` flag.
    """
    balance = db.session.query(SellerBalance).filter_by(member_id=member_id).first()

    txn_sum = db.session.query(
        func.coalesce(func.sum(SellerBalanceTransaction.amount_cents), 0)
    ).filter(SellerBalanceTransaction.member_id == member_id).scalar() or 0

    returns_sum = db.session.query(
        func.coalesce(func.sum(SellerBalanceTransaction.amount_cents), 0)
    ).filter(
        SellerBalanceTransaction.member_id == member_id,
        SellerBalanceTransaction.type == TXN_RETURN,
    ).scalar() or 0

    balance_cents = balance.balance_cents if balance else 0
    earned = balance.total_earned_cents if balance else 0
    paid_out = balance.total_paid_out_cents if balance else 0
    expected_from_totals = earned - paid_out - abs(int(returns_sum))

    return {
        "member_id": member_id,
        "balance_cents": balance_cents,
        "transaction_sum_cents": int(txn_sum),
        "expected_from_totals_cents": expected_from_totals,
        "reserved_cents": balance.reserved_cents if balance else 0,
        "ok": balance_cents == int(txn_sum) == expected_from_totals,
    }


def list_seller_ids() -> list[int]:
    """Every member with a balance row or any ledger entry."""
    ids = {row[0] for row in db.session.query(SellerBalance.member_id).all()}
    ids.update(row[0] for row in db.session.query(SellerBalanceTransaction.member_id).distinct().all())
    return sorted(ids)
