"""
Refund & Payout Processor

WHY: Refunds and payouts are the only operations that move money at the
gateway. The gateway call cannot share a DB transaction with the ledger
update, so each runs in three steps around a write-ahead journal row
(GatewayOperation):

1. RESERVE (one local transaction)
   - Lock order / balance, validate, check available funds
   - reserved_cents += amount, journal row status=pending
2. GATEWAY CALL (no open transaction, no locks held)
   - Idempotency key is the random key stored on the journal row
   - A success without a reference is flagged for reconciliation
   - On failure: release reservation, journal failed, ExternalGatewayError
3. APPLY (one local transaction)
   - Ledger entry, balance update, reservation release, journal committed
   - On failure: journal needs_reconciliation, CRITICAL log,
     ReconciliationRiskError. The gateway call is never retried.

Reserved funds are excluded from "available", so two concurrent refunds
(or a refund racing a payout) cannot both pass the funds check.
"""

from __future__ import annotations

import uuid

from flask import current_app

from ..extensions import db
from ..models import GatewayOperation, SellerBalance, StoreOrder
from ..errors import (
    AuthorizationError,
    ExternalGatewayError,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    OrderStateError,
    ReconciliationRiskError,
    ValidationError,
)
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .gateway import get_gateway
from .ledger_service import (
    TXN_PAYOUT,
    TXN_RETURN,
    append_balance_transaction,
    ensure_seller_balance,
    format_cents,
    order_label,
    seller_share,
)
from .member_service import get_member, require_seller_plan
from .order_service import ORDER_STATUS_PAID, ORDER_STATUS_REFUNDED, _restore_inventory, refund_in_flight


# =============================================================================
# JOURNAL STATUS CONSTANTS
# =============================================================================

OP_KIND_REFUND = "refund"
OP_KIND_PAYOUT = "payout"

OP_STATUS_PENDING = "pending"
OP_STATUS_COMMITTED = "committed"
OP_STATUS_FAILED = "failed"
OP_STATUS_NEEDS_RECONCILIATION = "needs_reconciliation"

OPEN_STATUSES = (OP_STATUS_PENDING, OP_STATUS_NEEDS_RECONCILIATION)


def _new_operation(*, kind: str, member_id: int, order_id: int | None,
                   gateway_amount_cents: int, ledger_amount_cents: int) -> GatewayOperation:
    now = utcnow()
    op = GatewayOperation(
        kind=kind,
        member_id=member_id,
        order_id=order_id,
        gateway_amount_cents=gateway_amount_cents,
        ledger_amount_cents=ledger_amount_cents,
        status=OP_STATUS_PENDING,
        idempotency_key=uuid.uuid4().hex,
        created_at=now,
        updated_at=now,
    )
    db.session.add(op)
    db.session.flush()
    return op


def _lock_open_operation(operation_id: int) -> GatewayOperation:
    op = lock_for_update(db.session.query(GatewayOperation).filter_by(id=operation_id)).first()
    if not op:
        raise NotFoundError(f"Gateway operation {operation_id} not found")
    if op.status not in OPEN_STATUSES:
        raise InvalidStateError(
            f"Gateway operation {operation_id} is already {op.status}",
            current_status=op.status,
        )
    return op


def _release(balance: SellerBalance, amount_cents: int) -> None:
    balance.reserved_cents = max(0, balance.reserved_cents - amount_cents)


def release_reservation(operation_id: int, error_message: str | None = None) -> GatewayOperation:
    """Gateway rejected (or operator resolved as failed): free the reserved funds."""
    def _op():
        op = _lock_open_operation(operation_id)
        balance = ensure_seller_balance(op.member_id)
        _release(balance, op.ledger_amount_cents)
        op.status = OP_STATUS_FAILED
        op.error_message = (error_message or "")[:512] or None
        op.updated_at = utcnow()
        db.session.commit()
        return op

    return run_with_retry(_op)


def mark_needs_reconciliation(operation_id: int, external_reference: str | None, error_message: str) -> None:
    """Flag a journal row after the gateway moved money but the local apply failed."""
    db.session.rollback()
    try:
        op = db.session.get(GatewayOperation, operation_id)
        if op is None:
            return
        op.status = OP_STATUS_NEEDS_RECONCILIATION
        op.external_reference = external_reference
        op.error_message = error_message[:512]
        op.updated_at = utcnow()
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Could not flag gateway operation %s for reconciliation", operation_id
        )


def _call_gateway(operation_id: int, kind: str, call):
    """
    Step 2. Releases the reservation and re-raises on gateway failure.

    A success without a reference may still have moved money: the row is
    flagged for reconciliation and the reservation stays held.
    """
    try:
        result = call()
    except ExternalGatewayError as exc:
        current_app.logger.warning(
            "Gateway %s failed for operation %s: %s", kind, operation_id, exc.message
        )
        release_reservation(operation_id, exc.message)
        raise

    if not result.reference:
        mark_needs_reconciliation(
            operation_id, None, f"Gateway accepted the {kind} but returned no reference"
        )
        current_app.logger.critical(
            "RECONCILIATION REQUIRED: gateway %s %s returned no reference (status %s)",
            kind, operation_id, result.status,
        )
        raise ReconciliationRiskError(
            "The gateway accepted the request without a reference; "
            "the operation has been flagged for reconciliation",
            operation_id=operation_id,
        )
    return result


def _apply_or_flag(operation_id: int, kind: str, external_reference: str | None, apply):
    """Step 3. Any failure here leaves money moved at the gateway and no ledger entry."""
    try:
        return apply()
    except Exception as exc:
        db.session.rollback()
        mark_needs_reconciliation(operation_id, external_reference, f"{type(exc).__name__}: {exc}")
        current_app.logger.critical(
            "RECONCILIATION REQUIRED: gateway %s %s (ref %s) succeeded but the local commit failed",
            kind, operation_id, external_reference,
        )
        raise ReconciliationRiskError(
            "Payment moved at the gateway but the ledger could not be updated; "
            "the operation has been flagged for reconciliation",
            operation_id=operation_id,
        ) from exc


# =============================================================================
# REFUND
# =============================================================================

def apply_refund(operation_id: int, external_reference: str | None) -> StoreOrder:
    """
    Local half of a confirmed refund: order refunded, return entry, balance
    and reservation decremented, inventory restored, journal committed.
    """
    def _op():
        op = _lock_open_operation(operation_id)
        if op.kind != OP_KIND_REFUND:
            raise InvalidStateError(f"Gateway operation {operation_id} is not a refund")
        order = lock_for_update(db.session.query(StoreOrder).filter_by(id=op.order_id)).first()
        if order.status != ORDER_STATUS_PAID:
            raise OrderStateError(
                f"Order {order.id} is {order.status}; only paid orders can be marked refunded",
                current_status=order.status,
            )
        balance = ensure_seller_balance(op.member_id)
        deduction = op.ledger_amount_cents
        now = utcnow()

        order.status = ORDER_STATUS_REFUNDED
        order.updated_at = now
        append_balance_transaction(
            balance=balance,
            txn_type=TXN_RETURN,
            amount_cents=-deduction,
            order_id=order.id,
            transfer_reference=external_reference,
            gateway_operation_id=op.id,
            description=f"Refund: {order_label(order)}",
        )
        _release(balance, deduction)
        if order.inventory_restored_at is None:
            _restore_inventory(order)

        op.status = OP_STATUS_COMMITTED
        op.external_reference = external_reference
        op.updated_at = now
        db.session.commit()
        return order

    return run_with_retry(_op)


def refund_order(order_id: int, actor_id: int) -> StoreOrder:
    """
    Seller refunds a paid card order in full.

    The buyer gets the whole total back; the seller's balance is debited
    total - platform fee (the platform keeps its fee).

    Raises:
        InsufficientFundsError: available funds < seller deduction
        ExternalGatewayError: gateway refused; nothing changed locally
        ReconciliationRiskError: gateway refunded but the ledger update failed
    """
    require_seller_plan(actor_id)

    def _reserve():
        order = lock_for_update(db.session.query(StoreOrder).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        if order.seller_id != actor_id:
            raise AuthorizationError("Only the seller can refund this order")
        if order.is_cash_order:
            raise OrderStateError("Cash orders cannot be refunded; cancel the order instead")
        if order.status != ORDER_STATUS_PAID:
            raise OrderStateError(
                f"Only paid orders can be refunded (order is {order.status})",
                current_status=order.status,
            )
        if refund_in_flight(order.id):
            raise OrderStateError("A refund for this order is already in progress")

        deduction = seller_share(order.total_cents)
        balance = ensure_seller_balance(order.seller_id)
        available = balance.available_cents
        if available < deduction:
            raise InsufficientFundsError(
                f"Insufficient balance to refund {order_label(order)}: "
                f"need {format_cents(deduction)}, available {format_cents(available)}",
                shortfall_cents=deduction - available,
            )

        balance.reserved_cents += deduction
        # Touch the order so a concurrent refund of the same order conflicts on version
        order.updated_at = utcnow()
        op = _new_operation(
            kind=OP_KIND_REFUND,
            member_id=order.seller_id,
            order_id=order.id,
            gateway_amount_cents=order.total_cents,
            ledger_amount_cents=deduction,
        )
        db.session.commit()
        return op.id, op.idempotency_key, order.payment_reference, order.total_cents

    operation_id, idempotency_key, payment_reference, total_cents = run_with_retry(_reserve)

    current_app.logger.info(
        "Refunding order %s: %s via gateway (operation %s)",
        order_id, format_cents(total_cents), operation_id,
    )
    gateway = get_gateway()
    result = _call_gateway(
        operation_id,
        OP_KIND_REFUND,
        lambda: gateway.refund(payment_reference, total_cents, idempotency_key=idempotency_key),
    )

    order = _apply_or_flag(
        operation_id,
        OP_KIND_REFUND,
        result.reference,
        lambda: apply_refund(operation_id, result.reference),
    )
    current_app.logger.info("Order %s refunded (gateway ref %s)", order_id, result.reference)
    return order


# =============================================================================
# PAYOUT
# =============================================================================

def apply_payout(operation_id: int, transfer_reference: str | None) -> GatewayOperation:
    """Local half of a confirmed payout."""
    def _op():
        op = _lock_open_operation(operation_id)
        if op.kind != OP_KIND_PAYOUT:
            raise InvalidStateError(f"Gateway operation {operation_id} is not a payout")
        balance = ensure_seller_balance(op.member_id)
        amount = op.ledger_amount_cents

        append_balance_transaction(
            balance=balance,
            txn_type=TXN_PAYOUT,
            amount_cents=-amount,
            transfer_reference=transfer_reference,
            gateway_operation_id=op.id,
            description=f"Payout {format_cents(amount)}",
        )
        _release(balance, amount)

        op.status = OP_STATUS_COMMITTED
        op.external_reference = transfer_reference
        op.updated_at = utcnow()
        db.session.commit()
        return op

    return run_with_retry(_op)


def request_payout(member_id: int) -> dict:
    """
    Send the seller's full available balance to their payout destination.

    No partial payouts. Returns {"amount_cents", "transfer_reference", "operation"}.
    """
    require_seller_plan(member_id)
    member = get_member(member_id)
    if not member.has_payout_destination:
        raise ValidationError("Set up and verify a payout account before requesting a payout")
    destination = member.payout_account_id
    min_payout = current_app.config["MIN_PAYOUT_CENTS"]

    def _reserve():
        balance = ensure_seller_balance(member_id)
        available = balance.available_cents
        if available < min_payout:
            raise InsufficientFundsError(
                f"Minimum payout is {format_cents(min_payout)}; available {format_cents(available)}",
                shortfall_cents=min_payout - available,
            )
        balance.reserved_cents += available
        op = _new_operation(
            kind=OP_KIND_PAYOUT,
            member_id=member_id,
            order_id=None,
            gateway_amount_cents=available,
            ledger_amount_cents=available,
        )
        db.session.commit()
        return op.id, op.idempotency_key, available

    operation_id, idempotency_key, amount = run_with_retry(_reserve)

    current_app.logger.info(
        "Paying out %s to member %s (operation %s)", format_cents(amount), member_id, operation_id
    )
    gateway = get_gateway()
    result = _call_gateway(
        operation_id,
        OP_KIND_PAYOUT,
        lambda: gateway.transfer(destination, amount, idempotency_key=idempotency_key),
    )

    op = _apply_or_flag(
        operation_id,
        OP_KIND_PAYOUT,
        result.reference,
        lambda: apply_payout(operation_id, result.reference),
    )
    return {"amount_cents": amount, "transfer_reference": result.reference, "operation": op}
