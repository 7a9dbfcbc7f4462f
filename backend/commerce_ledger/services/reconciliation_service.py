# Overview: Operator reconciliation of the gateway-operation journal and ledger identities.

from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import GatewayOperation
from ..errors import NotFoundError, ValidationError
from ..time_utils import utcnow
from .ledger_service import list_seller_ids, verify_seller_ledger
from .refund_service import (
    OP_KIND_PAYOUT,
    OP_KIND_REFUND,
    OP_STATUS_NEEDS_RECONCILIATION,
    OP_STATUS_PENDING,
    apply_payout,
    apply_refund,
    release_reservation,
)


RESOLVE_OUTCOMES = ("committed", "failed")


def find_stale_operations(older_than_minutes: int | None = None) -> list[GatewayOperation]:
    """Pending journal rows older than the threshold (process died mid-call)."""
    minutes = older_than_minutes
    if minutes is None:
        minutes = current_app.config["RECONCILIATION_STALE_MINUTES"]
    cutoff = utcnow() - timedelta(minutes=minutes)
    return db.session.query(GatewayOperation).filter(
        GatewayOperation.status == OP_STATUS_PENDING,
        GatewayOperation.created_at < cutoff,
    ).order_by(GatewayOperation.id).all()


def find_flagged_operations() -> list[GatewayOperation]:
    return db.session.query(GatewayOperation).filter(
        GatewayOperation.status == OP_STATUS_NEEDS_RECONCILIATION,
    ).order_by(GatewayOperation.id).all()


def audit_ledger(older_than_minutes: int | None = None) -> dict:
    """
    Full ledger audit.

    Returns {"ok", "ledger_failures", "stale_operations", "flagged_operations", "sellers_checked"}.
    """
    results = [verify_seller_ledger(member_id) for member_id in list_seller_ids()]
    failures = [r for r in results if not r["ok"]]
    stale = find_stale_operations(older_than_minutes)
    flagged = find_flagged_operations()
    return {
        "ok": not failures and not stale and not flagged,
        "sellers_checked": len(results),
        "ledger_failures": failures,
        "stale_operations": [op.to_dict() for op in stale],
        "flagged_operations": [op.to_dict() for op in flagged],
    }


def resolve_operation(operation_id: int, outcome: str, external_reference: str | None = None) -> GatewayOperation:
    """
    Close an open journal row after checking the gateway by hand.

    committed: the money moved; apply the local ledger half now.
    failed: the money did not move; release the reservation.
    """
    if outcome not in RESOLVE_OUTCOMES:
        raise ValidationError(f"outcome must be one of {list(RESOLVE_OUTCOMES)}")

    op = db.session.get(GatewayOperation, operation_id)
    if op is None:
        raise NotFoundError(f"Gateway operation {operation_id} not found")
    reference = external_reference or op.external_reference

    if outcome == "failed":
        release_reservation(operation_id, "Resolved as failed by operator")
    elif op.kind == OP_KIND_REFUND:
        apply_refund(operation_id, reference)
    elif op.kind == OP_KIND_PAYOUT:
        apply_payout(operation_id, reference)
    else:
        raise ValidationError(f"Unknown gateway operation kind: {op.kind}")

    current_app.logger.warning(
        "Gateway operation %s resolved as %s by operator", operation_id, outcome
    )
    return db.session.get(GatewayOperation, operation_id)
