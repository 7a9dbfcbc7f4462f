from __future__ import annotations

import uuid

from ..extensions import db
from ..time_utils import to_utc_z


class SellerBalance(db.Model):
    """
    One row per seller.

    INVARIANTS:
    - balance = total_earned - total_paid_out - sum(|return amounts|)
    - balance = sum(SellerBalanceTransaction.amount_cents) for the seller
    - available = balance - reserved; reserved is held by in-flight
      gateway operations (refunds, payouts) and is never spendable twice

    Mutated only alongside a SellerBalanceTransaction (see ledger_service).
    """
    __tablename__ = "seller_balances"
    __table_args__ = (
        db.UniqueConstraint("member_id", name="uq_seller_balances_member"),
        db.CheckConstraint("reserved_cents >= 0", name="ck_seller_balances_reserved_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=False, index=True)

    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    total_earned_cents = db.Column(db.Integer, nullable=False, default=0)
    total_paid_out_cents = db.Column(db.Integer, nullable=False, default=0)
    reserved_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    member = db.relationship("Member", backref=db.backref("seller_balance", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def available_cents(self) -> int:
        return self.balance_cents - self.reserved_cents

    def to_dict(self) -> dict:
        return {
            "member_id": self.member_id,
            "balance_cents": self.balance_cents,
            "total_earned_cents": self.total_earned_cents,
            "total_paid_out_cents": self.total_paid_out_cents,
            "reserved_cents": self.reserved_cents,
            "available_cents": self.available_cents,
            "updated_at": to_utc_z(self.updated_at),
        }


class SellerBalanceTransaction(db.Model):
    """
    Append-only seller ledger.

    TRANSACTION TYPES:
    - sale: credit for a card order (total - platform fee)
    - return: debit for a refunded order (negative)
    - payout: transfer to the seller's bank (negative)

    IMMUTABLE: never updated or deleted; corrections are new entries.
    At most one sale and one return per order.
    """
    __tablename__ = "seller_balance_transactions"
    __table_args__ = (
        db.UniqueConstraint("order_id", "type", name="uq_seller_balance_txns_order_type"),
        db.Index("ix_seller_balance_txns_member_created", "member_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)  # sale, return, payout
    amount_cents = db.Column(db.Integer, nullable=False)  # signed

    order_id = db.Column(db.Integer, db.ForeignKey("store_orders.id"), nullable=True)
    transfer_reference = db.Column(db.String(128), nullable=True)
    gateway_operation_id = db.Column(db.Integer, db.ForeignKey("gateway_operations.id"), nullable=True)

    description = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "member_id": self.member_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "order_id": self.order_id,
            "transfer_reference": self.transfer_reference,
            "gateway_operation_id": self.gateway_operation_id,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class GatewayOperation(db.Model):
    """
    Write-ahead journal for external money movement.

    WHY: The gateway call and the local commit cannot share a transaction.
    A row is written (and funds reserved) before the gateway is called, so
    a crash or a failed local commit leaves evidence that an operator can
    reconcile.

    STATUS:
    - pending: reserved, gateway call in flight (or process died)
    - committed: gateway confirmed and local ledger updated
    - failed: gateway rejected; reservation released
    - needs_reconciliation: gateway confirmed, local commit failed
    """
    __tablename__ = "gateway_operations"
    __table_args__ = (
        db.Index("ix_gateway_operations_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(16), nullable=False)  # refund, payout
    member_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("store_orders.id"), nullable=True, index=True)

    # What the gateway moves vs. what the seller ledger moves
    gateway_amount_cents = db.Column(db.Integer, nullable=False)
    ledger_amount_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(24), nullable=False, default="pending", index=True)
    external_reference = db.Column(db.String(128), nullable=True)
    # Sent as the gateway Idempotency-Key
    idempotency_key = db.Column(
        db.String(64), nullable=False, unique=True, default=lambda: uuid.uuid4().hex
    )
    error_message = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "member_id": self.member_id,
            "order_id": self.order_id,
            "gateway_amount_cents": self.gateway_amount_cents,
            "ledger_amount_cents": self.ledger_amount_cents,
            "status": self.status,
            "external_reference": self.external_reference,
            "idempotency_key": self.idempotency_key,
            "error_message": self.error_message,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
