"""
Refund & payout processor tests.

Verifies:
- Refund deducts total - platform fee and keeps both balance identities
- Insufficient available funds rejects with the shortfall, before the gateway
- Gateway failure releases the reservation and leaves the order paid
- Gateway success + local failure flags the journal row for reconciliation
- Reservations stop a second refund/payout from spending the same funds
- Status changes wait until an in-flight refund settles
- A gateway success without a reference is flagged, never released
"""

import pytest

from commerce_ledger.errors import (
    AuthorizationError,
    ExternalGatewayError,
    InsufficientFundsError,
    OrderStateError,
    ReconciliationRiskError,
    ValidationError,
)
from commerce_ledger.models import GatewayOperation, SellerBalance, SellerBalanceTransaction, StoreItem, StoreOrder
from commerce_ledger.services import ledger_service, order_service, reconciliation_service, refund_service
from commerce_ledger.validation import OrderStatusUpdate


def _balance(db_session, member):
    db_session.expire_all()
    return db_session.query(SellerBalance).filter_by(member_id=member.id).one()


# =============================================================================
# REFUND EXECUTION
# =============================================================================


class TestRefund:
    def test_rejected_when_available_short(self, db_session, gateway, seller, buyer, make_item, make_order, seed_balance):
        item = make_item(seller, price_cents=1000, quantity=0)
        order = make_order(buyer, seller, [(item, 1)])
        seed_balance(seller, 900)

        with pytest.raises(InsufficientFundsError) as exc_info:
            refund_service.refund_order(order.id, seller.id)

        assert exc_info.value.shortfall_cents == 50
        assert gateway.refunds == []
        balance = _balance(db_session, seller)
        assert balance.balance_cents == 900
        assert balance.reserved_cents == 0
        assert db_session.get(StoreOrder, order.id).status == "paid"
        assert db_session.query(GatewayOperation).count() == 0

    def test_refund_success(self, db_session, gateway, seller, buyer, make_item, make_order, seed_balance):
        item = make_item(seller, price_cents=1000, quantity=0)
        order = make_order(buyer, seller, [(item, 1)])
        seed_balance(seller, 1000)

        refunded = refund_service.refund_order(order.id, seller.id)

        assert refunded.status == "refunded"
        assert refunded.inventory_restored_at is not None
        assert db_session.get(StoreItem, item.id).quantity == 1

        [call] = gateway.refunds
        assert call["amount_cents"] == 1000
        assert call["payment_reference"] == "pi_test"

        balance = _balance(db_session, seller)
        assert balance.balance_cents == 50
        assert balance.reserved_cents == 0

        txn = db_session.query(SellerBalanceTransaction).filter_by(order_id=order.id, type="return").one()
        assert txn.amount_cents == -950
        assert txn.transfer_reference == call["reference"]

        op = db_session.query(GatewayOperation).one()
        assert op.status == "committed"
        assert call["idempotency_key"] == op.idempotency_key
        assert ledger_service.verify_seller_ledger(seller.id)["ok"] is True

    def test_refund_after_credit_keeps_identities(self, db_session, gateway, seller, buyer, make_item, make_order):
        item = make_item(seller, price_cents=4000)
        kept = make_order(buyer, seller, [(item, 1)])
        refunded = make_order(buyer, seller, [(item, 1)])
        ledger_service.credit_sale(kept.id)
        ledger_service.credit_sale(refunded.id)

        refund_service.refund_order(refunded.id, seller.id)

        report = ledger_service.verify_seller_ledger(seller.id)
        assert report["ok"] is True
        assert report["balance_cents"] == 3800

    def test_only_paid_card_orders(self, db_session, gateway, seller, buyer, make_item, make_order, seed_balance):
        seed_balance(seller, 5000)
        item = make_item(seller)
        cash = make_order(buyer, seller, [(item, 1)], payment_reference=None)
        shipped = make_order(buyer, seller, [(item, 1)], status="shipped")

        with pytest.raises(OrderStateError):
            refund_service.refund_order(cash.id, seller.id)
        with pytest.raises(OrderStateError):
            refund_service.refund_order(shipped.id, seller.id)
        assert gateway.refunds == []

    def test_only_seller_refunds(self, db_session, gateway, make_member, seller, buyer, make_item, make_order, seed_balance):
        other_seller = make_member("Other", plans=("seller",))
        order = make_order(buyer, seller, [(make_item(seller), 1)])
        seed_balance(seller, 5000)

        with pytest.raises(AuthorizationError):
            refund_service.refund_order(order.id, other_seller.id)

    def test_gateway_failure_releases_reservation(self, db_session, gateway, seller, buyer, make_item, make_order, seed_balance):
        order = make_order(buyer, seller, [(make_item(seller, price_cents=1000), 1)])
        seed_balance(seller, 1000)
        gateway.fail_with = ExternalGatewayError("Card issuer unavailable")

        with pytest.raises(ExternalGatewayError):
            refund_service.refund_order(order.id, seller.id)

        balance = _balance(db_session, seller)
        assert balance.balance_cents == 1000
        assert balance.reserved_cents == 0
        assert db_session.get(StoreOrder, order.id).status == "paid"
        op = db_session.query(GatewayOperation).one()
        assert op.status == "failed"
        assert op.error_message == "Card issuer unavailable"

        # Retry by the seller is a new operation and succeeds
        assert refund_service.refund_order(order.id, seller.id).status == "refunded"

    def test_local_failure_flags_reconciliation(self, db_session, gateway, seller, buyer, make_item, make_order,
                                                seed_balance, monkeypatch):
        order = make_order(buyer, seller, [(make_item(seller, price_cents=1000), 1)])
        seed_balance(seller, 1000)

        def boom(operation_id, external_reference):
            raise RuntimeError("disk full")

        monkeypatch.setattr(refund_service, "apply_refund", boom)

        with pytest.raises(ReconciliationRiskError) as exc_info:
            refund_service.refund_order(order.id, seller.id)

        op = db_session.get(GatewayOperation, exc_info.value.operation_id)
        assert op.status == "needs_reconciliation"
        assert op.external_reference == gateway.refunds[0]["reference"]
        assert len(gateway.refunds) == 1
        assert db_session.get(StoreOrder, order.id).status == "paid"
        assert _balance(db_session, seller).reserved_cents == 950

        audit = reconciliation_service.audit_ledger()
        assert audit["ok"] is False
        assert [o["id"] for o in audit["flagged_operations"]] == [op.id]

        # Operator confirms the refund went through at the gateway
        resolved = reconciliation_service.resolve_operation(op.id, "committed")
        assert resolved.status == "committed"
        assert db_session.get(StoreOrder, order.id).status == "refunded"
        balance = _balance(db_session, seller)
        assert balance.balance_cents == 50
        assert balance.reserved_cents == 0
        assert reconciliation_service.audit_ledger()["ok"] is True

    def test_reservation_blocks_concurrent_refund(self, db_session, gateway, seller, buyer, make_item, make_order,
                                                  seed_balance):
        item = make_item(seller, price_cents=1000)
        first = make_order(buyer, seller, [(item, 1)])
        second = make_order(buyer, seller, [(item, 1)])
        seed_balance(seller, 1000)
        outcome = {}

        def refund_second_while_first_in_flight():
            try:
                refund_service.refund_order(second.id, seller.id)
            except InsufficientFundsError as exc:
                outcome["shortfall"] = exc.shortfall_cents

        gateway.before_call = refund_second_while_first_in_flight

        refund_service.refund_order(first.id, seller.id)

        assert outcome["shortfall"] == 900
        assert len(gateway.refunds) == 1
        assert _balance(db_session, seller).balance_cents == 50
        assert db_session.get(StoreOrder, second.id).status == "paid"

    def test_same_order_refund_in_flight_rejected(self, db_session, gateway, seller, buyer, make_item, make_order,
                                                  seed_balance):
        order = make_order(buyer, seller, [(make_item(seller, price_cents=1000), 1)])
        seed_balance(seller, 5000)
        outcome = {}

        def refund_again():
            try:
                refund_service.refund_order(order.id, seller.id)
            except OrderStateError as exc:
                outcome["error"] = exc.message

        gateway.before_call = refund_again

        refund_service.refund_order(order.id, seller.id)

        assert "in progress" in outcome["error"]
        assert len(gateway.refunds) == 1

    def test_status_update_blocked_while_refund_in_flight(self, db_session, gateway, seller, buyer, make_item,
                                                          make_order, seed_balance):
        order = make_order(buyer, seller, [(make_item(seller, price_cents=1000), 1)])
        seed_balance(seller, 1000)
        outcome = {}

        def deliver_during_refund():
            try:
                order_service.update_order_status(order.id, seller.id, OrderStatusUpdate(status="delivered"))
            except OrderStateError as exc:
                outcome["error"] = exc.message

        gateway.before_call = deliver_during_refund

        refund_service.refund_order(order.id, seller.id)

        assert "in progress" in outcome["error"]
        db_session.expire_all()
        refunded = db_session.get(StoreOrder, order.id)
        assert refunded.status == "refunded"
        assert refunded.delivery_confirmed_at is None
        assert reconciliation_service.audit_ledger()["ok"] is True

    def test_ship_together_blocked_while_refund_in_flight(self, db_session, gateway, seller, buyer, make_item,
                                                          make_order, seed_balance):
        item = make_item(seller, price_cents=1000)
        first = make_order(buyer, seller, [(item, 1)])
        second = make_order(buyer, seller, [(item, 1)])
        seed_balance(seller, 1000)
        outcome = {}

        def ship_during_refund():
            try:
                order_service.ship_orders_together(seller.id, [first.id, second.id])
            except OrderStateError as exc:
                outcome["order_ids"] = exc.payload["order_ids"]

        gateway.before_call = ship_during_refund

        refund_service.refund_order(first.id, seller.id)

        assert outcome["order_ids"] == [first.id]
        db_session.expire_all()
        assert db_session.get(StoreOrder, first.id).status == "refunded"
        assert db_session.get(StoreOrder, second.id).status == "paid"
        assert db_session.get(StoreOrder, second.id).shipped_with_order_id is None

    def test_apply_refuses_order_moved_off_paid(self, db_session, gateway, seller, buyer, make_item, make_order,
                                                seed_balance):
        order = make_order(buyer, seller, [(make_item(seller, price_cents=1000), 1)])
        seed_balance(seller, 1000)

        def ship_behind_the_services_back():
            row = db_session.get(StoreOrder, order.id)
            row.status = "shipped"
            db_session.commit()

        gateway.before_call = ship_behind_the_services_back

        with pytest.raises(ReconciliationRiskError) as exc_info:
            refund_service.refund_order(order.id, seller.id)

        op = db_session.get(GatewayOperation, exc_info.value.operation_id)
        assert op.status == "needs_reconciliation"
        assert "only paid orders" in op.error_message
        assert db_session.get(StoreOrder, order.id).status == "shipped"
        assert _balance(db_session, seller).reserved_cents == 950

    def test_success_without_reference_is_flagged(self, db_session, gateway, seller, buyer, make_item, make_order,
                                                  seed_balance):
        order = make_order(buyer, seller, [(make_item(seller, price_cents=1000), 1)])
        seed_balance(seller, 1000)
        gateway.omit_reference = True

        with pytest.raises(ReconciliationRiskError) as exc_info:
            refund_service.refund_order(order.id, seller.id)

        op = db_session.get(GatewayOperation, exc_info.value.operation_id)
        assert op.status == "needs_reconciliation"
        assert op.external_reference is None
        assert "no reference" in op.error_message
        assert len(gateway.refunds) == 1
        assert db_session.get(StoreOrder, order.id).status == "paid"
        balance = _balance(db_session, seller)
        assert balance.balance_cents == 1000
        assert balance.reserved_cents == 950

    def test_idempotency_keys_are_random_per_operation(self, db_session, gateway, seller, buyer, make_item,
                                                       make_order, seed_balance):
        item = make_item(seller, price_cents=1000)
        first = make_order(buyer, seller, [(item, 1)])
        second = make_order(buyer, seller, [(item, 1)])
        seed_balance(seller, 5000)

        refund_service.refund_order(first.id, seller.id)
        refund_service.refund_order(second.id, seller.id)

        ops = db_session.query(GatewayOperation).order_by(GatewayOperation.id).all()
        keys = [op.idempotency_key for op in ops]
        assert [call["idempotency_key"] for call in gateway.refunds] == keys
        assert len(set(keys)) == 2
        for op, key in zip(ops, keys):
            assert len(key) == 32
            int(key, 16)
            assert key != f"refund-{op.id}"


# =============================================================================
# PAYOUT
# =============================================================================


class TestPayout:
    def test_pays_full_available(self, db_session, gateway, seller, seed_balance):
        seed_balance(seller, 4321)

        result = refund_service.request_payout(seller.id)

        assert result["amount_cents"] == 4321
        [call] = gateway.transfers
        assert call["destination"] == "acct_sam"
        assert call["idempotency_key"] == result["operation"].idempotency_key

        balance = _balance(db_session, seller)
        assert balance.balance_cents == 0
        assert balance.total_paid_out_cents == 4321
        assert balance.reserved_cents == 0
        txn = db_session.query(SellerBalanceTransaction).filter_by(type="payout").one()
        assert txn.amount_cents == -4321
        assert txn.transfer_reference == result["transfer_reference"]
        assert ledger_service.verify_seller_ledger(seller.id)["ok"] is True

    def test_below_minimum(self, db_session, gateway, seller, seed_balance):
        seed_balance(seller, 60)

        with pytest.raises(InsufficientFundsError) as exc_info:
            refund_service.request_payout(seller.id)

        assert exc_info.value.shortfall_cents == 40
        assert gateway.transfers == []

    def test_requires_verified_destination(self, db_session, gateway, make_member, seed_balance):
        unverified = make_member("U", plans=("seller",), payout_account="acct_u", payout_verified=False)
        seed_balance(unverified, 5000)

        with pytest.raises(ValidationError):
            refund_service.request_payout(unverified.id)

    def test_requires_seller_plan(self, db_session, gateway, buyer):
        with pytest.raises(AuthorizationError):
            refund_service.request_payout(buyer.id)

    def test_gateway_failure_keeps_balance(self, db_session, gateway, seller, seed_balance):
        seed_balance(seller, 2000)
        gateway.fail_with = ExternalGatewayError("Account restricted")

        with pytest.raises(ExternalGatewayError):
            refund_service.request_payout(seller.id)

        balance = _balance(db_session, seller)
        assert balance.balance_cents == 2000
        assert balance.reserved_cents == 0
        assert balance.total_paid_out_cents == 0

    def test_success_without_reference_keeps_reservation(self, db_session, gateway, seller, seed_balance):
        seed_balance(seller, 2000)
        gateway.omit_reference = True

        with pytest.raises(ReconciliationRiskError) as exc_info:
            refund_service.request_payout(seller.id)

        op = db_session.get(GatewayOperation, exc_info.value.operation_id)
        assert op.status == "needs_reconciliation"
        assert op.kind == "payout"
        assert len(gateway.transfers) == 1

        balance = _balance(db_session, seller)
        assert balance.balance_cents == 2000
        assert balance.reserved_cents == 2000
        assert balance.total_paid_out_cents == 0

        # The held funds cannot be paid out a second time
        with pytest.raises(InsufficientFundsError):
            refund_service.request_payout(seller.id)
        assert len(gateway.transfers) == 1

    def test_refund_reservation_excluded_from_payout(self, db_session, gateway, seller, buyer, make_item,
                                                     make_order, seed_balance):
        order = make_order(buyer, seller, [(make_item(seller, price_cents=1000), 1)])
        seed_balance(seller, 1000)
        outcome = {}

        def payout_during_refund():
            try:
                refund_service.request_payout(seller.id)
            except InsufficientFundsError as exc:
                outcome["shortfall"] = exc.shortfall_cents

        gateway.before_call = payout_during_refund

        refund_service.refund_order(order.id, seller.id)

        assert outcome["shortfall"] == 50
        assert gateway.transfers == []
