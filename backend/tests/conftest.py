"""
Pytest fixtures for commerce ledger backend tests.

Provides test database setup, a fake payment gateway, member/catalog/order
factories and bearer-token helpers for the test client.
"""

import pytest
from commerce_ledger import create_app
from commerce_ledger.extensions import db
from commerce_ledger.models import (
    Business,
    CategoryPointsConfig,
    Member,
    OrderItem,
    StoreItem,
    StoreOrder,
    Subscription,
)
from commerce_ledger.services import ledger_service, token_service
from commerce_ledger.services.gateway import GatewayResult, PaymentGateway


class FakeGateway(PaymentGateway):
    """
    In-memory gateway.

    - fail_with: exception raised by the next call (then cleared)
    - before_call: callable run at the start of the next call (then cleared),
      used to interleave a second operation while the first is in flight
    - omit_reference: the next call succeeds but returns no reference (then cleared)
    """

    name = "fake"

    def __init__(self):
        self.refunds = []
        self.transfers = []
        self.fail_with = None
        self.before_call = None
        self.omit_reference = False
        self._seq = 0

    def _prelude(self):
        if self.before_call:
            callback, self.before_call = self.before_call, None
            callback()
        if self.fail_with:
            exc, self.fail_with = self.fail_with, None
            raise exc

    def _reference(self, prefix: str):
        if self.omit_reference:
            self.omit_reference = False
            return None
        self._seq += 1
        return f"{prefix}_test_{self._seq}"

    def refund(self, payment_reference, amount_cents, *, idempotency_key):
        self._prelude()
        reference = self._reference("re")
        self.refunds.append({
            "payment_reference": payment_reference,
            "amount_cents": amount_cents,
            "idempotency_key": idempotency_key,
            "reference": reference,
        })
        return GatewayResult(success=True, reference=reference, amount_cents=amount_cents, status="succeeded")

    def transfer(self, destination, amount_cents, *, idempotency_key):
        self._prelude()
        reference = self._reference("tr")
        self.transfers.append({
            "destination": destination,
            "amount_cents": amount_cents,
            "idempotency_key": idempotency_key,
            "reference": reference,
        })
        return GatewayResult(success=True, reference=reference, amount_cents=amount_cents, status="paid")


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'HOOKS_INLINE': True,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def gateway(app):
    """Fresh fake gateway for each test."""
    fake = FakeGateway()
    original = app.extensions["payment_gateway"]
    app.extensions["payment_gateway"] = fake
    yield fake
    app.extensions["payment_gateway"] = original


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture(scope='function')
def make_member(db_session):
    counter = {"n": 0}

    def _make(name=None, *, plans=(), points=0, payout_account=None, payout_verified=True):
        counter["n"] += 1
        name = name or f"Member {counter['n']}"
        member = Member(
            display_name=name,
            email=f"member{counter['n']}@example.test",
            points=points,
            payout_account_id=payout_account,
            payout_verified=bool(payout_account) and payout_verified,
        )
        db_session.add(member)
        db_session.flush()
        for plan in plans:
            db_session.add(Subscription(member_id=member.id, plan=plan, status="active"))
        db_session.commit()
        return member

    return _make


@pytest.fixture(scope='function')
def seller(make_member):
    """Member on the seller plan with a verified payout account."""
    return make_member("Sam Seller", plans=("seller",), payout_account="acct_sam")


@pytest.fixture(scope='function')
def buyer(make_member):
    return make_member("Bea Buyer")


@pytest.fixture(scope='function')
def make_item(db_session):
    def _make(owner, *, price_cents=1000, quantity=5, listing_type="new",
              accept_offers=False, min_offer_cents=None, status="active", title=None):
        item = StoreItem(
            member_id=owner.id,
            title=title or f"Item for {owner.display_name}",
            price_cents=price_cents,
            quantity=quantity,
            listing_type=listing_type,
            status=status,
            accept_offers=accept_offers,
            min_offer_cents=min_offer_cents,
        )
        db_session.add(item)
        db_session.commit()
        return item

    return _make


@pytest.fixture(scope='function')
def make_business(db_session):
    def _make(owner, *, name="Corner Shop", categories=("retail",)):
        business = Business(member_id=owner.id, name=name, categories=list(categories))
        db_session.add(business)
        db_session.commit()
        return business

    return _make


@pytest.fixture(scope='function')
def set_category_points(db_session):
    def _set(category, points):
        db_session.add(CategoryPointsConfig(category=category, points_per_scan=points))
        db_session.commit()

    return _set


@pytest.fixture(scope='function')
def make_order(db_session):
    """
    Insert a paid order directly (no crediting, no inventory change).

    lines: [(store_item, quantity)]; payment_reference None => cash order.
    """
    def _make(buyer, seller, lines, *, payment_reference="pi_test", shipping_cents=0,
              status="paid", fulfillment_type="ship"):
        subtotal = sum(item.price_cents * qty for item, qty in lines)
        order = StoreOrder(
            buyer_id=buyer.id,
            seller_id=seller.id,
            subtotal_cents=subtotal,
            shipping_cost_cents=shipping_cents,
            total_cents=subtotal + shipping_cents,
            status=status,
            payment_reference=payment_reference,
        )
        db_session.add(order)
        db_session.flush()
        for item, qty in lines:
            db_session.add(OrderItem(
                order_id=order.id,
                store_item_id=item.id,
                quantity=qty,
                unit_price_cents=item.price_cents,
                fulfillment_type=fulfillment_type,
            ))
        db_session.commit()
        return order

    return _make


@pytest.fixture(scope='function')
def seed_balance(db_session):
    """Credit a seller with a standalone sale entry so ledger identities still hold."""
    def _seed(member, amount_cents):
        balance = ledger_service.ensure_seller_balance(member.id)
        ledger_service.append_balance_transaction(
            balance=balance,
            txn_type=ledger_service.TXN_SALE,
            amount_cents=amount_cents,
            description="Opening balance",
        )
        db_session.commit()
        return balance

    return _seed


def auth_headers(member_id=None, *, system=False) -> dict:
    """Helper to create Authorization headers (call inside an app context)."""
    token = token_service.issue_actor_token(member_id, system=system)
    return {'Authorization': f'Bearer {token}'}
