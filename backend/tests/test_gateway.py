"""
Stripe adapter tests (HTTP session stubbed).

Verifies:
- Requests carry the bearer key and Idempotency-Key
- Timeouts, HTTP errors and failed refunds raise ExternalGatewayError
- A 2xx without an id comes back with no reference instead of raising
"""

import pytest
import requests

from commerce_ledger.errors import ExternalGatewayError
from commerce_ledger.services.gateway import StripeGateway, build_gateway


class StubResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class StubSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


def _gateway(session):
    return StripeGateway("sk_test", api_base="https://stripe.test/", timeout=3, session=session)


def test_refund_success():
    session = StubSession(StubResponse(200, {"id": "re_1", "amount": 1000, "status": "succeeded"}))

    result = _gateway(session).refund("pi_1", 1000, idempotency_key="refund-7")

    assert result.reference == "re_1"
    assert result.status == "succeeded"
    [call] = session.calls
    assert call["url"] == "https://stripe.test/v1/refunds"
    assert call["data"]["payment_intent"] == "pi_1"
    assert call["headers"]["Idempotency-Key"] == "refund-7"
    assert call["headers"]["Authorization"] == "Bearer sk_test"
    assert call["timeout"] == 3


def test_transfer_success():
    session = StubSession(StubResponse(200, {"id": "tr_1", "amount": 500}))

    result = _gateway(session).transfer("acct_1", 500, idempotency_key="payout-3")

    assert result.reference == "tr_1"
    assert session.calls[0]["data"] == {"amount": 500, "currency": "usd", "destination": "acct_1"}


@pytest.mark.parametrize("method, target", [("refund", "pi_1"), ("transfer", "acct_1")])
def test_accepted_without_id_is_not_an_error(method, target):
    session = StubSession(StubResponse(200, {"amount": 500}))

    result = getattr(_gateway(session), method)(target, 500, idempotency_key="k-1")

    assert result.success is True
    assert result.reference is None
    assert result.status == "unknown"


def test_failed_refund_status():
    session = StubSession(StubResponse(200, {"id": "re_2", "status": "failed"}))
    with pytest.raises(ExternalGatewayError):
        _gateway(session).refund("pi_1", 1000, idempotency_key="refund-8")


def test_http_error_message():
    session = StubSession(StubResponse(402, {"error": {"message": "Insufficient platform balance", "code": "balance_insufficient"}}))

    with pytest.raises(ExternalGatewayError) as exc_info:
        _gateway(session).transfer("acct_1", 500, idempotency_key="payout-4")

    assert exc_info.value.message == "Insufficient platform balance"
    assert exc_info.value.payload["gateway_code"] == "balance_insufficient"


def test_http_error_without_json():
    session = StubSession(StubResponse(503, None))
    with pytest.raises(ExternalGatewayError) as exc_info:
        _gateway(session).refund("pi_1", 100, idempotency_key="refund-9")
    assert "HTTP 503" in exc_info.value.message


@pytest.mark.parametrize("error", [requests.Timeout("slow"), requests.ConnectionError("down")])
def test_network_errors(error):
    with pytest.raises(ExternalGatewayError):
        _gateway(StubSession(error=error)).refund("pi_1", 100, idempotency_key="refund-10")


def test_missing_secret_key():
    session = StubSession(StubResponse(200, {}))
    with pytest.raises(ExternalGatewayError):
        StripeGateway("", session=session).transfer("acct_1", 100, idempotency_key="payout-5")
    assert session.calls == []


def test_build_gateway_rejects_unknown_kind():
    with pytest.raises(ValueError):
        build_gateway({"PAYMENT_GATEWAY": "paypal"})
