# Overview: Payment gateway boundary; refunds and transfers against the external processor.

"""
Payment Gateway Client

WHY: Refund execution and payouts are the only places money leaves the
platform. Every call goes through this module so the ledger services never
know which processor is behind it.

CONTRACT:
- refund(payment_reference, amount_cents, idempotency_key) -> GatewayResult
- transfer(destination, amount_cents, idempotency_key) -> GatewayResult
- Any failure (HTTP error, declined, timeout) raises ExternalGatewayError
- A 2xx response without an id returns reference=None; the money may have
  moved, so callers must not treat it as a failure
- Calls are blocking and must never run while a DB transaction holds locks
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import requests
from flask import current_app

from ..errors import ExternalGatewayError


@dataclass
class GatewayResult:
    """Processor response normalized to what the ledger needs."""
    success: bool
    reference: Optional[str]
    amount_cents: int
    status: str
    raw: dict[str, Any] = field(default_factory=dict)


class PaymentGateway:
    """Interface every gateway adapter implements."""

    name = "base"

    def refund(self, payment_reference: str, amount_cents: int, *, idempotency_key: str) -> GatewayResult:
        raise NotImplementedError

    def transfer(self, destination: str, amount_cents: int, *, idempotency_key: str) -> GatewayResult:
        raise NotImplementedError


class StripeGateway(PaymentGateway):
    """
    Stripe REST adapter (form-encoded POSTs, bearer secret key).

    The Idempotency-Key header is the random key stored on the gateway-operation
    journal row, so a manual retry of the same operation cannot move money twice.
    """

    name = "stripe"

    def __init__(
        self,
        secret_key: str,
        *,
        api_base: str = "https://api.stripe.com",
        currency: str = "usd",
        timeout: float = 15,
        session: requests.Session | None = None,
    ):
        self.secret_key = secret_key
        self.api_base = api_base.rstrip("/")
        self.currency = currency
        self.timeout = timeout
        self.http = session or requests.Session()

    def refund(self, payment_reference: str, amount_cents: int, *, idempotency_key: str) -> GatewayResult:
        body = self._post(
            "/v1/refunds",
            {
                "payment_intent": payment_reference,
                "amount": amount_cents,
                "reason": "requested_by_customer",
            },
            idempotency_key=idempotency_key,
        )
        status = body.get("status", "unknown")
        if status in ("failed", "canceled"):
            raise ExternalGatewayError(
                f"Refund {status} at gateway",
                gateway_status=status,
            )
        return GatewayResult(
            success=True,
            reference=body.get("id"),
            amount_cents=int(body.get("amount", amount_cents)),
            status=status,
            raw=body,
        )

    def transfer(self, destination: str, amount_cents: int, *, idempotency_key: str) -> GatewayResult:
        body = self._post(
            "/v1/transfers",
            {
                "amount": amount_cents,
                "currency": self.currency,
                "destination": destination,
            },
            idempotency_key=idempotency_key,
        )
        # A 2xx without an id is still an accepted transfer; callers flag it
        return GatewayResult(
            success=True,
            reference=body.get("id"),
            amount_cents=int(body.get("amount", amount_cents)),
            status="paid" if body.get("id") else "unknown",
            raw=body,
        )

    def _post(self, path: str, data: dict, *, idempotency_key: str) -> dict:
        if not self.secret_key:
            raise ExternalGatewayError("Payment gateway is not configured")
        try:
            resp = self.http.post(
                f"{self.api_base}{path}",
                data=data,
                headers={
                    "Authorization": f"Bearer {self.secret_key}",
                    "Idempotency-Key": idempotency_key,
                },
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise ExternalGatewayError("Payment gateway timed out") from exc
        except requests.RequestException as exc:
            raise ExternalGatewayError(f"Payment gateway unreachable: {exc}") from exc

        try:
            body = resp.json()
        except ValueError:
            body = {}

        if resp.status_code >= 400:
            error = body.get("error") or {}
            raise ExternalGatewayError(
                error.get("message") or f"Payment gateway returned HTTP {resp.status_code}",
                gateway_status=resp.status_code,
                gateway_code=error.get("code"),
            )
        return body


def build_gateway(config) -> PaymentGateway:
    """Construct the configured adapter (called once from create_app)."""
    kind = config.get("PAYMENT_GATEWAY", "stripe")
    if kind == "stripe":
        return StripeGateway(
            config.get("STRIPE_SECRET_KEY", ""),
            api_base=config.get("STRIPE_API_BASE", "https://api.stripe.com"),
            currency=config.get("PAYOUT_CURRENCY", "usd"),
            timeout=config.get("GATEWAY_TIMEOUT_SECONDS", 15),
        )
    raise ValueError(f"Unknown PAYMENT_GATEWAY: {kind}")


def get_gateway() -> PaymentGateway:
    return current_app.extensions["payment_gateway"]
