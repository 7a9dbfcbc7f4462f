# Overview: Error taxonomy shared by services and routes.

"""
Ledger Error Taxonomy

Every business-rule failure raised by the service layer derives from
LedgerError. Routes translate these into JSON responses using the
class-level HTTP status; anything else is an internal error.

PROPAGATION:
- ValidationError is raised before any mutation
- State, authorization and precondition errors are shown to the user
- ReconciliationRiskError means money moved at the gateway but the local
  commit failed; it is logged at CRITICAL and never retried
"""

from __future__ import annotations

from flask import jsonify


class LedgerError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = 400

    def __init__(self, message: str, **payload):
        super().__init__(message)
        self.message = message
        self.payload = payload

    def to_dict(self) -> dict:
        body = {"error": self.message}
        body.update(self.payload)
        return body


class ValidationError(LedgerError):
    """Malformed input, caught before any mutation."""

    status_code = 400


class NotFoundError(LedgerError):
    status_code = 404


class AuthorizationError(LedgerError):
    """Actor is not the party required for the operation."""

    status_code = 403


class InvalidStateError(LedgerError):
    """Operation is not valid for the current lifecycle state."""

    status_code = 409


class OrderStateError(InvalidStateError):
    pass


class InvalidOfferStateError(InvalidStateError):
    pass


class InsufficientFundsError(LedgerError):
    status_code = 402

    def __init__(self, message: str, shortfall_cents: int, **payload):
        super().__init__(message, shortfall_cents=shortfall_cents, **payload)
        self.shortfall_cents = shortfall_cents


class InsufficientPointsError(LedgerError):
    status_code = 402

    def __init__(self, message: str, shortfall_points: int, **payload):
        super().__init__(message, shortfall_points=shortfall_points, **payload)
        self.shortfall_points = shortfall_points


class RateLimitedError(LedgerError):
    status_code = 429


class ExternalGatewayError(LedgerError):
    """Payment gateway call failed or timed out. No local state changed."""

    status_code = 502


class ReconciliationRiskError(LedgerError):
    """Gateway confirmed but the local atomic commit failed."""

    status_code = 500

    def __init__(self, message: str, operation_id: int, **payload):
        super().__init__(message, operation_id=operation_id, **payload)
        self.operation_id = operation_id


def error_response(exc: LedgerError):
    """(json, status) tuple for a LedgerError."""
    return jsonify(exc.to_dict()), exc.status_code
