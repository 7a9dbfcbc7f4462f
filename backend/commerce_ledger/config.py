# backend/commerce_ledger/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key. Also signs actor tokens.
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/commerce_ledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///commerce_ledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Platform fee: max(PLATFORM_FEE_MIN_CENTS, floor(total * PLATFORM_FEE_BPS / 10000))
    PLATFORM_FEE_BPS = _env_int("PLATFORM_FEE_BPS", 500)
    PLATFORM_FEE_MIN_CENTS = _env_int("PLATFORM_FEE_MIN_CENTS", 50)

    MIN_PAYOUT_CENTS = _env_int("MIN_PAYOUT_CENTS", 100)
    PAYOUT_CURRENCY = os.environ.get("PAYOUT_CURRENCY", "usd")

    # Points economy
    DEFAULT_POINTS_PER_SCAN = _env_int("DEFAULT_POINTS_PER_SCAN", 10)
    SUBSCRIBER_SCAN_MULTIPLIER = _env_int("SUBSCRIBER_SCAN_MULTIPLIER", 2)
    PURCHASE_CENTS_PER_POINT = _env_int("PURCHASE_CENTS_PER_POINT", 200)

    # Subscription plan codes
    TOP_TIER_PLAN = os.environ.get("TOP_TIER_PLAN", "subscribe")
    SELLER_PLAN = os.environ.get("SELLER_PLAN", "seller")
    SPONSOR_PLAN = os.environ.get("SPONSOR_PLAN", "sponsor")

    MAX_ALLOW_SALES_DAYS = _env_int("MAX_ALLOW_SALES_DAYS", 14)
    OFFERS_PER_ITEM_PER_DAY = _env_int("OFFERS_PER_ITEM_PER_DAY", 3)

    # Payment gateway ("stripe" is the only production adapter)
    PAYMENT_GATEWAY = os.environ.get("PAYMENT_GATEWAY", "stripe")
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    STRIPE_API_BASE = os.environ.get("STRIPE_API_BASE", "https://api.stripe.com")
    GATEWAY_TIMEOUT_SECONDS = _env_int("GATEWAY_TIMEOUT_SECONDS", 15)

    # Fire-and-forget hooks (badge awards)
    HOOKS_INLINE = _env_bool("HOOKS_INLINE", False)
    HOOK_WORKERS = _env_int("HOOK_WORKERS", 2)

    # Optimistic-lock / database-locked retries around ledger transactions
    DB_RETRY_ATTEMPTS = _env_int("DB_RETRY_ATTEMPTS", 3)
    DB_RETRY_BACKOFF_SECONDS = float(os.environ.get("DB_RETRY_BACKOFF_SECONDS", "0.1"))

    ACTOR_TOKEN_MAX_AGE_SECONDS = _env_int("ACTOR_TOKEN_MAX_AGE_SECONDS", 3600)
    RECONCILIATION_STALE_MINUTES = _env_int("RECONCILIATION_STALE_MINUTES", 15)
