# Overview: Fire-and-forget dispatch for side effects that must never affect ledger state.

"""
Fire-and-forget hooks

WHY: Badge awards run after delivery, purchases and scans, but a failure
there must never roll back or block the operation that triggered them.

RULES:
- Dispatch only after the triggering transaction has committed
- Hooks run in their own app context and DB session (thread pool), or
  inline when HOOKS_INLINE is set (tests, single-process tooling)
- Hook failures are logged and swallowed; they never reach the caller
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from flask import current_app

from ..extensions import db

_EXECUTOR_KEY = "hook_executor"


def init_hooks(app) -> None:
    if not app.config.get("HOOKS_INLINE"):
        app.extensions[_EXECUTOR_KEY] = ThreadPoolExecutor(
            max_workers=app.config.get("HOOK_WORKERS", 2),
            thread_name_prefix="ledger-hook",
        )


def _run_hook(app, func, args, kwargs) -> None:
    with app.app_context():
        try:
            func(*args, **kwargs)
        except Exception:
            db.session.rollback()
            app.logger.exception("Hook %s failed", getattr(func, "__name__", func))
        finally:
            db.session.remove()


def dispatch(func, *args, **kwargs) -> None:
    """Enqueue func(*args, **kwargs); do not wait for it."""
    app = current_app._get_current_object()
    executor = app.extensions.get(_EXECUTOR_KEY)

    if executor is None:
        try:
            func(*args, **kwargs)
        except Exception:
            db.session.rollback()
            app.logger.exception("Hook %s failed", getattr(func, "__name__", func))
        return

    try:
        executor.submit(_run_hook, app, func, args, kwargs)
    except RuntimeError:
        app.logger.exception("Hook executor unavailable; dropped %s", getattr(func, "__name__", func))
