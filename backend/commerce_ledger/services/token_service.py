# Overview: Signed actor tokens naming the acting member or the system scope.

"""
Actor Tokens

WHY: Every action must be attributable to a member, and service-to-service
calls (checkout intake, sale crediting) must be distinguishable from member
calls without a shared plaintext header.

FORMAT: itsdangerous URLSafeTimedSerializer over {"sub": member_id | None,
"scope": "member" | "system"}, signed with SECRET_KEY. Expiry is enforced on
load (ACTOR_TOKEN_MAX_AGE_SECONDS).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

SCOPE_MEMBER = "member"
SCOPE_SYSTEM = "system"

_SALT = "actor-token"


@dataclass(frozen=True)
class ActorContext:
    member_id: Optional[int]
    scope: str

    @property
    def is_system(self) -> bool:
        return self.scope == SCOPE_SYSTEM


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=_SALT)


def issue_actor_token(member_id: int | None = None, *, system: bool = False) -> str:
    if system:
        payload = {"sub": None, "scope": SCOPE_SYSTEM}
    else:
        if member_id is None:
            raise ValueError("member_id is required for a member token")
        payload = {"sub": int(member_id), "scope": SCOPE_MEMBER}
    return _serializer().dumps(payload)


def load_actor_token(token: str) -> ActorContext | None:
    """Returns None for a bad, tampered or expired token."""
    try:
        payload = _serializer().loads(
            token, max_age=current_app.config["ACTOR_TOKEN_MAX_AGE_SECONDS"]
        )
    except SignatureExpired:
        current_app.logger.info("Rejected expired actor token")
        return None
    except BadSignature:
        return None

    if not isinstance(payload, dict):
        return None
    scope = payload.get("scope")
    if scope == SCOPE_SYSTEM:
        return ActorContext(member_id=None, scope=SCOPE_SYSTEM)
    if scope == SCOPE_MEMBER and isinstance(payload.get("sub"), int):
        return ActorContext(member_id=payload["sub"], scope=SCOPE_MEMBER)
    return None
