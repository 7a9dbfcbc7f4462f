# Overview: Request authentication decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import token_service


def _load_actor():
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None, (jsonify({"error": "Authentication required"}), 401)

    token = auth_header.split(" ", 1)[1]
    context = token_service.load_actor_token(token)
    if not context:
        return None, (jsonify({"error": "Invalid or expired token"}), 401)
    return context, None


def require_auth(f):
    """
    Require a member token.

    Sets the following Flask g attributes:
    - g.member_id: The acting member
    - g.actor_scope: "member"

    Returns 401 if the header is missing, the token is invalid or expired,
    or the token carries the system scope (no member to act as).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        context, error = _load_actor()
        if error:
            return error
        if context.member_id is None:
            return jsonify({"error": "Member token required"}), 401

        g.member_id = context.member_id
        g.actor_scope = context.scope
        return f(*args, **kwargs)

    return decorated_function


def require_system(f):
    """
    Require a system-scope token (service-to-service calls).

    Member tokens are authenticated but not allowed: 403.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        context, error = _load_actor()
        if error:
            return error
        if not context.is_system:
            return jsonify({"error": "System token required"}), 403

        g.member_id = None
        g.actor_scope = context.scope
        return f(*args, **kwargs)

    return decorated_function
