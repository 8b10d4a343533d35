# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .actors import Actor
from .validation import ValidationError, coerce_int


def require_actor(f):
    """
    Require an explicit actor identity on the request.

    The auth layer in front of this service resolves the session and forwards the caller as
    X-Actor-Id / X-Actor-Role headers. Sets g.actor for the route.

    Returns 401 if either header is missing, 400 if malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_id = request.headers.get("X-Actor-Id")
        raw_role = request.headers.get("X-Actor-Role")

        if not raw_id or not raw_role:
            return jsonify({"error": "Authentication required"}), 401

        try:
            g.actor = Actor(id=coerce_int(raw_id, "X-Actor-Id"), role=raw_role.strip().lower())
        except ValidationError as e:
            return jsonify({"error": "ValidationError", "message": str(e)}), 400

        return f(*args, **kwargs)

    return decorated_function
