# Overview: Request decorators and helpers for API routes.

from functools import wraps

from flask import g, jsonify, request

from .validation import ValidationError

ACTOR_HEADER = "X-Actor-Id"


def require_actor(f):
    """
    Require the acting user's id on mutating requests.

    Sets g.actor from the X-Actor-Id header. Authentication happens upstream;
    the id is recorded as-is on audit entries and created_by fields.

    Returns 401 if the header is missing or blank.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = (request.headers.get(ACTOR_HEADER) or "").strip()
        if not actor:
            return jsonify({"error": f"{ACTOR_HEADER} header required"}), 401
        if len(actor) > 64:
            return jsonify({"error": f"{ACTOR_HEADER} exceeds max length 64"}), 400

        g.actor = actor
        return f(*args, **kwargs)

    return decorated_function


def json_body() -> dict:
    """Request JSON object, or {} when the body is empty."""
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def paginated(items: list, total: int, page: int, limit: int) -> dict:
    return {"items": items, "total": total, "page": page, "limit": limit}
