# Overview: Request decorators for API routes; actor identification and scope.

from functools import wraps
from flask import request, jsonify, g

from .services.scope_service import ScopeResolutionError, resolve_scope

ACTOR_HEADER = "X-User-Id"


def _parse_int(value, name: str):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer")


def _requested_branch_id():
    """branch_id from the query string, else from the JSON body."""
    raw = request.args.get("branch_id")
    if raw is None and request.is_json:
        body = request.get_json(silent=True)
        if isinstance(body, dict):
            raw = body.get("branch_id")
    return _parse_int(raw, "branch_id")


def require_actor(f):
    """
    Identify the acting user and establish ledger scope.

    The actor id is set by the upstream auth gateway in the X-User-Id header.
    Tenant admins may pass branch_id (query string or JSON body) to work on
    one of their branches.

    Sets the following Flask g attributes:
    - g.actor_id: the acting user's id
    - g.scope: the resolved Scope (organization_id, branch_id)

    Returns 401 if the header is missing or malformed, 403 if the actor
    cannot be mapped to the requested scope.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            actor_id = _parse_int(request.headers.get(ACTOR_HEADER), ACTOR_HEADER)
        except ValueError as e:
            return jsonify({"error": str(e)}), 401
        if actor_id is None:
            return jsonify({"error": "Authentication required"}), 401

        try:
            branch_id = _requested_branch_id()
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        try:
            scope = resolve_scope(actor_id, requested_branch_id=branch_id)
        except ScopeResolutionError as e:
            return jsonify({"error": "Access denied", "message": str(e)}), 403

        g.actor_id = actor_id
        g.scope = scope

        return f(*args, **kwargs)

    return decorated_function


def json_payload() -> dict:
    """Request JSON body without the scope selector consumed by require_actor."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return {}
    return {k: v for k, v in payload.items() if k != "branch_id"}
