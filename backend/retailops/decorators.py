# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


USER_HEADER = "X-User-Id"
BUSINESS_HEADER = "X-Business-Id"


def _header_int(name: str) -> int | None:
    raw = (request.headers.get(name) or "").strip()
    if not raw.isdigit():
        return None
    return int(raw)


def require_actor(f):
    """
    Require the acting user and tenant established by the upstream gateway.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.user_id: The acting user's ID
    - g.business_id: The business (tenant) the request runs in - REQUIRED

    SECURITY: Authentication itself happens before this service. Returns 401
    if either header is missing or not a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = _header_int(USER_HEADER)
        business_id = _header_int(BUSINESS_HEADER)

        if not user_id or not business_id:
            return jsonify({"error": "Authentication required"}), 401

        g.user_id = user_id
        g.business_id = business_id

        return f(*args, **kwargs)

    return decorated_function
