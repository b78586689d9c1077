from functools import wraps
from flask import g, jsonify, request

# Identity is established by the auth proxy in front of this service; it
# forwards the caller as X-User-Id and a comma-separated X-User-Roles.
USER_HEADER = "X-User-Id"
ROLES_HEADER = "X-User-Roles"

def load_current_user():
    user_id = (request.headers.get(USER_HEADER) or "").strip()
    if not user_id:
        g.user_id = None
        g.user_roles = set()
        return
    g.user_id = user_id
    g.user_roles = {
        r.strip().upper()
        for r in (request.headers.get(ROLES_HEADER) or "").split(",")
        if r.strip()
    }

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user_id", None) is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
