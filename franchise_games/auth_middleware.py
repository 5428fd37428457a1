# auth_middleware.py
from functools import wraps
import logging

from flask import request, jsonify
from firebase_admin import auth as fb_auth

logger = logging.getLogger(__name__)

# Custom claim roles allowed to drive sessions and edit XP rules
ADMIN_ROLES = {"admin", "franchisor", "host"}


def _verify(hdr: str):
    """Decode 'Bearer <token>' into request.user, or return an error response."""
    if not hdr.startswith("Bearer "):
        return jsonify({"ok": False, "error": "Missing Firebase ID token"}), 401
    try:
        token = hdr.split(" ", 1)[1]
        decoded = fb_auth.verify_id_token(token)
    except Exception as e:
        logger.info("Rejected ID token: %s", e)
        return jsonify({"ok": False, "error": f"Invalid or expired token: {e}"}), 401
    request.user = {
        "uid": decoded["uid"],
        "email": decoded.get("email"),
        "name": decoded.get("name"),
        "role": decoded.get("role"),
    }
    return None


def require_auth(fn):
    """
    Verify Firebase ID token from 'Authorization: Bearer <token>'.
    Sets request.user = {"uid": ..., "email": ..., "name": ..., "role": ...}
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        error = _verify(request.headers.get("Authorization", ""))
        if error is not None:
            return error
        return fn(*args, **kwargs)
    return wrapper


def require_admin(fn):
    """Like require_auth, but the token must carry an admin/host role claim."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        error = _verify(request.headers.get("Authorization", ""))
        if error is not None:
            return error
        if request.user.get("role") not in ADMIN_ROLES:
            return jsonify({"ok": False, "error": "Insufficient role"}), 403
        return fn(*args, **kwargs)
    return wrapper
