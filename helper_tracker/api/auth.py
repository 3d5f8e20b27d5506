"""
JWT authentication helpers and middleware for the Flask API.

Sessions expire after a per-user period of inactivity (hours), independently
of the token's own ``exp`` claim.
"""

import secrets
import time
from datetime import datetime, timedelta
from functools import wraps
from typing import Any, Callable, Dict, Optional

import jwt
from flask import jsonify, request

from helper_tracker.config import (
    SECRET_KEY,
    SESSION_TIMEOUT_DEFAULT_HOURS,
    SESSION_TIMEOUT_MAX_HOURS,
    SESSION_TIMEOUT_MIN_HOURS,
)
from helper_tracker.models import SessionUser, User
from helper_tracker.permissions import Role

# In-memory session store, one per process.
# Structure: {token: {"user": SessionUser, "created_at": datetime}}
sessions: Dict[str, Dict[str, Any]] = {}


def clamp_session_timeout(hours: Any) -> int:
    """Coerce a requested timeout into [SESSION_TIMEOUT_MIN_HOURS, SESSION_TIMEOUT_MAX_HOURS]."""
    try:
        value = int(hours)
    except (TypeError, ValueError):
        return SESSION_TIMEOUT_DEFAULT_HOURS
    return max(SESSION_TIMEOUT_MIN_HOURS, min(SESSION_TIMEOUT_MAX_HOURS, value))


def is_session_expired(user: SessionUser, now: Optional[float] = None) -> bool:
    if not user.last_activity or not user.session_timeout:
        return False
    now = time.time() if now is None else now
    return now - user.last_activity > user.session_timeout * 3600


def generate_token(user: User) -> str:
    """Generate a JWT token for an authenticated user."""
    payload = {
        "user_id": user.id,
        "username": user.username,
        "role": user.role.value,
        "jti": secrets.token_hex(8),
        "iat": datetime.utcnow(),
        "exp": datetime.utcnow() + timedelta(hours=SESSION_TIMEOUT_MAX_HOURS),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm="HS256")


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify a JWT token and return the decoded payload (or None)."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def open_session(user: User, timeout_hours: int = SESSION_TIMEOUT_DEFAULT_HOURS) -> str:
    """Issue a token for *user* and register its session."""
    token = generate_token(user)
    sessions[token] = {
        "user": SessionUser(
            id=user.id,
            username=user.username,
            email=user.email,
            role=user.role,
            status=user.status,
            last_activity=time.time(),
            session_timeout=clamp_session_timeout(timeout_hours),
        ),
        "created_at": datetime.utcnow(),
    }
    return token


def refresh_user_sessions(user: User) -> int:
    """Push a changed role/status/email into every live session of *user*."""
    updated = 0
    for data in sessions.values():
        session_user: SessionUser = data["user"]
        if session_user.id == user.id:
            session_user.role = user.role
            session_user.status = user.status
            session_user.email = user.email
            session_user.username = user.username
            updated += 1
    return updated


def drop_user_sessions(user_id: str) -> int:
    stale = [tok for tok, data in sessions.items() if data["user"].id == user_id]
    for tok in stale:
        del sessions[tok]
    return len(stale)


def _auth_error(message: str, code: str):
    return jsonify({"error": message, "code": code}), 401


def token_required(f):
    """Decorator that protects endpoints with JWT authentication."""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = None

        # Check Authorization header (Bearer token)
        if "Authorization" in request.headers:
            auth_header = request.headers["Authorization"]
            try:
                token = auth_header.split(" ")[1]
            except IndexError:
                return _auth_error("Invalid authorization header format", "AUTH_REQUIRED")

        if not token:
            token = request.args.get("token")

        if not token:
            return _auth_error("Authentication required", "AUTH_REQUIRED")

        if not verify_token(token):
            sessions.pop(token, None)
            return _auth_error("Invalid or expired token", "AUTH_REQUIRED")

        if token not in sessions:
            return _auth_error("Session not found. Please login again.", "AUTH_REQUIRED")

        session_user: SessionUser = sessions[token]["user"]
        if is_session_expired(session_user):
            del sessions[token]
            return _auth_error("Session expired due to inactivity", "SESSION_EXPIRED")

        session_user.last_activity = time.time()
        request.session_data = sessions[token]
        request.session_user = session_user
        request.token = token

        return f(*args, **kwargs)

    return decorated


def require_permission(check: Callable[[Role], bool], message: str):
    """Decorator (inside ``token_required``) that 403s when *check* rejects the caller's role."""
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            if not check(request.session_user.role):
                return jsonify({"error": message}), 403
            return f(*args, **kwargs)
        return decorated
    return decorator


def cleanup_expired_sessions() -> int:
    """Remove sessions whose inactivity window has passed."""
    now = time.time()
    expired = [tok for tok, data in sessions.items() if is_session_expired(data["user"], now)]
    for tok in expired:
        del sessions[tok]
    if expired:
        print(f"[cleanup] Removed {len(expired)} expired sessions")
    return len(expired)
