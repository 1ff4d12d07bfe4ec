"""
Session cookie helpers and access-control decorators for the Flask API.
"""

from datetime import datetime, timezone
from functools import wraps
from typing import Optional

import jwt
from flask import current_app, request

from portal.config import SECRET_KEY, SESSION_COOKIE_NAME
from portal.guard import authorize, require_authenticated
from portal.models import Session


def encode_session_cookie(session: Session) -> str:
    """Wrap the opaque session token in a signed JWT for the cookie."""
    payload = {
        "sid": session.token,
        "iat": datetime.now(timezone.utc),
        "exp": session.expires_at,
    }
    return jwt.encode(payload, SECRET_KEY, algorithm="HS256")


def decode_session_cookie(value: Optional[str]) -> Optional[str]:
    """Return the session token inside a cookie value (or None)."""
    if not value:
        return None
    try:
        payload = jwt.decode(value, SECRET_KEY, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None
    sid = payload.get("sid")
    return sid if isinstance(sid, str) else None


def extract_session_token() -> Optional[str]:
    """Read the session from a Bearer header, falling back to the cookie."""
    value = None

    auth_header = request.headers.get("Authorization", "")
    parts = auth_header.split(" ")
    if len(parts) == 2 and parts[0].lower() == "bearer":
        value = parts[1]

    if not value:
        value = request.cookies.get(SESSION_COOKIE_NAME)

    return decode_session_cookie(value)


def _resolver():
    return current_app.extensions["portal"].resolver


def login_required(f):
    """Decorator: the request must carry a live session."""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = extract_session_token()
        request.principal = require_authenticated(_resolver(), token)
        request.session_token = token
        return f(*args, **kwargs)

    return decorated


def permission_required(permission):
    """Decorator: live session first, then a role holding *permission*."""
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            token = extract_session_token()
            request.principal = authorize(_resolver(), token, permission)
            request.session_token = token
            return f(*args, **kwargs)

        return decorated

    return decorator
