from __future__ import annotations

from flask import g, request

from martaz.errors import AuthenticationError, ForbiddenError
from martaz.extensions import db
from martaz.models import User
from martaz.utils.jwt_utils import user_id_from_header


def current_user() -> User | None:
    """Resolve the caller from the bearer token, or None for guests."""
    cached = getattr(g, "_martaz_current_user", None)
    if cached is not None:
        return cached
    uid = user_id_from_header(request.headers.get("Authorization", ""))
    if uid is None:
        return None
    user = db.session.get(User, uid)
    g._martaz_current_user = user
    return user


def require_user() -> User:
    user = current_user()
    if user is None:
        raise AuthenticationError("Not authorized, no valid token")
    if not user.is_active:
        raise ForbiddenError(f"Account is {user.status}")
    return user


def require_admin() -> User:
    user = require_user()
    if not user.is_admin:
        raise ForbiddenError("Admin access required")
    return user


def require_superadmin() -> User:
    user = require_user()
    if not user.is_superadmin:
        raise ForbiddenError("Superadmin access required")
    return user
