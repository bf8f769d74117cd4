from __future__ import annotations

import hashlib
import hmac
import logging
import os
import re
import secrets
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from martaz.errors import AuthenticationError, ConflictError, ValidationError
from martaz.extensions import db
from martaz.models import User
from martaz.utils.text import clean_str

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
RESET_TOKEN_TTL = timedelta(hours=1)
INVALID_RESET_TOKEN = "Invalid or expired password reset token"
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(value) -> str:
    email = clean_str(value, max_len=255).lower()
    if not email or not _EMAIL_RE.match(email):
        raise ValidationError("A valid email is required")
    return email


def validate_password(value) -> str:
    password = str(value or "")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return password


def build_user(payload: dict, *, role: str = "user") -> User:
    payload = payload or {}
    email = normalize_email(payload.get("email"))
    password = validate_password(payload.get("password"))
    if User.query.filter_by(email=email).first() is not None:
        raise ConflictError("User already exists")
    user = User(
        email=email,
        first_name=clean_str(payload.get("first_name", payload.get("firstName")), max_len=80),
        last_name=clean_str(payload.get("last_name", payload.get("lastName")), max_len=80),
        phone=clean_str(payload.get("phone"), max_len=32) or None,
        role=role,
        status="active",
    )
    user.set_password(password)
    return user


def save_new_user(user: User) -> User:
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("User already exists")
    return user


def register_user(payload: dict) -> User:
    # Self-registration never grants elevated roles.
    user = save_new_user(build_user(payload, role="user"))
    logger.info("user_registered id=%s", user.id)
    return user


def authenticate(email, password) -> User:
    try:
        email = normalize_email(email)
    except ValidationError:
        raise AuthenticationError("Invalid email or password")
    user = User.query.filter_by(email=email).first()
    if user is None or not user.check_password(str(password or "")):
        raise AuthenticationError("Invalid email or password")
    if not user.is_active:
        raise AuthenticationError(f"Account is {user.status}")
    user.last_login = datetime.utcnow()
    db.session.commit()
    return user


def update_profile(user: User, payload: dict) -> User:
    payload = payload or {}
    for field, alias, max_len in (
        ("first_name", "firstName", 80),
        ("last_name", "lastName", 80),
        ("phone", "phone", 32),
        ("profile_image", "profileImage", 1024),
    ):
        if field in payload or alias in payload:
            value = clean_str(payload.get(field, payload.get(alias)), max_len=max_len)
            setattr(user, field, value or (None if field in ("phone", "profile_image") else ""))
    if "password" in payload:
        current = str(payload.get("current_password") or payload.get("currentPassword") or "")
        if not user.check_password(current):
            raise ValidationError("Current password is incorrect")
        user.set_password(validate_password(payload.get("password")))
    db.session.commit()
    return user


def _hash_reset_token(token: str) -> str:
    secret = (current_app.config.get("SECRET_KEY") or os.getenv("SECRET_KEY") or "dev-secret").encode("utf-8")
    return hmac.new(secret, token.encode("utf-8"), hashlib.sha256).hexdigest()


def request_password_reset(email) -> str | None:
    """Issue a one-hour reset token for an active account.

    Returns the raw token, or None when there is no such account. Only the
    keyed hash is stored; callers must not tell the two cases apart.
    """
    try:
        email = normalize_email(email)
    except ValidationError:
        return None
    user = User.query.filter_by(email=email).first()
    if user is None or not user.is_active:
        logger.info("password_reset_skipped email=%s", email)
        return None

    token = secrets.token_urlsafe(32)
    user.reset_password_token = _hash_reset_token(token)
    user.reset_password_expires = datetime.utcnow() + RESET_TOKEN_TTL
    db.session.commit()

    base_url = (os.getenv("FRONTEND_URL") or "http://localhost:3000").rstrip("/")
    # No mail transport; the link goes to the log for delivery.
    logger.info("password_reset_link user_id=%s url=%s/reset-password/%s", user.id, base_url, token)
    return token


def reset_password(token, password) -> User:
    raw = clean_str(token)
    if not raw:
        raise ValidationError(INVALID_RESET_TOKEN)
    new_password = validate_password(password)

    token_hash = _hash_reset_token(raw)
    user = User.query.filter_by(reset_password_token=token_hash).first()
    if user is None or not hmac.compare_digest(user.reset_password_token or "", token_hash):
        raise ValidationError(INVALID_RESET_TOKEN)
    if user.reset_password_expires is None or user.reset_password_expires < datetime.utcnow():
        raise ValidationError(INVALID_RESET_TOKEN)

    user.set_password(new_password)
    user.reset_password_token = None
    user.reset_password_expires = None
    db.session.commit()
    logger.info("password_reset_completed user_id=%s", user.id)
    return user
