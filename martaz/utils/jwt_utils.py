import os
import time
import logging
from typing import Optional, Dict, Any, Tuple

import jwt

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60 * 24


def _secret() -> str:
    return os.getenv("SECRET_KEY") or "dev-secret"


def _ttl_seconds() -> int:
    raw = (os.getenv("ACCESS_TOKEN_TTL_SECONDS") or "").strip()
    try:
        value = int(raw) if raw else DEFAULT_TTL_SECONDS
    except Exception:
        value = DEFAULT_TTL_SECONDS
    return max(60, value)


def create_access_token(user_id: int, ttl_seconds: int | None = None) -> str:
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + int(ttl_seconds or _ttl_seconds()),
        "type": "access",
    }
    return jwt.encode(payload, _secret(), algorithm="HS256")


def create_token(user_id: int, ttl_seconds: int | None = None) -> str:
    return create_access_token(user_id=user_id, ttl_seconds=ttl_seconds)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        payload = jwt.decode(token, _secret(), algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        logger.info("jwt_expired")
        return None
    except jwt.InvalidTokenError:
        return None
    if payload.get("type") not in (None, "access"):
        return None
    return payload


def parse_auth_header(auth_header: str) -> Tuple[Optional[str], Optional[str]]:
    if not auth_header:
        return None, None
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1], "bearer"
    if len(parts) == 2 and parts[0].lower() == "token":
        logger.warning("Deprecated auth scheme Token used")
        return parts[1], "token"
    return None, None


def get_bearer_token(auth_header: str) -> Optional[str]:
    if not auth_header:
        return None
    token, _scheme = parse_auth_header(auth_header)
    return token


def user_id_from_header(auth_header: str) -> Optional[int]:
    token = get_bearer_token(auth_header)
    if not token:
        return None
    payload = decode_token(token)
    if not payload:
        return None
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
