from __future__ import annotations

import hashlib
import json
import os
import re
import time
import uuid
from datetime import datetime

from flask import g, request

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")

# Route arguments worth carrying into access logs.
_RESOURCE_ARGS = (
    "listing_id",
    "report_id",
    "conversation_id",
    "category_id",
    "favorite_id",
    "user_id",
    "item_id",
    "setting_id",
)

_SECRET_HEADERS = ("authorization", "cookie", "set-cookie")
_SECRET_FIELDS = ("password", "current_password", "new_password", "token")


def _hash_ip(ip: str, salt: str) -> str:
    raw = f"{salt}:{ip or ''}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()[:16]


def _client_ip() -> str:
    forwarded = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    return forwarded or (request.remote_addr or "")


def get_request_id() -> str:
    try:
        return getattr(g, "request_id", "") or ""
    except RuntimeError:
        # Outside a request (Celery worker, CLI).
        return ""


def incoming_request_id() -> str:
    """Reuse a caller-supplied X-Request-Id when it is sane, otherwise mint one."""
    rid = (request.headers.get("X-Request-Id") or "").strip()
    if rid and _REQUEST_ID_RE.match(rid):
        return rid
    return uuid.uuid4().hex


def init_sentry(app) -> None:
    dsn = (os.getenv("SENTRY_DSN") or "").strip()
    if not dsn:
        app.logger.info("sentry_disabled_no_dsn")
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        try:
            traces_rate = float((os.getenv("SENTRY_TRACES_SAMPLE_RATE") or "0.0").strip())
        except ValueError:
            traces_rate = 0.0

        sentry_sdk.init(
            dsn=dsn,
            environment=(os.getenv("SENTRY_ENVIRONMENT") or os.getenv("MARTAZ_ENV") or "dev"),
            release=(os.getenv("GIT_SHA") or "unknown"),
            integrations=[FlaskIntegration()],
            send_default_pii=False,
            traces_sample_rate=max(0.0, min(traces_rate, 1.0)),
            before_send=_before_send_scrub,
        )
        app.logger.info("sentry_enabled env=%s", os.getenv("MARTAZ_ENV") or "dev")
    except Exception as e:
        app.logger.warning("sentry_init_failed err=%s", e)


def _before_send_scrub(event, hint):
    """Strip credentials and reset tokens; tag the event with the request id."""
    req = event.get("request") or {}
    headers = req.get("headers") or {}
    for key in list(headers.keys()):
        if key.lower() in _SECRET_HEADERS:
            headers[key] = "[REDACTED]"
    req["headers"] = headers

    body = req.get("data")
    if isinstance(body, dict):
        for key in list(body.keys()):
            if key.lower() in _SECRET_FIELDS:
                body[key] = "[REDACTED]"
    event["request"] = req

    rid = get_request_id()
    if rid:
        tags = event.get("tags") or {}
        tags["request_id"] = rid
        event["tags"] = tags
    return event


def _access_record(app, response) -> dict:
    started = getattr(g, "request_started_at", None)
    view_args = request.view_args or {}
    record = {
        "ts": datetime.utcnow().isoformat(),
        "request_id": getattr(g, "request_id", ""),
        "method": request.method,
        "path": request.path,
        "endpoint": request.endpoint,
        "status": int(response.status_code),
        "latency_ms": round((time.perf_counter() - started) * 1000.0, 2) if started is not None else None,
        "user_id": getattr(g, "auth_user_id", None),
        "role": getattr(g, "auth_role", None),
        "ip_hash": _hash_ip(_client_ip(), app.config.get("SECRET_KEY", "martaz")),
    }
    resource = {name: view_args[name] for name in _RESOURCE_ARGS if name in view_args}
    if resource:
        record["resource"] = resource
    error_code = getattr(g, "error_code", None)
    if error_code:
        record["error"] = error_code
    return record


def install_request_observers(app) -> None:
    @app.before_request
    def _request_observer_begin():
        g.request_id = incoming_request_id()
        g.request_started_at = time.perf_counter()

    @app.after_request
    def _request_observer_end(response):
        if not getattr(g, "request_id", ""):
            g.request_id = uuid.uuid4().hex
        response.headers["X-Request-Id"] = g.request_id
        if request.path == "/api/health":
            return response
        app.logger.info(json.dumps(_access_record(app, response), default=str))
        return response
