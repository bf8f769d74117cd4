from __future__ import annotations

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from martaz.extensions import db
from martaz.models import PlatformEvent
from martaz.utils.observability import get_request_id

logger = logging.getLogger(__name__)


def _safe_value(value: Any):
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _safe_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_safe_value(v) for v in value]
    return str(value)


def _safe_json(data: Any) -> str:
    normalized = _safe_value(data if isinstance(data, dict) else {"value": data})
    return json.dumps(normalized, separators=(",", ":"), ensure_ascii=False)


def log_event(
    event_type: str,
    *,
    actor_user_id: int | None = None,
    subject_type: str | None = None,
    subject_id: int | str | None = None,
    severity: str = "INFO",
    metadata: dict | None = None,
) -> PlatformEvent | None:
    """Record an audit event in the caller's transaction.

    The row is written inside a savepoint so a failed insert never breaks the
    moderation action it describes; the caller's commit persists both.
    """
    event = PlatformEvent(
        event_type=(event_type or "unknown").strip()[:80],
        actor_user_id=int(actor_user_id) if actor_user_id is not None else None,
        subject_type=(subject_type or "").strip()[:80] or None,
        subject_id=str(subject_id)[:120] if subject_id is not None else None,
        request_id=(get_request_id() or "").strip()[:80] or None,
        severity=(severity or "INFO").strip().upper()[:16] or "INFO",
        metadata_json=_safe_json(metadata or {}),
    )
    try:
        with db.session.begin_nested():
            db.session.add(event)
            db.session.flush()
        return event
    except SQLAlchemyError as e:
        logger.warning("platform_event_write_failed type=%s err=%s", event_type, e)
        return None
