from __future__ import annotations

import json
import time
from datetime import datetime

from celery import shared_task
from flask import current_app

from martaz.extensions import db
from martaz.services.listing_service import check_featured_expiration
from martaz.utils.job_runs import record_job_run


def _task_log(task_name: str, *, status: str, started_at: float, **extra):
    duration_ms = int(max(0.0, (time.perf_counter() - float(started_at))) * 1000.0)
    payload = {
        "task_name": task_name,
        "status": status,
        "duration_ms": duration_ms,
        "timestamp": datetime.utcnow().isoformat(),
    }
    payload.update(extra or {})
    current_app.logger.info(json.dumps(payload))


def run_featured_expiration_sweep(now: datetime | None = None) -> dict:
    """Run the sweep once and record it as a job run; shared by Celery and the CLI."""
    started_at = datetime.utcnow()
    started = time.perf_counter()
    try:
        result = check_featured_expiration(now)
    except Exception as e:
        db.session.rollback()
        record_job_run(
            job_name="check_featured_expiration",
            ok=False,
            started_at=started_at,
            error=str(e),
        )
        _task_log("check_featured_expiration", status="failed", started_at=started, error=str(e))
        raise
    record_job_run(
        job_name="check_featured_expiration",
        ok=True,
        started_at=started_at,
        affected=result["unfeatured"] + result["unpromoted"],
    )
    _task_log("check_featured_expiration", status="ok", started_at=started, **result)
    return result


@shared_task(name="martaz.tasks.listing_tasks.check_featured_expiration")
def check_featured_expiration_task():
    return run_featured_expiration_sweep()
