from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from martaz.errors import ForbiddenError, NotFoundError, ValidationError
from martaz.extensions import db
from martaz.models import ACTIVE_REPORT_STATUSES, Listing, ListingReport, User
from martaz.services.listing_service import ListingStatus, transition_listing
from martaz.utils.events import log_event
from martaz.utils.pagination import page_payload, paginate
from martaz.utils.text import clean_str

logger = logging.getLogger(__name__)

REPORT_REASONS = [
    {"id": "1", "name": "Fake or fraudulent listing", "description": "The listing appears to be a scam or fraudulent"},
    {"id": "2", "name": "Inappropriate content", "description": "The listing contains inappropriate text, images, or other content"},
    {"id": "3", "name": "Prohibited item", "description": "The item being sold is prohibited according to our policies"},
    {"id": "4", "name": "Incorrect category", "description": "The listing is posted in the wrong category"},
    {"id": "5", "name": "Price gouging", "description": "The price is excessively high compared to market value"},
    {"id": "6", "name": "Duplicate listing", "description": "This listing is a duplicate of another listing"},
    {"id": "7", "name": "Item unavailable", "description": "The listing is for an item that is not actually available"},
    {"id": "8", "name": "Other", "description": "Other issue not listed above"},
]

ALREADY_REPORTED_MESSAGE = "You have already reported this listing"
TREND_DAYS = 7
TOP_REASONS = 5


def _require_admin(caller: User) -> None:
    if caller is None or not caller.is_admin:
        raise ForbiddenError("Admin access required")


def _normalize_reason(value) -> str:
    reason = clean_str(value, max_len=120)
    if not reason:
        raise ValidationError("Reason is required")
    for item in REPORT_REASONS:
        if reason == item["id"]:
            return item["name"]
    return reason


def _validate_report_status(value) -> str:
    status = clean_str(value).lower()
    if status not in ListingReport.STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(ListingReport.STATUSES)}")
    return status


def has_active_report(listing_id: int, reporter_id: int) -> bool:
    return (
        ListingReport.query
        .filter(
            ListingReport.listing_id == int(listing_id),
            ListingReport.reporter_id == int(reporter_id),
            ListingReport.status.in_(ACTIVE_REPORT_STATUSES),
        )
        .first()
        is not None
    )


def submit_report(reporter: User, listing_id, reason, additional_info=None) -> ListingReport:
    try:
        lid = int(listing_id)
    except (TypeError, ValueError):
        raise ValidationError("Listing id is required")
    reason = _normalize_reason(reason)
    listing = db.session.get(Listing, lid)
    if listing is None:
        raise NotFoundError("Listing not found")
    if has_active_report(lid, reporter.id):
        raise ValidationError(ALREADY_REPORTED_MESSAGE)

    report = ListingReport(
        listing_id=lid,
        reporter_id=reporter.id,
        reason=reason,
        additional_info=clean_str(additional_info, max_len=2000) or None,
        status="pending",
    )
    db.session.add(report)
    try:
        db.session.commit()
    except IntegrityError:
        # A concurrent submission won the race against the partial unique index.
        db.session.rollback()
        raise ValidationError(ALREADY_REPORTED_MESSAGE)
    logger.info("listing_reported id=%s listing_id=%s reporter_id=%s", report.id, lid, reporter.id)
    return report


def list_user_reports(reporter: User, *, status: str | None = None, page: int = 1, limit: int = 20) -> dict:
    query = ListingReport.query.filter(ListingReport.reporter_id == reporter.id)
    if clean_str(status):
        query = query.filter(ListingReport.status == _validate_report_status(status))
    query = query.order_by(ListingReport.created_at.desc(), ListingReport.id.desc())
    rows, total = paginate(query, page=page, limit=limit)
    items = []
    for row in rows:
        item = row.to_dict()
        item["listing"] = row.listing.to_summary() if row.listing is not None else None
        items.append(item)
    return page_payload(items, total=total, page=page, limit=limit)


def list_reports(
    caller: User,
    *,
    status: str | None = None,
    listing_id=None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    _require_admin(caller)
    query = ListingReport.query
    if clean_str(status):
        query = query.filter(ListingReport.status == _validate_report_status(status))
    if clean_str(listing_id).isdigit():
        query = query.filter(ListingReport.listing_id == int(listing_id))
    query = query.order_by(ListingReport.created_at.desc(), ListingReport.id.desc())
    rows, total = paginate(query, page=page, limit=limit)
    return page_payload(
        [row.to_dict(include_relations=True) for row in rows],
        total=total,
        page=page,
        limit=limit,
    )


def notify_reporter(report: ListingReport) -> None:
    """Tell the reporter their report changed state. Best-effort."""
    try:
        logger.info(
            "report_status_notification report_id=%s reporter_id=%s status=%s",
            report.id,
            report.reporter_id,
            report.status,
        )
        report.notification_sent = True
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("report_notification_failed report_id=%s", report.id)


def _stamp(report: ListingReport, caller: User, status: str, admin_note, action_taken, now: datetime) -> None:
    report.status = status
    report.last_updated_by = caller.id
    report.status_updated_at = now
    report.notification_sent = False
    if admin_note is not None:
        report.admin_note = clean_str(admin_note, max_len=2000) or None
    if action_taken is not None:
        report.action_taken = clean_str(action_taken, max_len=255) or None


def _commit_status_change() -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("Reporter already has an active report for this listing")


def update_report_status(caller: User, report_id, status, *, admin_note=None, action_taken=None) -> ListingReport:
    _require_admin(caller)
    status = _validate_report_status(status)
    try:
        rid = int(report_id)
    except (TypeError, ValueError):
        raise NotFoundError("Report not found")
    report = db.session.get(ListingReport, rid)
    if report is None:
        raise NotFoundError("Report not found")

    previous = report.status
    _stamp(report, caller, status, admin_note, action_taken, datetime.utcnow())
    log_event(
        "report_status_changed",
        actor_user_id=caller.id,
        subject_type="report",
        subject_id=report.id,
        metadata={"from": previous, "to": status, "action_taken": action_taken},
    )
    _commit_status_change()
    notify_reporter(report)
    return report


def bulk_update_report_status(caller: User, report_ids, status, *, admin_note=None, action_taken=None) -> int:
    _require_admin(caller)
    status = _validate_report_status(status)
    if not isinstance(report_ids, (list, tuple)) or not report_ids:
        raise ValidationError("Report ids are required")
    try:
        ids = sorted({int(rid) for rid in report_ids})
    except (TypeError, ValueError):
        raise ValidationError("Report ids must be integers")

    rows = ListingReport.query.filter(ListingReport.id.in_(ids)).all()
    if not rows:
        raise NotFoundError("No reports found")

    now = datetime.utcnow()
    for row in rows:
        _stamp(row, caller, status, admin_note, action_taken, now)
    log_event(
        "report_status_bulk_changed",
        actor_user_id=caller.id,
        subject_type="report",
        subject_id=",".join(str(row.id) for row in rows)[:120],
        metadata={"to": status, "count": len(rows)},
    )
    _commit_status_change()
    for row in rows:
        notify_reporter(row)
    return len(rows)


def take_down_reported_listing(caller: User, listing_id, *, admin_note=None) -> dict:
    """Soft-delete a reported listing and mark its active reports reviewed."""
    _require_admin(caller)
    try:
        lid = int(listing_id)
    except (TypeError, ValueError):
        raise NotFoundError("Listing not found")
    listing = db.session.get(Listing, lid)
    if listing is None:
        raise NotFoundError("Listing not found")

    if listing.status != ListingStatus.DELETED:
        transition_listing(listing, ListingStatus.DELETED, actor=caller, reason=admin_note)

    now = datetime.utcnow()
    reports = (
        ListingReport.query
        .filter(ListingReport.listing_id == lid, ListingReport.status == "pending")
        .all()
    )
    for report in reports:
        _stamp(report, caller, "reviewed", admin_note, "listing_deleted", now)
    db.session.commit()
    for report in reports:
        notify_reporter(report)
    return {"listing": listing.to_summary(), "reports_updated": len(reports)}


def report_statistics(caller: User, *, now: datetime | None = None) -> dict:
    _require_admin(caller)
    now = now or datetime.utcnow()

    by_status = {status: 0 for status in ListingReport.STATUSES}
    for status, count in (
        db.session.query(ListingReport.status, func.count(ListingReport.id))
        .group_by(ListingReport.status)
        .all()
    ):
        by_status[status] = int(count)

    top_reasons = [
        {"reason": reason, "count": int(count)}
        for reason, count in (
            db.session.query(ListingReport.reason, func.count(ListingReport.id).label("n"))
            .group_by(ListingReport.reason)
            .order_by(func.count(ListingReport.id).desc(), ListingReport.reason.asc())
            .limit(TOP_REASONS)
            .all()
        )
    ]

    today = now.date()
    window_start = datetime.combine(today - timedelta(days=TREND_DAYS - 1), datetime.min.time())
    created = (
        db.session.query(ListingReport.created_at)
        .filter(ListingReport.created_at >= window_start, ListingReport.created_at <= now)
        .all()
    )
    per_day = Counter(row[0].date() for row in created if row[0] is not None)
    trend = [
        {"date": day.isoformat(), "count": int(per_day.get(day, 0))}
        for day in (today - timedelta(days=offset) for offset in range(TREND_DAYS - 1, -1, -1))
    ]

    return {
        "by_status": by_status,
        "total": sum(by_status.values()),
        "top_reasons": top_reasons,
        "daily_trend": trend,
    }
