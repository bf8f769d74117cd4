from __future__ import annotations

from flask import Blueprint, request

from martaz.services import report_service
from martaz.utils.auth import require_admin, require_user
from martaz.utils.pagination import parse_page_args
from martaz.utils.responses import json_body, ok

reports_bp = Blueprint("reports_bp", __name__, url_prefix="/api/reports")
reports_admin_bp = Blueprint("reports_admin_bp", __name__, url_prefix="/api/admin/reports")


@reports_bp.get("/reasons")
def reasons():
    return ok(report_service.REPORT_REASONS)


@reports_bp.post("")
def submit_report():
    payload = json_body()
    report = report_service.submit_report(
        require_user(),
        payload.get("listing_id", payload.get("listingId")),
        payload.get("reason"),
        payload.get("additional_info", payload.get("additionalInfo")),
    )
    return ok(report.to_dict(), message="Report submitted successfully", status=201)


@reports_bp.get("/mine")
def my_reports():
    user = require_user()
    page, limit = parse_page_args(request.args)
    return ok(report_service.list_user_reports(user, status=request.args.get("status"), page=page, limit=limit))


@reports_admin_bp.get("")
def list_reports():
    admin = require_admin()
    page, limit = parse_page_args(request.args)
    return ok(
        report_service.list_reports(
            admin,
            status=request.args.get("status"),
            listing_id=request.args.get("listing_id"),
            page=page,
            limit=limit,
        )
    )


@reports_admin_bp.get("/stats")
def report_stats():
    return ok(report_service.report_statistics(require_admin()))


@reports_admin_bp.patch("/bulk")
def bulk_update():
    payload = json_body()
    count = report_service.bulk_update_report_status(
        require_admin(),
        payload.get("report_ids", payload.get("reportIds")),
        payload.get("status"),
        admin_note=payload.get("admin_note", payload.get("adminNote")),
        action_taken=payload.get("action_taken", payload.get("actionTaken")),
    )
    return ok({"updated": count}, message=f"{count} reports updated")


@reports_admin_bp.patch("/<int:report_id>")
def update_report(report_id: int):
    payload = json_body()
    report = report_service.update_report_status(
        require_admin(),
        report_id,
        payload.get("status"),
        admin_note=payload.get("admin_note", payload.get("adminNote")),
        action_taken=payload.get("action_taken", payload.get("actionTaken")),
    )
    return ok(report.to_dict(), message="Report status updated")
