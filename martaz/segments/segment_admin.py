from __future__ import annotations

from flask import Blueprint, request

from martaz.services import admin_service, listing_service, report_service
from martaz.tasks.listing_tasks import run_featured_expiration_sweep
from martaz.utils.auth import require_admin, require_superadmin
from martaz.utils.pagination import parse_page_args
from martaz.utils.responses import json_body, ok

admin_bp = Blueprint("admin_bp", __name__, url_prefix="/api/admin")


@admin_bp.get("/dashboard")
def dashboard():
    return ok(admin_service.dashboard_stats(require_admin()))


# -------------------------
# Listing moderation
# -------------------------

@admin_bp.get("/listings/pending")
def pending_listings():
    admin = require_admin()
    page, limit = parse_page_args(request.args)
    return ok(listing_service.list_pending_listings(admin, page=page, limit=limit))


@admin_bp.get("/listings")
def all_listings():
    admin = require_admin()
    page, limit = parse_page_args(request.args)
    filters = request.args.to_dict()
    filters.setdefault("status", "all")
    return ok(listing_service.search_listings(filters, admin, page=page, limit=limit))


@admin_bp.post("/listings/<int:listing_id>/approve")
def approve_listing(listing_id: int):
    listing = listing_service.approve_listing(require_admin(), listing_id)
    return ok(listing.to_dict(), message="Listing approved")


@admin_bp.post("/listings/<int:listing_id>/reject")
def reject_listing(listing_id: int):
    listing = listing_service.reject_listing(require_admin(), listing_id, json_body().get("reason"))
    return ok(listing.to_dict(), message="Listing rejected")


@admin_bp.post("/listings/<int:listing_id>/takedown")
def take_down_listing(listing_id: int):
    result = report_service.take_down_reported_listing(
        require_admin(),
        listing_id,
        admin_note=json_body().get("admin_note"),
    )
    return ok(result, message="Listing removed and reports reviewed")


# -------------------------
# Users
# -------------------------

@admin_bp.get("/users")
def list_users():
    admin = require_admin()
    page, limit = parse_page_args(request.args)
    return ok(
        admin_service.list_users(
            admin,
            search=request.args.get("search"),
            role=request.args.get("role"),
            status=request.args.get("status"),
            page=page,
            limit=limit,
        )
    )


@admin_bp.get("/users/<int:user_id>")
def get_user(user_id: int):
    return ok(admin_service.get_user_detail(require_admin(), user_id))


@admin_bp.patch("/users/<int:user_id>/status")
def update_user_status(user_id: int):
    user = admin_service.update_user_status(require_admin(), user_id, json_body().get("status"))
    return ok(user.to_dict(), message="User status updated")


@admin_bp.patch("/users/<int:user_id>/role")
def change_user_role(user_id: int):
    user = admin_service.change_user_role(require_admin(), user_id, json_body().get("role"))
    return ok(user.to_dict(), message="User role updated")


@admin_bp.delete("/users/<int:user_id>")
def deactivate_user(user_id: int):
    return ok(admin_service.deactivate_user(require_admin(), user_id), message="User deactivated")


@admin_bp.post("/admins")
def create_admin():
    user = admin_service.create_admin_user(require_superadmin(), json_body())
    return ok(user.to_dict(), message="Admin user created", status=201)


# -------------------------
# Jobs
# -------------------------

@admin_bp.post("/jobs/featured-expiration")
def run_featured_expiration():
    require_admin()
    return ok(run_featured_expiration_sweep())
