from __future__ import annotations

from flask import Blueprint, request

from martaz.services import seo_service
from martaz.utils.auth import require_admin
from martaz.utils.responses import json_body, ok

seo_bp = Blueprint("seo_bp", __name__, url_prefix="/api/seo")


@seo_bp.get("/by-page")
def by_page():
    # Public: the storefront reads page metadata without a session.
    setting = seo_service.settings_for_page(
        request.args.get("page_type") or request.args.get("pageType"),
        request.args.get("page_identifier") or request.args.get("pageIdentifier"),
    )
    return ok(setting.to_dict() if setting is not None else None)


@seo_bp.get("")
def list_settings():
    page_type = request.args.get("page_type") or request.args.get("pageType")
    rows = seo_service.list_settings(require_admin(), page_type)
    return ok([row.to_dict() for row in rows])


@seo_bp.get("/available-pages")
def available_pages():
    return ok(seo_service.available_pages(require_admin()))


@seo_bp.get("/<int:setting_id>")
def get_setting(setting_id: int):
    return ok(seo_service.get_setting(require_admin(), setting_id).to_dict())


@seo_bp.post("")
def create_setting():
    setting = seo_service.create_setting(require_admin(), json_body())
    return ok(setting.to_dict(), message="SEO settings created successfully", status=201)


@seo_bp.put("/<int:setting_id>")
def update_setting(setting_id: int):
    setting = seo_service.update_setting(require_admin(), setting_id, json_body())
    return ok(setting.to_dict(), message="SEO settings updated successfully")


@seo_bp.delete("/<int:setting_id>")
def delete_setting(setting_id: int):
    seo_service.delete_setting(require_admin(), setting_id)
    return ok(None, message="SEO settings deleted successfully")
