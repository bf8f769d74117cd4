from __future__ import annotations

from flask import Blueprint, request

from martaz.services import category_service
from martaz.utils.auth import current_user, require_admin
from martaz.utils.pagination import parse_page_args
from martaz.utils.responses import arg_bool, json_body, ok

categories_bp = Blueprint("categories_bp", __name__, url_prefix="/api/categories")


def _include_inactive() -> bool:
    if not arg_bool("include_inactive"):
        return False
    viewer = current_user()
    return viewer is not None and viewer.is_admin


@categories_bp.get("")
def list_categories():
    rows = category_service.list_categories(include_inactive=_include_inactive())
    return ok([row.to_dict() for row in rows])


@categories_bp.get("/tree")
def category_tree():
    return ok(category_service.category_tree())


@categories_bp.get("/<int:category_id>/children")
def children(category_id: int):
    rows = category_service.list_children(category_id, include_inactive=_include_inactive())
    return ok([row.to_dict() for row in rows])


@categories_bp.get("/<id_or_slug>/listings")
def category_listings(id_or_slug: str):
    page, limit = parse_page_args(request.args)
    return ok(category_service.category_listings(id_or_slug, page=page, limit=limit))


@categories_bp.get("/<id_or_slug>")
def get_category(id_or_slug: str):
    return ok(category_service.get_category(id_or_slug))


@categories_bp.post("")
def create_category():
    category = category_service.create_category(require_admin(), json_body())
    return ok(category.to_dict(), message="Category created", status=201)


@categories_bp.put("/<int:category_id>")
def update_category(category_id: int):
    category = category_service.update_category(require_admin(), category_id, json_body())
    return ok(category.to_dict(), message="Category updated")


@categories_bp.delete("/<int:category_id>")
def delete_category(category_id: int):
    outcome = category_service.delete_category(require_admin(), category_id)
    message = "Category deleted" if outcome == "deleted" else "Category has listings and was deactivated"
    return ok({"outcome": outcome}, message=message)
