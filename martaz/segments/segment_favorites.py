from __future__ import annotations

from flask import Blueprint, request

from martaz.services import favorite_service
from martaz.utils.auth import require_user
from martaz.utils.pagination import parse_page_args
from martaz.utils.responses import json_body, ok

favorites_bp = Blueprint("favorites_bp", __name__, url_prefix="/api/favorites")


@favorites_bp.get("")
def list_favorites():
    user = require_user()
    page, limit = parse_page_args(request.args)
    return ok(favorite_service.list_favorites(user, page=page, limit=limit))


@favorites_bp.post("")
def add_favorite():
    payload = json_body()
    favorite = favorite_service.add_favorite(
        require_user(),
        payload.get("item_id", payload.get("itemId")),
        payload.get("item_type", payload.get("itemType")) or "listing",
    )
    return ok(favorite.to_dict(), message="Added to favorites", status=201)


@favorites_bp.get("/check")
def check_favorite():
    favorite = favorite_service.is_favorite(
        require_user(),
        request.args.get("item_id") or request.args.get("itemId"),
        request.args.get("item_type") or request.args.get("itemType") or "listing",
    )
    return ok({"is_favorite": favorite is not None, "favorite_id": favorite.id if favorite else None})


@favorites_bp.delete("/<int:favorite_id>")
def remove_favorite(favorite_id: int):
    favorite_service.remove_favorite(require_user(), favorite_id)
    return ok(None, message="Removed from favorites")


@favorites_bp.delete("/item/<int:item_id>")
def remove_favorite_by_item(item_id: int):
    favorite_service.remove_favorite_by_item(
        require_user(),
        item_id,
        request.args.get("item_type") or "listing",
    )
    return ok(None, message="Removed from favorites")
