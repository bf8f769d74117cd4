from __future__ import annotations

from flask import Blueprint, request

from martaz.services import listing_service
from martaz.utils.auth import current_user, require_user
from martaz.utils.pagination import parse_page_args
from martaz.utils.responses import json_body, ok
from martaz.utils.text import as_bool

listings_bp = Blueprint("listings_bp", __name__, url_prefix="/api/listings")


@listings_bp.get("")
def list_listings():
    page, limit = parse_page_args(request.args)
    viewer = current_user()
    return ok(listing_service.search_listings(request.args.to_dict(), viewer, page=page, limit=limit))


@listings_bp.get("/featured")
def featured():
    try:
        limit = int(request.args.get("limit") or 12)
    except ValueError:
        limit = 12
    return ok([row.to_dict() for row in listing_service.featured_listings(limit)])


@listings_bp.get("/mine")
def my_listings():
    user = require_user()
    page, limit = parse_page_args(request.args)
    return ok(
        listing_service.list_user_listings(
            user,
            user.id,
            status=request.args.get("status"),
            page=page,
            limit=limit,
        )
    )


@listings_bp.get("/<id_or_slug>")
def get_listing(id_or_slug: str):
    listing = listing_service.get_listing(id_or_slug, current_user())
    return ok(listing.to_dict())


@listings_bp.post("")
def create_listing():
    listing = listing_service.create_listing(require_user(), json_body())
    return ok(listing.to_dict(), message="Listing created and pending review", status=201)


@listings_bp.put("/<int:listing_id>")
def update_listing(listing_id: int):
    listing = listing_service.update_listing(require_user(), listing_id, json_body())
    return ok(listing.to_dict(), message="Listing updated")


@listings_bp.delete("/<int:listing_id>")
def delete_listing(listing_id: int):
    listing_service.delete_listing(require_user(), listing_id)
    return ok(None, message="Listing deleted")


@listings_bp.patch("/<int:listing_id>/status")
def change_status(listing_id: int):
    listing = listing_service.change_listing_status(require_user(), listing_id, json_body().get("status"))
    return ok(listing.to_dict(), message=f"Listing status changed to {listing.status}")


@listings_bp.post("/<int:listing_id>/sold")
def mark_sold(listing_id: int):
    listing = listing_service.mark_as_sold(require_user(), listing_id)
    return ok(listing.to_dict(), message="Listing marked as sold")


@listings_bp.post("/<int:listing_id>/promote")
def promote(listing_id: int):
    payload = json_body()
    listing = listing_service.promote_listing(
        require_user(),
        listing_id,
        payload.get("duration"),
        enabled=as_bool(payload.get("enabled"), True),
    )
    return ok(listing.to_dict(), message="Listing promotion updated")


@listings_bp.post("/<int:listing_id>/feature")
def feature(listing_id: int):
    payload = json_body()
    listing = listing_service.feature_listing(
        require_user(),
        listing_id,
        payload.get("duration"),
        enabled=as_bool(payload.get("enabled"), True),
    )
    return ok(listing.to_dict(), message="Listing feature updated")
