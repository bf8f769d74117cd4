from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from martaz.errors import ConflictError, NotFoundError, ValidationError
from martaz.extensions import db
from martaz.models import Favorite, Listing, User
from martaz.utils.pagination import page_payload, paginate
from martaz.utils.text import clean_str

ALREADY_FAVORITED_MESSAGE = "Item already in favorites"


def _parse_item(item_id, item_type) -> tuple[int, str]:
    kind = clean_str(item_type or "listing").lower()
    if kind not in Favorite.ITEM_TYPES:
        raise ValidationError(f"Item type must be one of {', '.join(Favorite.ITEM_TYPES)}")
    try:
        iid = int(item_id)
    except (TypeError, ValueError):
        raise ValidationError("Item id is required")
    return iid, kind


def _lookup(user: User, item_id: int, item_type: str) -> Favorite | None:
    return Favorite.query.filter_by(user_id=user.id, item_id=item_id, item_type=item_type).first()


def add_favorite(user: User, item_id, item_type="listing") -> Favorite:
    iid, kind = _parse_item(item_id, item_type)
    if kind == "listing" and db.session.get(Listing, iid) is None:
        raise NotFoundError("Listing not found")
    if _lookup(user, iid, kind) is not None:
        raise ConflictError(ALREADY_FAVORITED_MESSAGE)

    favorite = Favorite(
        user_id=user.id,
        item_id=iid,
        item_type=kind,
        listing_id=iid if kind == "listing" else None,
    )
    db.session.add(favorite)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(ALREADY_FAVORITED_MESSAGE)
    return favorite


def remove_favorite(user: User, favorite_id) -> None:
    try:
        fid = int(favorite_id)
    except (TypeError, ValueError):
        raise NotFoundError("Favorite not found")
    favorite = Favorite.query.filter_by(id=fid, user_id=user.id).first()
    if favorite is None:
        raise NotFoundError("Favorite not found")
    db.session.delete(favorite)
    db.session.commit()


def remove_favorite_by_item(user: User, item_id, item_type="listing") -> None:
    iid, kind = _parse_item(item_id, item_type)
    favorite = _lookup(user, iid, kind)
    if favorite is None:
        raise NotFoundError("Favorite not found")
    db.session.delete(favorite)
    db.session.commit()


def is_favorite(user: User, item_id, item_type="listing") -> Favorite | None:
    iid, kind = _parse_item(item_id, item_type)
    return _lookup(user, iid, kind)


def list_favorites(user: User, *, page: int = 1, limit: int = 20) -> dict:
    query = Favorite.query.filter(Favorite.user_id == user.id).order_by(
        Favorite.created_at.desc(), Favorite.id.desc()
    )
    rows, total = paginate(query, page=page, limit=limit)
    return page_payload([row.to_dict() for row in rows], total=total, page=page, limit=limit)
