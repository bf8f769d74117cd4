from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from martaz.errors import ForbiddenError, NotFoundError, ValidationError
from martaz.extensions import db
from martaz.models import Category, Listing, User
from martaz.utils.events import log_event
from martaz.utils.pagination import page_payload, paginate
from martaz.utils.text import clean_str, random_suffix, same_id, slugify

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_REASON = "Listing does not meet our guidelines"
BOOST_DURATIONS = {"day": 1, "week": 7, "month": 30}
MAX_BOOST_DAYS = 30
SORT_FIELDS = ("created_at", "price", "views", "title")


class ListingStatus:
    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"
    SOLD = "sold"
    EXPIRED = "expired"
    DELETED = "deleted"

    ALL = (PENDING, ACTIVE, REJECTED, SOLD, EXPIRED, DELETED)

    # Targets an owner or admin may request through a general status change.
    CHANGEABLE = (ACTIVE, PENDING, SOLD, EXPIRED, DELETED)

    # Sold is irreversible apart from deletion; deleted is terminal.
    ALLOWED = {
        PENDING: {ACTIVE, REJECTED, SOLD, EXPIRED, DELETED},
        ACTIVE: {PENDING, SOLD, EXPIRED, DELETED},
        REJECTED: {ACTIVE, PENDING, SOLD, EXPIRED, DELETED},
        SOLD: {DELETED},
        EXPIRED: {ACTIVE, PENDING, SOLD, DELETED},
        DELETED: set(),
    }


def expiry_days() -> int:
    raw = (os.getenv("LISTING_EXPIRY_DAYS") or "").strip()
    try:
        value = int(raw) if raw else 30
    except ValueError:
        value = 30
    return max(1, min(value, 365))


def _pick(payload: dict, *keys):
    for key in keys:
        if key in payload:
            return payload.get(key)
    return None


def _has_any(payload: dict, *keys) -> bool:
    return any(key in payload for key in keys)


def can_manage_listing(caller: User | None, listing: Listing) -> bool:
    if caller is None or listing is None:
        return False
    return same_id(caller.id, listing.user_id) or caller.is_admin


def _get_listing_or_404(listing_id) -> Listing:
    try:
        lid = int(listing_id)
    except (TypeError, ValueError):
        raise NotFoundError("Listing not found")
    listing = db.session.get(Listing, lid)
    if listing is None:
        raise NotFoundError("Listing not found")
    return listing


def _require_manager(caller: User, listing: Listing) -> None:
    if not can_manage_listing(caller, listing):
        raise ForbiddenError("Not authorized to modify this listing")


def _require_admin(caller: User) -> None:
    if caller is None or not caller.is_admin:
        raise ForbiddenError("Admin access required")


def unique_listing_slug(title: str, *, exclude_id: int | None = None) -> str:
    base = slugify(title)[:140] or "listing"
    candidate = base
    while True:
        query = Listing.query.filter(Listing.slug == candidate)
        if exclude_id is not None:
            query = query.filter(Listing.id != int(exclude_id))
        if query.first() is None:
            return candidate
        candidate = f"{base}-{random_suffix()}"


# ---------------------------------------------------------------------------
# Field validation
# ---------------------------------------------------------------------------

def _validate_title(value) -> str:
    title = clean_str(value)
    if not 3 <= len(title) <= 100:
        raise ValidationError("Title must be between 3 and 100 characters")
    return title


def _validate_description(value) -> str:
    description = clean_str(value)
    if not 10 <= len(description) <= 5000:
        raise ValidationError("Description must be between 10 and 5000 characters")
    return description


def _validate_price(value) -> Decimal:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("Price is required")
    if isinstance(value, bool):
        raise ValidationError("Price must be a number")
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("Price must be a number")
    if not price.is_finite() or price < 0:
        raise ValidationError("Price must be a positive number")
    return price.quantize(Decimal("0.01"))


def _validate_currency(value) -> str:
    currency = clean_str(value or "AZN").upper()
    if currency not in Listing.CURRENCIES:
        raise ValidationError(f"Currency must be one of {', '.join(Listing.CURRENCIES)}")
    return currency


def _validate_condition(value) -> str | None:
    condition = clean_str(value).lower()
    if not condition:
        return None
    if condition not in Listing.CONDITIONS:
        raise ValidationError(f"Condition must be one of {', '.join(Listing.CONDITIONS)}")
    return condition


def _validate_location(value) -> str:
    location = clean_str(value, max_len=255)
    if not location:
        raise ValidationError("Location is required")
    return location


def _validate_images(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise ValidationError("Images must be a list")
    return [clean_str(item, max_len=1024) for item in value if clean_str(item)]


def _validate_contact_method(value) -> str:
    method = clean_str(value or "both").lower()
    if method not in Listing.CONTACT_METHODS:
        raise ValidationError(f"Contact method must be one of {', '.join(Listing.CONTACT_METHODS)}")
    return method


def _resolve_category_id(value) -> int | None:
    if value in (None, ""):
        return None
    try:
        cid = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Invalid category id")
    if db.session.get(Category, cid) is None:
        raise NotFoundError("Category not found")
    return cid


def _apply_images(listing: Listing, images: list[str], featured) -> None:
    listing.images = images
    featured_image = clean_str(featured)
    if featured_image and featured_image not in images:
        raise ValidationError("Featured image must be one of the listing images")
    if not featured_image or featured_image not in images:
        featured_image = images[0] if images else None
    listing.featured_image = featured_image


def _validate_status(value) -> str:
    status = clean_str(value).lower()
    if status not in ListingStatus.ALL:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(ListingStatus.ALL)}")
    return status


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

def transition_listing(listing: Listing, to_status: str, *, actor: User, reason: str | None = None) -> Listing:
    """Move ``listing`` to ``to_status`` under the lifecycle rules.

    Does not commit. Raises ValidationError for unknown or disallowed targets
    and ForbiddenError when a non-admin tries to activate a pending or rejected
    listing.
    """
    target = _validate_status(to_status)
    current = (listing.status or ListingStatus.PENDING).strip().lower()

    if target == ListingStatus.ACTIVE and current in (ListingStatus.PENDING, ListingStatus.REJECTED) and not actor.is_admin:
        raise ForbiddenError(f"Only admins can activate {current} listings")
    if target == ListingStatus.REJECTED and not actor.is_admin:
        raise ForbiddenError("Only admins can reject listings")
    if target == current:
        raise ValidationError(f"Listing is already {current}")
    if target not in ListingStatus.ALLOWED.get(current, set()):
        raise ValidationError(f"Cannot change listing status from {current} to {target}")

    now = datetime.utcnow()
    if target == ListingStatus.ACTIVE and current != ListingStatus.ACTIVE:
        listing.expiry_date = now + timedelta(days=expiry_days())
        listing.rejection_reason = None
    if target == ListingStatus.REJECTED:
        listing.rejection_reason = clean_str(reason) or DEFAULT_REJECTION_REASON

    listing.status = target
    listing.updated_at = now
    log_event(
        "listing_status_changed",
        actor_user_id=actor.id,
        subject_type="listing",
        subject_id=listing.id,
        metadata={"from": current, "to": target, "reason": reason},
    )
    return listing


# ---------------------------------------------------------------------------
# Create / read / update / delete
# ---------------------------------------------------------------------------

def create_listing(caller: User, payload: dict) -> Listing:
    payload = payload or {}
    title = _validate_title(_pick(payload, "title"))
    description = _validate_description(_pick(payload, "description"))
    price = _validate_price(_pick(payload, "price"))
    location = _validate_location(_pick(payload, "location"))

    status = ListingStatus.PENDING
    requested_status = _pick(payload, "status")
    if caller.is_admin and clean_str(requested_status):
        status = _validate_status(requested_status)

    listing = Listing(
        user_id=caller.id,
        title=title,
        slug=unique_listing_slug(title),
        description=description,
        price=price,
        currency=_validate_currency(_pick(payload, "currency")),
        condition=_validate_condition(_pick(payload, "condition")),
        location=location,
        category_id=_resolve_category_id(_pick(payload, "category_id", "categoryId")),
        status=status,
        contact_phone=clean_str(_pick(payload, "contact_phone", "contactPhone"), max_len=32) or None,
        contact_email=clean_str(_pick(payload, "contact_email", "contactEmail"), max_len=255) or None,
        contact_method=_validate_contact_method(_pick(payload, "contact_method", "contactMethod")),
        expiry_date=datetime.utcnow() + timedelta(days=expiry_days()),
        views=0,
    )
    _apply_images(
        listing,
        _validate_images(_pick(payload, "images")),
        _pick(payload, "featured_image", "featuredImage"),
    )
    attributes = _pick(payload, "attributes")
    if attributes is not None and not isinstance(attributes, dict):
        raise ValidationError("Attributes must be an object")
    listing.attributes = attributes or {}

    db.session.add(listing)
    db.session.commit()
    logger.info("listing_created id=%s user_id=%s status=%s", listing.id, caller.id, listing.status)
    return listing


def find_listing(id_or_slug) -> Listing | None:
    key = clean_str(id_or_slug)
    if not key:
        return None
    if key.isdigit():
        row = db.session.get(Listing, int(key))
        if row is not None:
            return row
    return Listing.query.filter_by(slug=key).first()


def record_listing_view(listing: Listing, viewer: User | None) -> None:
    """Count one view; owners do not count. Best-effort."""
    if viewer is not None and same_id(viewer.id, listing.user_id):
        return
    try:
        Listing.query.filter(Listing.id == listing.id).update(
            {Listing.views: Listing.views + 1},
            synchronize_session=False,
        )
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning("listing_view_increment_failed id=%s err=%s", listing.id, e)


def get_listing(id_or_slug, viewer: User | None = None) -> Listing:
    listing = find_listing(id_or_slug)
    if listing is None:
        raise NotFoundError("Listing not found")
    if listing.status != ListingStatus.ACTIVE and not can_manage_listing(viewer, listing):
        raise NotFoundError("Listing not found")
    record_listing_view(listing, viewer)
    return listing


def update_listing(caller: User, listing_id, payload: dict) -> Listing:
    payload = payload or {}
    listing = _get_listing_or_404(listing_id)
    _require_manager(caller, listing)
    if listing.status == ListingStatus.DELETED:
        raise ValidationError("Deleted listings cannot be edited")

    if "title" in payload:
        title = _validate_title(payload.get("title"))
        if title != listing.title:
            listing.title = title
            listing.slug = unique_listing_slug(title, exclude_id=listing.id)
    if "description" in payload:
        listing.description = _validate_description(payload.get("description"))
    if "price" in payload:
        listing.price = _validate_price(payload.get("price"))
    if "currency" in payload:
        listing.currency = _validate_currency(payload.get("currency"))
    if "condition" in payload:
        listing.condition = _validate_condition(payload.get("condition"))
    if "location" in payload:
        listing.location = _validate_location(payload.get("location"))
    if _has_any(payload, "category_id", "categoryId"):
        listing.category_id = _resolve_category_id(_pick(payload, "category_id", "categoryId"))
    if _has_any(payload, "contact_phone", "contactPhone"):
        listing.contact_phone = clean_str(_pick(payload, "contact_phone", "contactPhone"), max_len=32) or None
    if _has_any(payload, "contact_email", "contactEmail"):
        listing.contact_email = clean_str(_pick(payload, "contact_email", "contactEmail"), max_len=255) or None
    if _has_any(payload, "contact_method", "contactMethod"):
        listing.contact_method = _validate_contact_method(_pick(payload, "contact_method", "contactMethod"))
    if "attributes" in payload:
        attributes = payload.get("attributes")
        if attributes is not None and not isinstance(attributes, dict):
            raise ValidationError("Attributes must be an object")
        listing.attributes = attributes or {}
    if _has_any(payload, "images", "featured_image", "featuredImage"):
        images = _validate_images(payload.get("images")) if "images" in payload else listing.images
        featured = _pick(payload, "featured_image", "featuredImage")
        if featured is None and listing.featured_image in images:
            featured = listing.featured_image
        _apply_images(listing, images, featured)

    requested_status = clean_str(payload.get("status")).lower()
    if caller.is_admin:
        if requested_status and requested_status != listing.status:
            transition_listing(listing, requested_status, actor=caller)
    else:
        if requested_status:
            logger.info("listing_update_status_ignored id=%s user_id=%s", listing.id, caller.id)
        if listing.status == ListingStatus.REJECTED:
            # Owner edits of a rejected listing go back to review.
            listing.status = ListingStatus.PENDING
            listing.rejection_reason = None

    listing.updated_at = datetime.utcnow()
    db.session.commit()
    return listing


def delete_listing(caller: User, listing_id) -> Listing:
    listing = _get_listing_or_404(listing_id)
    _require_manager(caller, listing)
    if listing.status == ListingStatus.DELETED:
        raise ValidationError("Listing is already deleted")
    transition_listing(listing, ListingStatus.DELETED, actor=caller)
    db.session.commit()
    return listing


# ---------------------------------------------------------------------------
# Status operations
# ---------------------------------------------------------------------------

def change_listing_status(caller: User, listing_id, status) -> Listing:
    target = clean_str(status).lower()
    if target not in ListingStatus.CHANGEABLE:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(ListingStatus.CHANGEABLE)}")
    listing = _get_listing_or_404(listing_id)
    _require_manager(caller, listing)
    transition_listing(listing, target, actor=caller)
    db.session.commit()
    return listing


def approve_listing(caller: User, listing_id) -> Listing:
    _require_admin(caller)
    listing = _get_listing_or_404(listing_id)
    if listing.status != ListingStatus.PENDING:
        raise ValidationError(f"Cannot approve listing with status: {listing.status}")
    transition_listing(listing, ListingStatus.ACTIVE, actor=caller)
    db.session.commit()
    logger.info("listing_approved id=%s admin_id=%s", listing.id, caller.id)
    return listing


def reject_listing(caller: User, listing_id, reason: str | None = None) -> Listing:
    _require_admin(caller)
    listing = _get_listing_or_404(listing_id)
    if listing.status != ListingStatus.PENDING:
        raise ValidationError(f"Cannot reject listing with status: {listing.status}")
    transition_listing(listing, ListingStatus.REJECTED, actor=caller, reason=reason)
    db.session.commit()
    logger.info("listing_rejected id=%s admin_id=%s", listing.id, caller.id)
    return listing


def mark_as_sold(caller: User, listing_id) -> Listing:
    listing = _get_listing_or_404(listing_id)
    if not same_id(caller.id, listing.user_id):
        raise ForbiddenError("Only the owner can mark a listing as sold")
    if listing.status != ListingStatus.ACTIVE:
        raise ValidationError("Only active listings can be marked as sold")
    transition_listing(listing, ListingStatus.SOLD, actor=caller)
    db.session.commit()
    return listing


def boost_duration(duration) -> timedelta:
    """Turn ``day``/``week``/``month`` or a 1-30 day count into a timedelta."""
    if isinstance(duration, str) and duration.strip().lower() in BOOST_DURATIONS:
        return timedelta(days=BOOST_DURATIONS[duration.strip().lower()])
    if isinstance(duration, bool):
        raise ValidationError("Invalid duration")
    try:
        days = int(str(duration).strip())
    except (TypeError, ValueError):
        raise ValidationError("Duration must be day, week, month or a number of days")
    if not 1 <= days <= MAX_BOOST_DAYS:
        raise ValidationError(f"Duration must be between 1 and {MAX_BOOST_DAYS} days")
    return timedelta(days=days)


def _set_boost(caller: User, listing_id, *, kind: str, duration=None, enabled: bool = True) -> Listing:
    listing = _get_listing_or_404(listing_id)
    _require_manager(caller, listing)
    flag, until = ("is_featured", "featured_until") if kind == "feature" else ("is_promoted", "promotion_end_date")

    if not enabled:
        setattr(listing, flag, False)
        setattr(listing, until, None)
    else:
        if listing.status != ListingStatus.ACTIVE:
            raise ValidationError(f"Only active listings can be {'featured' if kind == 'feature' else 'promoted'}")
        ends_at = datetime.utcnow() + boost_duration(duration if duration is not None else "week")
        setattr(listing, flag, True)
        setattr(listing, until, ends_at)

    log_event(
        f"listing_{kind}_{'enabled' if enabled else 'disabled'}",
        actor_user_id=caller.id,
        subject_type="listing",
        subject_id=listing.id,
        metadata={"until": getattr(listing, until)},
    )
    db.session.commit()
    return listing


def promote_listing(caller: User, listing_id, duration=None, *, enabled: bool = True) -> Listing:
    return _set_boost(caller, listing_id, kind="promote", duration=duration, enabled=enabled)


def feature_listing(caller: User, listing_id, duration=None, *, enabled: bool = True) -> Listing:
    return _set_boost(caller, listing_id, kind="feature", duration=duration, enabled=enabled)


def check_featured_expiration(now: datetime | None = None) -> dict:
    """Clear featured/promoted flags whose end timestamp has passed."""
    now = now or datetime.utcnow()
    unfeatured = (
        Listing.query
        .filter(
            Listing.is_featured.is_(True),
            Listing.featured_until.isnot(None),
            Listing.featured_until < now,
        )
        .update({Listing.is_featured: False, Listing.featured_until: None}, synchronize_session=False)
    )
    unpromoted = (
        Listing.query
        .filter(
            Listing.is_promoted.is_(True),
            Listing.promotion_end_date.isnot(None),
            Listing.promotion_end_date < now,
        )
        .update({Listing.is_promoted: False, Listing.promotion_end_date: None}, synchronize_session=False)
    )
    db.session.commit()
    return {"unfeatured": int(unfeatured or 0), "unpromoted": int(unpromoted or 0)}


# ---------------------------------------------------------------------------
# Browse
# ---------------------------------------------------------------------------

def _parse_decimal_arg(value, name: str) -> Decimal | None:
    raw = clean_str(value)
    if not raw:
        return None
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ValidationError(f"{name} must be a number")


def _category_ids(key) -> list[int] | None:
    raw = clean_str(key)
    if not raw:
        return None
    category = None
    if raw.isdigit():
        category = db.session.get(Category, int(raw))
    if category is None:
        category = Category.query.filter_by(slug=raw).first()
    if category is None:
        return []
    child_ids = [row.id for row in Category.query.filter_by(parent_id=category.id).all()]
    return [category.id] + child_ids


def search_listings(filters: dict, viewer: User | None = None, *, page: int = 1, limit: int = 20) -> dict:
    filters = filters or {}
    query = Listing.query

    status = clean_str(filters.get("status")).lower() or ListingStatus.ACTIVE
    is_admin = viewer is not None and viewer.is_admin
    if is_admin and status == "all":
        query = query.filter(Listing.status != ListingStatus.DELETED)
    elif is_admin and status in ListingStatus.ALL:
        query = query.filter(Listing.status == status)
    else:
        query = query.filter(Listing.status == ListingStatus.ACTIVE)

    category_ids = _category_ids(filters.get("category") or filters.get("category_id"))
    if category_ids is not None:
        query = query.filter(Listing.category_id.in_(category_ids or [-1]))

    min_price = _parse_decimal_arg(filters.get("min_price") or filters.get("minPrice"), "min_price")
    if min_price is not None:
        query = query.filter(Listing.price >= min_price)
    max_price = _parse_decimal_arg(filters.get("max_price") or filters.get("maxPrice"), "max_price")
    if max_price is not None:
        query = query.filter(Listing.price <= max_price)

    condition = clean_str(filters.get("condition")).lower()
    if condition:
        query = query.filter(Listing.condition == condition)
    location = clean_str(filters.get("location"))
    if location:
        query = query.filter(Listing.location.ilike(f"%{location}%"))
    term = clean_str(filters.get("search") or filters.get("q"))
    if term:
        like = f"%{term}%"
        query = query.filter(or_(Listing.title.ilike(like), Listing.description.ilike(like)))
    user_id = clean_str(filters.get("user_id") or filters.get("userId"))
    if user_id.isdigit():
        query = query.filter(Listing.user_id == int(user_id))

    sort = clean_str(filters.get("sort")) or "created_at"
    if sort not in SORT_FIELDS:
        raise ValidationError(f"Sort must be one of {', '.join(SORT_FIELDS)}")
    column = getattr(Listing, sort)
    direction = clean_str(filters.get("order")).lower() or "desc"
    ordering = [column.asc() if direction == "asc" else column.desc(), Listing.id.desc()]
    if clean_str(filters.get("promoted_first") or "1") not in ("0", "false", "no"):
        ordering.insert(0, Listing.is_promoted.desc())
    query = query.order_by(*ordering)

    rows, total = paginate(query, page=page, limit=limit)
    return page_payload([row.to_dict() for row in rows], total=total, page=page, limit=limit)


def list_user_listings(caller: User, user_id, *, status: str | None = None, page: int = 1, limit: int = 20) -> dict:
    if not (same_id(caller.id, user_id) or caller.is_admin):
        raise ForbiddenError("Not authorized to view these listings")
    query = Listing.query.filter(Listing.user_id == int(user_id))
    status = clean_str(status).lower()
    if status:
        query = query.filter(Listing.status == _validate_status(status))
    else:
        query = query.filter(Listing.status != ListingStatus.DELETED)
    rows, total = paginate(query.order_by(Listing.created_at.desc(), Listing.id.desc()), page=page, limit=limit)
    return page_payload([row.to_dict(include_owner=False) for row in rows], total=total, page=page, limit=limit)


def featured_listings(limit: int = 12) -> list[Listing]:
    limit = max(1, min(int(limit or 12), 50))
    return (
        Listing.query
        .filter(
            Listing.status == ListingStatus.ACTIVE,
            or_(Listing.is_featured.is_(True), Listing.is_promoted.is_(True)),
        )
        .order_by(Listing.is_featured.desc(), Listing.created_at.desc(), Listing.id.desc())
        .limit(limit)
        .all()
    )


def list_pending_listings(caller: User, *, page: int = 1, limit: int = 20) -> dict:
    _require_admin(caller)
    query = Listing.query.filter(Listing.status == ListingStatus.PENDING).order_by(
        Listing.created_at.asc(), Listing.id.asc()
    )
    rows, total = paginate(query, page=page, limit=limit)
    return page_payload([row.to_dict() for row in rows], total=total, page=page, limit=limit)
