from __future__ import annotations

import logging

from martaz.errors import ForbiddenError, NotFoundError, ValidationError
from martaz.extensions import db
from martaz.models import Category, Listing, User
from martaz.services.listing_service import ListingStatus
from martaz.utils.events import log_event
from martaz.utils.pagination import page_payload, paginate
from martaz.utils.text import as_bool, clean_str, slugify

logger = logging.getLogger(__name__)


def _require_admin(caller: User) -> None:
    if caller is None or not caller.is_admin:
        raise ForbiddenError("Admin access required")


def _get_category_or_404(category_id) -> Category:
    try:
        cid = int(category_id)
    except (TypeError, ValueError):
        raise NotFoundError("Category not found")
    category = db.session.get(Category, cid)
    if category is None:
        raise NotFoundError("Category not found")
    return category


def find_category(id_or_slug) -> Category | None:
    key = clean_str(id_or_slug)
    if not key:
        return None
    if key.isdigit():
        row = db.session.get(Category, int(key))
        if row is not None:
            return row
    return Category.query.filter_by(slug=key).first()


def _ordered(query):
    return query.order_by(Category.sort_order.asc(), Category.name.asc(), Category.id.asc())


def list_categories(*, include_inactive: bool = False) -> list[Category]:
    query = Category.query
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    return _ordered(query).all()


def list_children(category_id, *, include_inactive: bool = False) -> list[Category]:
    parent = _get_category_or_404(category_id)
    query = Category.query.filter(Category.parent_id == parent.id)
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    return _ordered(query).all()


def get_category(id_or_slug) -> dict:
    category = find_category(id_or_slug)
    if category is None:
        raise NotFoundError("Category not found")
    payload = category.to_dict()
    payload["children"] = [
        row.to_dict()
        for row in _ordered(
            Category.query.filter(Category.parent_id == category.id, Category.is_active.is_(True))
        ).all()
    ]
    return payload


def category_tree() -> list[dict]:
    """Recursive tree of active categories, roots first."""
    rows = list_categories()
    by_parent: dict[int | None, list[Category]] = {}
    for row in rows:
        by_parent.setdefault(row.parent_id, []).append(row)
    active_ids = {row.id for row in rows}

    def build(node: Category, seen: frozenset) -> dict:
        payload = node.to_dict()
        payload["children"] = [
            build(child, seen | {child.id})
            for child in by_parent.get(node.id, [])
            if child.id not in seen
        ]
        return payload

    # Children of inactive parents surface as roots rather than disappearing.
    roots = [row for row in rows if row.parent_id is None or row.parent_id not in active_ids]
    return [build(root, frozenset({root.id})) for root in roots]


def _unique_category_slug(value: str, *, exclude_id: int | None = None) -> str:
    slug = slugify(value)[:140]
    if not slug:
        raise ValidationError("Category name must contain letters or digits")
    query = Category.query.filter(Category.slug == slug)
    if exclude_id is not None:
        query = query.filter(Category.id != int(exclude_id))
    if query.first() is not None:
        raise ValidationError("Category with this name already exists")
    return slug


def _ancestor_ids(category_id: int) -> list[int]:
    chain = []
    seen = set()
    current = db.session.get(Category, int(category_id))
    while current is not None and current.id not in seen:
        chain.append(current.id)
        seen.add(current.id)
        current = db.session.get(Category, current.parent_id) if current.parent_id is not None else None
    return chain


def _resolve_parent(value, *, category_id: int | None = None) -> int | None:
    if value in (None, ""):
        return None
    try:
        parent_id = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Invalid parent category id")
    if db.session.get(Category, parent_id) is None:
        raise NotFoundError("Parent category not found")
    if category_id is not None:
        if parent_id == int(category_id):
            raise ValidationError("Category cannot be its own parent")
        if int(category_id) in _ancestor_ids(parent_id):
            raise ValidationError("Category cannot be moved under one of its descendants")
    return parent_id


def _apply_fields(category: Category, payload: dict) -> None:
    if "description" in payload:
        category.description = clean_str(payload.get("description")) or None
    if "order" in payload or "sort_order" in payload:
        raw = payload.get("order", payload.get("sort_order"))
        try:
            category.sort_order = int(raw or 0)
        except (TypeError, ValueError):
            raise ValidationError("Order must be an integer")
    if "is_active" in payload or "isActive" in payload:
        category.is_active = as_bool(payload.get("is_active", payload.get("isActive")))
    for field in ("icon", "image", "meta_title", "meta_description"):
        if field in payload:
            setattr(category, field, clean_str(payload.get(field)) or None)
    if "translations" in payload:
        translations = payload.get("translations")
        if translations is not None and not isinstance(translations, dict):
            raise ValidationError("Translations must be an object")
        category.translations = translations or {}
    if "attributes" in payload:
        attributes = payload.get("attributes")
        if attributes is not None and not isinstance(attributes, dict):
            raise ValidationError("Attributes must be an object")
        category.attributes = attributes or {}


def create_category(caller: User, payload: dict) -> Category:
    _require_admin(caller)
    payload = payload or {}
    name = clean_str(payload.get("name"), max_len=120)
    if not name:
        raise ValidationError("Category name is required")
    category = Category(
        name=name,
        slug=_unique_category_slug(clean_str(payload.get("slug")) or name),
        parent_id=_resolve_parent(payload.get("parent_id", payload.get("parentId"))),
        is_active=True,
        sort_order=0,
    )
    category.translations = {}
    category.attributes = {}
    _apply_fields(category, payload)
    db.session.add(category)
    db.session.flush()
    log_event("category_created", actor_user_id=caller.id, subject_type="category", subject_id=category.id)
    db.session.commit()
    return category


def update_category(caller: User, category_id, payload: dict) -> Category:
    _require_admin(caller)
    payload = payload or {}
    category = _get_category_or_404(category_id)

    if "name" in payload:
        name = clean_str(payload.get("name"), max_len=120)
        if not name:
            raise ValidationError("Category name is required")
        if name != category.name:
            category.name = name
            if not clean_str(payload.get("slug")):
                category.slug = _unique_category_slug(name, exclude_id=category.id)
    if clean_str(payload.get("slug")):
        category.slug = _unique_category_slug(payload.get("slug"), exclude_id=category.id)
    if "parent_id" in payload or "parentId" in payload:
        category.parent_id = _resolve_parent(
            payload.get("parent_id", payload.get("parentId")),
            category_id=category.id,
        )
    _apply_fields(category, payload)
    log_event("category_updated", actor_user_id=caller.id, subject_type="category", subject_id=category.id)
    db.session.commit()
    return category


def delete_category(caller: User, category_id) -> str:
    """Delete a leaf category; returns ``"deleted"`` or ``"deactivated"``."""
    _require_admin(caller)
    category = _get_category_or_404(category_id)

    if Category.query.filter(Category.parent_id == category.id).first() is not None:
        raise ValidationError("Cannot delete category with subcategories")

    if Listing.query.filter(Listing.category_id == category.id).first() is not None:
        category.is_active = False
        outcome = "deactivated"
    else:
        db.session.delete(category)
        outcome = "deleted"
    log_event(
        "category_deleted",
        actor_user_id=caller.id,
        subject_type="category",
        subject_id=category_id,
        metadata={"outcome": outcome},
    )
    db.session.commit()
    logger.info("category_delete id=%s outcome=%s", category_id, outcome)
    return outcome


def category_listings(id_or_slug, *, page: int = 1, limit: int = 20) -> dict:
    category = find_category(id_or_slug)
    if category is None:
        raise NotFoundError("Category not found")
    ids = [category.id] + [row.id for row in Category.query.filter(Category.parent_id == category.id).all()]
    query = (
        Listing.query
        .filter(Listing.category_id.in_(ids), Listing.status == ListingStatus.ACTIVE)
        .order_by(Listing.is_promoted.desc(), Listing.created_at.desc(), Listing.id.desc())
    )
    rows, total = paginate(query, page=page, limit=limit)
    payload = page_payload([row.to_dict() for row in rows], total=total, page=page, limit=limit)
    payload["category"] = category.to_dict()
    return payload
