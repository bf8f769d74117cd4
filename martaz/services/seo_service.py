from __future__ import annotations

import logging
from urllib.parse import urlparse

from sqlalchemy.exc import IntegrityError

from martaz.errors import ForbiddenError, NotFoundError, ValidationError
from martaz.extensions import db
from martaz.models import Category, SeoSetting, User
from martaz.utils.events import log_event
from martaz.utils.text import clean_str

logger = logging.getLogger(__name__)

GLOBAL_PAGE = "global"
MAX_PRIORITY = 100

STATIC_PAGES = (
    {"id": "about", "name": "About Us", "path": "/about"},
    {"id": "contact", "name": "Contact Us", "path": "/contact"},
    {"id": "terms", "name": "Terms of Service", "path": "/terms"},
    {"id": "privacy", "name": "Privacy Policy", "path": "/privacy"},
    {"id": "faq", "name": "FAQ", "path": "/faq"},
)

PAGE_TYPE_NAMES = {
    "global": "Global Settings",
    "home": "Homepage",
    "listings": "Listings Pages",
    "listing_detail": "Listing Detail Pages",
    "category": "Category Pages",
    "user_profile": "User Profile Pages",
    "search": "Search Results Pages",
    "static": "Static Pages",
}

# field -> (camelCase alias, max length)
_TEXT_FIELDS = {
    "title": ("title", 70),
    "description": ("description", 160),
    "keywords": ("keywords", 255),
    "og_title": ("ogTitle", 70),
    "og_description": ("ogDescription", 200),
    "twitter_title": ("twitterTitle", 70),
    "twitter_description": ("twitterDescription", 200),
    "robots_directives": ("robotsDirectives", 255),
}
_URL_FIELDS = {
    "og_image": "ogImage",
    "twitter_image": "twitterImage",
    "canonical": "canonical",
}


def _require_admin(caller: User) -> None:
    if caller is None or not caller.is_admin:
        raise ForbiddenError("Admin access required")


def _value(payload: dict, field: str, alias: str):
    return payload.get(field, payload.get(alias))


def _has(payload: dict, field: str, alias: str) -> bool:
    return field in payload or alias in payload


def _validate_page_type(value) -> str:
    page_type = clean_str(value).lower()
    if not page_type:
        raise ValidationError("Page type is required")
    if page_type not in SeoSetting.PAGE_TYPES:
        raise ValidationError(f"Invalid page type. Must be one of: {', '.join(SeoSetting.PAGE_TYPES)}")
    return page_type


def _validate_url(field: str, value) -> str | None:
    url = clean_str(value)
    if not url:
        return None
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"{field} must be an absolute http(s) URL")
    return url[:1024]


def _validate_priority(value) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValidationError("Priority must be an integer")
    try:
        priority = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Priority must be an integer")
    if not 0 <= priority <= MAX_PRIORITY:
        raise ValidationError(f"Priority must be between 0 and {MAX_PRIORITY}")
    return priority


def _apply_fields(setting: SeoSetting, payload: dict) -> None:
    for field, (alias, max_len) in _TEXT_FIELDS.items():
        if not _has(payload, field, alias):
            continue
        text_value = clean_str(_value(payload, field, alias))
        if len(text_value) > max_len:
            raise ValidationError(f"{field} must be at most {max_len} characters")
        setattr(setting, field, text_value or None)
    for field, alias in _URL_FIELDS.items():
        if _has(payload, field, alias):
            setattr(setting, field, _validate_url(field, _value(payload, field, alias)))
    if _has(payload, "structured_data", "structuredData"):
        data = _value(payload, "structured_data", "structuredData")
        if data is not None and not isinstance(data, dict):
            raise ValidationError("Structured data must be an object")
        setting.structured_data = data
    if "priority" in payload:
        setting.priority = _validate_priority(payload.get("priority"))


def _ensure_unique_page(page_type: str, page_identifier: str | None, *, exclude_id: int | None = None) -> None:
    query = SeoSetting.query.filter(SeoSetting.page_type == page_type)
    if page_identifier:
        query = query.filter(SeoSetting.page_identifier == page_identifier)
    elif page_type == GLOBAL_PAGE:
        query = query.filter(SeoSetting.page_identifier.is_(None))
    else:
        # Page-type defaults may stack; priority picks the winner.
        return
    if exclude_id is not None:
        query = query.filter(SeoSetting.id != exclude_id)
    if query.first() is not None:
        if page_identifier:
            raise ValidationError("SEO settings already exist for this page")
        raise ValidationError("Global SEO settings already exist. Please update existing settings.")


def _get_setting_or_404(setting_id) -> SeoSetting:
    try:
        sid = int(setting_id)
    except (TypeError, ValueError):
        raise NotFoundError("SEO settings not found")
    setting = db.session.get(SeoSetting, sid)
    if setting is None:
        raise NotFoundError("SEO settings not found")
    return setting


def _commit_setting() -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("SEO settings already exist for this page")


def list_settings(caller: User, page_type=None) -> list[SeoSetting]:
    _require_admin(caller)
    query = SeoSetting.query
    wanted = clean_str(page_type).lower()
    if wanted:
        query = query.filter(SeoSetting.page_type == wanted)
    return query.order_by(SeoSetting.page_type.asc(), SeoSetting.created_at.desc(), SeoSetting.id.desc()).all()


def get_setting(caller: User, setting_id) -> SeoSetting:
    _require_admin(caller)
    return _get_setting_or_404(setting_id)


def _best(query):
    return query.order_by(SeoSetting.priority.desc(), SeoSetting.id.desc()).first()


def settings_for_page(page_type, page_identifier=None) -> SeoSetting | None:
    """Resolve metadata for a page.

    Tries the exact page, then the page type default, then the global
    default. Returns None when nothing is configured.
    """
    page_type = _validate_page_type(page_type)
    identifier = clean_str(page_identifier) or None

    base = SeoSetting.query.filter(SeoSetting.page_type == page_type)
    if identifier:
        setting = _best(base.filter(SeoSetting.page_identifier == identifier))
        if setting is not None:
            return setting
    setting = _best(base.filter(SeoSetting.page_identifier.is_(None)))
    if setting is not None:
        return setting
    return _best(
        SeoSetting.query.filter(SeoSetting.page_type == GLOBAL_PAGE, SeoSetting.page_identifier.is_(None))
    )


def create_setting(caller: User, payload: dict) -> SeoSetting:
    _require_admin(caller)
    payload = payload or {}
    page_type = _validate_page_type(_value(payload, "page_type", "pageType"))
    page_identifier = clean_str(_value(payload, "page_identifier", "pageIdentifier"), max_len=255) or None
    _ensure_unique_page(page_type, page_identifier)

    setting = SeoSetting(page_type=page_type, page_identifier=page_identifier, priority=0)
    _apply_fields(setting, payload)
    db.session.add(setting)
    db.session.flush()
    log_event(
        "seo_settings_created",
        actor_user_id=caller.id,
        subject_type="seo_settings",
        subject_id=setting.id,
        metadata={"page_type": page_type, "page_identifier": page_identifier},
    )
    _commit_setting()
    logger.info("seo_settings_created id=%s page_type=%s", setting.id, page_type)
    return setting


def update_setting(caller: User, setting_id, payload: dict) -> SeoSetting:
    _require_admin(caller)
    payload = payload or {}
    setting = _get_setting_or_404(setting_id)

    page_type = setting.page_type
    page_identifier = setting.page_identifier
    if _has(payload, "page_type", "pageType"):
        page_type = _validate_page_type(_value(payload, "page_type", "pageType"))
    if _has(payload, "page_identifier", "pageIdentifier"):
        page_identifier = clean_str(_value(payload, "page_identifier", "pageIdentifier"), max_len=255) or None
    if setting.is_global_default and (page_type != GLOBAL_PAGE or page_identifier):
        raise ValidationError("Global SEO settings cannot be moved to another page")
    if (page_type, page_identifier) != (setting.page_type, setting.page_identifier):
        _ensure_unique_page(page_type, page_identifier, exclude_id=setting.id)
        setting.page_type = page_type
        setting.page_identifier = page_identifier

    _apply_fields(setting, payload)
    _commit_setting()
    return setting


def delete_setting(caller: User, setting_id) -> None:
    _require_admin(caller)
    setting = _get_setting_or_404(setting_id)
    if setting.is_global_default:
        raise ValidationError("Cannot delete global SEO settings")
    log_event(
        "seo_settings_deleted",
        actor_user_id=caller.id,
        subject_type="seo_settings",
        subject_id=setting.id,
        metadata={"page_type": setting.page_type, "page_identifier": setting.page_identifier},
    )
    db.session.delete(setting)
    db.session.commit()


def available_pages(caller: User) -> dict:
    _require_admin(caller)
    categories = (
        Category.query
        .filter(Category.is_active.is_(True))
        .order_by(Category.name.asc())
        .all()
    )
    return {
        "page_types": [{"id": key, "name": PAGE_TYPE_NAMES[key]} for key in SeoSetting.PAGE_TYPES],
        "categories": [{"id": row.id, "name": row.name, "slug": row.slug} for row in categories],
        "static_pages": [dict(page) for page in STATIC_PAGES],
    }
