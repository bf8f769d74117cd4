from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import or_

from martaz.errors import ForbiddenError, NotFoundError, ValidationError
from martaz.extensions import db
from martaz.models import Category, Listing, ListingReport, Message, User
from martaz.services.listing_service import ListingStatus
from martaz.services.user_service import build_user, save_new_user
from martaz.utils.events import log_event
from martaz.utils.pagination import page_payload, paginate
from martaz.utils.text import clean_str, same_id

logger = logging.getLogger(__name__)


def _require_admin(caller: User) -> None:
    if caller is None or not caller.is_admin:
        raise ForbiddenError("Admin access required")


def _get_user_or_404(user_id) -> User:
    try:
        uid = int(user_id)
    except (TypeError, ValueError):
        raise NotFoundError("User not found")
    user = db.session.get(User, uid)
    if user is None:
        raise NotFoundError("User not found")
    return user


def _guard_target(actor: User, target: User) -> None:
    if same_id(actor.id, target.id):
        raise ValidationError("You cannot change your own account this way")
    if target.is_admin and not actor.is_superadmin:
        raise ForbiddenError("Only a superadmin can modify another admin")


def list_users(
    caller: User,
    *,
    search: str | None = None,
    role: str | None = None,
    status: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    _require_admin(caller)
    query = User.query
    term = clean_str(search)
    if term:
        like = f"%{term}%"
        query = query.filter(
            or_(User.email.ilike(like), User.first_name.ilike(like), User.last_name.ilike(like))
        )
    if clean_str(role):
        query = query.filter(User.role == clean_str(role).lower())
    if clean_str(status):
        query = query.filter(User.status == clean_str(status).lower())
    rows, total = paginate(query.order_by(User.created_at.desc(), User.id.desc()), page=page, limit=limit)
    return page_payload([row.to_dict() for row in rows], total=total, page=page, limit=limit)


def get_user_detail(caller: User, user_id) -> dict:
    _require_admin(caller)
    user = _get_user_or_404(user_id)
    payload = user.to_dict()
    payload["listing_count"] = Listing.query.filter(
        Listing.user_id == user.id, Listing.status != ListingStatus.DELETED
    ).count()
    payload["message_count"] = Message.query.filter(Message.sender_id == user.id).count()
    return payload


def update_user_status(caller: User, user_id, status) -> User:
    _require_admin(caller)
    status = clean_str(status).lower()
    if status not in User.STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(User.STATUSES)}")
    user = _get_user_or_404(user_id)
    _guard_target(caller, user)
    previous = user.status
    user.status = status
    log_event(
        "user_status_changed",
        actor_user_id=caller.id,
        subject_type="user",
        subject_id=user.id,
        metadata={"from": previous, "to": status},
    )
    db.session.commit()
    return user


def change_user_role(caller: User, user_id, role) -> User:
    _require_admin(caller)
    role = clean_str(role).lower()
    if role not in User.ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(User.ROLES)}")
    user = _get_user_or_404(user_id)
    _guard_target(caller, user)
    if role in ("admin", "superadmin") and not caller.is_superadmin:
        raise ForbiddenError("Only a superadmin can grant admin roles")
    previous = user.role
    user.role = role
    log_event(
        "user_role_changed",
        actor_user_id=caller.id,
        subject_type="user",
        subject_id=user.id,
        severity="WARN" if role != "user" else "INFO",
        metadata={"from": previous, "to": role},
    )
    db.session.commit()
    return user


def create_admin_user(caller: User, payload: dict) -> User:
    if caller is None or not caller.is_superadmin:
        raise ForbiddenError("Only a superadmin can create admin users")
    payload = payload or {}
    role = clean_str(payload.get("role") or "admin").lower()
    if role not in ("admin", "superadmin"):
        raise ValidationError("Role must be admin or superadmin")
    user = build_user(payload, role=role)
    db.session.add(user)
    db.session.flush()
    log_event(
        "admin_user_created",
        actor_user_id=caller.id,
        subject_type="user",
        subject_id=user.id,
        severity="WARN",
        metadata={"role": role},
    )
    return save_new_user(user)


def deactivate_user(caller: User, user_id) -> dict:
    """Soft-delete a user and every listing they own."""
    _require_admin(caller)
    user = _get_user_or_404(user_id)
    _guard_target(caller, user)
    user.status = "inactive"
    affected = (
        Listing.query
        .filter(Listing.user_id == user.id, Listing.status != ListingStatus.DELETED)
        .update(
            {Listing.status: ListingStatus.DELETED, Listing.updated_at: datetime.utcnow()},
            synchronize_session=False,
        )
    )
    log_event(
        "user_deactivated",
        actor_user_id=caller.id,
        subject_type="user",
        subject_id=user.id,
        metadata={"listings_deleted": int(affected or 0)},
    )
    db.session.commit()
    return {"user": user.to_dict(), "listings_deleted": int(affected or 0)}


def dashboard_stats(caller: User, *, now: datetime | None = None) -> dict:
    _require_admin(caller)
    now = now or datetime.utcnow()
    start_of_day = datetime.combine(now.date(), datetime.min.time())
    return {
        "users": {
            "total": User.query.count(),
            "new_today": User.query.filter(User.created_at >= start_of_day).count(),
        },
        "listings": {
            "total": Listing.query.filter(Listing.status != ListingStatus.DELETED).count(),
            "active": Listing.query.filter(Listing.status == ListingStatus.ACTIVE).count(),
            "pending": Listing.query.filter(Listing.status == ListingStatus.PENDING).count(),
        },
        "categories": Category.query.filter(Category.is_active.is_(True)).count(),
        "pending_reports": ListingReport.query.filter(ListingReport.status == "pending").count(),
        "messages": Message.query.count(),
    }
