from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import and_, func, or_

from martaz.errors import ForbiddenError, NotFoundError, ValidationError
from martaz.extensions import db
from martaz.models import Conversation, Listing, Message, User
from martaz.services.listing_service import ListingStatus
from martaz.utils.pagination import page_payload, paginate
from martaz.utils.text import clean_str, same_id

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 5000


def _clean_content(value) -> str:
    content = clean_str(value)
    if not content:
        raise ValidationError("Message content is required")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")
    return content


def _get_conversation_for(caller: User, conversation_id) -> Conversation:
    try:
        cid = int(conversation_id)
    except (TypeError, ValueError):
        raise NotFoundError("Conversation not found")
    conversation = db.session.get(Conversation, cid)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    if conversation.side_of(caller.id) is None:
        raise ForbiddenError("Not authorized to access this conversation")
    return conversation


def _bump_unread(conversation: Conversation, receiver_id) -> None:
    if conversation.side_of(receiver_id) == 1:
        conversation.user1_unread_count = int(conversation.user1_unread_count or 0) + 1
    else:
        conversation.user2_unread_count = int(conversation.user2_unread_count or 0) + 1


def _unarchive(conversation: Conversation, user_id) -> None:
    if conversation.side_of(user_id) == 1:
        conversation.user1_archived = False
    else:
        conversation.user2_archived = False


def _append_message(conversation: Conversation, sender_id: int, receiver_id: int, content: str) -> Message:
    now = datetime.utcnow()
    message = Message(
        conversation_id=conversation.id,
        sender_id=sender_id,
        receiver_id=receiver_id,
        content=content,
        is_read=False,
        created_at=now,
    )
    db.session.add(message)
    _bump_unread(conversation, receiver_id)
    # Archive is per side and cleared on both send and receive.
    _unarchive(conversation, sender_id)
    _unarchive(conversation, receiver_id)
    conversation.last_message_at = now
    return message


def find_conversation(user_a: int, user_b: int, listing_id: int | None = None) -> Conversation | None:
    query = Conversation.query.filter(
        or_(
            and_(Conversation.user1_id == user_a, Conversation.user2_id == user_b),
            and_(Conversation.user1_id == user_b, Conversation.user2_id == user_a),
        )
    )
    if listing_id is not None:
        query = query.filter(Conversation.listing_id == listing_id)
    return query.order_by(Conversation.id.asc()).first()


def create_conversation(sender: User, recipient_id, *, initial_message, listing_id=None) -> tuple[Conversation, Message]:
    content = _clean_content(initial_message)
    try:
        rid = int(recipient_id)
    except (TypeError, ValueError):
        raise ValidationError("Recipient is required")
    if same_id(sender.id, rid):
        raise ValidationError("You cannot send a message to yourself")
    recipient = db.session.get(User, rid)
    if recipient is None:
        raise NotFoundError("Recipient not found")

    lid = None
    if listing_id not in (None, ""):
        try:
            lid = int(listing_id)
        except (TypeError, ValueError):
            raise ValidationError("Invalid listing id")
        listing = db.session.get(Listing, lid)
        if listing is None:
            raise NotFoundError("Listing not found")
        if listing.status != ListingStatus.ACTIVE:
            raise ValidationError("Cannot message about an inactive listing")

    conversation = find_conversation(sender.id, rid, lid)
    if conversation is None:
        conversation = Conversation(
            user1_id=sender.id,
            user2_id=rid,
            listing_id=lid,
            user1_unread_count=0,
            user2_unread_count=0,
            user1_archived=False,
            user2_archived=False,
        )
        db.session.add(conversation)
        db.session.flush()
        logger.info("conversation_created id=%s listing_id=%s", conversation.id, lid)

    message = _append_message(conversation, sender.id, rid, content)
    db.session.commit()
    return conversation, message


def send_message(sender: User, conversation_id, content) -> Message:
    content = _clean_content(content)
    conversation = _get_conversation_for(sender, conversation_id)
    receiver_id = conversation.other_user_id(sender.id)
    message = _append_message(conversation, sender.id, receiver_id, content)
    db.session.commit()
    return message


def mark_conversation_as_read(caller: User, conversation_id) -> int:
    """Flip the caller's unread messages and reset their counter together."""
    conversation = _get_conversation_for(caller, conversation_id)
    return _mark_read(conversation, caller)


def _mark_read(conversation: Conversation, caller: User) -> int:
    now = datetime.utcnow()
    updated = (
        Message.query
        .filter(
            Message.conversation_id == conversation.id,
            Message.receiver_id == caller.id,
            Message.is_read.is_(False),
        )
        .update({Message.is_read: True, Message.read_at: now}, synchronize_session="fetch")
    )
    remaining = (
        Message.query
        .filter(
            Message.conversation_id == conversation.id,
            Message.receiver_id == caller.id,
            Message.is_read.is_(False),
        )
        .count()
    )
    if conversation.side_of(caller.id) == 1:
        conversation.user1_unread_count = remaining
    else:
        conversation.user2_unread_count = remaining
    db.session.commit()
    return int(updated or 0)


def get_conversation(caller: User, conversation_id) -> dict:
    conversation = _get_conversation_for(caller, conversation_id)
    _mark_read(conversation, caller)
    messages = (
        Message.query
        .filter(Message.conversation_id == conversation.id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .all()
    )
    payload = conversation_view(conversation, caller)
    payload["messages"] = [message.to_dict() for message in messages]
    return payload


def conversation_view(conversation: Conversation, caller: User) -> dict:
    other_id = conversation.other_user_id(caller.id)
    other = db.session.get(User, other_id)
    last_message = (
        Message.query
        .filter(Message.conversation_id == conversation.id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .first()
    )
    return {
        "id": conversation.id,
        "listing_id": conversation.listing_id,
        "listing": conversation.listing.to_summary() if conversation.listing is not None else None,
        "other_user": other.to_public_dict() if other is not None else None,
        "last_message": last_message.to_dict() if last_message is not None else None,
        "unread_count": conversation.unread_for(caller.id),
        "archived": conversation.archived_for(caller.id),
        "last_message_at": conversation.last_message_at.isoformat() if conversation.last_message_at else None,
    }


def list_conversations(caller: User, *, archived: bool = False, page: int = 1, limit: int = 20) -> dict:
    archived = bool(archived)
    query = Conversation.query.filter(
        or_(
            and_(Conversation.user1_id == caller.id, Conversation.user1_archived.is_(archived)),
            and_(Conversation.user2_id == caller.id, Conversation.user2_archived.is_(archived)),
        )
    ).order_by(Conversation.last_message_at.desc(), Conversation.id.desc())
    rows, total = paginate(query, page=page, limit=limit)
    return page_payload([conversation_view(row, caller) for row in rows], total=total, page=page, limit=limit)


def set_archived(caller: User, conversation_id, archived: bool) -> Conversation:
    conversation = _get_conversation_for(caller, conversation_id)
    if conversation.side_of(caller.id) == 1:
        conversation.user1_archived = bool(archived)
    else:
        conversation.user2_archived = bool(archived)
    db.session.commit()
    return conversation


def archive_conversation(caller: User, conversation_id) -> Conversation:
    return set_archived(caller, conversation_id, True)


def unarchive_conversation(caller: User, conversation_id) -> Conversation:
    return set_archived(caller, conversation_id, False)


def unread_count(caller: User) -> int:
    as_user1 = (
        db.session.query(func.coalesce(func.sum(Conversation.user1_unread_count), 0))
        .filter(Conversation.user1_id == caller.id)
        .scalar()
    )
    as_user2 = (
        db.session.query(func.coalesce(func.sum(Conversation.user2_unread_count), 0))
        .filter(Conversation.user2_id == caller.id)
        .scalar()
    )
    return int(as_user1 or 0) + int(as_user2 or 0)
