from __future__ import annotations

from flask import Blueprint, request

from martaz.services import messaging_service
from martaz.utils.auth import require_user
from martaz.utils.pagination import parse_page_args
from martaz.utils.responses import arg_bool, json_body, ok

messages_bp = Blueprint("messages_bp", __name__, url_prefix="/api/messages")


@messages_bp.get("/conversations")
def list_conversations():
    user = require_user()
    page, limit = parse_page_args(request.args)
    return ok(
        messaging_service.list_conversations(
            user,
            archived=arg_bool("archived"),
            page=page,
            limit=limit,
        )
    )


@messages_bp.post("/conversations")
def create_conversation():
    user = require_user()
    payload = json_body()
    conversation, message = messaging_service.create_conversation(
        user,
        payload.get("recipient_id", payload.get("recipientId")),
        initial_message=payload.get("initial_message", payload.get("initialMessage")),
        listing_id=payload.get("listing_id", payload.get("listingId")),
    )
    return ok(
        {"conversation": conversation.to_dict(), "message": message.to_dict()},
        message="Message sent",
        status=201,
    )


@messages_bp.get("/conversations/<int:conversation_id>")
def get_conversation(conversation_id: int):
    return ok(messaging_service.get_conversation(require_user(), conversation_id))


@messages_bp.post("/conversations/<int:conversation_id>/messages")
def send_message(conversation_id: int):
    message = messaging_service.send_message(require_user(), conversation_id, json_body().get("content"))
    return ok(message.to_dict(), message="Message sent", status=201)


@messages_bp.post("/conversations/<int:conversation_id>/read")
def mark_read(conversation_id: int):
    updated = messaging_service.mark_conversation_as_read(require_user(), conversation_id)
    return ok({"updated": updated}, message="Conversation marked as read")


@messages_bp.post("/conversations/<int:conversation_id>/archive")
def archive(conversation_id: int):
    conversation = messaging_service.archive_conversation(require_user(), conversation_id)
    return ok(conversation.to_dict(), message="Conversation archived")


@messages_bp.post("/conversations/<int:conversation_id>/unarchive")
def unarchive(conversation_id: int):
    conversation = messaging_service.unarchive_conversation(require_user(), conversation_id)
    return ok(conversation.to_dict(), message="Conversation unarchived")


@messages_bp.get("/unread-count")
def unread_count():
    return ok({"unread_count": messaging_service.unread_count(require_user())})
