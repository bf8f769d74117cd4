from datetime import datetime

import sqlalchemy as sa

from martaz.extensions import db


class Conversation(db.Model):
    __tablename__ = "conversations"

    id = db.Column(db.Integer, primary_key=True)

    # Unordered pair, positionally fixed at creation time.
    user1_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    user2_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=True, index=True)

    user1_unread_count = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    user2_unread_count = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    user1_archived = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))
    user2_archived = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))

    last_message_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    user1 = db.relationship("User", foreign_keys=[user1_id])
    user2 = db.relationship("User", foreign_keys=[user2_id])
    listing = db.relationship("Listing", foreign_keys=[listing_id])

    def side_of(self, user_id) -> int | None:
        uid = str(user_id).strip()
        if str(self.user1_id).strip() == uid:
            return 1
        if str(self.user2_id).strip() == uid:
            return 2
        return None

    def other_user_id(self, user_id) -> int:
        return self.user2_id if self.side_of(user_id) == 1 else self.user1_id

    def unread_for(self, user_id) -> int:
        side = self.side_of(user_id)
        if side == 1:
            return int(self.user1_unread_count or 0)
        if side == 2:
            return int(self.user2_unread_count or 0)
        return 0

    def archived_for(self, user_id) -> bool:
        side = self.side_of(user_id)
        if side == 1:
            return bool(self.user1_archived)
        if side == 2:
            return bool(self.user2_archived)
        return False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user1_id": self.user1_id,
            "user2_id": self.user2_id,
            "listing_id": self.listing_id,
            "user1_unread_count": int(self.user1_unread_count or 0),
            "user2_unread_count": int(self.user2_unread_count or 0),
            "user1_archived": bool(self.user1_archived),
            "user2_archived": bool(self.user2_archived),
            "last_message_at": self.last_message_at.isoformat() if self.last_message_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Message(db.Model):
    __tablename__ = "messages"

    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey("conversations.id"), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    receiver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    content = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"), index=True)
    read_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "content": self.content or "",
            "is_read": bool(self.is_read),
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
