from datetime import datetime

from martaz.extensions import db


class Favorite(db.Model):
    __tablename__ = "favorites"
    __table_args__ = (
        db.UniqueConstraint("user_id", "item_id", "item_type", name="uq_favorites_user_item"),
    )

    ITEM_TYPES = ("product", "listing")

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, nullable=False, index=True)
    item_type = db.Column(db.String(16), nullable=False, default="listing")
    # Copy of item_id when item_type is "listing".
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    listing = db.relationship("Listing", foreign_keys=[listing_id])

    def to_dict(self) -> dict:
        payload = {
            "id": self.id,
            "user_id": self.user_id,
            "item_id": self.item_id,
            "item_type": self.item_type,
            "listing_id": self.listing_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if self.listing is not None:
            payload["listing"] = self.listing.to_dict(include_owner=False)
        return payload
