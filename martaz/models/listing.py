from datetime import datetime
import json
import sqlalchemy as sa

from martaz.extensions import db


class Listing(db.Model):
    __tablename__ = "listings"

    CURRENCIES = ("AZN", "USD", "EUR")
    CONDITIONS = ("new", "like-new", "good", "fair", "poor")
    CONTACT_METHODS = ("phone", "email", "both")

    id = db.Column(db.Integer, primary_key=True)

    # Owner; every listing has exactly one.
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    title = db.Column(db.String(100), nullable=False)
    slug = db.Column(db.String(160), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=False)

    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="AZN", server_default="AZN")
    condition = db.Column(db.String(16), nullable=True)
    location = db.Column(db.String(255), nullable=False)

    # Ordered list of image references, stored as JSON text.
    images_json = db.Column(db.Text, nullable=True)
    featured_image = db.Column(db.String(1024), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", server_default="pending", index=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    is_promoted = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"), index=True)
    promotion_end_date = db.Column(db.DateTime, nullable=True)
    is_featured = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"), index=True)
    featured_until = db.Column(db.DateTime, nullable=True, index=True)

    views = db.Column(db.Integer, nullable=False, default=0, server_default="0")

    contact_phone = db.Column(db.String(32), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    contact_method = db.Column(db.String(8), nullable=False, default="both", server_default="both")

    attributes_json = db.Column(db.Text, nullable=True)
    expiry_date = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, server_default=sa.func.now(), index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = db.relationship("User", lazy="joined", foreign_keys=[user_id])
    category = db.relationship("Category", lazy="joined", foreign_keys=[category_id])

    @property
    def images(self) -> list:
        raw = str(self.images_json or "").strip()
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except Exception:
            return []
        if not isinstance(parsed, list):
            return []
        return [str(item) for item in parsed if str(item or "").strip()]

    @images.setter
    def images(self, value) -> None:
        items = [str(item).strip() for item in (value or []) if str(item or "").strip()]
        self.images_json = json.dumps(items)

    @property
    def attributes(self) -> dict:
        raw = str(self.attributes_json or "").strip()
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, dict):
                return parsed
        except Exception:
            return {}
        return {}

    @attributes.setter
    def attributes(self, value) -> None:
        self.attributes_json = json.dumps(value if isinstance(value, dict) else {}, ensure_ascii=False)

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "price": float(self.price or 0),
            "currency": self.currency or "AZN",
            "status": self.status,
            "featured_image": self.featured_image or "",
            "user_id": self.user_id,
        }

    def to_dict(self, *, include_owner: bool = True) -> dict:
        payload = {
            "id": self.id,
            "user_id": self.user_id,
            "category_id": int(self.category_id) if self.category_id is not None else None,
            "title": self.title,
            "slug": self.slug,
            "description": self.description or "",
            "price": float(self.price or 0),
            "currency": self.currency or "AZN",
            "condition": self.condition,
            "location": self.location or "",
            "images": self.images,
            "featured_image": self.featured_image or "",
            "status": self.status,
            "rejection_reason": self.rejection_reason,
            "is_promoted": bool(self.is_promoted),
            "promotion_end_date": self.promotion_end_date.isoformat() if self.promotion_end_date else None,
            "is_featured": bool(self.is_featured),
            "featured_until": self.featured_until.isoformat() if self.featured_until else None,
            "views": int(self.views or 0),
            "contact_phone": self.contact_phone,
            "contact_email": self.contact_email,
            "contact_method": self.contact_method or "both",
            "attributes": self.attributes,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_owner and self.owner is not None:
            payload["owner"] = self.owner.to_public_dict()
        if self.category is not None:
            payload["category"] = {
                "id": self.category.id,
                "name": self.category.name,
                "slug": self.category.slug,
            }
        return payload
