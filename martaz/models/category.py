from datetime import datetime
import json

import sqlalchemy as sa

from martaz.extensions import db


DEFAULT_TRANSLATIONS = {"az": None, "en": None, "ru": None}


def _load_json(raw, fallback):
    text_value = str(raw or "").strip()
    if not text_value:
        return fallback
    try:
        parsed = json.loads(text_value)
    except Exception:
        return fallback
    if isinstance(parsed, type(fallback)):
        return parsed
    return fallback


class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(140), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    is_active = db.Column(db.Boolean, nullable=False, default=True, server_default=sa.text("true"))
    icon = db.Column(db.String(255), nullable=True)
    image = db.Column(db.String(1024), nullable=True)
    meta_title = db.Column(db.String(255), nullable=True)
    meta_description = db.Column(db.Text, nullable=True)

    # Per-locale display names and free-form attribute definitions.
    translations_json = db.Column(db.Text, nullable=True)
    attributes_json = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def translations(self) -> dict:
        return _load_json(self.translations_json, dict(DEFAULT_TRANSLATIONS))

    @translations.setter
    def translations(self, value) -> None:
        merged = dict(DEFAULT_TRANSLATIONS)
        if isinstance(value, dict):
            merged.update({str(k): v for k, v in value.items()})
        self.translations_json = json.dumps(merged, ensure_ascii=False)

    @property
    def attributes(self) -> dict:
        return _load_json(self.attributes_json, {})

    @attributes.setter
    def attributes(self, value) -> None:
        self.attributes_json = json.dumps(value if isinstance(value, dict) else {}, ensure_ascii=False)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "name": self.name or "",
            "slug": self.slug or "",
            "description": self.description or "",
            "parent_id": int(self.parent_id) if self.parent_id is not None else None,
            "order": int(self.sort_order or 0),
            "is_active": bool(self.is_active),
            "icon": self.icon or "",
            "image": self.image or "",
            "meta_title": self.meta_title or "",
            "meta_description": self.meta_description or "",
            "translations": self.translations,
            "attributes": self.attributes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
