import json
from datetime import datetime

import sqlalchemy as sa

from martaz.extensions import db


class SeoSetting(db.Model):
    __tablename__ = "seo_settings"
    __table_args__ = (
        # Page-type defaults carry no identifier and are not covered here.
        sa.Index(
            "uq_seo_settings_page",
            "page_type",
            "page_identifier",
            unique=True,
            sqlite_where=sa.text("page_identifier IS NOT NULL"),
            postgresql_where=sa.text("page_identifier IS NOT NULL"),
        ),
    )

    PAGE_TYPES = ("global", "home", "listings", "listing_detail", "category", "user_profile", "search", "static")

    id = db.Column(db.Integer, primary_key=True)
    page_type = db.Column(db.String(32), nullable=False, index=True)
    page_identifier = db.Column(db.String(255), nullable=True)

    title = db.Column(db.String(70), nullable=True)
    description = db.Column(db.Text, nullable=True)
    keywords = db.Column(db.String(500), nullable=True)
    og_title = db.Column(db.String(70), nullable=True)
    og_description = db.Column(db.Text, nullable=True)
    og_image = db.Column(db.String(1024), nullable=True)
    twitter_title = db.Column(db.String(70), nullable=True)
    twitter_description = db.Column(db.Text, nullable=True)
    twitter_image = db.Column(db.String(1024), nullable=True)
    canonical = db.Column(db.String(1024), nullable=True)
    robots_directives = db.Column(db.String(255), nullable=True)
    structured_data_json = db.Column(db.Text, nullable=True)
    priority = db.Column(db.Integer, nullable=False, default=0, server_default="0")

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def structured_data(self):
        raw = str(self.structured_data_json or "").strip()
        if not raw:
            return None
        try:
            parsed = json.loads(raw)
        except Exception:
            return None
        return parsed if isinstance(parsed, dict) else None

    @structured_data.setter
    def structured_data(self, value) -> None:
        self.structured_data_json = json.dumps(value, ensure_ascii=False) if isinstance(value, dict) else None

    @property
    def is_global_default(self) -> bool:
        return self.page_type == "global" and not self.page_identifier

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "page_type": self.page_type,
            "page_identifier": self.page_identifier,
            "title": self.title,
            "description": self.description,
            "keywords": self.keywords,
            "og_title": self.og_title,
            "og_description": self.og_description,
            "og_image": self.og_image,
            "twitter_title": self.twitter_title,
            "twitter_description": self.twitter_description,
            "twitter_image": self.twitter_image,
            "canonical": self.canonical,
            "robots_directives": self.robots_directives,
            "structured_data": self.structured_data,
            "priority": int(self.priority or 0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
