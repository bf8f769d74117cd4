from datetime import datetime
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from martaz.extensions import db


class User(db.Model, UserMixin):
    __tablename__ = "users"

    ROLES = ("user", "admin", "superadmin")
    STATUSES = ("active", "inactive", "suspended")

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, index=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    first_name = db.Column(db.String(80), nullable=False, default="")
    last_name = db.Column(db.String(80), nullable=False, default="")
    phone = db.Column(db.String(32), nullable=True)
    profile_image = db.Column(db.String(1024), nullable=True)

    role = db.Column(db.String(16), nullable=False, default="user", index=True)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    reset_password_token = db.Column(db.String(255), nullable=True)
    reset_password_expires = db.Column(db.DateTime, nullable=True)
    last_login = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def is_admin(self) -> bool:
        return (self.role or "").strip().lower() in ("admin", "superadmin")

    @property
    def is_superadmin(self) -> bool:
        return (self.role or "").strip().lower() == "superadmin"

    @property
    def is_active(self) -> bool:
        # Flask-Login reads this too; suspended and inactive accounts cannot act.
        return (self.status or "active").strip().lower() == "active"

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def set_password(self, raw_password: str) -> None:
        self.password_hash = generate_password_hash(raw_password)

    def check_password(self, raw_password: str) -> bool:
        return check_password_hash(self.password_hash, raw_password)

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name or "",
            "last_name": self.last_name or "",
            "profile_image": self.profile_image or "",
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name or "",
            "last_name": self.last_name or "",
            "phone": self.phone,
            "profile_image": self.profile_image or "",
            "role": self.role or "user",
            "status": self.status or "active",
            "last_login": self.last_login.isoformat() if self.last_login else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
