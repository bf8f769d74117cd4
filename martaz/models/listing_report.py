from datetime import datetime

import sqlalchemy as sa

from martaz.extensions import db


ACTIVE_REPORT_STATUSES = ("pending", "reviewed")


class ListingReport(db.Model):
    __tablename__ = "listing_reports"
    __table_args__ = (
        # At most one active report per (listing, reporter); resolved and
        # dismissed history does not count.
        sa.Index(
            "uq_listing_reports_active_reporter",
            "listing_id",
            "reporter_id",
            unique=True,
            sqlite_where=sa.text("status IN ('pending', 'reviewed')"),
            postgresql_where=sa.text("status IN ('pending', 'reviewed')"),
        ),
    )

    STATUSES = ("pending", "reviewed", "resolved", "dismissed")

    id = db.Column(db.Integer, primary_key=True)
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=False, index=True)
    reporter_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    reason = db.Column(db.String(120), nullable=False, index=True)
    additional_info = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="pending", server_default="pending", index=True)

    admin_note = db.Column(db.Text, nullable=True)
    last_updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    status_updated_at = db.Column(db.DateTime, nullable=True)
    action_taken = db.Column(db.String(255), nullable=True)
    notification_sent = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    listing = db.relationship("Listing", foreign_keys=[listing_id])
    reporter = db.relationship("User", foreign_keys=[reporter_id])

    def to_dict(self, *, include_relations: bool = False) -> dict:
        payload = {
            "id": self.id,
            "listing_id": self.listing_id,
            "reporter_id": self.reporter_id,
            "reason": self.reason or "",
            "additional_info": self.additional_info or "",
            "status": self.status,
            "admin_note": self.admin_note or "",
            "last_updated_by": self.last_updated_by,
            "status_updated_at": self.status_updated_at.isoformat() if self.status_updated_at else None,
            "action_taken": self.action_taken or "",
            "notification_sent": bool(self.notification_sent),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_relations:
            payload["listing"] = self.listing.to_summary() if self.listing is not None else None
            payload["reporter"] = (
                {
                    "id": self.reporter.id,
                    "email": self.reporter.email,
                    "first_name": self.reporter.first_name or "",
                    "last_name": self.reporter.last_name or "",
                }
                if self.reporter is not None
                else None
            )
        return payload
