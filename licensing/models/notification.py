"""
Firearms Licensing Workflow
Notification domain model.

Models:
    - Notification: in-app notice addressed to a workflow role, with read tracking
"""

from datetime import datetime, timezone

from licensing.models import db


class Notification(db.Model):
    """
    In-app notification entity.

    One record per event per recipient role.  Created by the
    ``application.advanced`` subscriber to tell the next stage that an
    application is waiting in its queue.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    recipient_role = db.Column(db.String(50), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")

    # Link to source application
    application_id = db.Column(
        db.Integer, db.ForeignKey("applications.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    phase = db.Column(db.String(50), nullable=True)

    # Read tracking
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_role": self.recipient_role,
            "title": self.title,
            "message": self.message,
            "application_id": self.application_id,
            "phase": self.phase,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
