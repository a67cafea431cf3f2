"""
Firearms Licensing Workflow
Notification Service.

Creates and queries in-app notifications.  Subscribes to
``application.advanced`` so the role owning the new phase sees the
application arrive in its queue.
"""

import logging
from datetime import datetime, timezone

from licensing.core.phases import is_terminal, role_for_phase
from licensing.models import db
from licensing.models.notification import Notification
from licensing.services.events import APPLICATION_ADVANCED, subscribe

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, recipient_role, title, message="", application_id=None, phase=None):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (already committed).
        """
        notif = Notification(
            recipient_role=recipient_role,
            title=title,
            message=message,
            application_id=application_id,
            phase=phase,
        )
        db.session.add(notif)
        db.session.commit()
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_role(recipient_role, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a role, newest first.

        Returns:
            (list of dicts, total count)
        """
        q = Notification.query.filter_by(recipient_role=recipient_role)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return [n.to_dict() for n in items], total

    @staticmethod
    def unread_count(recipient_role):
        return Notification.query.filter_by(recipient_role=recipient_role, is_read=False).count()

    # ── Mark read ─────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, recipient_role):
        """
        Mark one notification as read.

        Returns:
            The updated dict, or None if it does not exist for this role.
        """
        notif = db.session.get(Notification, notification_id)
        if not notif or notif.recipient_role != recipient_role:
            return None
        if not notif.is_read:
            notif.mark_read()
            db.session.commit()
        return notif.to_dict()


@subscribe(APPLICATION_ADVANCED)
def notify_next_stage(payload):
    """Tell the owner of the new phase that an application is waiting."""
    to_phase = payload.get("to")
    recipient = role_for_phase(to_phase)
    if not recipient:
        return

    by = payload.get("by") or {}
    app_id = payload.get("applicationId")
    if is_terminal(to_phase):
        title = f"Application #{app_id} reached final phase"
    else:
        title = f"Application #{app_id} awaiting {recipient} review"
    try:
        NotificationService.create(
            recipient_role=recipient,
            title=title,
            message=f"Forwarded by {by.get('role') or 'unknown'} at "
                    f"{datetime.now(timezone.utc).isoformat()}",
            application_id=app_id,
            phase=to_phase,
        )
    except Exception:
        db.session.rollback()
        raise
