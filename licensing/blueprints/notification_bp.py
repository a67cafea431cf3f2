"""
Notification blueprint.

Routes:
  GET    /api/v1/notifications               – caller role's notifications (?unread=true, limit, offset)
  GET    /api/v1/notifications/unread-count  – unread badge count
  POST   /api/v1/notifications/<id>/read     – mark one as read
"""

from flask import Blueprint, jsonify, request

from licensing.middleware.jwt_auth import current_actor, require_actor
from licensing.services.notification import NotificationService
from licensing.utils.errors import E, api_error

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1")


@notification_bp.route("/notifications", methods=["GET"])
@require_actor
def list_notifications():
    role = current_actor().role
    unread_only = request.args.get("unread", "false").lower() == "true"
    try:
        limit = min(int(request.args.get("limit", 50)), 200)
    except (TypeError, ValueError):
        limit = 50
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (TypeError, ValueError):
        offset = 0
    items, total = NotificationService.list_for_role(role, unread_only=unread_only,
                                                     limit=limit, offset=offset)
    return jsonify({"items": items, "total": total})


@notification_bp.route("/notifications/unread-count", methods=["GET"])
@require_actor
def unread_count():
    return jsonify({"unread": NotificationService.unread_count(current_actor().role)})


@notification_bp.route("/notifications/<int:nid>/read", methods=["POST"])
@require_actor
def mark_read(nid):
    notif = NotificationService.mark_read(nid, current_actor().role)
    if notif is None:
        return api_error(E.NOT_FOUND, "Notification not found")
    return jsonify(notif)
