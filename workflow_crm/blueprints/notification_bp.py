"""
Solar Structure Workflow CRM
Notification Blueprint: the actor's own durable notification list.

Endpoints (under /api/v1):
    GET  /notifications                  newest first (limit, unread_only)
    GET  /notifications/unread-count
    PUT  /notifications/<id>/read
    PUT  /notifications/read-all
"""

from flask import Blueprint, request

from workflow_crm.auth import current_actor, require_actor
from workflow_crm.services.notification import DEFAULT_LIST_LIMIT, get_dispatcher
from workflow_crm.utils.helpers import parse_bool
from workflow_crm.utils.errors import api_success

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")


@notification_bp.route("/notifications", methods=["GET"])
@require_actor
def list_notifications():
    actor = current_actor()
    try:
        limit = max(min(int(request.args.get("limit", DEFAULT_LIST_LIMIT)), 100), 1)
    except (ValueError, TypeError):
        limit = DEFAULT_LIST_LIMIT
    dispatcher = get_dispatcher()
    items = dispatcher.list_for_user(
        actor.id, limit=limit, unread_only=parse_bool(request.args.get("unread_only")),
    )
    return api_success(items, "Notifications retrieved", unread_count=dispatcher.unread_count(actor.id))


@notification_bp.route("/notifications/unread-count", methods=["GET"])
@require_actor
def unread_count():
    count = get_dispatcher().unread_count(current_actor().id)
    return api_success({"unread_count": count}, "Unread count retrieved")


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["PUT", "PATCH"])
@require_actor
def mark_read(notification_id):
    item = get_dispatcher().mark_read(current_actor().id, notification_id)
    return api_success(item, "Notification marked as read")


@notification_bp.route("/notifications/read-all", methods=["PUT", "PATCH"])
@require_actor
def mark_all_read():
    count = get_dispatcher().mark_all_read(current_actor().id)
    return api_success({"updated": count}, "All notifications marked as read")
