"""
Solar Structure Workflow CRM
Notification Dispatcher.

Fans workflow events out to the people they concern:

  - notify_user: appended to the user's durable list (capped, newest kept)
    and pushed to the user's real-time topic.
  - notify_role: pushed to the role's real-time topic only.  With
    NOTIFY_ROLE_FANOUT_DURABLE it is also appended to every active member's
    durable list.
  - emit_to_enquiry: live subscribers of one enquiry.

Dispatch happens after the workflow write has committed.  A failing push
or append is logged and swallowed; it never reaches the caller.
"""

import itertools
import logging
import threading
from datetime import datetime, timezone

from flask import current_app

from workflow_crm.core.exceptions import NotFoundError
from workflow_crm.models import db
from workflow_crm.models.auth import User
from workflow_crm.models.notification import Notification
from workflow_crm.services.realtime import build_channel

logger = logging.getLogger(__name__)

EXTENSION_KEY = "workflow_crm.notifications"
DEFAULT_HISTORY_LIMIT = 100
DEFAULT_LIST_LIMIT = 50
NOTIFICATION_EVENT = "notification"


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_payload(type_, title, message, enquiry=None, **fields) -> dict:
    """Tagged notification record shared by the durable list and the push."""
    payload = {
        "type": type_,
        "title": title,
        "message": message,
        "timestamp": _utcnow_iso(),
    }
    if enquiry is not None:
        payload["enquiry_id"] = enquiry.id
        payload["enquiry_num"] = enquiry.enquiry_num
    payload.update(fields)
    return payload


# ── Durable stores ───────────────────────────────────────────────────────────


class NotificationStore:
    """Durable per-user notification list."""

    def append(self, user_id: int, payload: dict) -> dict:
        raise NotImplementedError

    def list(self, user_id: int, limit: int = DEFAULT_LIST_LIMIT, unread_only: bool = False) -> list[dict]:
        raise NotImplementedError

    def mark_read(self, user_id: int, notification_id: int) -> dict:
        raise NotImplementedError

    def mark_all_read(self, user_id: int) -> int:
        raise NotImplementedError

    def unread_count(self, user_id: int) -> int:
        raise NotImplementedError


class MemoryNotificationStore(NotificationStore):
    """Process-local store; lost on restart."""

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT):
        self.limit = limit
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._items: dict[int, list[dict]] = {}

    def append(self, user_id, payload):
        entry = {
            **payload,
            "id": next(self._ids),
            "user_id": user_id,
            "read": False,
            "created_at": payload.get("timestamp") or _utcnow_iso(),
        }
        with self._lock:
            items = self._items.setdefault(user_id, [])
            items.append(entry)
            if len(items) > self.limit:
                del items[: len(items) - self.limit]
        return dict(entry)

    def list(self, user_id, limit=DEFAULT_LIST_LIMIT, unread_only=False):
        with self._lock:
            items = list(self._items.get(user_id, ()))
        if unread_only:
            items = [i for i in items if not i["read"]]
        items.sort(key=lambda i: i["id"], reverse=True)
        return [dict(i) for i in items[:limit]]

    def mark_read(self, user_id, notification_id):
        with self._lock:
            for item in self._items.get(user_id, ()):
                if item["id"] == notification_id:
                    item["read"] = True
                    return dict(item)
        raise NotFoundError(resource="Notification", resource_id=notification_id)

    def mark_all_read(self, user_id):
        count = 0
        with self._lock:
            for item in self._items.get(user_id, ()):
                if not item["read"]:
                    item["read"] = True
                    count += 1
        return count

    def unread_count(self, user_id):
        with self._lock:
            return sum(1 for i in self._items.get(user_id, ()) if not i["read"])


class SqlNotificationStore(NotificationStore):
    """``notifications`` table; oldest rows beyond ``limit`` are deleted on append."""

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT):
        self.limit = limit

    def append(self, user_id, payload):
        notif = Notification(
            user_id=user_id,
            type=payload.get("type", "assignment"),
            title=payload.get("title", ""),
            message=payload.get("message", ""),
            enquiry_id=payload.get("enquiry_id"),
            payload=payload,
        )
        db.session.add(notif)
        db.session.flush()
        self._evict(user_id)
        db.session.commit()
        return notif.to_dict()

    def _evict(self, user_id):
        stale_ids = [
            row[0] for row in (
                db.session.query(Notification.id)
                .filter(Notification.user_id == user_id)
                .order_by(Notification.id.desc())
                .offset(self.limit)
                .all()
            )
        ]
        if stale_ids:
            Notification.query.filter(Notification.id.in_(stale_ids)).delete(synchronize_session=False)

    def list(self, user_id, limit=DEFAULT_LIST_LIMIT, unread_only=False):
        q = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        return [n.to_dict() for n in q.order_by(Notification.id.desc()).limit(limit).all()]

    def mark_read(self, user_id, notification_id):
        notif = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
        if not notif:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        notif.mark_read()
        db.session.commit()
        return notif.to_dict()

    def mark_all_read(self, user_id):
        now = datetime.now(timezone.utc)
        count = (
            Notification.query
            .filter_by(user_id=user_id, is_read=False)
            .update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        )
        db.session.commit()
        return count

    def unread_count(self, user_id):
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()


# ── Dispatcher ───────────────────────────────────────────────────────────────


class NotificationDispatcher:
    """Routes payloads to the durable store and the real-time channel."""

    def __init__(self, store: NotificationStore, channel, role_fanout_durable: bool = False):
        self.store = store
        self.channel = channel
        self.role_fanout_durable = role_fanout_durable

    def notify_user(self, user_id: int | None, payload: dict) -> None:
        if user_id is None:
            return
        try:
            self.store.append(user_id, payload)
        except Exception:
            db.session.rollback()
            logger.warning(
                "Durable notification append failed for user %s", user_id,
                exc_info=True,
                extra={"event_type": "notification_append_failed", "actor_id": user_id,
                       "enquiry_id": payload.get("enquiry_id")},
            )
        self._push("emit_to_user", user_id, payload)

    def notify_users(self, user_ids, payload: dict) -> None:
        """notify_user for each distinct, non-null id."""
        for user_id in dict.fromkeys(u for u in user_ids if u is not None):
            self.notify_user(user_id, payload)

    def notify_role(self, role: str, payload: dict) -> None:
        self._push("emit_to_role", role, payload)
        if not self.role_fanout_durable:
            return
        member_ids = [
            row[0] for row in db.session.query(User.id).filter_by(role=role, is_active=True).all()
        ]
        for user_id in member_ids:
            try:
                self.store.append(user_id, payload)
            except Exception:
                db.session.rollback()
                logger.warning(
                    "Role fan-out append failed for user %s", user_id,
                    exc_info=True,
                    extra={"event_type": "notification_append_failed", "actor_id": user_id},
                )

    def emit_to_enquiry(self, enquiry_id: int, event: str, payload: dict) -> None:
        self._push("emit_to_enquiry", enquiry_id, payload, event=event)

    def _push(self, method: str, target, payload: dict, event: str = NOTIFICATION_EVENT) -> None:
        try:
            getattr(self.channel, method)(target, event, payload)
        except Exception:
            logger.warning(
                "Realtime push %s(%s) failed", method, target,
                exc_info=True,
                extra={"event_type": "realtime_push_failed",
                       "enquiry_id": payload.get("enquiry_id")},
            )

    # ── Durable list passthroughs (used by the notification blueprint) ──

    def list_for_user(self, user_id, limit=DEFAULT_LIST_LIMIT, unread_only=False):
        return self.store.list(user_id, limit=limit, unread_only=unread_only)

    def unread_count(self, user_id):
        return self.store.unread_count(user_id)

    def mark_read(self, user_id, notification_id):
        return self.store.mark_read(user_id, notification_id)

    def mark_all_read(self, user_id):
        return self.store.mark_all_read(user_id)


def init_notifications(app, store: NotificationStore | None = None, channel=None):
    """Wire the configured store and channel into ``app.extensions``."""
    limit = app.config.get("NOTIFICATION_HISTORY_LIMIT", DEFAULT_HISTORY_LIMIT)
    if store is None:
        if (app.config.get("NOTIFICATION_STORE") or "sql").lower() == "memory":
            store = MemoryNotificationStore(limit=limit)
        else:
            store = SqlNotificationStore(limit=limit)
    if channel is None:
        channel = build_channel(app)
    dispatcher = NotificationDispatcher(
        store, channel, role_fanout_durable=app.config.get("NOTIFY_ROLE_FANOUT_DURABLE", False),
    )
    app.extensions[EXTENSION_KEY] = dispatcher
    return dispatcher


def get_dispatcher() -> NotificationDispatcher:
    return current_app.extensions[EXTENSION_KEY]


# ── Workflow notification helpers ────────────────────────────────────────────

ADMIN_BROADCAST_ROLES = ("director", "superadmin")


def notify_admins(payload: dict) -> None:
    dispatcher = get_dispatcher()
    for role in ADMIN_BROADCAST_ROLES:
        dispatcher.notify_role(role, payload)
