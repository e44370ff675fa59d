"""
Real-time channel.

Three addressing primitives are used by the workflow engine:

    emit_to_user(user_id, event, payload)     → topic ``user:{id}``
    emit_to_role(role, event, payload)        → topic ``role:{role}``
    emit_to_enquiry(enquiry_id, event, payload) → topic ``enquiry:{id}``

Backends:
  - RedisChannel: publishes a JSON envelope on Redis pub/sub; the socket
    gateway subscribes (``PSUBSCRIBE crm:*``) and forwards to browsers.
  - MemoryChannel: keeps an in-process log and calls local subscribers;
    used in development without Redis and always in tests.

Channel errors propagate; the notification dispatcher is the layer that
swallows them so a failed push never fails a workflow write.
"""

import json
import logging
import threading
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

TOPIC_PREFIX = "crm"


def user_topic(user_id) -> str:
    return f"user:{user_id}"


def role_topic(role: str) -> str:
    return f"role:{role}"


def enquiry_topic(enquiry_id) -> str:
    return f"enquiry:{enquiry_id}"


def _envelope(topic: str, event: str, payload: dict) -> dict:
    return {
        "topic": topic,
        "event": event,
        "payload": payload,
        "emitted_at": datetime.now(timezone.utc).isoformat(),
    }


class RealtimeChannel:
    """Base channel; subclasses implement ``emit``."""

    def emit(self, topic: str, event: str, payload: dict) -> None:
        raise NotImplementedError

    def emit_to_user(self, user_id, event: str, payload: dict) -> None:
        self.emit(user_topic(user_id), event, payload)

    def emit_to_role(self, role: str, event: str, payload: dict) -> None:
        self.emit(role_topic(role), event, payload)

    def emit_to_enquiry(self, enquiry_id, event: str, payload: dict) -> None:
        self.emit(enquiry_topic(enquiry_id), event, payload)


class MemoryChannel(RealtimeChannel):
    """In-process channel with an inspectable log."""

    def __init__(self, max_log: int = 1000):
        self._lock = threading.Lock()
        self._subscribers: dict[str, list] = {}
        self.max_log = max_log
        self.log: list[dict] = []

    def subscribe(self, topic: str, callback) -> None:
        with self._lock:
            self._subscribers.setdefault(topic, []).append(callback)

    def emit(self, topic: str, event: str, payload: dict) -> None:
        envelope = _envelope(topic, event, payload)
        with self._lock:
            self.log.append(envelope)
            if len(self.log) > self.max_log:
                del self.log[: len(self.log) - self.max_log]
            callbacks = list(self._subscribers.get(topic, ()))
        logger.debug("Realtime emit %s → %s", event, topic, extra={"topic": topic})
        for callback in callbacks:
            callback(envelope)

    def messages(self, topic: str | None = None, event: str | None = None) -> list[dict]:
        with self._lock:
            return [
                m for m in self.log
                if (topic is None or m["topic"] == topic)
                and (event is None or m["event"] == event)
            ]

    def clear(self) -> None:
        with self._lock:
            self.log.clear()


class RedisChannel(RealtimeChannel):
    """Redis pub/sub publisher (channel name ``crm:{topic}``)."""

    def __init__(self, client):
        self.client = client

    @classmethod
    def from_url(cls, url: str):
        import redis as _redis
        return cls(_redis.from_url(url, decode_responses=True))

    def emit(self, topic: str, event: str, payload: dict) -> None:
        message = json.dumps(_envelope(topic, event, payload), default=str)
        receivers = self.client.publish(f"{TOPIC_PREFIX}:{topic}", message)
        logger.debug("Realtime publish %s → %s (%s receivers)", event, topic, receivers,
                     extra={"topic": topic})


def build_channel(app) -> RealtimeChannel:
    """Pick the channel backend from config; Redis falls back to memory if unreachable."""
    backend = (app.config.get("REALTIME_BACKEND") or "memory").lower()
    redis_url = app.config.get("REDIS_URL")
    if backend == "redis" and redis_url and not redis_url.startswith("memory://"):
        try:
            channel = RedisChannel.from_url(redis_url)
            channel.client.ping()
            logger.info("Realtime: using Redis at %s", redis_url.split("@")[-1])
            return channel
        except Exception as exc:
            logger.warning("Redis unavailable (%s); falling back to in-memory realtime channel", exc)
    return MemoryChannel()
