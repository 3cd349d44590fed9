"""In-memory notification cache with TTL and a queue of pending offline actions.

Usage:

    from admin_notifications.core.cache import LocalCache, cache_key

    cache = LocalCache()
    cache.set(cache_key(filters), notifications)
    cached = cache.get(cache_key(filters))  # None once expired
"""

import json
import logging
import time
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Any

from admin_notifications.config import settings
from admin_notifications.models.enums import PendingActionType
from admin_notifications.schemas.notification import Notification, NotificationFilters
from admin_notifications.schemas.sync import PendingAction

logger = logging.getLogger(__name__)

DEFAULT_CACHE_KEY = "notifications:default"


def cache_key(filters: NotificationFilters | None = None) -> str:
    """Stable cache key for a filter set; no filters map to the default key."""
    if filters is None or filters.is_empty():
        return DEFAULT_CACHE_KEY
    return "notifications:" + json.dumps(filters.to_query_params(), sort_keys=True)


@dataclass
class CacheEntry:
    data: list[Notification]
    timestamp: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


class LocalCache:
    """TTL-bound notification lists plus a FIFO queue of pending actions.

    Notifications are immutable models, so copying the lists on write and on
    read is enough to keep callers from altering the cached snapshot.
    """

    def __init__(
        self,
        default_ttl: float = settings.CACHE_TTL_SECONDS,
        max_pending_actions: int = settings.PENDING_ACTIONS_MAX,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self.max_pending_actions = max_pending_actions
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._pending: deque[PendingAction] = deque()
        self._lock = Lock()

    # --- Notification lists ---

    def set(self, key: str, notifications: list[Notification], ttl: float | None = None) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(
                data=list(notifications),
                timestamp=self._clock(),
                ttl=ttl if ttl is not None else self.default_ttl,
            )

    def get(self, key: str) -> list[Notification] | None:
        """Return a copy of the cached list, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            return list(entry.data)

    def snapshot(self, key: str) -> CacheEntry | None:
        """Copy of the live entry for ``key``, timestamp and ttl included."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(self._clock()):
                return None
            return CacheEntry(list(entry.data), entry.timestamp, entry.ttl)

    def restore(self, key: str, entry: CacheEntry) -> None:
        """Put back a ``snapshot`` without refreshing its age."""
        with self._lock:
            self._entries[key] = CacheEntry(list(entry.data), entry.timestamp, entry.ttl)

    def update_notification(
        self, key: str, notification_id: str, updates: dict[str, Any]
    ) -> Notification | None:
        """Merge ``updates`` into one cached notification.

        Returns the notification as it was before the merge, or None when the
        key or the id is not cached (in which case nothing changes).
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            for index, notification in enumerate(entry.data):
                if notification.id == notification_id:
                    entry.data[index] = notification.model_copy(update=updates)
                    return notification
            return None

    def remove_notification(self, key: str, notification_id: str) -> Notification | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            for index, notification in enumerate(entry.data):
                if notification.id == notification_id:
                    del entry.data[index]
                    return notification
            return None

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def cleanup(self) -> int:
        """Remove every expired entry. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, entry in self._entries.items() if entry.is_expired(now)]
            for k in expired:
                del self._entries[k]
        if expired:
            logger.debug("Swept %d expired notification cache entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._pending.clear()

    # --- Pending actions ---

    def add_pending_action(
        self,
        action_type: PendingActionType,
        data: dict | None = None,
        action_id: str | None = None,
    ) -> PendingAction:
        """Queue an action for replay. The oldest action is dropped when full."""
        action = PendingAction(
            id=action_id or f"{action_type.value}_{uuid.uuid4().hex}",
            type=action_type,
            data=dict(data or {}),
            timestamp=datetime.now(timezone.utc),
        )
        with self._lock:
            if self.max_pending_actions and len(self._pending) >= self.max_pending_actions:
                dropped = self._pending.popleft()
                logger.warning(
                    "Pending action queue full (%d); dropping oldest action %s",
                    self.max_pending_actions,
                    dropped.id,
                )
            self._pending.append(action)
        return action

    def get_pending_actions(self) -> list[PendingAction]:
        with self._lock:
            return list(self._pending)

    def remove_pending_action(self, action_id: str) -> None:
        with self._lock:
            self._pending = deque(a for a in self._pending if a.id != action_id)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)
