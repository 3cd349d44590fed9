"""Tests for the local notification cache and pending action queue."""

from datetime import datetime, timezone

from admin_notifications.core.cache import DEFAULT_CACHE_KEY, LocalCache, cache_key
from admin_notifications.models.enums import NotificationType, PendingActionType
from admin_notifications.schemas.notification import Notification, NotificationFilters


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _notification(notification_id: str, read: bool = False) -> Notification:
    return Notification(
        id=notification_id,
        type=NotificationType.SYSTEM_ERROR,
        title="Disk full",
        message="Volume /data is at 99%",
        timestamp=datetime(2024, 5, 1, tzinfo=timezone.utc),
        read=read,
    )


def test_entries_expire_after_ttl():
    """An entry is served until its TTL passes, then reads as absent."""

    clock = FakeClock()
    cache = LocalCache(default_ttl=300, clock=clock)
    cache.set("k", [_notification("a")])

    clock.now += 300
    assert [n.id for n in cache.get("k")] == ["a"]

    clock.now += 1
    assert cache.get("k") is None
    assert cache.keys() == []


def test_get_returns_a_copy():
    """Mutating the returned list leaves the cached list untouched."""

    cache = LocalCache()
    cache.set("k", [_notification("a")])

    cache.get("k").append(_notification("b"))

    assert len(cache.get("k")) == 1


def test_update_notification_returns_prior_record():
    """The prior record is returned; unknown ids and keys change nothing."""

    cache = LocalCache()
    cache.set("k", [_notification("a")])

    prior = cache.update_notification("k", "a", {"read": True})

    assert prior.read is False
    assert cache.get("k")[0].read is True
    assert cache.update_notification("k", "missing", {"read": True}) is None
    assert cache.update_notification("nope", "a", {"read": True}) is None


def test_restore_keeps_original_age():
    """Restoring a snapshot does not give the entry a fresh TTL."""

    clock = FakeClock()
    cache = LocalCache(default_ttl=300, clock=clock)
    cache.set("k", [_notification("a"), _notification("b")])
    saved = cache.snapshot("k")

    clock.now += 200
    cache.remove_notification("k", "b")
    cache.restore("k", saved)

    assert [n.id for n in cache.get("k")] == ["a", "b"]
    clock.now += 101
    assert cache.get("k") is None
    assert cache.snapshot("missing") is None


def test_cleanup_removes_only_expired_entries():
    """cleanup drops expired keys and reports how many."""

    clock = FakeClock()
    cache = LocalCache(default_ttl=10, clock=clock)
    cache.set("old", [])
    clock.now += 5
    cache.set("new", [])
    clock.now += 6

    assert cache.cleanup() == 1
    assert cache.keys() == ["new"]


def test_pending_actions_are_fifo():
    """Actions come back in insertion order and can be removed by id."""

    cache = LocalCache()
    first = cache.add_pending_action(PendingActionType.MARK_READ, {"notification_id": "a"})
    second = cache.add_pending_action(PendingActionType.DELETE, {"notification_id": "b"})

    assert [a.id for a in cache.get_pending_actions()] == [first.id, second.id]

    cache.remove_pending_action(first.id)
    assert [a.id for a in cache.get_pending_actions()] == [second.id]
    assert cache.pending_count == 1


def test_pending_queue_drops_oldest_when_full(caplog):
    """Past the bound the oldest action is discarded with a warning."""

    cache = LocalCache(max_pending_actions=2)
    dropped = cache.add_pending_action(PendingActionType.MARK_READ, {"notification_id": "a"})
    cache.add_pending_action(PendingActionType.MARK_READ, {"notification_id": "b"})

    with caplog.at_level("WARNING", logger="admin_notifications.core.cache"):
        cache.add_pending_action(PendingActionType.MARK_READ, {"notification_id": "c"})

    remaining = [a.data["notification_id"] for a in cache.get_pending_actions()]
    assert remaining == ["b", "c"]
    assert dropped.id in caplog.text


def test_clear_empties_entries_and_queue():
    """clear drops both cached lists and pending actions."""

    cache = LocalCache()
    cache.set("k", [_notification("a")])
    cache.add_pending_action(PendingActionType.MARK_ALL_READ)

    cache.clear()

    assert cache.get("k") is None
    assert cache.pending_count == 0


def test_cache_key_is_stable_for_equal_filters():
    """Equal filters map to the same key; no filters map to the default."""

    a = NotificationFilters(read=False, type=NotificationType.SYSTEM_ERROR)
    b = NotificationFilters(type="system_error", read=False)

    assert cache_key(None) == DEFAULT_CACHE_KEY
    assert cache_key(NotificationFilters()) == DEFAULT_CACHE_KEY
    assert cache_key(a) == cache_key(b)
    assert cache_key(a) != cache_key(NotificationFilters(read=True))
