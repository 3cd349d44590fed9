"""Offline-aware notification service.

Wraps ``NotificationService`` with a local TTL cache, a connection monitor
and a queue of mutations recorded while offline. Queued actions are replayed
in order each time the backend becomes reachable again.
"""

import asyncio
import logging

import httpx

from admin_notifications.config import Settings, settings as default_settings
from admin_notifications.core.cache import CacheEntry, LocalCache, cache_key
from admin_notifications.core.error_handlers import ErrorClassifier
from admin_notifications.core.exceptions import NotificationError
from admin_notifications.models.enums import ConnectionStatus, PendingActionType, ServiceState
from admin_notifications.schemas.notification import (
    CreateNotificationRequest,
    Notification,
    NotificationFilters,
)
from admin_notifications.schemas.sync import PendingAction, SyncSummary
from admin_notifications.services.connection_monitor import ConnectionMonitor, ConnectivitySignals
from admin_notifications.services.notification import (
    NotificationService,
    create_notification_service,
)

logger = logging.getLogger(__name__)


class EnhancedNotificationService:
    def __init__(
        self,
        base: NotificationService,
        cache: LocalCache,
        monitor: ConnectionMonitor,
        error_classifier: ErrorClassifier,
        *,
        cleanup_interval: float = default_settings.CACHE_CLEANUP_INTERVAL_SECONDS,
    ):
        self.base = base
        self.cache = cache
        self.monitor = monitor
        self.error_classifier = error_classifier
        self.cleanup_interval = cleanup_interval
        self._unsubscribe_monitor = None
        self._cleanup_task: asyncio.Task | None = None
        self._sync_tasks: set[asyncio.Task] = set()
        self._last_status: ConnectionStatus | None = None
        self._syncing = False

    @property
    def connection_status(self) -> ConnectionStatus:
        return self.monitor.status

    @property
    def is_online(self) -> bool:
        return self.monitor.status == ConnectionStatus.ONLINE

    @property
    def pending_actions(self) -> list[PendingAction]:
        return self.cache.get_pending_actions()

    # ── Lifecycle ─────────────────────────────────────────────────────

    def start(self) -> None:
        """Follow connectivity changes and sweep the cache. Needs a running loop."""
        self.monitor.start()
        if self._unsubscribe_monitor is None:
            self._unsubscribe_monitor = self.monitor.subscribe(self._on_connection_status)
        if self._cleanup_task is None and self.cleanup_interval and self.cleanup_interval > 0:
            self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())

    def dispose(self) -> None:
        if self._unsubscribe_monitor is not None:
            self._unsubscribe_monitor()
            self._unsubscribe_monitor = None
        self.monitor.dispose()
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            self._cleanup_task = None
        for task in list(self._sync_tasks):
            task.cancel()
        self._sync_tasks.clear()
        self.base.dispose()

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            self.cache.cleanup()

    def _on_connection_status(self, status: ConnectionStatus) -> None:
        previous, self._last_status = self._last_status, status
        if status != ConnectionStatus.ONLINE or previous == ConnectionStatus.ONLINE:
            return
        if not self.cache.pending_count:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; pending actions will sync later")
            return
        task = loop.create_task(self.sync_pending_actions())
        self._sync_tasks.add(task)
        task.add_done_callback(self._sync_tasks.discard)

    # ── Reads ─────────────────────────────────────────────────────────

    async def fetch_notifications(
        self, filters: NotificationFilters | None = None
    ) -> list[Notification]:
        """Serve from cache while offline, otherwise fetch and refresh the cache."""
        key = cache_key(filters)
        cached = self.cache.get(key)
        if not self.is_online and cached is not None:
            logger.debug("Offline; serving %d cached notifications", len(cached))
            return cached

        try:
            notifications = await self.base.fetch_notifications(filters)
        except NotificationError:
            if cached is not None:
                logger.warning("Fetch failed; serving cached notifications for %s", key)
                return cached
            raise

        if self.base.state == ServiceState.CONNECTED:
            self.cache.set(key, notifications)
        elif cached is not None:
            return cached
        return notifications

    # ── Mutations ─────────────────────────────────────────────────────

    def _queue(self, action_type: PendingActionType, data: dict | None = None) -> PendingAction:
        action = self.cache.add_pending_action(action_type, data)
        logger.info("Queued %s for sync (%d pending)", action_type.value, self.cache.pending_count)
        return action

    def _snapshot_cache(self) -> dict[str, CacheEntry]:
        snapshot = {}
        for key in self.cache.keys():
            entry = self.cache.snapshot(key)
            if entry is not None:
                snapshot[key] = entry
        return snapshot

    def _restore_cache(self, snapshot: dict[str, CacheEntry]) -> None:
        for key, entry in snapshot.items():
            self.cache.restore(key, entry)

    async def mark_as_read(self, notification_id: str) -> None:
        previous = {}
        for key in self.cache.keys():
            prior = self.cache.update_notification(key, notification_id, {"read": True})
            if prior is not None:
                previous[key] = prior

        if not self.is_online:
            self.base.mark_as_read_locally(notification_id)
            self._queue(PendingActionType.MARK_READ, {"notification_id": notification_id})
            return

        try:
            await self.base.mark_as_read(notification_id)
        except NotificationError as exc:
            for key, prior in previous.items():
                self.cache.update_notification(key, notification_id, {"read": prior.read})
            if not exc.is_connectivity_error:
                raise
            self._queue(PendingActionType.MARK_READ, {"notification_id": notification_id})

    async def mark_all_as_read(self) -> int | None:
        """Returns the backend's updated count, or None when the action was queued."""
        snapshot = self._snapshot_cache()
        for key, entry in snapshot.items():
            for n in entry.data:
                if not n.read:
                    self.cache.update_notification(key, n.id, {"read": True})

        if not self.is_online:
            self.base.mark_all_as_read_locally()
            self._queue(PendingActionType.MARK_ALL_READ)
            return None

        try:
            return await self.base.mark_all_as_read()
        except NotificationError as exc:
            self._restore_cache(snapshot)
            if not exc.is_connectivity_error:
                raise
            self._queue(PendingActionType.MARK_ALL_READ)
            return None

    async def delete_notification(self, notification_id: str) -> None:
        snapshot = self._snapshot_cache()
        for key in snapshot:
            self.cache.remove_notification(key, notification_id)

        if not self.is_online:
            self.base.delete_notification_locally(notification_id)
            self._queue(PendingActionType.DELETE, {"notification_id": notification_id})
            return

        try:
            await self.base.delete_notification(notification_id)
        except NotificationError as exc:
            self._restore_cache(snapshot)
            if not exc.is_connectivity_error:
                raise
            self._queue(PendingActionType.DELETE, {"notification_id": notification_id})

    async def create_notification(
        self, request: CreateNotificationRequest | Notification
    ) -> Notification | None:
        """Create on the backend, or queue the request when it is unreachable.

        Returns None when queued; the server assigns the id on replay.
        """
        if isinstance(request, Notification):
            request = request.to_create_request()

        if not self.is_online:
            self._queue(PendingActionType.CREATE, {"request": request.to_payload()})
            return None

        try:
            return await self.base.create_notification(request)
        except NotificationError as exc:
            if not exc.is_connectivity_error:
                raise
            self._queue(PendingActionType.CREATE, {"request": request.to_payload()})
            return None

    # ── Sync ──────────────────────────────────────────────────────────

    async def _apply_pending_action(self, action: PendingAction) -> None:
        if action.type == PendingActionType.MARK_READ:
            await self.base.mark_as_read(action.data["notification_id"])
        elif action.type == PendingActionType.MARK_ALL_READ:
            await self.base.mark_all_as_read()
        elif action.type == PendingActionType.DELETE:
            await self.base.delete_notification(action.data["notification_id"])
        elif action.type == PendingActionType.CREATE:
            await self.base.create_notification(
                CreateNotificationRequest.model_validate(action.data["request"])
            )

    async def sync_pending_actions(self) -> dict:
        """Replay queued actions oldest first.

        Only one sync runs at a time and only while online. Applied actions
        leave the queue; failed ones stay for the next attempt.
        """
        summary = SyncSummary()
        if self._syncing or not self.is_online:
            return summary.model_dump()

        self._syncing = True
        try:
            actions = self.cache.get_pending_actions()
            summary.total = len(actions)
            for action in actions:
                try:
                    await self._apply_pending_action(action)
                except Exception as exc:
                    error = self.error_classifier.handle_error(exc, f"sync {action.id}")
                    summary.failed += 1
                    summary.errors.append({"id": action.id, "code": error.code.value})
                    continue
                self.cache.remove_pending_action(action.id)
                summary.applied += 1
        finally:
            self._syncing = False

        if summary.total:
            logger.info(
                "Synced pending actions: %d applied, %d failed",
                summary.applied,
                summary.failed,
            )
        return summary.model_dump()

    def clear_cache(self) -> None:
        """Drop cached lists and the pending queue."""
        self.cache.clear()


def create_enhanced_notification_service(
    config: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    *,
    signals: ConnectivitySignals | None = None,
) -> EnhancedNotificationService:
    """Build the full offline-aware stack from configuration."""
    config = config or default_settings
    error_classifier = ErrorClassifier.from_settings(config)
    base = create_notification_service(
        config, error_classifier=error_classifier, transport=transport
    )
    cache = LocalCache(
        default_ttl=config.CACHE_TTL_SECONDS,
        max_pending_actions=config.PENDING_ACTIONS_MAX,
    )
    monitor = ConnectionMonitor(
        config.HEALTH_ENDPOINT,
        base_url=config.API_BASE_URL,
        check_interval=config.CONNECTION_CHECK_INTERVAL_SECONDS,
        timeout=config.CONNECTION_CHECK_TIMEOUT_SECONDS,
        signals=signals,
        transport=transport,
    )
    return EnhancedNotificationService(
        base,
        cache,
        monitor,
        error_classifier,
        cleanup_interval=config.CACHE_CLEANUP_INTERVAL_SECONDS,
    )
