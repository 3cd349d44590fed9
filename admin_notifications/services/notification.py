"""Notification service: fetch, optimistic mutations, subscriptions, polling."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import TypeVar

import httpx

from admin_notifications.config import Settings, settings as default_settings
from admin_notifications.core.error_handlers import ErrorClassifier
from admin_notifications.core.exceptions import BulkOperationError, NotificationError
from admin_notifications.models.enums import (
    NotificationPriority,
    NotificationType,
    ServiceState,
    SortBy,
    SortOrder,
)
from admin_notifications.schemas.notification import (
    CreateNotificationRequest,
    Notification,
    NotificationFilters,
    NotificationStats,
    UpdateNotificationRequest,
)
from admin_notifications.services import generators
from admin_notifications.services.api_client import NotificationApiClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

NotificationListener = Callable[[list[Notification]], None]


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def newest_first(notifications: list[Notification]) -> list[Notification]:
    return sorted(notifications, key=lambda n: _aware(n.timestamp), reverse=True)


class NotificationService:
    """Owns the authoritative notification set for one client instance.

    The set is only ever changed through this class. Listeners receive a
    fresh list on every change; notifications themselves are immutable.
    """

    def __init__(
        self,
        api_client: NotificationApiClient,
        *,
        polling_interval: float | None = default_settings.POLLING_INTERVAL_SECONDS,
        max_notifications: int = default_settings.MAX_NOTIFICATIONS,
    ):
        self.api_client = api_client
        self.polling_interval = polling_interval
        self.max_notifications = max_notifications
        self._notifications: list[Notification] = []
        self._mirror: dict[str, Notification] = {}
        self._listeners: list[NotificationListener] = []
        self._state = ServiceState.IDLE
        self._has_loaded = False
        self._polling_task: asyncio.Task | None = None
        self.last_error: NotificationError | None = None

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def notifications(self) -> list[Notification]:
        return list(self._notifications)

    # ── Reads ─────────────────────────────────────────────────────────

    async def fetch_notifications(
        self, filters: NotificationFilters | None = None
    ) -> list[Notification]:
        """Fetch the newest notifications and replace the local set.

        On failure the last known notifications are returned instead; the
        error is raised only when nothing has ever been loaded.
        """
        self._set_state(ServiceState.LOADING)
        try:
            page = await self.api_client.get_notifications(
                filters=filters,
                limit=self.max_notifications,
                sort_by=SortBy.TIMESTAMP,
                sort_order=SortOrder.DESC,
            )
        except NotificationError as exc:
            self._record_error("FETCH_NOTIFICATIONS_ERROR", exc)
            self._set_state(ServiceState.ERROR)
            if not (self._has_loaded or self._mirror):
                raise
            return newest_first(list(self._mirror.values()))

        self._notifications = list(page.notifications)
        self._mirror = {n.id: n for n in self._notifications}
        self._has_loaded = True
        self._set_state(ServiceState.CONNECTED)
        self._notify_listeners()
        return list(self._notifications)

    async def get_notification_by_id(self, notification_id: str) -> Notification | None:
        cached = self._mirror.get(notification_id)
        if cached is not None:
            return cached
        try:
            notification = await self.api_client.get_notification(notification_id)
        except NotificationError as exc:
            self._record_error("GET_NOTIFICATION_ERROR", exc)
            return self._mirror.get(notification_id)
        self._mirror[notification.id] = notification
        return notification

    async def get_notification_stats(self) -> NotificationStats:
        """Backend statistics, or statistics computed from the local set."""
        try:
            return await self.api_client.get_stats()
        except NotificationError as exc:
            self._record_error("GET_STATS_ERROR", exc)
            return self._calculate_stats_from_cache()

    async def get_unread_count(self) -> int:
        stats = await self.get_notification_stats()
        return stats.unread

    def _calculate_stats_from_cache(self) -> NotificationStats:
        notifications = list(self._mirror.values())
        by_type = {t.value: 0 for t in NotificationType}
        by_priority = {p.value: 0 for p in NotificationPriority}
        unread = 0
        for n in notifications:
            by_type[n.type.value] += 1
            by_priority[n.priority.value] += 1
            if not n.read:
                unread += 1
        return NotificationStats(
            total=len(notifications),
            unread=unread,
            by_type=by_type,
            by_priority=by_priority,
        )

    # ── Mutations ─────────────────────────────────────────────────────

    async def _transactional_mutation(
        self,
        error_code: str,
        notification_ids: list[str],
        apply: Callable[[], None],
        confirm: Callable[[], Awaitable[T]],
    ) -> T:
        """Apply a local change, confirm it remotely, restore on failure.

        ``apply`` runs and listeners are notified before the first await, so
        the optimistic state is visible immediately. Only the records named by
        ``notification_ids`` are saved beforehand. If ``confirm`` fails each of
        them is put back, at its old list position when it was removed, unless
        something else (another mutation or a fetch) has replaced it since.
        Listeners are then notified again and the error is re-raised.
        """
        prior = {
            nid: (self._mirror[nid], self._position(nid))
            for nid in dict.fromkeys(notification_ids)
            if nid in self._mirror
        }
        apply()
        written = {nid: self._mirror.get(nid) for nid in prior}
        self._notify_listeners()
        try:
            return await confirm()
        except NotificationError as exc:
            self._roll_back(prior, written)
            self._notify_listeners()
            self._record_error(error_code, exc)
            raise

    def _position(self, notification_id: str) -> int:
        for index, n in enumerate(self._notifications):
            if n.id == notification_id:
                return index
        return len(self._notifications)

    def _roll_back(
        self,
        prior: dict[str, tuple[Notification, int]],
        written: dict[str, Notification | None],
    ) -> None:
        for nid, (record, position) in prior.items():
            current = self._mirror.get(nid)
            if current is not written[nid] or current is record:
                continue
            self._mirror[nid] = record
            if current is None:
                self._notifications.insert(min(position, len(self._notifications)), record)
            else:
                self._notifications[self._position(nid)] = record

    def _set_read(self, notification_id: str, read: bool) -> bool:
        current = self._mirror.get(notification_id)
        if current is None:
            return False
        if current.read == read:
            return True
        updated = current.model_copy(update={"read": read})
        self._mirror[notification_id] = updated
        for index, n in enumerate(self._notifications):
            if n.id == notification_id:
                self._notifications[index] = updated
                break
        return True

    def _remove(self, notification_id: str) -> None:
        self._mirror.pop(notification_id, None)
        self._notifications = [n for n in self._notifications if n.id != notification_id]

    async def mark_as_read(self, notification_id: str) -> None:
        await self._transactional_mutation(
            "MARK_AS_READ_ERROR",
            [notification_id],
            lambda: self._set_read(notification_id, True),
            lambda: self.api_client.mark_as_read(notification_id),
        )

    def mark_as_read_locally(self, notification_id: str) -> bool:
        """Flip the read flag without contacting the backend."""
        found = self._set_read(notification_id, True)
        if found:
            self._notify_listeners()
        return found

    def _mark_all_read(self) -> None:
        for n in list(self._notifications):
            if not n.read:
                self._set_read(n.id, True)

    async def mark_all_as_read(self) -> int:
        return await self._transactional_mutation(
            "MARK_ALL_AS_READ_ERROR",
            [n.id for n in self._notifications if not n.read],
            self._mark_all_read,
            self.api_client.mark_all_as_read,
        )

    def mark_all_as_read_locally(self) -> None:
        self._mark_all_read()
        self._notify_listeners()

    async def bulk_update(self, notification_ids: list[str], read: bool) -> int:
        def apply() -> None:
            for notification_id in notification_ids:
                self._set_read(notification_id, read)

        return await self._transactional_mutation(
            "BULK_UPDATE_ERROR",
            notification_ids,
            apply,
            lambda: self.api_client.bulk_update(
                notification_ids, UpdateNotificationRequest(read=read)
            ),
        )

    async def create_notification(
        self, request: CreateNotificationRequest | Notification
    ) -> Notification:
        """Create on the backend first; the server assigns the id."""
        if isinstance(request, Notification):
            request = request.to_create_request()
        try:
            created = await self.api_client.create_notification(request)
        except NotificationError as exc:
            self._record_error("CREATE_NOTIFICATION_ERROR", exc)
            raise
        self._mirror[created.id] = created
        self._notifications.insert(0, created)
        self._notify_listeners()
        return created

    async def delete_notification(self, notification_id: str) -> None:
        await self._transactional_mutation(
            "DELETE_NOTIFICATION_ERROR",
            [notification_id],
            lambda: self._remove(notification_id),
            lambda: self.api_client.delete_notification(notification_id),
        )

    def delete_notification_locally(self, notification_id: str) -> bool:
        found = notification_id in self._mirror
        if found:
            self._remove(notification_id)
            self._notify_listeners()
        return found

    async def clear_old_notifications(self, older_than_days: int) -> int:
        """Delete every notification older than ``older_than_days``.

        Each deletion is attempted independently. If any of them failed,
        ``BulkOperationError`` is raised once all have been attempted.
        Returns the number deleted.
        """
        cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
        old_ids = [n.id for n in self._notifications if _aware(n.timestamp) < cutoff]

        deleted: list[str] = []
        failures: dict[str, NotificationError] = {}
        for notification_id in old_ids:
            try:
                await self.delete_notification(notification_id)
                deleted.append(notification_id)
            except NotificationError as exc:
                failures[notification_id] = exc

        if failures:
            logger.error(
                "Clearing old notifications: %d deleted, %d failed",
                len(deleted),
                len(failures),
            )
            raise BulkOperationError(
                f"Failed to delete {len(failures)} of {len(old_ids)} old notifications",
                succeeded=deleted,
                failures=failures,
            )
        return len(deleted)

    # ── Generators ────────────────────────────────────────────────────

    generate_user_registration_notification = staticmethod(
        generators.generate_user_registration_notification
    )
    generate_post_published_notification = staticmethod(
        generators.generate_post_published_notification
    )
    generate_system_error_notification = staticmethod(
        generators.generate_system_error_notification
    )
    generate_user_activity_notification = staticmethod(
        generators.generate_user_activity_notification
    )
    generate_content_moderation_notification = staticmethod(
        generators.generate_content_moderation_notification
    )

    # ── Subscriptions ─────────────────────────────────────────────────

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        """Register ``listener`` and call it with the current set right away."""
        self._listeners.append(listener)
        self._call_listener(listener, list(self._notifications))
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: NotificationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify_listeners(self) -> None:
        for listener in list(self._listeners):
            self._call_listener(listener, list(self._notifications))

    @staticmethod
    def _call_listener(listener: NotificationListener, notifications: list[Notification]) -> None:
        try:
            listener(notifications)
        except Exception:
            logger.exception("Error in notification listener")

    # ── Polling & lifecycle ───────────────────────────────────────────

    def start_polling(self) -> None:
        self.stop_polling()
        if not self.polling_interval or self.polling_interval <= 0:
            return
        self._polling_task = asyncio.get_running_loop().create_task(self._poll())

    def stop_polling(self) -> None:
        if self._polling_task is not None:
            self._polling_task.cancel()
            self._polling_task = None

    @property
    def is_polling(self) -> bool:
        return self._polling_task is not None

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.polling_interval)
            try:
                await self.fetch_notifications()
            except NotificationError as exc:
                logger.warning("Notification polling failed: %s", exc.message)

    def dispose(self) -> None:
        """Stop polling and drop listeners and local state. Safe to repeat."""
        self.stop_polling()
        self._listeners.clear()
        self._mirror.clear()
        self._notifications = []

    # ── Internals ─────────────────────────────────────────────────────

    def _set_state(self, new_state: ServiceState) -> None:
        if self._state != new_state:
            logger.debug("Notification service state: %s -> %s", self._state.value, new_state.value)
            self._state = new_state

    def _record_error(self, code: str, error: NotificationError) -> None:
        self.last_error = error
        logger.error("NotificationService error [%s]: %s", code, error.message)


def create_notification_service(
    config: Settings | None = None,
    *,
    api_client: NotificationApiClient | None = None,
    error_classifier: ErrorClassifier | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> NotificationService:
    """Build a service (and its API client) from configuration."""
    config = config or default_settings
    if api_client is None:
        error_classifier = error_classifier or ErrorClassifier.from_settings(config)
        api_client = NotificationApiClient(
            config.API_BASE_URL,
            prefix=config.API_PREFIX,
            timeout=config.REQUEST_TIMEOUT_SECONDS,
            token=config.API_TOKEN,
            error_classifier=error_classifier,
            transport=transport,
        )
    return NotificationService(
        api_client,
        polling_interval=config.POLLING_INTERVAL_SECONDS,
        max_notifications=config.MAX_NOTIFICATIONS,
    )


# Optional process-wide slot for call sites that cannot receive the service
# by injection. New code should pass the service explicitly.
_service_instance: NotificationService | None = None


def get_notification_service() -> NotificationService | None:
    return _service_instance


def set_notification_service(service: NotificationService | None) -> None:
    global _service_instance
    _service_instance = service
