"""Async HTTP client for the admin notifications API."""

import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from admin_notifications.config import settings
from admin_notifications.core.error_handlers import ErrorClassifier
from admin_notifications.core.exceptions import (
    ApiError,
    RequestTimeoutError,
    TransportError,
)
from admin_notifications.models.enums import NotificationPriority, NotificationType, SortBy, SortOrder
from admin_notifications.schemas import APIResponse
from admin_notifications.schemas.notification import (
    CreateNotificationRequest,
    Notification,
    NotificationFilters,
    NotificationPage,
    NotificationStats,
    UpdateNotificationRequest,
    encode_query_value,
)

logger = logging.getLogger(__name__)


def parse_notifications(items: list[Any]) -> list[Notification]:
    """Validate raw notification records, skipping any that fail validation."""
    notifications: list[Notification] = []
    for item in items or []:
        try:
            notifications.append(Notification.model_validate(item))
        except ValidationError as exc:
            logger.warning(
                "Skipping invalid notification %s: %s",
                item.get("id") if isinstance(item, dict) else item,
                exc.errors()[0].get("msg") if exc.errors() else exc,
            )
    return notifications


def _should_retry(error: BaseException) -> bool:
    """Timeouts are abandoned; API errors retry only when transient."""
    if isinstance(error, RequestTimeoutError):
        return False
    if isinstance(error, ApiError):
        return error.status_code >= 500 or error.status_code == 429
    return True


class NotificationApiClient:
    """Thin async wrapper around the admin notifications REST API.

    Every method raises ``NotificationError`` on failure, after the retry
    budget of the shared ``ErrorClassifier`` has been spent.
    """

    def __init__(
        self,
        base_url: str = settings.API_BASE_URL,
        *,
        prefix: str = settings.API_PREFIX,
        timeout: float = settings.REQUEST_TIMEOUT_SECONDS,
        token: str = settings.API_TOKEN,
        headers: dict[str, str] | None = None,
        error_classifier: ErrorClassifier | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.prefix = "/" + prefix.strip("/")
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        if token:
            self.headers["Authorization"] = f"Bearer {token}"
        self.error_classifier = error_classifier or ErrorClassifier()
        self._transport = transport

    def _path(self, *parts: str) -> str:
        return "/".join([self.prefix, *(quote(str(p), safe="") for p in parts)])

    async def _send(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        body: dict | None = None,
    ) -> dict:
        """Issue one request; convert every failure into a tagged exception."""
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self.headers,
                transport=self._transport,
            ) as client:
                resp = await client.request(method, path, params=params, json=body)
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(f"{method} {path} timed out after {self.timeout}s") from exc
        except httpx.TransportError as exc:
            raise TransportError(f"{method} {path}: {exc}") from exc

        if not resp.is_success:
            raise self._api_error(resp)

        try:
            data = resp.json()
        except ValueError:
            data = {"success": True}
        if isinstance(data, dict) and data.get("success") is False:
            raise ApiError(resp.status_code, data, self._lower_headers(resp))
        return data if isinstance(data, dict) else {"success": True, "data": data}

    @staticmethod
    def _lower_headers(resp: httpx.Response) -> dict[str, str]:
        return {k.lower(): v for k, v in resp.headers.items()}

    def _api_error(self, resp: httpx.Response) -> ApiError:
        """Parse an error response, synthesizing one if the body isn't JSON."""
        try:
            error_data = resp.json()
            if not isinstance(error_data, dict) or not isinstance(error_data.get("error"), dict):
                raise ValueError("unexpected error body")
        except ValueError:
            error_data = {
                "success": False,
                "error": {
                    "code": f"HTTP_{resp.status_code}",
                    "message": resp.reason_phrase or "Unknown HTTP error",
                },
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        return ApiError(resp.status_code, error_data, self._lower_headers(resp))

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        body: dict | None = None,
    ) -> APIResponse:
        """Make a request with timeout, error parsing and retry."""
        data = await self.error_classifier.execute_with_retry(
            f"{method} {path}",
            lambda: self._send(method, path, params=params, body=body),
            should_retry=_should_retry,
        )
        return APIResponse.model_validate(data)

    # --- Endpoints ---

    async def get_notifications(
        self,
        filters: NotificationFilters | None = None,
        page: int | None = None,
        limit: int | None = None,
        sort_by: SortBy | None = None,
        sort_order: SortOrder | None = None,
    ) -> NotificationPage:
        """Fetch a page of notifications."""
        params = filters.to_query_params() if filters else {}
        if page:
            params["page"] = encode_query_value(page)
        if limit:
            params["limit"] = encode_query_value(limit)
        if sort_by:
            params["sortBy"] = encode_query_value(sort_by)
        if sort_order:
            params["sortOrder"] = encode_query_value(sort_order)

        resp = await self._request("GET", self._path(), params=params)
        data = resp.data if isinstance(resp.data, dict) else {}
        return NotificationPage(
            notifications=parse_notifications(data.get("notifications", [])),
            total=data.get("total", 0),
            unread_count=data.get("unreadCount", 0),
            has_more=data.get("hasMore", False),
        )

    async def get_notification(self, notification_id: str) -> Notification:
        resp = await self._request("GET", self._path(notification_id))
        return Notification.model_validate(resp.data)

    async def create_notification(self, request: CreateNotificationRequest) -> Notification:
        resp = await self._request("POST", self._path(), body=request.to_payload())
        return Notification.model_validate(resp.data)

    async def update_notification(
        self, notification_id: str, request: UpdateNotificationRequest
    ) -> Notification:
        resp = await self._request(
            "PATCH", self._path(notification_id), body=request.to_payload()
        )
        return Notification.model_validate(resp.data)

    async def delete_notification(self, notification_id: str) -> bool:
        resp = await self._request("DELETE", self._path(notification_id))
        return resp.success

    async def mark_as_read(self, notification_id: str) -> Notification | None:
        resp = await self._request("PATCH", self._path(notification_id, "read"))
        if isinstance(resp.data, dict):
            return Notification.model_validate(resp.data)
        return None

    async def mark_all_as_read(
        self,
        type: NotificationType | None = None,
        priority: NotificationPriority | None = None,
    ) -> int:
        """Mark every notification (optionally of one type/priority) as read."""
        filters = {
            k: v.value for k, v in (("type", type), ("priority", priority)) if v is not None
        }
        body = {"filters": filters} if filters else None
        resp = await self._request("PATCH", self._path("read-all"), body=body)
        return resp.updated_count or 0

    async def bulk_update(
        self, notification_ids: list[str], updates: UpdateNotificationRequest
    ) -> int:
        body = {"notificationIds": list(notification_ids), "updates": updates.to_payload()}
        resp = await self._request("PATCH", self._path("bulk-update"), body=body)
        return resp.updated_count or 0

    async def get_stats(self) -> NotificationStats:
        resp = await self._request("GET", self._path("stats"))
        return NotificationStats.model_validate(resp.data or {})
