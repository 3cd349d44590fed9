"""Shared fixtures: an in-memory fake of the notifications backend."""

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

# Ensure the project root (which contains the ``admin_notifications`` package) is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from admin_notifications.core.error_handlers import ErrorClassifier, RetryConfig  # noqa: E402
from admin_notifications.services.api_client import NotificationApiClient  # noqa: E402
from admin_notifications.services.notification import NotificationService  # noqa: E402

BASE_URL = "http://notifications.test"
PREFIX = "/api/admin/notifications"
NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class FakeBackend:
    """Callable handler for ``httpx.MockTransport`` backed by a dict store.

    Queue failures with ``fail_next``; each queued failure is consumed by
    one request before normal routing resumes.
    """

    def __init__(self) -> None:
        self.store: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        self._failures: list[int | Exception] = []
        self._next_id = 1

    def add(self, notification_id: str, *, age_minutes: int = 0, **fields) -> dict:
        record = {
            "id": notification_id,
            "type": "user_registered",
            "title": f"Title {notification_id}",
            "message": f"Message {notification_id}",
            "timestamp": iso(NOW - timedelta(minutes=age_minutes)),
            "read": False,
            "priority": "medium",
            "metadata": {},
        }
        record.update(fields)
        self.store[notification_id] = record
        return record

    def fail_next(self, failure: int | Exception, times: int = 1) -> None:
        self._failures.extend([failure] * times)

    def calls(self, method: str | None = None, path: str | None = None) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if (method is None or r.method == method)
            and (path is None or r.url.path == PREFIX + path)
        ]

    @staticmethod
    def _ok(data=None, **extra) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "data": data, **extra})

    @staticmethod
    def _error(status: int, code: str, message: str, **extra) -> httpx.Response:
        return httpx.Response(
            status,
            json={"success": False, "error": {"code": code, "message": message, **extra}},
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._failures:
            failure = self._failures.pop(0)
            if isinstance(failure, Exception):
                raise failure
            return self._error(failure, "INJECTED", f"injected {failure}")

        path = request.url.path[len(PREFIX):].strip("/")
        parts = path.split("/") if path else []
        body = json.loads(request.content) if request.content else {}

        if not parts:
            if request.method == "GET":
                items = sorted(self.store.values(), key=lambda n: n["timestamp"], reverse=True)
                if request.url.params.get("read") is not None:
                    wanted = request.url.params["read"] == "true"
                    items = [n for n in items if n["read"] == wanted]
                return self._ok(
                    {
                        "notifications": items,
                        "total": len(items),
                        "unreadCount": sum(1 for n in items if not n["read"]),
                        "hasMore": False,
                    }
                )
            if request.method == "POST":
                record = {
                    "id": f"srv_{self._next_id}",
                    "timestamp": iso(NOW),
                    "read": False,
                    **body,
                }
                self._next_id += 1
                self.store[record["id"]] = record
                return self._ok(record)

        if parts == ["stats"]:
            unread = sum(1 for n in self.store.values() if not n["read"])
            return self._ok({"total": len(self.store), "unread": unread, "byType": {}, "byPriority": {}})

        if parts == ["read-all"]:
            count = 0
            for n in self.store.values():
                if not n["read"]:
                    n["read"] = True
                    count += 1
            return self._ok(None, updatedCount=count)

        if parts == ["bulk-update"]:
            ids = [i for i in body["notificationIds"] if i in self.store]
            for i in ids:
                self.store[i].update(body["updates"])
            return self._ok(None, updatedCount=len(ids))

        record = self.store.get(parts[0])
        if record is None:
            return self._error(404, "NOT_FOUND", "Notification not found")

        if len(parts) == 2 and parts[1] == "read":
            record["read"] = True
            return self._ok(record)
        if request.method == "GET":
            return self._ok(record)
        if request.method == "PATCH":
            record.update(body)
            return self._ok(record)
        if request.method == "DELETE":
            del self.store[parts[0]]
            return self._ok(None)

        return self._error(405, "METHOD_NOT_ALLOWED", "Unsupported")


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def classifier(sleeps) -> ErrorClassifier:
    return ErrorClassifier(
        RetryConfig(max_attempts=3, base_delay=1, max_delay=10, backoff_factor=2, jitter=0),
        default_retry_after=60,
        sleep=sleeps,
    )


@pytest.fixture
def api_client(backend, classifier) -> NotificationApiClient:
    return NotificationApiClient(
        BASE_URL,
        prefix=PREFIX,
        error_classifier=classifier,
        transport=httpx.MockTransport(backend),
    )


@pytest.fixture
def service(api_client) -> NotificationService:
    return NotificationService(api_client, polling_interval=None)
