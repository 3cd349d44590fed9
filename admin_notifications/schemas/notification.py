"""Notification request/response schemas.

The backend speaks camelCase JSON; attributes are snake_case with aliases so
that both ``action_url=...`` and ``{"actionUrl": ...}`` are accepted.
"""

import enum
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator

from admin_notifications.core.sanitize import is_valid_action_url, sanitize_text
from admin_notifications.models.enums import NotificationPriority, NotificationType

_VALID_PRIORITIES = {p.value for p in NotificationPriority}


class NotificationContent(BaseModel):
    """Fields shared by stored notifications and create requests."""

    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.MEDIUM
    action_url: str | None = Field(default=None, alias="actionUrl")
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}

    @field_validator("title", "message", mode="after")
    @classmethod
    def sanitize_required_text(cls, v: str) -> str:
        cleaned = sanitize_text(v)
        if not cleaned:
            raise ValueError("Field is required and cannot be empty after sanitization.")
        return cleaned

    @field_validator("priority", mode="before")
    @classmethod
    def default_invalid_priority(cls, v: Any) -> Any:
        if isinstance(v, NotificationPriority):
            return v
        if v not in _VALID_PRIORITIES:
            return NotificationPriority.MEDIUM
        return v

    @field_validator("action_url", mode="before")
    @classmethod
    def drop_invalid_action_url(cls, v: Any) -> Any:
        if v is None or not is_valid_action_url(v):
            return None
        return v

    @field_validator("metadata", mode="before")
    @classmethod
    def metadata_not_null(cls, v: Any) -> Any:
        return {} if v is None else v


class Notification(NotificationContent):
    id: str = Field(min_length=1)
    timestamp: datetime
    read: bool = False

    model_config = {"populate_by_name": True, "frozen": True}

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    def to_create_request(self) -> "CreateNotificationRequest":
        return CreateNotificationRequest(
            type=self.type,
            title=self.title,
            message=self.message,
            priority=self.priority,
            action_url=self.action_url,
            metadata=dict(self.metadata),
        )


class CreateNotificationRequest(NotificationContent):
    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class UpdateNotificationRequest(BaseModel):
    read: bool | None = None

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


def encode_query_value(value: Any) -> str:
    """Encode a scalar filter value for a query string."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, enum.Enum):
        return str(value.value)
    return str(value)


class NotificationFilters(BaseModel):
    type: NotificationType | None = None
    read: bool | None = None
    priority: NotificationPriority | None = None
    date_from: datetime | None = Field(default=None, alias="dateFrom")
    date_to: datetime | None = Field(default=None, alias="dateTo")
    limit: int | None = Field(default=None, gt=0)
    offset: int | None = Field(default=None, ge=0)

    model_config = {"populate_by_name": True}

    def to_query_params(self) -> dict[str, str]:
        """Wire-named query parameters; unset filters are omitted entirely."""
        params: dict[str, str] = {}
        for name, field in type(self).model_fields.items():
            value = getattr(self, name)
            if value is None:
                continue
            params[field.alias or name] = encode_query_value(value)
        return params

    def is_empty(self) -> bool:
        return not self.to_query_params()


class NotificationPage(BaseModel):
    notifications: list[Notification] = Field(default_factory=list)
    total: int = 0
    unread_count: int = Field(default=0, alias="unreadCount")
    has_more: bool = Field(default=False, alias="hasMore")

    model_config = {"populate_by_name": True}


class RecentActivity(BaseModel):
    today: int = 0
    this_week: int = Field(default=0, alias="thisWeek")
    this_month: int = Field(default=0, alias="thisMonth")

    model_config = {"populate_by_name": True}


class NotificationStats(BaseModel):
    total: int = 0
    unread: int = 0
    by_type: dict[str, int] = Field(default_factory=dict, alias="byType")
    by_priority: dict[str, int] = Field(default_factory=dict, alias="byPriority")
    recent_activity: RecentActivity | None = Field(default=None, alias="recentActivity")

    model_config = {"populate_by_name": True}
