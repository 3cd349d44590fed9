"""Enum types shared across the notification client."""

from admin_notifications.models.enums import (  # noqa: F401
    ConnectionStatus,
    ErrorCode,
    ErrorSeverity,
    ModeratedContentType,
    ModerationSeverity,
    NotificationPriority,
    NotificationType,
    PendingActionType,
    ServiceState,
    SortBy,
    SortOrder,
)
