"""Build notification records from domain events.

Each generator is a pure function: it turns a typed event payload into a
validated, sanitized ``Notification`` and never stores or sends it. The
caller decides whether to submit it via ``NotificationService.create_notification``.

A malformed ``type`` raises ``pydantic.ValidationError``; an unknown priority
falls back to medium and an invalid action URL is dropped.
"""

import secrets
import string
import time
from typing import Any
from urllib.parse import quote

from admin_notifications.core.sanitize import truncate_text
from admin_notifications.models.enums import (
    ModeratedContentType,
    NotificationPriority,
    NotificationType,
)
from admin_notifications.schemas.events import (
    ContentModerationData,
    PostPublishedData,
    SystemErrorData,
    UserActivityData,
    UserRegistrationData,
)
from admin_notifications.schemas.notification import Notification

_ID_ALPHABET = string.digits + string.ascii_lowercase

SEVERITY_PRIORITY = {
    "low": NotificationPriority.LOW,
    "medium": NotificationPriority.MEDIUM,
    "high": NotificationPriority.HIGH,
    "critical": NotificationPriority.HIGH,
}

POST_TITLE_PREVIEW_LENGTH = 50


def generate_notification_id() -> str:
    """Timestamp plus random suffix, e.g. ``notification_1700000000000_k3j9x0a2b``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"notification_{int(time.time() * 1000)}_{suffix}"


def _severity_to_priority(severity: Any) -> NotificationPriority:
    value = getattr(severity, "value", severity)
    return SEVERITY_PRIORITY.get(str(value).lower(), NotificationPriority.MEDIUM)


def build_notification(**fields: Any) -> Notification:
    """Validate and sanitize a new, unread notification."""
    fields.setdefault("id", generate_notification_id())
    fields.setdefault("read", False)
    return Notification.model_validate(fields)


def generate_user_registration_notification(data: UserRegistrationData) -> Notification:
    return build_notification(
        type=NotificationType.USER_REGISTERED,
        title="New user registered",
        message=f"{data.username} ({data.email}) signed up on the platform",
        timestamp=data.registration_date,
        priority=NotificationPriority.MEDIUM,
        action_url=f"/admin/users/{quote(data.user_id, safe='')}",
        metadata={"userId": data.user_id, "username": data.username},
    )


def generate_post_published_notification(data: PostPublishedData) -> Notification:
    metadata = {
        "postId": data.post_id,
        "postTitle": data.title,
        "userId": data.author_id,
        "username": data.author_name,
    }
    if data.category:
        metadata["category"] = data.category
    return build_notification(
        type=NotificationType.POST_PUBLISHED,
        title="New post published",
        message=f'{data.author_name} published "{truncate_text(data.title, POST_TITLE_PREVIEW_LENGTH)}"',
        timestamp=data.published_date,
        priority=NotificationPriority.LOW,
        action_url=f"/admin/posts/{quote(data.post_id, safe='')}",
        metadata=metadata,
    )


def generate_system_error_notification(data: SystemErrorData) -> Notification:
    return build_notification(
        type=NotificationType.SYSTEM_ERROR,
        title=f"System error - {data.component}",
        message=f"{data.error_message} (Code: {data.error_code})",
        timestamp=data.timestamp,
        priority=_severity_to_priority(data.severity),
        action_url=f"/admin/system/errors/{quote(data.error_code, safe='')}",
        metadata={"errorCode": data.error_code, "component": data.component},
    )


def generate_user_activity_notification(data: UserActivityData) -> Notification:
    return build_notification(
        type=NotificationType.USER_ACTIVITY,
        title="User activity",
        message=f"{data.username}: {data.activity}",
        timestamp=data.timestamp,
        priority=NotificationPriority.LOW,
        action_url=f"/admin/users/{quote(data.user_id, safe='')}/activity",
        metadata={"userId": data.user_id, "username": data.username, **data.metadata},
    )


def generate_content_moderation_notification(data: ContentModerationData) -> Notification:
    metadata: dict[str, Any] = {"reportedBy": data.reported_by}
    if data.content_type == ModeratedContentType.POST:
        metadata["postId"] = data.content_id
    elif data.content_type == ModeratedContentType.COMMENT:
        metadata["commentId"] = data.content_id
    elif data.content_type == ModeratedContentType.USER_PROFILE:
        metadata["userId"] = data.content_id

    content_type = data.content_type.value
    return build_notification(
        type=NotificationType.CONTENT_MODERATION,
        title="Content reported",
        message=f"{content_type} reported for: {data.report_reason}",
        timestamp=data.timestamp,
        priority=_severity_to_priority(data.severity),
        action_url=f"/admin/moderation/{content_type}/{quote(data.content_id, safe='')}",
        metadata=metadata,
    )
