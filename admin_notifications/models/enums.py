"""All enum types for the admin notification client."""

import enum


# --- Notification Enums ---

class NotificationType(str, enum.Enum):
    USER_REGISTERED = "user_registered"
    POST_PUBLISHED = "post_published"
    SYSTEM_ERROR = "system_error"
    USER_ACTIVITY = "user_activity"
    CONTENT_MODERATION = "content_moderation"


class NotificationPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SortBy(str, enum.Enum):
    TIMESTAMP = "timestamp"
    PRIORITY = "priority"
    TYPE = "type"


class SortOrder(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


# --- Domain Event Enums ---

class ErrorSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ModerationSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ModeratedContentType(str, enum.Enum):
    POST = "post"
    COMMENT = "comment"
    USER_PROFILE = "user_profile"


# --- Service State Enums ---

class ServiceState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    CONNECTED = "connected"
    ERROR = "error"


class ConnectionStatus(str, enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    CHECKING = "checking"


# --- Offline Sync Enums ---

class PendingActionType(str, enum.Enum):
    MARK_READ = "mark_read"
    MARK_ALL_READ = "mark_all_read"
    CREATE = "create"
    DELETE = "delete"


# --- Error Enums ---

class ErrorCode(str, enum.Enum):
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    AUTHORIZATION_ERROR = "AUTHORIZATION_ERROR"
    NOT_FOUND_ERROR = "NOT_FOUND_ERROR"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    SERVER_ERROR = "SERVER_ERROR"
    HTTP_ERROR = "HTTP_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
