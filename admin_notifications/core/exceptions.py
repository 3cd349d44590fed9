"""Exception classes raised by the notification client.

Raw transport failures are converted into ``TransportError``,
``RequestTimeoutError`` or ``ApiError`` at the API client boundary, and the
error classifier turns those into a single normalized ``NotificationError``.
Everything above the API client only ever sees ``NotificationError``.
"""

from typing import Any

from admin_notifications.models.enums import ErrorCode


class NotificationClientError(Exception):
    """Base class for all notification client errors."""


class TransportError(NotificationClientError):
    """The request failed before any response was received."""


class RequestTimeoutError(NotificationClientError):
    """The request was cancelled because it exceeded its deadline."""


class ApiError(NotificationClientError):
    """A structured error response received from the backend.

    ``error_data`` follows the backend error envelope::

        {"success": false, "error": {"code": ..., "message": ...}, "timestamp": ...}
    """

    def __init__(
        self,
        status_code: int,
        error_data: dict[str, Any],
        headers: dict[str, str] | None = None,
    ):
        self.status_code = status_code
        self.error_data = error_data
        self.headers = headers or {}
        super().__init__(self.message)

    @property
    def error(self) -> dict[str, Any]:
        error = self.error_data.get("error")
        return error if isinstance(error, dict) else {}

    @property
    def code(self) -> str:
        return str(self.error.get("code") or f"HTTP_{self.status_code}")

    @property
    def message(self) -> str:
        return str(self.error.get("message") or f"HTTP error {self.status_code}")

    def is_authentication_error(self) -> bool:
        return self.code in ("AUTHENTICATION_ERROR", "AUTHORIZATION_ERROR")

    def is_rate_limit_error(self) -> bool:
        return self.status_code == 429 or self.code == "RATE_LIMIT_EXCEEDED"

    def is_validation_error(self) -> bool:
        return self.code == "VALIDATION_ERROR"

    def get_retry_after(self) -> float | None:
        """Seconds to wait before retrying, from the body or the Retry-After header."""
        if not self.is_rate_limit_error():
            return None
        for raw in (self.error.get("retryAfter"), self.headers.get("retry-after")):
            if raw is None:
                continue
            try:
                return float(raw)
            except (TypeError, ValueError):
                continue
        return None


class NotificationError(NotificationClientError):
    """Normalized failure: one shape for every error the client surfaces.

    ``message`` is meant for logs; ``user_message`` is safe to show to the
    end user.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        user_message: str,
        retryable: bool,
        retry_after: float | None = None,
        details: Any = None,
    ):
        self.code = code
        self.message = message
        self.user_message = user_message
        self.retryable = retryable
        self.retry_after = retry_after
        self.details = details
        super().__init__(message)

    @property
    def is_connectivity_error(self) -> bool:
        return self.code in (ErrorCode.NETWORK_ERROR, ErrorCode.TIMEOUT_ERROR)

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "user_message": self.user_message,
            "retryable": self.retryable,
            "retry_after": self.retry_after,
        }

    def __repr__(self) -> str:
        return f"NotificationError(code={self.code.value!r}, message={self.message!r})"


class BulkOperationError(NotificationError):
    """Raised after a bulk operation finished with at least one failed item."""

    def __init__(
        self,
        message: str,
        succeeded: list[str],
        failures: dict[str, NotificationError],
    ):
        first = next(iter(failures.values()))
        super().__init__(
            code=first.code,
            message=message,
            user_message=first.user_message,
            retryable=first.retryable,
            retry_after=first.retry_after,
            details={"succeeded": list(succeeded), "failed": list(failures)},
        )
        self.succeeded = list(succeeded)
        self.failures = dict(failures)
