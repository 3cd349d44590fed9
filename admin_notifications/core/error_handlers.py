"""Error classification and retry-with-backoff for notification operations.

Any failure, whatever its origin, is mapped onto a ``NotificationError``
with a stable code, an internal message, a message fit for end users and a
retryability flag. ``ErrorClassifier.execute_with_retry`` drives an operation
until it succeeds or the retry budget runs out.
"""

import asyncio
import itertools
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx

from admin_notifications.config import Settings, settings
from admin_notifications.core.exceptions import (
    ApiError,
    NotificationError,
    RequestTimeoutError,
    TransportError,
)
from admin_notifications.models.enums import ErrorCode

logger = logging.getLogger(__name__)

T = TypeVar("T")

SERVER_ERROR_STATUSES = {500, 502, 503, 504}

# status -> (code, internal message, user message, retryable)
_HTTP_STATUS_ERRORS: dict[int, tuple[ErrorCode, str, str, bool]] = {
    400: (
        ErrorCode.VALIDATION_ERROR,
        "Invalid request data",
        "The data sent was invalid.",
        False,
    ),
    401: (
        ErrorCode.AUTHENTICATION_ERROR,
        "Not authenticated",
        "Your session has expired. Please sign in again.",
        False,
    ),
    403: (
        ErrorCode.AUTHORIZATION_ERROR,
        "Not authorized",
        "You do not have permission to do this.",
        False,
    ),
    404: (
        ErrorCode.NOT_FOUND_ERROR,
        "Resource not found",
        "The requested notification no longer exists.",
        False,
    ),
}


@dataclass
class RetryConfig:
    max_attempts: int = settings.RETRY_MAX_ATTEMPTS
    base_delay: float = settings.RETRY_BASE_DELAY_SECONDS
    max_delay: float = settings.RETRY_MAX_DELAY_SECONDS
    backoff_factor: float = settings.RETRY_BACKOFF_FACTOR
    jitter: float = settings.RETRY_JITTER_SECONDS


class ErrorClassifier:
    """Normalizes failures and retries operations with exponential backoff.

    Attempt counters are kept per ``operation_id`` so that two different
    operations never share a retry budget.
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        *,
        log_errors: bool = settings.LOG_ERRORS,
        default_retry_after: float = settings.RATE_LIMIT_DEFAULT_RETRY_AFTER_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.retry_config = retry_config or RetryConfig()
        self.log_errors = log_errors
        self.default_retry_after = default_retry_after
        self._sleep = sleep
        self._run_ids = itertools.count(1)
        self._retry_attempts: dict[str, int] = {}

    @classmethod
    def from_settings(cls, config: Settings) -> "ErrorClassifier":
        return cls(
            RetryConfig(
                max_attempts=config.RETRY_MAX_ATTEMPTS,
                base_delay=config.RETRY_BASE_DELAY_SECONDS,
                max_delay=config.RETRY_MAX_DELAY_SECONDS,
                backoff_factor=config.RETRY_BACKOFF_FACTOR,
                jitter=config.RETRY_JITTER_SECONDS,
            ),
            log_errors=config.LOG_ERRORS,
            default_retry_after=config.RATE_LIMIT_DEFAULT_RETRY_AFTER_SECONDS,
        )

    # ── Classification ────────────────────────────────────────────────

    def classify(self, error: BaseException, context: str = "") -> NotificationError:
        """Map ``error`` onto the normalized taxonomy."""
        if isinstance(error, NotificationError):
            return error

        if isinstance(error, (RequestTimeoutError, httpx.TimeoutException, asyncio.TimeoutError)):
            return NotificationError(
                code=ErrorCode.TIMEOUT_ERROR,
                message=f"Request timed out ({context})" if context else "Request timed out",
                user_message="The request took too long. Please try again.",
                retryable=True,
            )

        if isinstance(error, (TransportError, httpx.TransportError)):
            return NotificationError(
                code=ErrorCode.NETWORK_ERROR,
                message=f"Network error: {error}",
                user_message="Connection problem. Check your internet connection.",
                retryable=True,
            )

        if isinstance(error, ApiError):
            return self._classify_http_error(error)

        return NotificationError(
            code=ErrorCode.UNKNOWN_ERROR,
            message=str(error) or type(error).__name__,
            user_message="An unexpected error occurred. Please try again.",
            retryable=True,
            details=repr(error),
        )

    def _classify_http_error(self, error: ApiError) -> NotificationError:
        status = error.status_code

        known = _HTTP_STATUS_ERRORS.get(status)
        if known is not None:
            code, message, user_message, retryable = known
            return NotificationError(
                code=code,
                message=f"{message}: {error.message}",
                user_message=user_message,
                retryable=retryable,
                details=error.error_data,
            )

        if status == 429:
            retry_after = error.get_retry_after()
            return NotificationError(
                code=ErrorCode.RATE_LIMIT_ERROR,
                message=f"Too many requests: {error.message}",
                user_message="Too many requests. Please wait a moment.",
                retryable=True,
                retry_after=retry_after if retry_after is not None else self.default_retry_after,
            )

        if status in SERVER_ERROR_STATUSES:
            return NotificationError(
                code=ErrorCode.SERVER_ERROR,
                message=f"Server error {status}: {error.message}",
                user_message="Temporary server problem. Please try again.",
                retryable=True,
            )

        return NotificationError(
            code=ErrorCode.HTTP_ERROR,
            message=f"HTTP error {status}: {error.message}",
            user_message="Something went wrong. Please try again.",
            retryable=status >= 500,
            details=error.error_data,
        )

    def handle_error(self, error: BaseException, context: str) -> NotificationError:
        """Classify ``error`` and log it."""
        normalized = self.classify(error, context)
        if self.log_errors:
            logger.error(
                "Notification operation %s failed [%s]: %s",
                context,
                normalized.code.value,
                normalized.message,
            )
        return normalized

    # ── Retry bookkeeping ─────────────────────────────────────────────

    def get_attempts(self, operation_id: str) -> int:
        return self._retry_attempts.get(operation_id, 0)

    def can_retry(self, operation_id: str, error: NotificationError) -> bool:
        """True while the error is retryable and the call budget is not spent.

        ``max_attempts`` counts every call, the first one included.
        """
        if not error.retryable:
            return False
        return self.get_attempts(operation_id) + 1 < self.retry_config.max_attempts

    def get_retry_delay(self, operation_id: str, error: NotificationError) -> float:
        """Seconds to wait before the next attempt."""
        if error.retry_after:
            return error.retry_after

        cfg = self.retry_config
        attempts = self.get_attempts(operation_id)
        delay = min(cfg.base_delay * cfg.backoff_factor**attempts, cfg.max_delay)
        return delay + random.uniform(0, cfg.jitter)

    def record_retry_attempt(self, operation_id: str) -> int:
        attempts = self.get_attempts(operation_id) + 1
        self._retry_attempts[operation_id] = attempts
        return attempts

    def reset_retry_attempts(self, operation_id: str) -> None:
        self._retry_attempts.pop(operation_id, None)

    def cancel(self, operation_id: str) -> None:
        """Forget the retry state of ``operation_id``."""
        self.reset_retry_attempts(operation_id)

    def cleanup(self) -> None:
        self._retry_attempts.clear()

    # ── Retry driver ──────────────────────────────────────────────────

    async def execute_with_retry(
        self,
        operation_id: str,
        operation: Callable[[], Awaitable[T]],
        *,
        should_retry: Callable[[BaseException], bool] | None = None,
        on_retry: Callable[[int, NotificationError], None] | None = None,
    ) -> T:
        """Run ``operation`` until it succeeds or can no longer be retried.

        Each call keeps its own attempt counter, so concurrent runs that share
        an ``operation_id`` (a poll and a manual refresh of the same path, say)
        never spend each other's budget. The counter is dropped when the run
        ends. Raises the normalized ``NotificationError`` of the last failure.
        """
        run_id = f"{operation_id}#{next(self._run_ids)}"

        try:
            while True:
                try:
                    return await operation()
                except Exception as exc:
                    error = self.handle_error(exc, operation_id)
                    vetoed = should_retry is not None and not should_retry(exc)
                    if vetoed or not self.can_retry(run_id, error):
                        if error is exc:
                            raise
                        raise error from exc

                    delay = self.get_retry_delay(run_id, error)
                    attempt = self.record_retry_attempt(run_id)
                    logger.info(
                        "Retrying %s in %.2fs (attempt %d/%d)",
                        operation_id,
                        delay,
                        attempt + 1,
                        self.retry_config.max_attempts,
                    )
                    if on_retry is not None:
                        on_retry(attempt, error)
                    await self._sleep(delay)
        finally:
            self.reset_retry_attempts(run_id)
