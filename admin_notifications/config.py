from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Backend API
    API_BASE_URL: str = "http://localhost:3000"
    API_PREFIX: str = "/api/admin/notifications"
    API_TOKEN: str = ""
    REQUEST_TIMEOUT_SECONDS: float = 10.0

    # Retry policy
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY_SECONDS: float = 1.0
    RETRY_MAX_DELAY_SECONDS: float = 10.0
    RETRY_BACKOFF_FACTOR: float = 2.0
    RETRY_JITTER_SECONDS: float = 1.0
    RATE_LIMIT_DEFAULT_RETRY_AFTER_SECONDS: float = 60.0

    # Connectivity
    HEALTH_ENDPOINT: str = "/api/health"
    CONNECTION_CHECK_INTERVAL_SECONDS: float = 30.0
    CONNECTION_CHECK_TIMEOUT_SECONDS: float = 5.0

    # Local cache
    CACHE_TTL_SECONDS: float = 300.0
    CACHE_CLEANUP_INTERVAL_SECONDS: float = 300.0
    PENDING_ACTIONS_MAX: int = 100

    # Notification service
    POLLING_INTERVAL_SECONDS: float = 30.0
    MAX_NOTIFICATIONS: int = 100

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_ERRORS: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }


settings = Settings()
