"""Pydantic schemas for the domain events that produce notifications."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from admin_notifications.models.enums import (
    ErrorSeverity,
    ModeratedContentType,
    ModerationSeverity,
)


class UserRegistrationData(BaseModel):
    user_id: str
    username: str
    email: str
    registration_date: datetime


class PostPublishedData(BaseModel):
    post_id: str
    title: str
    author_id: str
    author_name: str
    published_date: datetime
    category: str | None = None


class SystemErrorData(BaseModel):
    error_code: str
    error_message: str
    severity: ErrorSeverity | str
    component: str
    timestamp: datetime
    stack_trace: str | None = None


class UserActivityData(BaseModel):
    user_id: str
    username: str
    activity: str
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class ContentModerationData(BaseModel):
    content_id: str
    content_type: ModeratedContentType
    report_reason: str
    reported_by: str
    timestamp: datetime
    severity: ModerationSeverity | str
