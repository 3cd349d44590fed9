"""Pydantic schemas for mutations queued while offline."""

from datetime import datetime

from pydantic import BaseModel, Field

from admin_notifications.models.enums import PendingActionType


class PendingAction(BaseModel):
    id: str = Field(description="Client-generated unique ID for this action")
    type: PendingActionType
    data: dict = Field(default_factory=dict, description="Action-specific payload")
    timestamp: datetime = Field(description="When the action was queued on the client")


class SyncSummary(BaseModel):
    total: int = 0
    applied: int = 0
    failed: int = 0
    errors: list[dict] = Field(default_factory=list)
