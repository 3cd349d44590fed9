"""Shared schema utilities."""

from pydantic import BaseModel, Field


class APIResponse(BaseModel):
    """Standard backend response envelope."""
    success: bool = True
    data: dict | list | None = None
    message: str | None = None
    error: dict | None = None
    updated_count: int | None = Field(default=None, alias="updatedCount")

    model_config = {"populate_by_name": True, "extra": "allow"}
