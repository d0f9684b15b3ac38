"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ToolInvocationRequest(BaseModel):
    """Tool call forwarded by the host platform."""

    inputs: dict[str, Any] = Field(default_factory=dict, description="Tool input arguments")
    env: dict[str, str | None] = Field(
        default_factory=dict,
        description="Installation credentials and settings for this call",
    )
    app_installation_id: str | None = Field(
        None, max_length=100, description="Host platform installation making the call",
    )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "integration-apps"
