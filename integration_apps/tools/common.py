"""Types shared by every tool handler."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

from integration_apps.booking.coordinator import Result
from integration_apps.errors import ConfigurationError
from integration_apps.services.host_platform import HostPlatform


@dataclass(frozen=True)
class ToolContext:
    """Per-invocation context handed to a tool handler.

    ``env`` holds this installation's credentials merged with provision-level
    settings; handlers read configuration from it and nowhere else.
    """

    env: Mapping[str, str | None] = field(default_factory=dict)
    host: HostPlatform | None = None
    app_installation_id: str | None = None

    def require_host(self) -> HostPlatform:
        if self.host is None:
            raise ConfigurationError("This tool needs the host platform API, which is not configured.")
        return self.host


class ToolResult(BaseModel):
    """Normalised tool outcome returned to the host platform."""

    tool_name: str
    success: bool
    data: Any = None
    error: str | None = None
    message: str = Field(default="")

    @classmethod
    def ok(cls, tool_name: str, data: Any, message: str) -> ToolResult:
        return cls(tool_name=tool_name, success=True, data=data, message=message)

    @classmethod
    def fail(cls, tool_name: str, error: str) -> ToolResult:
        return cls(tool_name=tool_name, success=False, error=error, message=error)

    @classmethod
    def from_result(cls, tool_name: str, result: Result, data: Any = None) -> ToolResult:
        if not result.success:
            return cls.fail(tool_name, result.error or "Unknown error")
        return cls.ok(tool_name, result.data if data is None else data, result.message)


class NoInput(BaseModel):
    pass
