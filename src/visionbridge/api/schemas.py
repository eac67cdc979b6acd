"""Pydantic response schemas for the VisionBridge host API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    active_commands: int
    running: dict[str, int] = Field(description="Commands holding a slot, by name")
    queue_depth: int


class CommandInfo(BaseModel):
    """A command the host can run."""

    name: str
    args: list[str] = Field(description="Argument names expected in the JSON body")


class CommandsResponse(BaseModel):
    """Response for the commands listing endpoint."""

    commands: list[CommandInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
