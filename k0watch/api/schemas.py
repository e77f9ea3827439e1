"""Pydantic response models for the status API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    error: str
    detail: str = ""


class HealthResponse(BaseModel):
    status: str
    version: str


class ManagerStatus(BaseModel):
    """Lifecycle view of one watch manager."""

    name: str
    stopped: bool
    subscriptions: int
    sessions_active: int
    session_states: dict[str, int] = Field(default_factory=dict)
    dropped: int = 0
    breakers: dict[str, str] = Field(default_factory=dict)
    api: str | None = None


class StatusResponse(BaseModel):
    version: str
    managers: list[ManagerStatus]
