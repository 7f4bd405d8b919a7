"""Pydantic schemas for the non-RPC HTTP routes."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ErrorInfo(BaseModel):
    code: str
    message: str
    details: dict[str, object] | list[object] | str | None = None


class ErrorResponse(BaseModel):
    error: ErrorInfo


class HealthResponse(BaseModel):
    status: str = "ok"
    active_requests: int = Field(0, alias="activeRequests")
    max_concurrent_requests: int = Field(0, alias="maxConcurrentRequests")

    model_config = ConfigDict(populate_by_name=True)
