"""Structured error payload schema used by API responses."""

from __future__ import annotations

from pydantic import Field
from sqlmodel import SQLModel


class ErrorResponse(SQLModel):
    """Error envelope rendered by the installed exception handlers."""

    detail: str | dict[str, object] | list[object] = Field(
        description="Human readable message or validation error list.",
        examples=["Not permitted to perform this action"],
    )
    request_id: str | None = Field(
        default=None,
        description="Request correlation identifier injected by middleware.",
    )
    code: str | None = Field(
        default=None,
        description="Machine-readable error code for lifecycle errors.",
        examples=["invalid_state", "conflict", "datastore_unavailable"],
    )
    retryable: bool | None = Field(
        default=None,
        description="Whether the same request may succeed if retried unchanged.",
    )
