"""Domain error taxonomy for the proposal lifecycle.

Every error is an ``HTTPException`` so the boundary layer renders it with a
distinct status and a machine-readable ``code`` without per-route handling.
Messages are written for clients and never carry internal state.
"""

from __future__ import annotations

from fastapi import HTTPException, status


class LifecycleError(HTTPException):
    """Base class for client-facing lifecycle errors (never retried)."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "lifecycle_error"
    default_detail = "Request could not be processed"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(
            status_code=type(self).status_code,
            detail=detail or type(self).default_detail,
        )


class NotFoundError(LifecycleError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_detail = "Resource not found"


class ForbiddenError(LifecycleError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_detail = "Not permitted to perform this action"


class InvalidStateError(LifecycleError):
    status_code = status.HTTP_423_LOCKED
    code = "invalid_state"
    default_detail = "Operation is not allowed in the current proposal status"


class InvalidTransitionError(LifecycleError):
    """Rejected state-machine transition."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "invalid_transition"

    def __init__(self, from_status: str, to_status: str) -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Cannot transition proposal from '{from_status}' to '{to_status}'")


class ConflictError(LifecycleError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"
    default_detail = "Request conflicts with an existing record"


class PreconditionError(LifecycleError):
    status_code = status.HTTP_412_PRECONDITION_FAILED
    code = "precondition_failed"
    default_detail = "A required relationship is missing"


class CollaboratorUnavailableError(Exception):
    """An external collaborator (team lookup, file store) could not be reached."""

    def __init__(self, collaborator: str) -> None:
        self.collaborator = collaborator
        super().__init__(f"{collaborator} is temporarily unavailable")
