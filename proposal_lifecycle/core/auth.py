"""Actor identity resolution for requests forwarded by the identity gateway.

Credential validation and session issuance happen upstream. The gateway
authenticates itself with a shared bearer token and forwards the resolved
identity in trusted headers; this module only turns that into an
``ActorContext``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from hmac import compare_digest
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from proposal_lifecycle.core.config import settings
from proposal_lifecycle.core.logging import get_logger

logger = get_logger(__name__)
security = HTTPBearer(auto_error=False)
SECURITY_DEP = Depends(security)

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"
ACTOR_DEPARTMENT_HEADER = "X-Actor-Department"


class Role(str, Enum):
    """Roles recognised by the lifecycle engine."""

    STUDENT = "student"
    ADVISOR = "advisor"
    ADMIN = "admin"
    PUBLIC = "public"


@dataclass(frozen=True)
class ActorContext:
    """Authenticated actor identity supplied by the identity collaborator."""

    user_id: UUID
    role: Role
    department_id: UUID | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def _parse_uuid(value: str | None) -> UUID | None:
    if not value or not value.strip():
        return None
    try:
        return UUID(value.strip())
    except ValueError:
        return None


def _parse_role(value: str | None) -> Role | None:
    if not value:
        return None
    try:
        return Role(value.strip().lower())
    except ValueError:
        return None


def _verify_gateway_token(credentials: HTTPAuthorizationCredentials | None) -> None:
    expected = settings.auth_token.strip()
    if not expected:
        # Dev mode without a configured token trusts the identity headers as-is.
        return
    if credentials is None or not compare_digest(credentials.credentials, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


def get_actor_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = SECURITY_DEP,
) -> ActorContext:
    """Resolve the required actor context from gateway headers."""
    _verify_gateway_token(credentials)
    user_id = _parse_uuid(request.headers.get(ACTOR_ID_HEADER))
    role = _parse_role(request.headers.get(ACTOR_ROLE_HEADER))
    if user_id is None or role is None:
        logger.info(
            "auth.actor.missing",
            extra={"has_user_id": user_id is not None, "has_role": role is not None},
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    department_raw = request.headers.get(ACTOR_DEPARTMENT_HEADER)
    department_id = _parse_uuid(department_raw)
    if department_raw and department_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return ActorContext(user_id=user_id, role=role, department_id=department_id)
