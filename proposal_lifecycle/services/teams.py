"""Team lookup collaborator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID

import httpx

from proposal_lifecycle.core.config import settings
from proposal_lifecycle.core.errors import CollaboratorUnavailableError
from proposal_lifecycle.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TeamInfo:
    """Team facts the lifecycle depends on."""

    id: UUID
    leader_id: UUID
    is_finalized: bool
    member_ids: frozenset[UUID] = field(default_factory=frozenset)
    department_id: UUID | None = None
    advisor_id: UUID | None = None

    def is_member(self, user_id: UUID) -> bool:
        return user_id == self.leader_id or user_id in self.member_ids


class TeamDirectory(Protocol):
    async def get_team(self, team_id: UUID) -> TeamInfo | None: ...


def _optional_uuid(value: Any) -> UUID | None:
    return UUID(str(value)) if value else None


def team_from_payload(data: dict[str, Any]) -> TeamInfo:
    return TeamInfo(
        id=UUID(str(data["id"])),
        leader_id=UUID(str(data["leader_id"])),
        is_finalized=bool(data.get("is_finalized", False)),
        member_ids=frozenset(UUID(str(member)) for member in data.get("member_ids", [])),
        department_id=_optional_uuid(data.get("department_id")),
        advisor_id=_optional_uuid(data.get("advisor_id")),
    )


class HttpTeamDirectory:
    """Team lookup against the team service's ``GET /teams/{id}`` endpoint."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (
            base_url if base_url is not None else settings.team_service_url
        ).rstrip("/")
        self._token = token if token is not None else settings.team_service_token
        self._timeout = timeout_seconds or settings.team_service_timeout_seconds
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"} if self._token else {}

    async def get_team(self, team_id: UUID) -> TeamInfo | None:
        if not self._base_url:
            raise CollaboratorUnavailableError("team service")
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(f"/teams/{team_id}", headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning(
                "teams.lookup.failed",
                extra={"team_id": str(team_id), "error_type": type(exc).__name__},
            )
            raise CollaboratorUnavailableError("team service") from exc
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.is_error:
            logger.warning(
                "teams.lookup.bad_status",
                extra={"team_id": str(team_id), "status_code": response.status_code},
            )
            raise CollaboratorUnavailableError("team service")
        try:
            return team_from_payload(response.json())
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(
                "teams.lookup.bad_payload",
                extra={"team_id": str(team_id), "error_type": type(exc).__name__},
            )
            raise CollaboratorUnavailableError("team service") from exc
