"""Proposal lifecycle endpoints; each route maps onto one service operation."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, Response, status
from sqlmodel.ext.asyncio.session import AsyncSession

from proposal_lifecycle.api.deps import ACTOR_DEP, SERVICE_DEP, SESSION_DEP
from proposal_lifecycle.core.auth import ActorContext
from proposal_lifecycle.models.proposal_versions import ProposalVersion
from proposal_lifecycle.models.proposals import Proposal
from proposal_lifecycle.schemas.errors import ErrorResponse
from proposal_lifecycle.schemas.proposals import (
    DecisionCreate,
    DecisionRead,
    ProjectRead,
    ProposalContent,
    ProposalCreate,
    ProposalDetailRead,
    ProposalListFilter,
    ProposalRead,
    ProposalSubmit,
    ProposalVersionRead,
    ReviewerAssign,
    StatePermissionsRead,
    SubmitResponse,
)
from proposal_lifecycle.services.proposals.lifecycle import ProposalLifecycleService
from proposal_lifecycle.services.proposals.state_machine import describe, permissions_for

router = APIRouter(
    prefix="/proposals",
    tags=["proposals"],
    responses={
        status.HTTP_403_FORBIDDEN: {"model": ErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    },
)
_MUTATION_ERRORS: dict[int | str, dict[str, object]] = {
    status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    status.HTTP_412_PRECONDITION_FAILED: {"model": ErrorResponse},
    status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
    status.HTTP_423_LOCKED: {"model": ErrorResponse},
}
STATUS_QUERY = Query(default=None, alias="status")
TEAM_QUERY = Query(default=None)
ARCHIVED_QUERY = Query(default=False)
LIMIT_QUERY = Query(default=50, ge=1, le=200)
OFFSET_QUERY = Query(default=0, ge=0)


def _proposal_to_read(proposal: Proposal) -> ProposalRead:
    model = ProposalRead.model_validate(proposal, from_attributes=True)
    model.status_description = describe(proposal.status)
    permissions = permissions_for(proposal.status)
    model.permissions = StatePermissionsRead(
        can_edit=permissions.can_edit,
        can_overwrite=permissions.can_overwrite,
        can_submit=permissions.can_submit,
        can_review=permissions.can_review,
        is_terminal=permissions.is_terminal,
        allowed_transitions=permissions.allowed_transitions,
    )
    return model


def _version_to_read(version: ProposalVersion) -> ProposalVersionRead:
    return ProposalVersionRead.model_validate(version, from_attributes=True)


@router.post(
    "",
    response_model=ProposalDetailRead,
    status_code=status.HTTP_201_CREATED,
    responses=_MUTATION_ERRORS,
)
async def create_proposal(
    payload: ProposalCreate,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
    service: ProposalLifecycleService = SERVICE_DEP,
) -> ProposalDetailRead:
    """Create a draft proposal with version 1."""
    proposal = await service.create_draft(
        session,
        actor=actor,
        team_id=payload.team_id,
        content=payload.content,
    )
    detail = ProposalDetailRead(**_proposal_to_read(proposal).model_dump())
    latest = await service.latest_version(session, proposal=proposal)
    detail.latest_version = _version_to_read(latest) if latest else None
    return detail


@router.get("", response_model=list[ProposalRead])
async def list_proposals(
    response: Response,
    status_filter: str | None = STATUS_QUERY,
    team_id: UUID | None = TEAM_QUERY,
    include_archived: bool = ARCHIVED_QUERY,
    limit: int = LIMIT_QUERY,
    offset: int = OFFSET_QUERY,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
    service: ProposalLifecycleService = SERVICE_DEP,
) -> list[ProposalRead]:
    """List proposals visible to the caller, newest first."""
    proposals = await service.list_proposals(
        session,
        actor=actor,
        filters=ProposalListFilter(
            status=status_filter,
            team_id=team_id,
            include_archived=include_archived,
        ),
        limit=limit,
        offset=offset,
    )
    response.headers["X-Limit"] = str(limit)
    response.headers["X-Offset"] = str(offset)
    return [_proposal_to_read(proposal) for proposal in proposals]


@router.get("/{proposal_id}", response_model=ProposalDetailRead)
async def get_proposal(
    proposal_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
    service: ProposalLifecycleService = SERVICE_DEP,
) -> ProposalDetailRead:
    proposal = await service.get_proposal(session, proposal_id=proposal_id, actor=actor)
    detail = ProposalDetailRead(**_proposal_to_read(proposal).model_dump())
    latest = await service.latest_version(session, proposal=proposal)
    detail.latest_version = _version_to_read(latest) if latest else None
    return detail


@router.patch("/{proposal_id}", response_model=ProposalVersionRead, responses=_MUTATION_ERRORS)
async def update_proposal_content(
    proposal_id: UUID,
    payload: ProposalContent,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
    service: ProposalLifecycleService = SERVICE_DEP,
) -> ProposalVersionRead:
    """Edit the draft in place, or add a revision while revision is required."""
    version = await service.update_content(
        session,
        proposal_id=proposal_id,
        actor=actor,
        content=payload,
    )
    return _version_to_read(version)


@router.post("/{proposal_id}/submit", response_model=SubmitResponse, responses=_MUTATION_ERRORS)
async def submit_proposal(
    proposal_id: UUID,
    payload: ProposalSubmit,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
    service: ProposalLifecycleService = SERVICE_DEP,
) -> SubmitResponse:
    result = await service.submit(
        session,
        proposal_id=proposal_id,
        actor=actor,
        team_id=payload.team_id,
    )
    return SubmitResponse(
        proposal=_proposal_to_read(result.proposal),
        advisory=result.advisory,
        advisory_error=result.advisory_error,
    )


@router.post(
    "/{proposal_id}/decisions",
    response_model=DecisionRead,
    status_code=status.HTTP_201_CREATED,
    responses=_MUTATION_ERRORS,
)
async def record_decision(
    proposal_id: UUID,
    payload: DecisionCreate,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
    service: ProposalLifecycleService = SERVICE_DEP,
) -> DecisionRead:
    """Record the assigned reviewer's verdict on the latest version."""
    decision = await service.record_decision(
        session,
        proposal_id=proposal_id,
        actor=actor,
        version_id=payload.version_id,
        kind=payload.kind,
        justification=payload.justification,
    )
    return DecisionRead.model_validate(decision, from_attributes=True)


@router.get("/{proposal_id}/decisions", response_model=list[DecisionRead])
async def list_decisions(
    proposal_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
    service: ProposalLifecycleService = SERVICE_DEP,
) -> list[DecisionRead]:
    decisions = await service.list_decisions(session, proposal_id=proposal_id, actor=actor)
    return [DecisionRead.model_validate(item, from_attributes=True) for item in decisions]


@router.get("/{proposal_id}/versions", response_model=list[ProposalVersionRead])
async def list_versions(
    proposal_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
    service: ProposalLifecycleService = SERVICE_DEP,
) -> list[ProposalVersionRead]:
    versions = await service.list_versions(session, proposal_id=proposal_id, actor=actor)
    return [_version_to_read(version) for version in versions]


@router.get("/{proposal_id}/project", response_model=ProjectRead)
async def get_project(
    proposal_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
    service: ProposalLifecycleService = SERVICE_DEP,
) -> ProjectRead:
    project = await service.get_project(session, proposal_id=proposal_id, actor=actor)
    return ProjectRead.model_validate(project, from_attributes=True)


@router.post(
    "/{proposal_id}/project/publish",
    response_model=ProjectRead,
    responses=_MUTATION_ERRORS,
)
async def publish_project(
    proposal_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
    service: ProposalLifecycleService = SERVICE_DEP,
) -> ProjectRead:
    project = await service.publish_project(session, proposal_id=proposal_id, actor=actor)
    return ProjectRead.model_validate(project, from_attributes=True)


@router.post("/{proposal_id}/reviewer", response_model=ProposalRead, responses=_MUTATION_ERRORS)
async def assign_reviewer(
    proposal_id: UUID,
    payload: ReviewerAssign,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
    service: ProposalLifecycleService = SERVICE_DEP,
) -> ProposalRead:
    proposal = await service.assign_reviewer(
        session,
        proposal_id=proposal_id,
        actor=actor,
        reviewer_id=payload.reviewer_id,
    )
    return _proposal_to_read(proposal)


@router.post("/{proposal_id}/archive", response_model=ProposalRead, responses=_MUTATION_ERRORS)
async def archive_proposal(
    proposal_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
    service: ProposalLifecycleService = SERVICE_DEP,
) -> ProposalRead:
    proposal = await service.archive(session, proposal_id=proposal_id, actor=actor)
    return _proposal_to_read(proposal)


@router.delete(
    "/{proposal_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_MUTATION_ERRORS,
)
async def delete_proposal(
    proposal_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
    service: ProposalLifecycleService = SERVICE_DEP,
) -> Response:
    """Delete a draft and its versions; creator only."""
    await service.delete_draft(session, proposal_id=proposal_id, actor=actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
