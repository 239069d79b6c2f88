"""Decision processor: records a reviewer verdict and applies its effects.

The decision row is committed on its own first, so a verdict is never lost
even when applying it fails. Approval then runs as a single transaction that
flags the version, moves the proposal to ``approved`` and creates the project;
a failure in any step rolls all three back.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from proposal_lifecycle.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    PreconditionError,
)
from proposal_lifecycle.core.logging import get_logger
from proposal_lifecycle.core.time import utcnow
from proposal_lifecycle.models.decisions import Decision
from proposal_lifecycle.models.projects import Project
from proposal_lifecycle.models.proposal_versions import ProposalVersion
from proposal_lifecycle.models.proposals import Proposal
from proposal_lifecycle.services.proposals.state_machine import (
    ProposalStatus,
    can_review,
    transition,
)
from proposal_lifecycle.services.proposals.versions import latest_version, mark_approved

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from proposal_lifecycle.services.teams import TeamDirectory

logger = get_logger(__name__)


class DecisionKind(str, Enum):
    APPROVE = "approve"
    REVISE = "revise"
    REJECT = "reject"


async def _lock_proposal(session: AsyncSession, proposal_id: UUID) -> Proposal:
    proposal = await Proposal.objects.by_id(proposal_id).for_update().first(session)
    if proposal is None:
        raise NotFoundError("Proposal not found")
    return proposal


async def _create_derived_record(
    session: AsyncSession,
    *,
    proposal: Proposal,
    version: ProposalVersion,
    department_id: UUID | None,
    approved_by: UUID,
) -> Project:
    if proposal.team_id is None:
        raise PreconditionError("Proposal has no team")
    project = Project(
        proposal_id=proposal.id,
        team_id=proposal.team_id,
        department_id=department_id,
        title=version.title,
        summary=version.abstract,
        approved_by=approved_by,
        visibility="private",
        created_at=utcnow(),
    )
    session.add(project)
    await session.flush()
    return project


async def _apply_approval(
    session: AsyncSession,
    *,
    proposal_id: UUID,
    version_id: UUID,
    reviewer_id: UUID,
    department_id: UUID | None,
) -> Project:
    try:
        proposal = await _lock_proposal(session, proposal_id)
        version = await mark_approved(session, version_id)
        transition(proposal, ProposalStatus.APPROVED)
        proposal.approved_at = utcnow()
        proposal.approved_by = reviewer_id
        proposal.active_team_id = None
        session.add(proposal)
        project = await _create_derived_record(
            session,
            proposal=proposal,
            version=version,
            department_id=department_id,
            approved_by=reviewer_id,
        )
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError("Proposal has already been approved") from exc
    except Exception:
        await session.rollback()
        logger.warning(
            "proposal.approval.rolled_back",
            extra={"proposal_id": str(proposal_id), "version_id": str(version_id)},
        )
        raise
    logger.info(
        "proposal.approved",
        extra={"proposal_id": str(proposal_id), "project_id": str(project.id)},
    )
    return project


async def _apply_outcome(
    session: AsyncSession,
    *,
    proposal_id: UUID,
    kind: DecisionKind,
    reviewer_id: UUID,
    justification: str,
) -> None:
    proposal = await _lock_proposal(session, proposal_id)
    if kind == DecisionKind.REVISE:
        transition(proposal, ProposalStatus.REVISION_REQUIRED)
    else:
        transition(proposal, ProposalStatus.REJECTED)
        proposal.rejected_at = utcnow()
        proposal.rejected_by = reviewer_id
        proposal.rejection_reason = justification
        proposal.active_team_id = None
    session.add(proposal)
    await session.commit()


async def record_decision(
    session: AsyncSession,
    *,
    proposal_id: UUID,
    version_id: UUID,
    reviewer_id: UUID,
    kind: DecisionKind | str,
    justification: str,
    teams: TeamDirectory,
) -> Decision:
    """Validate, persist, and apply one reviewer verdict."""
    verdict = DecisionKind(kind)
    proposal = await Proposal.objects.by_id(proposal_id).first(session)
    if proposal is None or proposal.deleted_at is not None:
        raise NotFoundError("Proposal not found")
    if proposal.reviewer_id is None or proposal.reviewer_id != reviewer_id:
        raise ForbiddenError()
    if not can_review(proposal.status):
        raise InvalidStateError("Proposal is not awaiting review")
    version = await ProposalVersion.objects.by_id(version_id).first(session)
    if version is None or version.proposal_id != proposal.id:
        raise NotFoundError("Proposal version not found")
    newest = await latest_version(session, proposal.id)
    if newest is None or newest.id != version.id:
        raise InvalidStateError("Only the latest version can be reviewed")

    department_id = proposal.department_id
    if verdict == DecisionKind.APPROVE:
        if proposal.team_id is None:
            raise PreconditionError("Proposal has no team and cannot be approved")
        team = await teams.get_team(proposal.team_id)
        if team is None:
            raise PreconditionError("Proposal team no longer exists")
        department_id = team.department_id or department_id

    decision = Decision(
        proposal_id=proposal.id,
        version_id=version.id,
        reviewer_id=reviewer_id,
        kind=verdict.value,
        justification=justification.strip(),
        created_at=utcnow(),
    )
    session.add(decision)
    if proposal.status == ProposalStatus.SUBMITTED.value:
        transition(proposal, ProposalStatus.UNDER_REVIEW)
        session.add(proposal)
    await session.commit()
    logger.info(
        "proposal.decision.recorded",
        extra={
            "proposal_id": str(proposal.id),
            "decision_id": str(decision.id),
            "kind": verdict.value,
        },
    )

    if verdict == DecisionKind.APPROVE:
        await _apply_approval(
            session,
            proposal_id=proposal.id,
            version_id=version.id,
            reviewer_id=reviewer_id,
            department_id=department_id,
        )
    else:
        await _apply_outcome(
            session,
            proposal_id=proposal.id,
            kind=verdict,
            reviewer_id=reviewer_id,
            justification=decision.justification,
        )
    return decision
