"""Lifecycle service: the single entry point for proposal operations.

Each method authorizes the actor, runs its atomic step against the request
session, commits, and only then writes the audit entry and enqueues
notifications. Those trailing effects are best-effort and never undo the
committed step.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select

from proposal_lifecycle.core.auth import ActorContext, Role
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
from proposal_lifecycle.services.advisory import AdvisoryClient, AdvisoryError
from proposal_lifecycle.services.audit import record_audit_best_effort
from proposal_lifecycle.services.notifications import ProposalNotification, enqueue_notification
from proposal_lifecycle.services.proposals import decisions as decision_processor
from proposal_lifecycle.services.proposals.state_machine import (
    ProposalStatus,
    can_overwrite,
    can_submit,
    transition,
)
from proposal_lifecycle.services.proposals.versions import (
    append_new_version,
    create_initial_version,
    latest_version,
    list_versions,
    lock_versions,
    overwrite_draft_version,
)

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from proposal_lifecycle.schemas.proposals import ProposalContent, ProposalListFilter
    from proposal_lifecycle.services.teams import TeamDirectory, TeamInfo

logger = get_logger(__name__)

_ASSIGNABLE_STATUSES = frozenset(
    {
        ProposalStatus.DRAFT.value,
        ProposalStatus.SUBMITTED.value,
        ProposalStatus.REVISION_REQUIRED.value,
    }
)
PROJECT_PUBLIC = "public"


@dataclass(frozen=True)
class SubmitResult:
    proposal: Proposal
    advisory: dict[str, Any] | None = None
    advisory_error: str | None = None


def _snapshot(proposal: Proposal) -> dict[str, object]:
    return {
        "status": proposal.status,
        "team_id": str(proposal.team_id) if proposal.team_id else None,
        "reviewer_id": str(proposal.reviewer_id) if proposal.reviewer_id else None,
        "submission_count": proposal.submission_count,
    }


class ProposalLifecycleService:
    """Authorizes actors and coordinates versions, transitions, and decisions."""

    def __init__(
        self,
        *,
        teams: TeamDirectory,
        advisory: AdvisoryClient | None = None,
        notify: Callable[[ProposalNotification], bool] = enqueue_notification,
    ) -> None:
        self.teams = teams
        self.advisory = advisory
        self.notify = notify

    # Shared helpers

    async def _require_team(self, team_id: UUID) -> TeamInfo:
        team = await self.teams.get_team(team_id)
        if team is None:
            raise NotFoundError("Team not found")
        return team

    async def _load(
        self,
        session: AsyncSession,
        proposal_id: UUID,
        *,
        lock: bool = False,
    ) -> Proposal:
        query = Proposal.objects.by_id(proposal_id)
        if lock:
            query = query.for_update()
        proposal = await query.first(session)
        if proposal is None or proposal.deleted_at is not None:
            raise NotFoundError("Proposal not found")
        return proposal

    async def _load_visible(
        self,
        session: AsyncSession,
        proposal_id: UUID,
        actor: ActorContext,
        *,
        lock: bool = False,
    ) -> Proposal:
        proposal = await self._load(session, proposal_id, lock=lock)
        if not await self.can_view(proposal, actor):
            raise NotFoundError("Proposal not found")
        return proposal

    @staticmethod
    async def _ensure_team_free(
        session: AsyncSession,
        team_id: UUID,
        *,
        exclude: UUID | None = None,
    ) -> None:
        query = Proposal.objects.filter_by(active_team_id=team_id)
        if exclude is not None:
            query = query.filter(col(Proposal.id) != exclude)
        if await query.first(session) is not None:
            raise ConflictError("Team already has an active proposal")

    async def _require_author(self, proposal: Proposal, actor: ActorContext) -> None:
        if proposal.created_by == actor.user_id:
            return
        if proposal.team_id is not None:
            team = await self.teams.get_team(proposal.team_id)
            if team is not None and team.leader_id == actor.user_id:
                return
        raise ForbiddenError()

    @staticmethod
    def _require_admin(actor: ActorContext) -> None:
        if not actor.is_admin:
            raise ForbiddenError()

    async def _audience(self, proposal: Proposal) -> list[UUID]:
        targets: set[UUID] = {proposal.created_by}
        if proposal.team_id is not None:
            team = await self.teams.get_team(proposal.team_id)
            if team is not None:
                targets.add(team.leader_id)
                targets.update(team.member_ids)
        return sorted(targets, key=str)

    async def _after_commit(
        self,
        session: AsyncSession,
        *,
        proposal: Proposal,
        actor: ActorContext,
        action: str,
        old_state: dict[str, object] | None,
        event_type: str | None = None,
        targets: list[UUID] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        await record_audit_best_effort(
            session,
            entity_type="proposal",
            entity_id=proposal.id,
            action=action,
            actor_id=actor.user_id,
            actor_role=actor.role.value,
            old_state=old_state,
            new_state=_snapshot(proposal),
            context=payload,
        )
        if event_type is None:
            return
        try:
            audience = targets if targets is not None else await self._audience(proposal)
            self.notify(
                ProposalNotification(
                    event_type=event_type,
                    proposal_id=proposal.id,
                    target_ids=[target for target in audience if target != actor.user_id],
                    payload=payload or {},
                )
            )
        except Exception:
            logger.warning(
                "proposal.notification.failed",
                extra={"proposal_id": str(proposal.id), "event_type": event_type},
                exc_info=True,
            )

    # Mutations

    async def create_draft(
        self,
        session: AsyncSession,
        *,
        actor: ActorContext,
        team_id: UUID | None,
        content: ProposalContent,
    ) -> Proposal:
        """Create a draft proposal with its first version in one transaction."""
        if actor.role == Role.PUBLIC:
            raise ForbiddenError()
        department_id = None
        if team_id is not None:
            team = await self._require_team(team_id)
            if team.leader_id != actor.user_id:
                raise ForbiddenError("Only the team leader can create a proposal for the team")
            await self._ensure_team_free(session, team_id)
            department_id = team.department_id

        proposal = Proposal(
            team_id=team_id,
            active_team_id=team_id,
            department_id=department_id,
            status=ProposalStatus.DRAFT.value,
            created_by=actor.user_id,
        )
        session.add(proposal)
        try:
            await session.flush()
            await create_initial_version(
                session,
                proposal_id=proposal.id,
                content=content,
                author_id=actor.user_id,
            )
            await session.commit()
        except IntegrityError as exc:
            await session.rollback()
            raise ConflictError("Team already has an active proposal") from exc
        logger.info(
            "proposal.created",
            extra={"proposal_id": str(proposal.id), "team_id": str(team_id) if team_id else None},
        )
        await self._after_commit(
            session,
            proposal=proposal,
            actor=actor,
            action="proposal.created",
            old_state=None,
        )
        return proposal

    async def update_content(
        self,
        session: AsyncSession,
        *,
        proposal_id: UUID,
        actor: ActorContext,
        content: ProposalContent,
    ) -> ProposalVersion:
        """Overwrite the draft or append a revision, depending on status."""
        proposal = await self._load_visible(session, proposal_id, actor)
        await self._require_author(proposal, actor)
        proposal = await self._load(session, proposal_id, lock=True)
        if can_overwrite(proposal.status):
            version = await overwrite_draft_version(session, proposal=proposal, content=content)
        elif proposal.status == ProposalStatus.REVISION_REQUIRED.value:
            version = await append_new_version(
                session,
                proposal_id=proposal.id,
                content=content,
                author_id=actor.user_id,
            )
        else:
            raise InvalidStateError("Proposal content cannot be changed in its current status")
        proposal.updated_at = utcnow()
        session.add(proposal)
        await session.commit()
        logger.info(
            "proposal.content.updated",
            extra={"proposal_id": str(proposal.id), "version_number": version.version_number},
        )
        await self._after_commit(
            session,
            proposal=proposal,
            actor=actor,
            action="proposal.content_updated",
            old_state=None,
            payload={"version_number": version.version_number},
        )
        return version

    async def submit(
        self,
        session: AsyncSession,
        *,
        proposal_id: UUID,
        actor: ActorContext,
        team_id: UUID,
    ) -> SubmitResult:
        """Submit for review on behalf of a finalized team.

        The team is resolved before the proposal row is locked so the lock is
        never held across the team service call.
        """
        team = await self._require_team(team_id)
        if team.leader_id != actor.user_id:
            raise ForbiddenError("Only the team leader can submit")
        if not team.is_finalized:
            raise PreconditionError("Team must be finalized before submitting")
        await self._load_visible(session, proposal_id, actor)
        proposal = await self._load(session, proposal_id, lock=True)
        if not can_submit(proposal.status):
            raise InvalidStateError("Proposal cannot be submitted in its current status")
        if proposal.team_id is not None and proposal.team_id != team_id:
            raise ConflictError("Proposal belongs to a different team")
        await self._ensure_team_free(session, team_id, exclude=proposal.id)

        newest = await latest_version(session, proposal.id)
        if newest is None:
            raise NotFoundError("Proposal has no versions")
        if proposal.status == ProposalStatus.REVISION_REQUIRED.value and newest.is_locked:
            raise InvalidStateError("Add a revised version before resubmitting")

        old_state = _snapshot(proposal)
        proposal.team_id = team_id
        proposal.active_team_id = team_id
        proposal.department_id = team.department_id or proposal.department_id
        if proposal.reviewer_id is None and team.advisor_id is not None:
            proposal.reviewer_id = team.advisor_id
        transition(proposal, ProposalStatus.SUBMITTED)
        proposal.submission_count += 1
        proposal.submitted_at = utcnow()
        session.add(proposal)
        await lock_versions(session, proposal.id)
        try:
            await session.commit()
        except IntegrityError as exc:
            await session.rollback()
            raise ConflictError("Team already has an active proposal") from exc
        logger.info(
            "proposal.submitted",
            extra={
                "proposal_id": str(proposal.id),
                "version_number": newest.version_number,
                "submission_count": proposal.submission_count,
            },
        )

        targets = [proposal.reviewer_id] if proposal.reviewer_id else []
        await self._after_commit(
            session,
            proposal=proposal,
            actor=actor,
            action="proposal.submitted",
            old_state=old_state,
            event_type="proposal_submitted",
            targets=targets,
            payload={"version_number": newest.version_number},
        )
        return await self._with_advisory(proposal, newest)

    async def _with_advisory(self, proposal: Proposal, version: ProposalVersion) -> SubmitResult:
        if self.advisory is None or not self.advisory.enabled:
            return SubmitResult(proposal=proposal)
        try:
            result = await self.advisory.check_proposal(version)
        except AdvisoryError as exc:
            return SubmitResult(proposal=proposal, advisory_error=str(exc))
        return SubmitResult(proposal=proposal, advisory=result)

    async def record_decision(
        self,
        session: AsyncSession,
        *,
        proposal_id: UUID,
        actor: ActorContext,
        version_id: UUID,
        kind: str,
        justification: str,
    ) -> Decision:
        """Record the reviewer's verdict and apply its lifecycle effects."""
        verdict = decision_processor.DecisionKind(kind)
        await self._load_visible(session, proposal_id, actor)
        decision = await decision_processor.record_decision(
            session,
            proposal_id=proposal_id,
            version_id=version_id,
            reviewer_id=actor.user_id,
            kind=verdict,
            justification=justification,
            teams=self.teams,
        )
        proposal = await self._load_any(session, proposal_id)
        event_type = (
            "proposal_approved"
            if verdict == decision_processor.DecisionKind.APPROVE
            else "decision_recorded"
        )
        await self._after_commit(
            session,
            proposal=proposal,
            actor=actor,
            action=f"proposal.decision.{verdict.value}",
            old_state=None,
            event_type=event_type,
            payload={"decision_id": str(decision.id), "kind": verdict.value},
        )
        return decision

    @staticmethod
    async def _load_any(session: AsyncSession, proposal_id: UUID) -> Proposal:
        proposal = await Proposal.objects.by_id(proposal_id).first(session)
        if proposal is None:
            raise NotFoundError("Proposal not found")
        return proposal

    async def delete_draft(
        self,
        session: AsyncSession,
        *,
        proposal_id: UUID,
        actor: ActorContext,
    ) -> None:
        """Physically delete a draft and its versions; creator only.

        Both DELETEs are restricted to rows whose proposal is still a draft, so
        a submission that commits first leaves everything in place.
        """
        proposal = await self._load_visible(session, proposal_id, actor)
        if proposal.created_by != actor.user_id:
            raise ForbiddenError()
        proposal = await self._load(session, proposal_id, lock=True)
        if proposal.status != ProposalStatus.DRAFT.value:
            raise InvalidStateError("Only draft proposals can be deleted")
        old_state = _snapshot(proposal)
        still_draft = select(Proposal.id).where(
            col(Proposal.id) == proposal_id,
            col(Proposal.status) == ProposalStatus.DRAFT.value,
        )
        await session.exec(
            delete(ProposalVersion)
            .where(col(ProposalVersion.proposal_id).in_(still_draft))
            .execution_options(synchronize_session=False)
        )
        result = await session.exec(
            delete(Proposal)
            .where(col(Proposal.id) == proposal_id)
            .where(col(Proposal.status) == ProposalStatus.DRAFT.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await session.rollback()
            raise InvalidStateError("Only draft proposals can be deleted")
        await session.commit()
        session.expunge(proposal)
        logger.info("proposal.deleted", extra={"proposal_id": str(proposal_id)})
        await record_audit_best_effort(
            session,
            entity_type="proposal",
            entity_id=proposal_id,
            action="proposal.deleted",
            actor_id=actor.user_id,
            actor_role=actor.role.value,
            old_state=old_state,
        )

    async def assign_reviewer(
        self,
        session: AsyncSession,
        *,
        proposal_id: UUID,
        actor: ActorContext,
        reviewer_id: UUID,
    ) -> Proposal:
        """Admin assignment of the single reviewer; starts review when submitted."""
        self._require_admin(actor)
        proposal = await self._load_visible(session, proposal_id, actor, lock=True)
        if proposal.status not in _ASSIGNABLE_STATUSES:
            raise InvalidStateError("Reviewer cannot be changed in the current status")
        old_state = _snapshot(proposal)
        proposal.reviewer_id = reviewer_id
        if proposal.status == ProposalStatus.SUBMITTED.value:
            transition(proposal, ProposalStatus.UNDER_REVIEW)
        proposal.updated_at = utcnow()
        session.add(proposal)
        await session.commit()
        logger.info(
            "proposal.reviewer.assigned",
            extra={"proposal_id": str(proposal.id), "reviewer_id": str(reviewer_id)},
        )
        await self._after_commit(
            session,
            proposal=proposal,
            actor=actor,
            action="proposal.reviewer_assigned",
            old_state=old_state,
            event_type="reviewer_assigned",
            targets=[reviewer_id],
        )
        return proposal

    async def archive(
        self,
        session: AsyncSession,
        *,
        proposal_id: UUID,
        actor: ActorContext,
    ) -> Proposal:
        """Soft-delete a proposal that has left draft; frees its team slot."""
        self._require_admin(actor)
        proposal = await self._load_visible(session, proposal_id, actor, lock=True)
        if proposal.status == ProposalStatus.DRAFT.value:
            raise InvalidStateError("Drafts are deleted by their creator, not archived")
        old_state = _snapshot(proposal)
        proposal.deleted_at = utcnow()
        proposal.active_team_id = None
        proposal.updated_at = proposal.deleted_at
        session.add(proposal)
        await session.commit()
        logger.info("proposal.archived", extra={"proposal_id": str(proposal.id)})
        await self._after_commit(
            session,
            proposal=proposal,
            actor=actor,
            action="proposal.archived",
            old_state=old_state,
        )
        return proposal

    async def publish_project(
        self,
        session: AsyncSession,
        *,
        proposal_id: UUID,
        actor: ActorContext,
    ) -> Project:
        """Make the project derived from an approved proposal public.

        Allowed for the proposal's author or team leader, its reviewer, and
        admins of its department. Publishing twice is a no-op.
        """
        proposal = await self._load_visible(session, proposal_id, actor)
        if not actor.is_admin and proposal.reviewer_id != actor.user_id:
            await self._require_author(proposal, actor)
        project = (
            await Project.objects.filter_by(proposal_id=proposal.id).for_update().first(session)
        )
        if project is None:
            raise NotFoundError("Project not found")
        if project.visibility == PROJECT_PUBLIC:
            return project
        project.visibility = PROJECT_PUBLIC
        session.add(project)
        await session.commit()
        logger.info(
            "proposal.project.published",
            extra={"proposal_id": str(proposal.id), "project_id": str(project.id)},
        )
        await self._after_commit(
            session,
            proposal=proposal,
            actor=actor,
            action="proposal.project_published",
            old_state=None,
            event_type="project_published",
            payload={"project_id": str(project.id), "project_title": project.title},
        )
        return project

    # Reads

    async def can_view(self, proposal: Proposal, actor: ActorContext) -> bool:
        if actor.role == Role.ADMIN:
            return actor.department_id is not None and proposal.department_id == actor.department_id
        if actor.role == Role.ADVISOR:
            return proposal.reviewer_id == actor.user_id
        if actor.role == Role.STUDENT:
            if proposal.created_by == actor.user_id:
                return True
            if proposal.status == ProposalStatus.DRAFT.value or proposal.team_id is None:
                return False
            team = await self.teams.get_team(proposal.team_id)
            return team is not None and team.is_member(actor.user_id)
        return False

    async def get_proposal(
        self,
        session: AsyncSession,
        *,
        proposal_id: UUID,
        actor: ActorContext,
    ) -> Proposal:
        return await self._load_visible(session, proposal_id, actor)

    async def list_versions(
        self,
        session: AsyncSession,
        *,
        proposal_id: UUID,
        actor: ActorContext,
    ) -> list[ProposalVersion]:
        proposal = await self.get_proposal(session, proposal_id=proposal_id, actor=actor)
        return await list_versions(session, proposal.id)

    async def latest_version(
        self,
        session: AsyncSession,
        *,
        proposal: Proposal,
    ) -> ProposalVersion | None:
        return await latest_version(session, proposal.id)

    async def list_decisions(
        self,
        session: AsyncSession,
        *,
        proposal_id: UUID,
        actor: ActorContext,
    ) -> list[Decision]:
        proposal = await self.get_proposal(session, proposal_id=proposal_id, actor=actor)
        return await (
            Decision.objects.filter_by(proposal_id=proposal.id)
            .order_by(col(Decision.created_at).desc())
            .all(session)
        )

    async def get_project(
        self,
        session: AsyncSession,
        *,
        proposal_id: UUID,
        actor: ActorContext,
    ) -> Project:
        proposal = await self.get_proposal(session, proposal_id=proposal_id, actor=actor)
        project = await Project.objects.filter_by(proposal_id=proposal.id).first(session)
        if project is None:
            raise NotFoundError("Project not found")
        return project

    async def list_proposals(
        self,
        session: AsyncSession,
        *,
        actor: ActorContext,
        filters: ProposalListFilter,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Proposal]:
        """List proposals visible to the actor, newest first."""
        query = Proposal.objects.all()
        if actor.role == Role.ADMIN:
            if actor.department_id is None:
                return []
            query = query.filter(col(Proposal.department_id) == actor.department_id)
        elif actor.role == Role.ADVISOR:
            query = query.filter(col(Proposal.reviewer_id) == actor.user_id)
        elif actor.role == Role.STUDENT:
            own = col(Proposal.created_by) == actor.user_id
            if filters.team_id is not None:
                team = await self.teams.get_team(filters.team_id)
                if team is not None and team.is_member(actor.user_id):
                    own = or_(
                        own,
                        (col(Proposal.team_id) == filters.team_id)
                        & (col(Proposal.status) != ProposalStatus.DRAFT.value),
                    )
            query = query.filter(own)
        else:
            return []

        if not (filters.include_archived and actor.is_admin):
            query = query.filter(col(Proposal.deleted_at).is_(None))
        if filters.status is not None:
            query = query.filter(col(Proposal.status) == filters.status)
        if filters.team_id is not None:
            query = query.filter(col(Proposal.team_id) == filters.team_id)
        return await (
            query.order_by(col(Proposal.created_at).desc(), col(Proposal.id))
            .offset(offset)
            .limit(limit)
            .all(session)
        )
