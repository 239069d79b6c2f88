# ruff: noqa: INP001
"""End-to-end lifecycle scenarios through the service facade."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import replace
from pathlib import Path
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from proposal_lifecycle import models  # noqa: F401 - registers tables
from proposal_lifecycle.core.auth import ActorContext, Role
from proposal_lifecycle.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    PreconditionError,
)
from proposal_lifecycle.models.audit_entries import AuditEntry
from proposal_lifecycle.models.decisions import Decision
from proposal_lifecycle.models.projects import Project
from proposal_lifecycle.models.proposal_versions import ProposalVersion
from proposal_lifecycle.models.proposals import Proposal
from proposal_lifecycle.schemas.proposals import ProposalContent, ProposalListFilter
from proposal_lifecycle.services.notifications import ProposalNotification
from proposal_lifecycle.services.proposals.lifecycle import ProposalLifecycleService
from proposal_lifecycle.services.teams import TeamInfo


class _FakeTeams:
    def __init__(self, *teams: TeamInfo) -> None:
        self.teams = {team.id: team for team in teams}

    async def get_team(self, team_id: UUID) -> TeamInfo | None:
        return self.teams.get(team_id)

    def finalize(self, team_id: UUID) -> None:
        self.teams[team_id] = replace(self.teams[team_id], is_finalized=True)


class _Outbox:
    def __init__(self) -> None:
        self.sent: list[ProposalNotification] = []

    def __call__(self, notification: ProposalNotification) -> bool:
        self.sent.append(notification)
        return True

    @property
    def events(self) -> list[str]:
        return [item.event_type for item in self.sent]


async def _make_engine(db_path: Path | None = None) -> AsyncEngine:
    url = f"sqlite+aiosqlite:///{db_path}" if db_path else "sqlite+aiosqlite:///:memory:"
    engine = create_async_engine(url)
    async with engine.connect() as conn, conn.begin():
        await conn.run_sync(SQLModel.metadata.create_all)
    return engine


def _student(user_id: UUID | None = None) -> ActorContext:
    return ActorContext(user_id=user_id or uuid4(), role=Role.STUDENT)


def _content(title: str) -> ProposalContent:
    return ProposalContent(title=title, abstract=f"{title} abstract", methodology="Survey")


class _World:
    def __init__(self, *, finalized: bool = True) -> None:
        self.department_id = uuid4()
        self.leader = _student()
        self.member = _student()
        self.advisor = ActorContext(user_id=uuid4(), role=Role.ADVISOR)
        self.admin = ActorContext(
            user_id=uuid4(), role=Role.ADMIN, department_id=self.department_id
        )
        self.team = TeamInfo(
            id=uuid4(),
            leader_id=self.leader.user_id,
            is_finalized=finalized,
            member_ids=frozenset({self.member.user_id}),
            department_id=self.department_id,
        )
        self.teams = _FakeTeams(self.team)
        self.outbox = _Outbox()
        self.service = ProposalLifecycleService(teams=self.teams, notify=self.outbox)


@pytest.mark.asyncio
async def test_full_revision_cycle_ends_with_one_project() -> None:
    engine = await _make_engine()
    world = _World(finalized=False)
    service = world.service
    try:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            proposal = await service.create_draft(
                session,
                actor=world.leader,
                team_id=world.team.id,
                content=_content("Solar lab"),
            )
            assert proposal.status == "draft"
            assert proposal.department_id == world.department_id

            edited = await service.update_content(
                session,
                proposal_id=proposal.id,
                actor=world.leader,
                content=_content("Solar lab v1"),
            )
            assert edited.version_number == 1

            with pytest.raises(PreconditionError):
                await service.submit(
                    session, proposal_id=proposal.id, actor=world.leader, team_id=world.team.id
                )

            world.teams.finalize(world.team.id)
            submitted = await service.submit(
                session, proposal_id=proposal.id, actor=world.leader, team_id=world.team.id
            )
            assert submitted.proposal.status == "submitted"
            assert submitted.proposal.submission_count == 1
            assert submitted.advisory is None
            assert submitted.advisory_error is None

            with pytest.raises(InvalidStateError):
                await service.update_content(
                    session,
                    proposal_id=proposal.id,
                    actor=world.leader,
                    content=_content("Too late"),
                )

            assigned = await service.assign_reviewer(
                session,
                proposal_id=proposal.id,
                actor=world.admin,
                reviewer_id=world.advisor.user_id,
            )
            assert assigned.status == "under_review"

            v1 = await service.latest_version(session, proposal=assigned)
            assert v1 is not None
            assert v1.is_locked is True
            await service.record_decision(
                session,
                proposal_id=proposal.id,
                actor=world.advisor,
                version_id=v1.id,
                kind="revise",
                justification="Clarify the budget",
            )

            v2 = await service.update_content(
                session,
                proposal_id=proposal.id,
                actor=world.leader,
                content=_content("Solar lab v2"),
            )
            assert v2.version_number == 2

            resubmitted = await service.submit(
                session, proposal_id=proposal.id, actor=world.leader, team_id=world.team.id
            )
            assert resubmitted.proposal.status == "submitted"
            assert resubmitted.proposal.submission_count == 2

            await service.record_decision(
                session,
                proposal_id=proposal.id,
                actor=world.advisor,
                version_id=v2.id,
                kind="approve",
                justification="Ready to go",
            )

            final = await Proposal.objects.by_id(proposal.id).first(session)
            assert final is not None
            assert final.status == "approved"
            assert final.active_team_id is None
            versions = await ProposalVersion.objects.filter_by(proposal_id=proposal.id).all(session)
            approved = {v.version_number: v.is_approved for v in versions}
            assert approved == {1: False, 2: True}
            projects = await Project.objects.filter_by(proposal_id=proposal.id).all(session)
            assert len(projects) == 1
            assert projects[0].title == "Solar lab v2"

            project = await service.get_project(
                session, proposal_id=proposal.id, actor=world.member
            )
            assert project.id == projects[0].id
            decisions = await service.list_decisions(
                session, proposal_id=proposal.id, actor=world.advisor
            )
            assert sorted(d.kind for d in decisions) == ["approve", "revise"]

            assert world.outbox.events == [
                "proposal_submitted",
                "reviewer_assigned",
                "decision_recorded",
                "proposal_submitted",
                "proposal_approved",
            ]
            assert world.outbox.sent[1].target_ids == [world.advisor.user_id]
            assert world.outbox.sent[3].target_ids == [world.advisor.user_id]
            approval = world.outbox.sent[4]
            assert world.advisor.user_id not in approval.target_ids
            assert set(approval.target_ids) == {world.leader.user_id, world.member.user_id}

            actions = {
                entry.action
                for entry in await AuditEntry.objects.filter_by(entity_id=proposal.id).all(session)
            }
            expected = {"proposal.created", "proposal.submitted", "proposal.decision.approve"}
            assert expected <= actions

            with pytest.raises(ForbiddenError):
                await service.publish_project(
                    session, proposal_id=proposal.id, actor=world.member
                )
            published = await service.publish_project(
                session, proposal_id=proposal.id, actor=world.advisor
            )
            assert published.visibility == "public"
            again = await service.publish_project(
                session, proposal_id=proposal.id, actor=world.admin
            )
            assert again.id == published.id
            assert world.outbox.events.count("project_published") == 1
            assert set(world.outbox.sent[-1].target_ids) == {
                world.leader.user_id,
                world.member.user_id,
            }
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_team_holds_at_most_one_active_proposal() -> None:
    engine = await _make_engine()
    world = _World()
    service = world.service
    try:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            first = await service.create_draft(
                session, actor=world.leader, team_id=world.team.id, content=_content("One")
            )
            with pytest.raises(ConflictError):
                await service.create_draft(
                    session, actor=world.leader, team_id=world.team.id, content=_content("Two")
                )

            loose = await service.create_draft(
                session, actor=world.leader, team_id=None, content=_content("Unattached")
            )
            with pytest.raises(ConflictError):
                await service.submit(
                    session, proposal_id=loose.id, actor=world.leader, team_id=world.team.id
                )

            await service.delete_draft(session, proposal_id=first.id, actor=world.leader)
            assert await Proposal.objects.by_id(first.id).first(session) is None
            assert await ProposalVersion.objects.filter_by(proposal_id=first.id).all(session) == []

            result = await service.submit(
                session, proposal_id=loose.id, actor=world.leader, team_id=world.team.id
            )
            assert result.proposal.team_id == world.team.id
            assert result.proposal.status == "submitted"
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_only_leader_creates_and_submits_for_team() -> None:
    engine = await _make_engine()
    world = _World()
    service = world.service
    try:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            with pytest.raises(ForbiddenError):
                await service.create_draft(
                    session, actor=world.member, team_id=world.team.id, content=_content("No")
                )
            public = ActorContext(user_id=uuid4(), role=Role.PUBLIC)
            with pytest.raises(ForbiddenError):
                await service.create_draft(
                    session, actor=public, team_id=None, content=_content("No")
                )

            proposal = await service.create_draft(
                session, actor=world.leader, team_id=world.team.id, content=_content("Yes")
            )
            with pytest.raises(ForbiddenError):
                await service.submit(
                    session, proposal_id=proposal.id, actor=world.member, team_id=world.team.id
                )
            with pytest.raises(NotFoundError):
                await service.delete_draft(session, proposal_id=proposal.id, actor=world.member)

            await service.submit(
                session, proposal_id=proposal.id, actor=world.leader, team_id=world.team.id
            )
            with pytest.raises(ForbiddenError):
                await service.submit(
                    session, proposal_id=proposal.id, actor=world.member, team_id=world.team.id
                )
            with pytest.raises(ForbiddenError):
                await service.delete_draft(session, proposal_id=proposal.id, actor=world.member)
            with pytest.raises(InvalidStateError):
                await service.delete_draft(session, proposal_id=proposal.id, actor=world.leader)
            stored = await Proposal.objects.by_id(proposal.id).first(session)
            assert stored is not None
            assert stored.status == "submitted"
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_archive_hides_proposal_and_frees_team() -> None:
    engine = await _make_engine()
    world = _World()
    service = world.service
    try:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            proposal = await service.create_draft(
                session, actor=world.leader, team_id=world.team.id, content=_content("Archive me")
            )
            with pytest.raises(InvalidStateError):
                await service.archive(session, proposal_id=proposal.id, actor=world.admin)

            await service.submit(
                session, proposal_id=proposal.id, actor=world.leader, team_id=world.team.id
            )
            with pytest.raises(ForbiddenError):
                await service.archive(session, proposal_id=proposal.id, actor=world.leader)

            archived = await service.archive(session, proposal_id=proposal.id, actor=world.admin)
            assert archived.deleted_at is not None
            assert archived.active_team_id is None

            with pytest.raises(NotFoundError):
                await service.get_proposal(session, proposal_id=proposal.id, actor=world.leader)
            visible = await service.list_proposals(
                session, actor=world.leader, filters=ProposalListFilter()
            )
            assert visible == []
            admin_view = await service.list_proposals(
                session, actor=world.admin, filters=ProposalListFilter(include_archived=True)
            )
            assert [p.id for p in admin_view] == [proposal.id]

            replacement = await service.create_draft(
                session, actor=world.leader, team_id=world.team.id, content=_content("Fresh start")
            )
            assert replacement.active_team_id == world.team.id
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_visibility_follows_role() -> None:
    engine = await _make_engine()
    world = _World()
    service = world.service
    stranger_admin = ActorContext(user_id=uuid4(), role=Role.ADMIN, department_id=uuid4())
    try:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            proposal = await service.create_draft(
                session, actor=world.leader, team_id=world.team.id, content=_content("Seen")
            )
            assert await service.can_view(proposal, world.leader)
            assert not await service.can_view(proposal, world.member)
            assert not await service.can_view(proposal, world.advisor)
            assert await service.can_view(proposal, world.admin)
            assert not await service.can_view(proposal, stranger_admin)

            await service.submit(
                session, proposal_id=proposal.id, actor=world.leader, team_id=world.team.id
            )
            assert await service.can_view(proposal, world.member)

            member_list = await service.list_proposals(
                session,
                actor=world.member,
                filters=ProposalListFilter(team_id=world.team.id),
            )
            assert [p.id for p in member_list] == [proposal.id]
            assert await service.list_proposals(
                session, actor=world.member, filters=ProposalListFilter()
            ) == []

            await service.assign_reviewer(
                session,
                proposal_id=proposal.id,
                actor=world.admin,
                reviewer_id=world.advisor.user_id,
            )
            advisor_list = await service.list_proposals(
                session, actor=world.advisor, filters=ProposalListFilter(status="under_review")
            )
            assert [p.id for p in advisor_list] == [proposal.id]
            with pytest.raises(NotFoundError):
                await service.assign_reviewer(
                    session,
                    proposal_id=proposal.id,
                    actor=stranger_admin,
                    reviewer_id=uuid4(),
                )
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_notification_failure_does_not_undo_submit() -> None:
    engine = await _make_engine()
    world = _World()

    def _broken(notification: ProposalNotification) -> bool:
        raise RuntimeError("queue down")

    service = ProposalLifecycleService(teams=world.teams, notify=_broken)
    try:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            proposal = await service.create_draft(
                session, actor=world.leader, team_id=world.team.id, content=_content("Resilient")
            )
            result = await service.submit(
                session, proposal_id=proposal.id, actor=world.leader, team_id=world.team.id
            )
            assert result.proposal.status == "submitted"
            stored = await Proposal.objects.by_id(proposal.id).first(session)
            assert stored is not None
            assert stored.status == "submitted"
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_hidden_proposals_answer_not_found_to_mutations() -> None:
    engine = await _make_engine()
    world = _World()
    service = world.service
    outsider = _student()
    stranger_advisor = ActorContext(user_id=uuid4(), role=Role.ADVISOR)
    try:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            proposal = await service.create_draft(
                session, actor=world.leader, team_id=world.team.id, content=_content("Private")
            )
            with pytest.raises(NotFoundError):
                await service.update_content(
                    session, proposal_id=proposal.id, actor=outsider, content=_content("Mine")
                )
            with pytest.raises(NotFoundError):
                await service.delete_draft(session, proposal_id=proposal.id, actor=outsider)

            submitted = await service.submit(
                session, proposal_id=proposal.id, actor=world.leader, team_id=world.team.id
            )
            version = await service.latest_version(session, proposal=submitted.proposal)
            assert version is not None
            with pytest.raises(NotFoundError):
                await service.record_decision(
                    session,
                    proposal_id=proposal.id,
                    actor=stranger_advisor,
                    version_id=version.id,
                    kind="approve",
                    justification="Not mine to judge",
                )
            with pytest.raises(NotFoundError):
                await service.archive(
                    session,
                    proposal_id=proposal.id,
                    actor=ActorContext(user_id=uuid4(), role=Role.ADMIN, department_id=uuid4()),
                )

            stored = await Proposal.objects.by_id(proposal.id).first(session)
            assert stored is not None
            assert stored.status == "submitted"
            assert await Decision.objects.filter_by(proposal_id=proposal.id).all(session) == []
    finally:
        await engine.dispose()


def _submit_first(
    engine: AsyncEngine,
    world: _World,
    service: ProposalLifecycleService,
    proposal_id: UUID,
) -> Callable[[Proposal, ActorContext], Awaitable[bool]]:
    """Wrap ``service.can_view`` so a rival session submits the draft first."""
    rival = ProposalLifecycleService(teams=world.teams, notify=world.outbox)
    original = service.can_view

    async def _can_view(proposal: Proposal, actor: ActorContext) -> bool:
        async with AsyncSession(engine, expire_on_commit=False) as other:
            await rival.submit(
                other, proposal_id=proposal_id, actor=world.leader, team_id=world.team.id
            )
        return await original(proposal, actor)

    return _can_view


@pytest.mark.asyncio
async def test_draft_edit_racing_a_submit_keeps_the_locked_version(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    engine = await _make_engine(tmp_path / "edit_race.db")
    world = _World()
    service = world.service
    try:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            proposal = await service.create_draft(
                session, actor=world.leader, team_id=world.team.id, content=_content("Original")
            )
            proposal_id = proposal.id

        monkeypatch.setattr(
            service, "can_view", _submit_first(engine, world, service, proposal_id)
        )
        async with AsyncSession(engine, expire_on_commit=False) as session:
            with pytest.raises(InvalidStateError):
                await service.update_content(
                    session,
                    proposal_id=proposal_id,
                    actor=world.leader,
                    content=_content("Rewritten after submit"),
                )

        async with AsyncSession(engine, expire_on_commit=False) as session:
            stored = await Proposal.objects.by_id(proposal_id).first(session)
            assert stored is not None
            assert stored.status == "submitted"
            versions = await ProposalVersion.objects.filter_by(proposal_id=proposal_id).all(session)
            assert [(v.version_number, v.title, v.is_locked) for v in versions] == [
                (1, "Original", True)
            ]
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_draft_delete_racing_a_submit_keeps_the_proposal(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    engine = await _make_engine(tmp_path / "delete_race.db")
    world = _World()
    service = world.service
    try:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            proposal = await service.create_draft(
                session, actor=world.leader, team_id=world.team.id, content=_content("Keep me")
            )
            proposal_id = proposal.id

        monkeypatch.setattr(
            service, "can_view", _submit_first(engine, world, service, proposal_id)
        )
        async with AsyncSession(engine, expire_on_commit=False) as session:
            with pytest.raises(InvalidStateError):
                await service.delete_draft(session, proposal_id=proposal_id, actor=world.leader)

        async with AsyncSession(engine, expire_on_commit=False) as session:
            stored = await Proposal.objects.by_id(proposal_id).first(session)
            assert stored is not None
            assert stored.status == "submitted"
            versions = await ProposalVersion.objects.filter_by(proposal_id=proposal_id).all(session)
            assert len(versions) == 1
    finally:
        await engine.dispose()
