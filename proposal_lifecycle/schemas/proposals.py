"""Schemas for proposal, version, decision, and project API payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import field_validator
from sqlmodel import Field, SQLModel

from proposal_lifecycle.schemas.files import FileDescriptorRead

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)

DecisionKind = Literal["approve", "revise", "reject"]


class ProposalContent(SQLModel):
    """Editable content of one proposal version."""

    title: str = Field(min_length=1, max_length=500)
    abstract: str = ""
    problem_statement: str = ""
    objectives: str = ""
    methodology: str = ""
    timeline: str = ""
    expected_outcomes: str = ""
    file: FileDescriptorRead | None = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("title must not be blank")
        return cleaned


class ProposalCreate(SQLModel):
    """Payload for creating a draft proposal."""

    team_id: UUID | None = None
    content: ProposalContent


class ProposalSubmit(SQLModel):
    """Payload for submitting a proposal on behalf of a team."""

    team_id: UUID


class DecisionCreate(SQLModel):
    """Reviewer verdict on a specific version."""

    version_id: UUID
    kind: DecisionKind
    justification: str = Field(min_length=1)

    @field_validator("justification")
    @classmethod
    def _justification_not_blank(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("justification must not be blank")
        return cleaned


class ReviewerAssign(SQLModel):
    """Payload for assigning the reviewer of a proposal."""

    reviewer_id: UUID


class StatePermissionsRead(SQLModel):
    """Actions a client may offer for the proposal's current status."""

    can_edit: bool
    can_overwrite: bool
    can_submit: bool
    can_review: bool
    is_terminal: bool
    allowed_transitions: list[str]


class ProposalRead(SQLModel):
    """Proposal payload returned by read endpoints."""

    id: UUID
    team_id: UUID | None = None
    department_id: UUID | None = None
    reviewer_id: UUID | None = None
    status: str
    status_description: str = ""
    created_by: UUID
    submission_count: int
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    rejected_at: datetime | None = None
    rejected_by: UUID | None = None
    rejection_reason: str | None = None
    created_at: datetime
    updated_at: datetime
    permissions: StatePermissionsRead | None = None


class ProposalVersionRead(SQLModel):
    """Version snapshot payload."""

    id: UUID
    proposal_id: UUID
    version_number: int
    title: str
    abstract: str
    problem_statement: str
    objectives: str
    methodology: str
    timeline: str
    expected_outcomes: str
    file_url: str | None = None
    file_hash: str | None = None
    file_size_bytes: int | None = None
    is_approved: bool
    is_locked: bool
    created_by: UUID
    created_at: datetime


class ProposalDetailRead(ProposalRead):
    """Proposal with its newest version inlined."""

    latest_version: ProposalVersionRead | None = None


class SubmitResponse(SQLModel):
    """Submit result with optional advisory enrichment."""

    proposal: ProposalRead
    advisory: dict[str, object] | None = None
    advisory_error: str | None = None


class DecisionRead(SQLModel):
    """Recorded reviewer decision."""

    id: UUID
    proposal_id: UUID
    version_id: UUID
    reviewer_id: UUID
    kind: str
    justification: str
    created_at: datetime


class ProjectRead(SQLModel):
    """Project derived from an approved proposal."""

    id: UUID
    proposal_id: UUID
    team_id: UUID
    department_id: UUID | None = None
    title: str
    summary: str
    approved_by: UUID
    visibility: str
    created_at: datetime


class ProposalListFilter(SQLModel):
    """Optional filters for proposal listings."""

    status: str | None = None
    team_id: UUID | None = None
    include_archived: bool = False
