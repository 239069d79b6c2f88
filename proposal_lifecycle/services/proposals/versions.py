"""Append-only version store for proposal content.

Version numbers are allocated under a row lock on the owning proposal and
backed by the ``(proposal_id, version_number)`` UNIQUE constraint, so two
concurrent appends can never both produce the same number.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select

from proposal_lifecycle.core.errors import ConflictError, InvalidStateError, NotFoundError
from proposal_lifecycle.core.logging import get_logger
from proposal_lifecycle.core.time import utcnow
from proposal_lifecycle.models.proposal_versions import ProposalVersion
from proposal_lifecycle.models.proposals import Proposal
from proposal_lifecycle.services.proposals.state_machine import can_overwrite

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from proposal_lifecycle.schemas.proposals import ProposalContent

logger = get_logger(__name__)

CONTENT_FIELDS = (
    "title",
    "abstract",
    "problem_statement",
    "objectives",
    "methodology",
    "timeline",
    "expected_outcomes",
)


def _content_values(content: ProposalContent) -> dict[str, object]:
    values: dict[str, object] = {name: getattr(content, name) for name in CONTENT_FIELDS}
    attachment = content.file
    values["file_url"] = attachment.url if attachment else None
    values["file_hash"] = attachment.sha256_hash if attachment else None
    values["file_size_bytes"] = attachment.byte_size if attachment else None
    return values


def _apply_content(version: ProposalVersion, content: ProposalContent) -> None:
    for name, value in _content_values(content).items():
        setattr(version, name, value)


def _new_version(
    *,
    proposal_id: UUID,
    version_number: int,
    content: ProposalContent,
    author_id: UUID,
) -> ProposalVersion:
    now = utcnow()
    version = ProposalVersion(
        proposal_id=proposal_id,
        version_number=version_number,
        title=content.title,
        created_by=author_id,
        created_at=now,
        updated_at=now,
    )
    _apply_content(version, content)
    return version


async def _latest_version_number(session: AsyncSession, proposal_id: UUID) -> int | None:
    statement = select(func.max(col(ProposalVersion.version_number))).where(
        col(ProposalVersion.proposal_id) == proposal_id
    )
    return (await session.exec(statement)).one()


async def create_initial_version(
    session: AsyncSession,
    *,
    proposal_id: UUID,
    content: ProposalContent,
    author_id: UUID,
) -> ProposalVersion:
    """Insert version 1 of a proposal inside the caller's transaction."""
    existing = await ProposalVersion.objects.filter_by(
        proposal_id=proposal_id,
        version_number=1,
    ).first(session)
    if existing is not None:
        raise ConflictError("Proposal already has an initial version")
    version = _new_version(
        proposal_id=proposal_id,
        version_number=1,
        content=content,
        author_id=author_id,
    )
    session.add(version)
    await session.flush()
    return version


async def overwrite_draft_version(
    session: AsyncSession,
    *,
    proposal: Proposal,
    content: ProposalContent,
) -> ProposalVersion:
    """Rewrite version 1 in place while the proposal is a never-submitted draft.

    The UPDATE only matches an unlocked version 1, so a submission committed
    after the caller loaded the proposal leaves the row untouched and the
    edit is refused.
    """
    if not can_overwrite(proposal.status) or proposal.submission_count > 0:
        raise InvalidStateError("Only an unsubmitted draft can be edited in place")
    result = await session.exec(
        update(ProposalVersion)
        .where(col(ProposalVersion.proposal_id) == proposal.id)
        .where(col(ProposalVersion.version_number) == 1)
        .where(col(ProposalVersion.is_locked).is_(False))
        .values(**_content_values(content), updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    version = await (
        ProposalVersion.objects.filter_by(proposal_id=proposal.id, version_number=1)
        .for_update()
        .first(session)
    )
    if version is None:
        raise NotFoundError("Proposal version not found")
    if result.rowcount == 0:
        logger.info(
            "proposal.version.overwrite_refused",
            extra={"proposal_id": str(proposal.id)},
        )
        raise InvalidStateError("This version is locked and can no longer be changed")
    return version


async def append_new_version(
    session: AsyncSession,
    *,
    proposal_id: UUID,
    content: ProposalContent,
    author_id: UUID,
) -> ProposalVersion:
    """Insert version N+1 under a proposal row lock.

    A concurrent writer that wins the same number surfaces here as an
    ``IntegrityError``; the transaction is rolled back and reported as a
    conflict the client may retry after reloading.
    """
    proposal = await Proposal.objects.by_id(proposal_id).for_update().first(session)
    if proposal is None:
        raise NotFoundError("Proposal not found")
    latest = await _latest_version_number(session, proposal_id)
    if latest is None:
        raise NotFoundError("Proposal has no initial version")
    version = _new_version(
        proposal_id=proposal_id,
        version_number=latest + 1,
        content=content,
        author_id=author_id,
    )
    session.add(version)
    try:
        await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        logger.info(
            "proposal.version.append_conflict",
            extra={"proposal_id": str(proposal_id), "version_number": latest + 1},
        )
        raise ConflictError("Another edit created this version first; reload and retry") from exc
    return version


async def list_versions(session: AsyncSession, proposal_id: UUID) -> list[ProposalVersion]:
    return await (
        ProposalVersion.objects.filter_by(proposal_id=proposal_id)
        .order_by(col(ProposalVersion.version_number).desc())
        .all(session)
    )


async def latest_version(session: AsyncSession, proposal_id: UUID) -> ProposalVersion | None:
    return await (
        ProposalVersion.objects.filter_by(proposal_id=proposal_id)
        .order_by(col(ProposalVersion.version_number).desc())
        .first(session)
    )


async def lock_versions(session: AsyncSession, proposal_id: UUID) -> None:
    """Mark every version of the proposal read-only."""
    await session.exec(
        update(ProposalVersion)
        .where(col(ProposalVersion.proposal_id) == proposal_id)
        .values(is_locked=True, updated_at=utcnow())
    )


async def mark_approved(session: AsyncSession, version_id: UUID) -> ProposalVersion:
    version = await ProposalVersion.objects.by_id(version_id).first(session)
    if version is None:
        raise NotFoundError("Proposal version not found")
    version.is_approved = True
    version.updated_at = utcnow()
    session.add(version)
    await session.flush()
    return version
