# ruff: noqa: INP001
"""Version store tests against SQLite: numbering, overwrite rules, and races."""

from __future__ import annotations

from pathlib import Path
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from proposal_lifecycle import models  # noqa: F401 - registers tables
from proposal_lifecycle.core.errors import ConflictError, InvalidStateError, NotFoundError
from proposal_lifecycle.models.proposal_versions import ProposalVersion
from proposal_lifecycle.models.proposals import Proposal
from proposal_lifecycle.schemas.files import FileDescriptorRead
from proposal_lifecycle.schemas.proposals import ProposalContent
from proposal_lifecycle.services.proposals import versions
from proposal_lifecycle.services.proposals.versions import (
    append_new_version,
    create_initial_version,
    latest_version,
    list_versions,
    lock_versions,
    overwrite_draft_version,
)


async def _make_engine(db_path: Path | None = None) -> AsyncEngine:
    url = f"sqlite+aiosqlite:///{db_path}" if db_path else "sqlite+aiosqlite:///:memory:"
    engine = create_async_engine(url)
    async with engine.connect() as conn, conn.begin():
        await conn.run_sync(SQLModel.metadata.create_all)
    return engine


def _content(title: str = "Campus energy audit") -> ProposalContent:
    return ProposalContent(title=title, abstract=f"{title} abstract")


async def _seed(session: AsyncSession, *, status: str = "draft") -> tuple[Proposal, UUID]:
    author = uuid4()
    proposal = Proposal(created_by=author, status=status)
    session.add(proposal)
    await session.flush()
    await create_initial_version(
        session, proposal_id=proposal.id, content=_content("v1"), author_id=author
    )
    await session.commit()
    return proposal, author


@pytest.mark.asyncio
async def test_initial_version_is_number_one_and_unique() -> None:
    engine = await _make_engine()
    try:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            proposal, author = await _seed(session)

            versions_list = await list_versions(session, proposal.id)
            assert [v.version_number for v in versions_list] == [1]

            with pytest.raises(ConflictError):
                await create_initial_version(
                    session, proposal_id=proposal.id, content=_content(), author_id=author
                )
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_overwrite_rewrites_version_one_in_place() -> None:
    engine = await _make_engine()
    try:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            proposal, _ = await _seed(session)
            attachment = FileDescriptorRead(
                url="uploads/p/a.pdf", sha256_hash="ab" * 32, byte_size=42
            )

            updated = await overwrite_draft_version(
                session,
                proposal=proposal,
                content=ProposalContent(title="Renamed", file=attachment),
            )
            await session.commit()

            assert updated.version_number == 1
            assert updated.title == "Renamed"
            assert updated.file_hash == "ab" * 32
            assert updated.file_size_bytes == 42
            assert len(await list_versions(session, proposal.id)) == 1
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_overwrite_refused_once_locked_or_submitted() -> None:
    engine = await _make_engine()
    try:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            proposal, _ = await _seed(session)
            await lock_versions(session, proposal.id)
            await session.commit()

            with pytest.raises(InvalidStateError):
                await overwrite_draft_version(session, proposal=proposal, content=_content("x"))

            proposal.submission_count = 1
            with pytest.raises(InvalidStateError):
                await overwrite_draft_version(session, proposal=proposal, content=_content("x"))

            proposal.submission_count = 0
            proposal.status = "revision_required"
            with pytest.raises(InvalidStateError):
                await overwrite_draft_version(session, proposal=proposal, content=_content("x"))

            stored = await latest_version(session, proposal.id)
            assert stored is not None
            assert stored.title == "v1"
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_append_is_contiguous_and_listed_newest_first() -> None:
    engine = await _make_engine()
    try:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            proposal, author = await _seed(session, status="revision_required")
            for title in ("v2", "v3", "v4"):
                await append_new_version(
                    session, proposal_id=proposal.id, content=_content(title), author_id=author
                )
                await session.commit()

            listed = await list_versions(session, proposal.id)
            assert [v.version_number for v in listed] == [4, 3, 2, 1]
            assert [v.title for v in listed] == ["v4", "v3", "v2", "v1"]
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_append_requires_existing_history() -> None:
    engine = await _make_engine()
    try:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            proposal = Proposal(created_by=uuid4(), status="revision_required")
            session.add(proposal)
            await session.commit()

            with pytest.raises(NotFoundError):
                await append_new_version(
                    session, proposal_id=proposal.id, content=_content(), author_id=uuid4()
                )
            with pytest.raises(NotFoundError):
                await append_new_version(
                    session, proposal_id=uuid4(), content=_content(), author_id=uuid4()
                )
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_lock_versions_marks_every_version(tmp_path: Path) -> None:
    engine = await _make_engine(tmp_path / "lock.db")
    try:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            proposal, author = await _seed(session, status="revision_required")
            await append_new_version(
                session, proposal_id=proposal.id, content=_content("v2"), author_id=author
            )
            await lock_versions(session, proposal.id)
            await session.commit()

        async with AsyncSession(engine, expire_on_commit=False) as fresh:
            rows = await ProposalVersion.objects.filter_by(proposal_id=proposal.id).all(fresh)
            assert len(rows) == 2
            assert all(row.is_locked for row in rows)
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_racing_appends_never_duplicate_a_number(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    engine = await _make_engine(tmp_path / "race.db")
    try:
        async with AsyncSession(engine, expire_on_commit=False) as setup:
            proposal, author = await _seed(setup, status="revision_required")
            await append_new_version(
                setup, proposal_id=proposal.id, content=_content("v2"), author_id=author
            )
            await setup.commit()

        async with AsyncSession(engine, expire_on_commit=False) as first:
            winner = await append_new_version(
                first, proposal_id=proposal.id, content=_content("first"), author_id=author
            )
            await first.commit()
        assert winner.version_number == 3

        # The second writer read the maximum before the first one committed.
        async def _stale_max(session: AsyncSession, proposal_id: UUID) -> int:
            return 2

        monkeypatch.setattr(versions, "_latest_version_number", _stale_max)
        async with AsyncSession(engine, expire_on_commit=False) as second:
            with pytest.raises(ConflictError):
                await append_new_version(
                    second, proposal_id=proposal.id, content=_content("second"), author_id=author
                )
        monkeypatch.undo()

        async with AsyncSession(engine, expire_on_commit=False) as retry:
            retried = await append_new_version(
                retry, proposal_id=proposal.id, content=_content("second"), author_id=author
            )
            await retry.commit()
        assert retried.version_number == 4

        async with AsyncSession(engine, expire_on_commit=False) as check:
            numbers = [v.version_number for v in await list_versions(check, proposal.id)]
            assert numbers == [4, 3, 2, 1]
    finally:
        await engine.dispose()
