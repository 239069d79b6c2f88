"""Audit sink writing append-only lifecycle entries."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError

from proposal_lifecycle.core.logging import get_logger
from proposal_lifecycle.core.time import utcnow
from proposal_lifecycle.models.audit_entries import AuditEntry

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)


async def record_audit(
    session: AsyncSession,
    *,
    entity_type: str,
    entity_id: UUID,
    action: str,
    actor_id: UUID,
    actor_role: str = "",
    old_state: dict[str, object] | None = None,
    new_state: dict[str, object] | None = None,
    context: dict[str, object] | None = None,
    commit: bool = True,
) -> AuditEntry:
    """Create an append-only audit log entry."""
    entry = AuditEntry(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        actor_role=actor_role,
        old_state=old_state,
        new_state=new_state,
        context=context,
        created_at=utcnow(),
    )
    session.add(entry)
    if commit:
        await session.commit()
        await session.refresh(entry)
    return entry


async def record_audit_best_effort(session: AsyncSession, **fields: Any) -> AuditEntry | None:
    """Write an audit entry after the core commit; failures are logged only.

    The insert runs in a savepoint so a failure leaves already-committed
    instances loaded in the session untouched.
    """
    try:
        async with session.begin_nested():
            entry = await record_audit(session, commit=False, **fields)
        await session.commit()
    except SQLAlchemyError:
        logger.warning(
            "audit.record_failed",
            extra={"action": fields.get("action"), "entity_id": str(fields.get("entity_id"))},
            exc_info=True,
        )
        return None
    return entry
