"""Closed proposal status set, its transition table, and status policies.

All functions here are pure apart from :func:`transition`, which mutates the
in-session proposal and leaves persistence to the caller's transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from proposal_lifecycle.core.errors import InvalidTransitionError
from proposal_lifecycle.core.time import utcnow

if TYPE_CHECKING:
    from proposal_lifecycle.models.proposals import Proposal


class ProposalStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    REVISION_REQUIRED = "revision_required"
    APPROVED = "approved"
    REJECTED = "rejected"


TRANSITIONS: dict[ProposalStatus, frozenset[ProposalStatus]] = {
    ProposalStatus.DRAFT: frozenset({ProposalStatus.SUBMITTED}),
    ProposalStatus.SUBMITTED: frozenset({ProposalStatus.UNDER_REVIEW}),
    ProposalStatus.UNDER_REVIEW: frozenset(
        {
            ProposalStatus.REVISION_REQUIRED,
            ProposalStatus.APPROVED,
            ProposalStatus.REJECTED,
        }
    ),
    ProposalStatus.REVISION_REQUIRED: frozenset({ProposalStatus.SUBMITTED}),
    ProposalStatus.APPROVED: frozenset(),
    ProposalStatus.REJECTED: frozenset(),
}

_DESCRIPTIONS: dict[ProposalStatus, str] = {
    ProposalStatus.DRAFT: "Draft - can be edited and submitted",
    ProposalStatus.SUBMITTED: "Submitted - waiting for the reviewer to start the review",
    ProposalStatus.UNDER_REVIEW: "Under review - the reviewer is evaluating the proposal",
    ProposalStatus.REVISION_REQUIRED: (
        "Revision required - update the content and submit again"
    ),
    ProposalStatus.APPROVED: "Approved - a project has been created",
    ProposalStatus.REJECTED: "Rejected - no further changes are possible",
}

_EDITABLE = frozenset({ProposalStatus.DRAFT, ProposalStatus.REVISION_REQUIRED})
_SUBMITTABLE = _EDITABLE
_REVIEWABLE = frozenset({ProposalStatus.SUBMITTED, ProposalStatus.UNDER_REVIEW})
_TERMINAL = frozenset({ProposalStatus.APPROVED, ProposalStatus.REJECTED})


def _coerce(value: ProposalStatus | str) -> ProposalStatus | None:
    try:
        return ProposalStatus(value)
    except ValueError:
        return None


def _label(value: ProposalStatus | str) -> str:
    return value.value if isinstance(value, ProposalStatus) else str(value)


def can_transition(from_status: ProposalStatus | str, to_status: ProposalStatus | str) -> bool:
    source = _coerce(from_status)
    target = _coerce(to_status)
    if source is None or target is None:
        return False
    return target in TRANSITIONS[source]


def allowed_transitions(status: ProposalStatus | str) -> list[ProposalStatus]:
    source = _coerce(status)
    if source is None:
        return []
    return sorted(TRANSITIONS[source], key=lambda item: item.value)


def transition(proposal: Proposal, to_status: ProposalStatus | str) -> None:
    """Apply a status change or raise :class:`InvalidTransitionError`."""
    current = proposal.status
    target = _coerce(to_status)
    if target is None or not can_transition(current, target):
        raise InvalidTransitionError(_label(current), _label(to_status))
    proposal.status = target.value
    proposal.updated_at = utcnow()


def can_edit(status: ProposalStatus | str) -> bool:
    return _coerce(status) in _EDITABLE


def can_overwrite(status: ProposalStatus | str) -> bool:
    return _coerce(status) == ProposalStatus.DRAFT


def can_submit(status: ProposalStatus | str) -> bool:
    return _coerce(status) in _SUBMITTABLE


def can_review(status: ProposalStatus | str) -> bool:
    return _coerce(status) in _REVIEWABLE


def is_terminal(status: ProposalStatus | str) -> bool:
    return _coerce(status) in _TERMINAL


def describe(status: ProposalStatus | str) -> str:
    source = _coerce(status)
    if source is None:
        return "Unknown status"
    return _DESCRIPTIONS[source]


@dataclass(frozen=True)
class StatePermissions:
    """Status-derived action flags exposed to clients."""

    can_edit: bool
    can_overwrite: bool
    can_submit: bool
    can_review: bool
    is_terminal: bool
    allowed_transitions: list[str]


def permissions_for(status: ProposalStatus | str) -> StatePermissions:
    return StatePermissions(
        can_edit=can_edit(status),
        can_overwrite=can_overwrite(status),
        can_submit=can_submit(status),
        can_review=can_review(status),
        is_terminal=is_terminal(status),
        allowed_transitions=[item.value for item in allowed_transitions(status)],
    )
