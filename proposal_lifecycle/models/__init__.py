"""Model exports for SQLAlchemy/SQLModel metadata discovery."""

from proposal_lifecycle.models.audit_entries import AuditEntry
from proposal_lifecycle.models.decisions import Decision
from proposal_lifecycle.models.notifications import Notification
from proposal_lifecycle.models.projects import Project
from proposal_lifecycle.models.proposal_versions import ProposalVersion
from proposal_lifecycle.models.proposals import Proposal

__all__ = [
    "AuditEntry",
    "Decision",
    "Notification",
    "Project",
    "Proposal",
    "ProposalVersion",
]
