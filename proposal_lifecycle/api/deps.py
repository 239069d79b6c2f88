"""Shared FastAPI dependencies for lifecycle routes."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from proposal_lifecycle.core.auth import get_actor_context
from proposal_lifecycle.db.session import get_session
from proposal_lifecycle.services.advisory import AdvisoryClient
from proposal_lifecycle.services.files import LocalFileStore
from proposal_lifecycle.services.proposals.lifecycle import ProposalLifecycleService
from proposal_lifecycle.services.teams import HttpTeamDirectory

SESSION_DEP = Depends(get_session)
ACTOR_DEP = Depends(get_actor_context)


@lru_cache(maxsize=1)
def get_lifecycle_service() -> ProposalLifecycleService:
    """Process-wide lifecycle service wired to the configured collaborators."""
    return ProposalLifecycleService(
        teams=HttpTeamDirectory(),
        advisory=AdvisoryClient(),
    )


@lru_cache(maxsize=1)
def get_file_store() -> LocalFileStore:
    return LocalFileStore()


SERVICE_DEP = Depends(get_lifecycle_service)
FILE_STORE_DEP = Depends(get_file_store)
