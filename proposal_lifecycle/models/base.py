"""Shared SQLModel base with the ``objects`` query manager."""

from __future__ import annotations

from typing import ClassVar

from sqlmodel import SQLModel

from proposal_lifecycle.db.query_manager import ManagerDescriptor


class QueryModel(SQLModel, table=False):
    """Base class for table models; ``Model.objects`` starts a query."""

    objects: ClassVar[ManagerDescriptor] = ManagerDescriptor()
