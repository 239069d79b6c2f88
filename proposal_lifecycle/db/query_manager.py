"""Model-level ``objects`` manager exposing :class:`QuerySet` entry points."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from sqlmodel import col

from proposal_lifecycle.db.queryset import QuerySet

ModelT = TypeVar("ModelT")


class ModelManager(Generic[ModelT]):
    """Start queries for a bound SQLModel table class."""

    def __init__(self, model: type[ModelT]) -> None:
        self.model = model

    def all(self) -> QuerySet[ModelT]:
        return QuerySet.for_model(self.model)

    def by_id(self, obj_id: object) -> QuerySet[ModelT]:
        return self.all().filter(col(getattr(self.model, "id")) == obj_id)

    def filter(self, *criteria: Any) -> QuerySet[ModelT]:
        return self.all().filter(*criteria)

    def filter_by(self, **kwargs: object) -> QuerySet[ModelT]:
        return self.all().filter_by(**kwargs)


class ManagerDescriptor:
    """Class-level descriptor returning a manager bound to the owner model."""

    def __get__(self, instance: object, owner: type[Any]) -> ModelManager[Any]:
        return ModelManager(owner)
