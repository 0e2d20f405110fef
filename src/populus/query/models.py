from __future__ import annotations

"""Adapter-agnostic criteria passed from the query builder to adapters."""

from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

ComparisonOp = Literal[
    "=",
    "!=",
    ">",
    "<",
    ">=",
    "<=",
    "in",
    "not_in",
    "like",
    "contains",
    "starts_with",
    "ends_with",
]


class ComparisonFilter(BaseModel):
    type: Literal["comparison"] = "comparison"
    field: str
    op: ComparisonOp = "="
    value: Any = None


class LogicalFilter(BaseModel):
    type: Literal["logical"] = "logical"
    op: Literal["and", "or"] = "and"
    clauses: List["FilterClause"] = Field(default_factory=list)


FilterClause = Union[ComparisonFilter, LogicalFilter]
LogicalFilter.model_rebuild()


class SortSpec(BaseModel):
    field: str
    direction: Literal["asc", "desc"] = "asc"


class PopulateRequest(BaseModel):
    """A request to attach an association; ``limit``/``skip`` apply per owner."""

    association: str
    where: Optional[FilterClause] = None
    sort: List[SortSpec] = Field(default_factory=list)
    limit: Optional[int] = None
    skip: int = 0


class Criteria(BaseModel):
    where: Optional[FilterClause] = None
    sort: List[SortSpec] = Field(default_factory=list)
    limit: Optional[int] = None
    skip: int = 0
    populate: List[PopulateRequest] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def by_keys(cls, field: str, keys: List[Any]) -> "Criteria":
        if len(keys) == 1:
            return cls(where=ComparisonFilter(field=field, op="=", value=keys[0]))
        return cls(where=ComparisonFilter(field=field, op="in", value=list(keys)))

    def storage_view(self) -> "Criteria":
        """The criteria as seen by adapters (population is resolved by the core)."""
        if not self.populate:
            return self
        return self.model_copy(update={"populate": []})


def and_clauses(*clauses: Optional[FilterClause]) -> Optional[FilterClause]:
    present = [c for c in clauses if c is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return LogicalFilter(op="and", clauses=present)


__all__ = [
    "ComparisonOp",
    "ComparisonFilter",
    "LogicalFilter",
    "FilterClause",
    "SortSpec",
    "PopulateRequest",
    "Criteria",
    "and_clauses",
]
