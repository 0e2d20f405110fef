from __future__ import annotations

"""Adapter capability interface and helpers shared by in-process adapters."""

import re
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

from ..query.models import ComparisonFilter, Criteria, FilterClause, LogicalFilter, SortSpec
from ..schema.types import ModelSchema

Row = Dict[str, Any]


@runtime_checkable
class Adapter(Protocol):
    """Storage backend contract the core depends on.

    All methods are coroutines. ``create`` returns the stored row including
    its primary key; ``find`` and ``update`` return lists of rows;
    ``destroy`` returns the number of removed rows. Storage errors are raised
    as-is and reach the caller unchanged.

    ``define``, ``count`` and ``teardown`` are optional: the core calls them
    only when the adapter provides them.
    """

    name: str

    async def define(self, identity: str, schema: ModelSchema) -> None: ...

    async def create(self, identity: str, values: Row) -> Row: ...

    async def find(self, identity: str, criteria: Criteria) -> List[Row]: ...

    async def update(self, identity: str, criteria: Criteria, changes: Row) -> List[Row]: ...

    async def destroy(self, identity: str, criteria: Criteria) -> int: ...

    async def teardown(self) -> None: ...


class BaseAdapter:
    """Convenience base with no-op lifecycle hooks and a ``count`` fallback."""

    name: str = "adapter"

    def __init__(self, name: Optional[str] = None):
        if name:
            self.name = name
        self.schemas: Dict[str, ModelSchema] = {}

    async def define(self, identity: str, schema: ModelSchema) -> None:
        self.schemas[identity] = schema

    async def count(self, identity: str, criteria: Criteria) -> int:
        rows = await self.find(identity, criteria.model_copy(update={"limit": None, "skip": 0}))
        return len(rows)

    async def teardown(self) -> None:
        return None

    def _schema(self, identity: str) -> ModelSchema:
        try:
            return self.schemas[identity]
        except KeyError:
            raise KeyError(f"Collection '{identity}' is not defined on adapter '{self.name}'") from None

    async def find(self, identity: str, criteria: Criteria) -> List[Row]:  # pragma: no cover - abstract
        raise NotImplementedError


def normalize_string(value: Any) -> str:
    """Soft string form used by the text operators: stripped, lower-cased,
    inner whitespace collapsed."""
    s = str(value)
    s = s.strip()
    s = s.lower()
    s = re.sub(r"\s+", " ", s)
    return s


def like_to_regex(pattern: str) -> "re.Pattern[str]":
    parts = []
    for ch in normalize_string(pattern):
        if ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("^" + "".join(parts) + "$", re.DOTALL)


def compare(left: Any, op: str, right: Any) -> bool:
    if op == "=":
        return left == right
    if op == "!=":
        return left != right
    if op == "in":
        return left in right
    if op == "not_in":
        return left not in right
    if op in {"like", "contains", "starts_with", "ends_with"}:
        if left is None or right is None:
            return False
        subject = normalize_string(left)
        if op == "like":
            return bool(like_to_regex(str(right)).match(subject))
        needle = normalize_string(right)
        if op == "contains":
            return needle in subject
        if op == "starts_with":
            return subject.startswith(needle)
        return subject.endswith(needle)
    if left is None or right is None:
        return False
    try:
        if op == ">":
            return left > right
        if op == "<":
            return left < right
        if op == ">=":
            return left >= right
        if op == "<=":
            return left <= right
    except TypeError:
        return False
    raise ValueError(f"Unsupported comparison operator: {op}")


def matches(row: Mapping[str, Any], clause: Optional[FilterClause]) -> bool:
    if clause is None:
        return True
    if isinstance(clause, ComparisonFilter):
        return compare(row.get(clause.field), clause.op, clause.value)
    if isinstance(clause, LogicalFilter):
        if clause.op == "and":
            return all(matches(row, sub) for sub in clause.clauses)
        return any(matches(row, sub) for sub in clause.clauses)
    raise TypeError(f"Unsupported filter clause: {clause!r}")


def sort_rows(rows: List[Row], sort: Sequence[SortSpec]) -> List[Row]:
    # stable sorts applied from the least significant key
    for spec in reversed(sort):
        rows = sorted(
            rows,
            key=lambda r, f=spec.field: (r.get(f) is not None, r.get(f)),
            reverse=spec.direction == "desc",
        )
    return rows


def apply_window(rows: List[Row], limit: Optional[int], skip: int) -> List[Row]:
    if skip:
        rows = rows[skip:]
    if limit is not None:
        rows = rows[:limit]
    return rows


def select_rows(rows: Sequence[Row], criteria: Criteria) -> List[Row]:
    selected = [r for r in rows if matches(r, criteria.where)]
    selected = sort_rows(selected, criteria.sort)
    return apply_window(selected, criteria.limit, criteria.skip)


__all__ = [
    "Row",
    "Adapter",
    "BaseAdapter",
    "normalize_string",
    "like_to_regex",
    "compare",
    "matches",
    "sort_rows",
    "apply_window",
    "select_rows",
]
