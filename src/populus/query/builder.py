from __future__ import annotations

"""Compile Waterline-style ``where``/``sort`` input into typed criteria.

The builder only guarantees structural validity: every filter and sort key
names a stored attribute and every population request names an
association. How values compare is left to the adapter.
"""

from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from ..errors import InvalidCriteriaError, UnknownAttributeError, UnresolvedAssociationError
from ..schema.types import CollectionAssociation, ModelSchema
from .models import (
    ComparisonFilter,
    Criteria,
    FilterClause,
    LogicalFilter,
    PopulateRequest,
    SortSpec,
)

if TYPE_CHECKING:  # pragma: no cover
    from ..schema.registry import SchemaRegistry

MODIFIERS: Dict[str, str] = {
    "<": "<",
    "lessThan": "<",
    "<=": "<=",
    "lessThanOrEqual": "<=",
    ">": ">",
    "greaterThan": ">",
    ">=": ">=",
    "greaterThanOrEqual": ">=",
    "=": "=",
    "!=": "!=",
    "!": "!=",
    "not": "!=",
    "in": "in",
    "nin": "not_in",
    "not_in": "not_in",
    "like": "like",
    "contains": "contains",
    "startsWith": "starts_with",
    "starts_with": "starts_with",
    "endsWith": "ends_with",
    "ends_with": "ends_with",
}

WhereInput = Union[None, FilterClause, Mapping[str, Any]]
SortInput = Union[None, str, Mapping[str, Any], Sequence[Any]]


def _check_field(schema: ModelSchema, field: str) -> None:
    spec = schema.attributes.get(field)
    if spec is None:
        raise UnknownAttributeError(schema.identity, field, candidates=schema.storable_attributes())
    if isinstance(spec, CollectionAssociation):
        # collection attributes are not stored on the owner, so cannot be filtered on
        raise UnknownAttributeError(schema.identity, field, candidates=schema.storable_attributes())


def _unwrap_key(value: Any) -> Any:
    return getattr(value, "primary_key_value", value)


def _compile_field(schema: ModelSchema, field: str, value: Any) -> FilterClause:
    _check_field(schema, field)
    if isinstance(value, (list, tuple, set)):
        return ComparisonFilter(field=field, op="in", value=[_unwrap_key(v) for v in value])
    if not isinstance(value, Mapping):
        return ComparisonFilter(field=field, op="=", value=_unwrap_key(value))

    clauses: List[FilterClause] = []
    for modifier, operand in value.items():
        op = MODIFIERS.get(modifier)
        if op is None:
            raise InvalidCriteriaError(f"Unknown modifier '{modifier}' for {schema.identity}.{field}")
        if op in {"in", "not_in"}:
            if not isinstance(operand, (list, tuple, set)):
                raise InvalidCriteriaError(f"Modifier '{modifier}' expects a list for {schema.identity}.{field}")
            operand = [_unwrap_key(v) for v in operand]
        elif op == "!=" and isinstance(operand, (list, tuple, set)):
            op, operand = "not_in", [_unwrap_key(v) for v in operand]
        else:
            operand = _unwrap_key(operand)
        clauses.append(ComparisonFilter(field=field, op=op, value=operand))
    if not clauses:
        raise InvalidCriteriaError(f"Empty modifier mapping for {schema.identity}.{field}")
    if len(clauses) == 1:
        return clauses[0]
    return LogicalFilter(op="and", clauses=clauses)


def _validate_clause(schema: ModelSchema, clause: FilterClause) -> FilterClause:
    if isinstance(clause, ComparisonFilter):
        _check_field(schema, clause.field)
        return clause
    for sub in clause.clauses:
        _validate_clause(schema, sub)
    return clause


def compile_where(schema: ModelSchema, where: WhereInput) -> Optional[FilterClause]:
    """Turn a ``where`` mapping into a filter clause for ``schema``.

    Already-built clauses are validated and returned as is. An empty mapping
    means "no filter".
    """
    if where is None:
        return None
    if isinstance(where, (ComparisonFilter, LogicalFilter)):
        return _validate_clause(schema, where)
    if not isinstance(where, Mapping):
        # a bare key is shorthand for primary-key lookup
        return ComparisonFilter(field=schema.primary_key, op="=", value=_unwrap_key(where))

    clauses: List[FilterClause] = []
    for key, value in where.items():
        if key in {"or", "and"}:
            if not isinstance(value, (list, tuple)):
                raise InvalidCriteriaError(f"'{key}' expects a list of conditions")
            subs = [compile_where(schema, v) for v in value]
            clauses.append(LogicalFilter(op=key, clauses=[s for s in subs if s is not None]))
            continue
        clauses.append(_compile_field(schema, key, value))
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return LogicalFilter(op="and", clauses=clauses)


def _direction(value: Any) -> str:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"asc", "desc"}:
            return lowered
    if value in (1, -1):
        return "asc" if value == 1 else "desc"
    raise InvalidCriteriaError(f"Invalid sort direction {value!r}")


def compile_sort(schema: ModelSchema, sort: SortInput) -> List[SortSpec]:
    """Accepts ``"name DESC"``, ``{"name": "desc"}``, ``{"age": -1}`` or lists of those."""
    if sort is None:
        return []
    specs: List[SortSpec] = []
    if isinstance(sort, SortSpec):
        specs.append(sort)
    elif isinstance(sort, str):
        parts = sort.split()
        if not parts or len(parts) > 2:
            raise InvalidCriteriaError(f"Invalid sort expression {sort!r}")
        specs.append(SortSpec(field=parts[0], direction=_direction(parts[1]) if len(parts) == 2 else "asc"))
    elif isinstance(sort, Mapping):
        for field, direction in sort.items():
            specs.append(SortSpec(field=field, direction=_direction(direction)))
    else:
        for item in sort:
            specs.extend(compile_sort(schema, item))
    for spec in specs:
        _check_field(schema, spec.field)
    return specs


def compile_populate(
    schema: ModelSchema,
    registry: "SchemaRegistry",
    association: str,
    *,
    where: WhereInput = None,
    sort: SortInput = None,
    limit: Optional[int] = None,
    skip: int = 0,
) -> PopulateRequest:
    if association not in schema.associations():
        raise UnresolvedAssociationError(schema.identity, association, candidates=schema.associations().keys())
    target = registry.target_of(schema.identity, association)
    check_window(limit, skip)
    return PopulateRequest(
        association=association,
        where=compile_where(target, where),
        sort=compile_sort(target, sort),
        limit=limit,
        skip=skip,
    )


def check_window(limit: Optional[int], skip: int) -> None:
    if limit is not None and limit < 0:
        raise InvalidCriteriaError("limit must be >= 0")
    if skip < 0:
        raise InvalidCriteriaError("skip must be >= 0")


def build_criteria(
    schema: ModelSchema,
    *,
    where: WhereInput = None,
    sort: SortInput = None,
    limit: Optional[int] = None,
    skip: int = 0,
    populate: Iterable[PopulateRequest] = (),
) -> Criteria:
    check_window(limit, skip)
    return Criteria(
        where=compile_where(schema, where),
        sort=compile_sort(schema, sort),
        limit=limit,
        skip=skip,
        populate=list(populate),
    )


__all__ = [
    "MODIFIERS",
    "WhereInput",
    "SortInput",
    "compile_where",
    "compile_sort",
    "compile_populate",
    "check_window",
    "build_criteria",
]
