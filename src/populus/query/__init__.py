"""Criteria models, the query builder and deferred operations."""

from .models import (
    ComparisonFilter,
    ComparisonOp,
    Criteria,
    FilterClause,
    LogicalFilter,
    PopulateRequest,
    SortSpec,
)
from .builder import build_criteria, compile_populate, compile_sort, compile_where
from .operations import FindOneQuery, FindQuery, Operation

__all__ = [
    "ComparisonFilter",
    "ComparisonOp",
    "Criteria",
    "FilterClause",
    "LogicalFilter",
    "PopulateRequest",
    "SortSpec",
    "build_criteria",
    "compile_populate",
    "compile_sort",
    "compile_where",
    "FindOneQuery",
    "FindQuery",
    "Operation",
]
