from __future__ import annotations

"""Adapter keeping each collection in a pandas DataFrame."""

import copy
import logging
from functools import reduce
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd

from ..errors import UniquenessError
from ..query.models import ComparisonFilter, Criteria, FilterClause, LogicalFilter
from ..schema.types import ModelSchema
from .base import BaseAdapter, Row, compare, like_to_regex, normalize_string

logger = logging.getLogger(__name__)


class PandasAdapter(BaseAdapter):
    """DataFrame-backed adapter.

    Columns are kept with ``object`` dtype so stored values round-trip as the
    Python objects they were written as. ``frames`` may seed collections
    with existing data; seeded frames are reindexed to the schema's columns
    when the collection is defined.
    """

    name = "pandas"

    def __init__(self, name: Optional[str] = None, *, frames: Optional[Mapping[str, pd.DataFrame]] = None):
        super().__init__(name)
        self.frames: Dict[str, pd.DataFrame] = dict(frames or {})
        self._counters: Dict[str, int] = {}

    async def define(self, identity: str, schema: ModelSchema) -> None:
        await super().define(identity, schema)
        columns = schema.storable_attributes()
        seeded = self.frames.get(identity)
        if seeded is None:
            frame = pd.DataFrame({c: pd.Series(dtype=object) for c in columns})
        else:
            frame = seeded.reindex(columns=columns).astype(object)
            frame = frame.where(frame.notna(), None).reset_index(drop=True)
        self.frames[identity] = frame
        keys = [k for k in frame[schema.primary_key].tolist() if isinstance(k, int)]
        self._counters[identity] = max(keys, default=0)

    # --- helper methods ---
    def _frame(self, identity: str) -> pd.DataFrame:
        self._schema(identity)
        return self.frames[identity]

    def _column(self, frame: pd.DataFrame, field: str) -> pd.Series:
        if field in frame.columns:
            return frame[field]
        return pd.Series([None] * len(frame), index=frame.index, dtype=object)

    def _mask(self, frame: pd.DataFrame, clause: Optional[FilterClause]) -> pd.Series:
        if clause is None:
            return pd.Series(True, index=frame.index, dtype=bool)
        if isinstance(clause, LogicalFilter):
            masks = [self._mask(frame, sub) for sub in clause.clauses]
            if not masks:
                return pd.Series(clause.op == "and", index=frame.index, dtype=bool)
            if clause.op == "and":
                return reduce(lambda a, b: a & b, masks)
            return reduce(lambda a, b: a | b, masks)
        if not isinstance(clause, ComparisonFilter):
            raise TypeError(f"Unsupported filter clause: {clause!r}")

        col = self._column(frame, clause.field)
        present = col.notna()
        op, value = clause.op, clause.value
        if op == "=":
            return ~present if value is None else present & (col == value)
        if op == "!=":
            return present if value is None else ~present | (col != value)
        if op == "in":
            return col.isin(list(value))
        if op == "not_in":
            return ~col.isin(list(value))
        if op in {"like", "contains", "starts_with", "ends_with"}:
            text = col.where(present, "").map(normalize_string)
            if op == "like":
                rx = like_to_regex(str(value))
                hits = text.map(lambda s: bool(rx.match(s)))
            elif op == "contains":
                hits = text.str.contains(normalize_string(value), regex=False)
            elif op == "starts_with":
                hits = text.str.startswith(normalize_string(value))
            else:
                hits = text.str.endswith(normalize_string(value))
            return present & hits.astype(bool)
        # ordering operators: object columns may mix types, so compare per cell
        return col.map(lambda v: compare(v, op, value)).astype(bool)

    def _to_rows(self, frame: pd.DataFrame) -> List[Row]:
        # missing cells come back as None, never NaN
        cleaned = frame.astype(object).where(frame.notna(), None)
        return copy.deepcopy(cleaned.to_dict(orient="records"))

    def _check_unique(self, identity: str, frame: pd.DataFrame, values: Row, exclude: Optional[pd.Series] = None) -> None:
        schema = self._schema(identity)
        for attr in schema.unique_attributes():
            value = values.get(attr)
            if value is None:
                continue
            hits = self._column(frame, attr) == value
            if exclude is not None:
                hits &= ~exclude
            if bool(hits.any()):
                raise UniquenessError(identity, attr, value)

    # --- capability API ---
    async def create(self, identity: str, values: Row) -> Row:
        schema = self._schema(identity)
        frame = self._frame(identity)
        pk = schema.primary_key
        row = copy.deepcopy(values)
        if row.get(pk) is None:
            self._counters[identity] += 1
            row[pk] = self._counters[identity]
        self._check_unique(identity, frame, row)
        new = pd.DataFrame([{c: row.get(c) for c in frame.columns}], columns=frame.columns, dtype=object)
        self.frames[identity] = pd.concat([frame, new], ignore_index=True)
        logger.debug("pandas[%s]: created %s=%r", identity, pk, row[pk])
        return {c: row.get(c) for c in frame.columns}

    async def find(self, identity: str, criteria: Criteria) -> List[Row]:
        frame = self._frame(identity)
        selected = frame[self._mask(frame, criteria.where)]
        if criteria.sort:
            selected = selected.sort_values(
                by=[s.field for s in criteria.sort],
                ascending=[s.direction == "asc" for s in criteria.sort],
                na_position="first",
                kind="mergesort",
            )
        stop = None if criteria.limit is None else criteria.skip + criteria.limit
        return self._to_rows(selected.iloc[criteria.skip:stop])

    async def update(self, identity: str, criteria: Criteria, changes: Row) -> List[Row]:
        schema = self._schema(identity)
        frame = self._frame(identity)
        pk = schema.primary_key
        matched = await self.find(identity, criteria)
        if not matched:
            return []
        keys = [row[pk] for row in matched]
        targets = frame[pk].isin(keys)
        unique_changes = [a for a in schema.unique_attributes() if changes.get(a) is not None]
        if unique_changes and len(keys) > 1:
            raise UniquenessError(identity, unique_changes[0], changes[unique_changes[0]])
        self._check_unique(identity, frame, changes, exclude=targets)
        for idx in frame.index[targets]:
            for col, value in changes.items():
                frame.at[idx, col] = copy.deepcopy(value)
        if pk in changes:
            keys = [changes[pk]]
        return self._to_rows(frame[frame[pk].isin(keys)])

    async def destroy(self, identity: str, criteria: Criteria) -> int:
        frame = self._frame(identity)
        mask = self._mask(frame, criteria.where)
        removed = int(mask.sum())
        self.frames[identity] = frame[~mask].reset_index(drop=True)
        return removed

    async def count(self, identity: str, criteria: Criteria) -> int:
        frame = self._frame(identity)
        return int(self._mask(frame, criteria.where).sum())


__all__ = ["PandasAdapter"]
