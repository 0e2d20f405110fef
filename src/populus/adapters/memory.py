from __future__ import annotations

"""In-process adapter keeping rows in dictionaries.

Intended for tests and small applications; data lives only as long as the
adapter instance.
"""

import copy
import logging
from typing import Any, Dict, Iterable, List, Optional

from ..errors import UniquenessError
from ..query.models import Criteria
from ..schema.types import ModelSchema
from .base import BaseAdapter, Row, matches, select_rows

logger = logging.getLogger(__name__)


class _Table:
    def __init__(self, schema: ModelSchema):
        self.schema = schema
        self.rows: Dict[Any, Row] = {}
        self.counter = 0

    def next_key(self) -> int:
        self.counter += 1
        while self.counter in self.rows:
            self.counter += 1
        return self.counter


class MemoryAdapter(BaseAdapter):
    name = "memory"

    def __init__(self, name: Optional[str] = None):
        super().__init__(name)
        self._tables: Dict[str, _Table] = {}

    async def define(self, identity: str, schema: ModelSchema) -> None:
        await super().define(identity, schema)
        self._tables.setdefault(identity, _Table(schema))

    def _table(self, identity: str) -> _Table:
        self._schema(identity)
        return self._tables[identity]

    def _check_unique(self, table: _Table, values: Row, *, ignore: Iterable[Any] = ()) -> None:
        skip = set(ignore)
        for attr in table.schema.unique_attributes():
            value = values.get(attr)
            if value is None:
                continue
            for key, row in table.rows.items():
                if key in skip:
                    continue
                if row.get(attr) == value:
                    raise UniquenessError(table.schema.identity, attr, value)

    async def create(self, identity: str, values: Row) -> Row:
        table = self._table(identity)
        pk = table.schema.primary_key
        row = copy.deepcopy(values)
        if row.get(pk) is None:
            row[pk] = table.next_key()
        self._check_unique(table, row)
        table.rows[row[pk]] = row
        logger.debug("memory[%s]: created %s=%r", identity, pk, row[pk])
        return copy.deepcopy(row)

    async def find(self, identity: str, criteria: Criteria) -> List[Row]:
        table = self._table(identity)
        return copy.deepcopy(select_rows(list(table.rows.values()), criteria))

    async def update(self, identity: str, criteria: Criteria, changes: Row) -> List[Row]:
        table = self._table(identity)
        pk = table.schema.primary_key
        targets = select_rows(list(table.rows.values()), criteria)
        if not targets:
            return []
        keys = [row[pk] for row in targets]
        unique_changes = {a: changes[a] for a in table.schema.unique_attributes() if changes.get(a) is not None}
        if unique_changes and len(keys) > 1:
            attr, value = next(iter(unique_changes.items()))
            raise UniquenessError(identity, attr, value)
        self._check_unique(table, changes, ignore=keys)

        updated: List[Row] = []
        for key in keys:
            row = table.rows.pop(key)
            row.update(copy.deepcopy(changes))
            table.rows[row[pk]] = row
            updated.append(copy.deepcopy(row))
        logger.debug("memory[%s]: updated %d row(s)", identity, len(updated))
        return updated

    async def destroy(self, identity: str, criteria: Criteria) -> int:
        table = self._table(identity)
        pk = table.schema.primary_key
        doomed = [row[pk] for row in table.rows.values() if matches(row, criteria.where)]
        for key in doomed:
            del table.rows[key]
        logger.debug("memory[%s]: destroyed %d row(s)", identity, len(doomed))
        return len(doomed)

    async def count(self, identity: str, criteria: Criteria) -> int:
        table = self._table(identity)
        return sum(1 for row in table.rows.values() if matches(row, criteria.where))

    async def teardown(self) -> None:
        self._tables.clear()
        self.schemas.clear()


__all__ = ["MemoryAdapter"]
