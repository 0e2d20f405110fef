from __future__ import annotations

"""SQLite-backed adapter that builds SQL statements directly."""

import asyncio
import json
import logging
import re
import sqlite3
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..errors import UniquenessError
from ..query.models import ComparisonFilter, Criteria, FilterClause, LogicalFilter
from ..schema.types import ModelSchema, ScalarAttribute
from .base import BaseAdapter, Row

logger = logging.getLogger(__name__)

_COLUMN_TYPES = {
    "string": "TEXT",
    "text": "TEXT",
    "email": "TEXT",
    "integer": "INTEGER",
    "float": "REAL",
    "number": "REAL",
    "boolean": "INTEGER",
    "date": "TEXT",
    "datetime": "TEXT",
    "json": "TEXT",
    "array": "TEXT",
}

_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: [^.]+\.(\w+)")


class SqliteAdapter(BaseAdapter):
    """Adapter storing each collection in a SQLite table.

    The adapter either opens ``database`` itself or uses an existing
    ``connection``. Statements run in a worker thread and are serialized
    through a lock, so one adapter instance may be shared by all collections
    of a connection.

    Notes
    -----
    Statements use ``paramstyle="qmark"`` (``?`` placeholders).
    """

    name = "sqlite"

    def __init__(
        self,
        name: Optional[str] = None,
        *,
        database: str = ":memory:",
        connection: Optional[sqlite3.Connection] = None,
    ):
        super().__init__(name)
        self._owns_connection = connection is None
        self.connection = connection or sqlite3.connect(database, check_same_thread=False)
        self._lock = asyncio.Lock()

    # --- helper methods ---
    def _quote_ident(self, name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    def _column_type(self, spec: Any) -> str:
        if isinstance(spec, ScalarAttribute):
            return _COLUMN_TYPES.get(spec.type, "")
        return ""

    def _scalar_type(self, schema: ModelSchema, field: str) -> Optional[str]:
        spec = schema.attributes.get(field)
        return spec.type if isinstance(spec, ScalarAttribute) else None

    def _encode(self, schema: ModelSchema, field: str, value: Any) -> Any:
        if value is None:
            return None
        kind = self._scalar_type(schema, field)
        if kind == "boolean":
            return int(bool(value))
        if kind in {"date", "datetime"} and isinstance(value, (date, datetime)):
            return value.isoformat()
        if kind in {"json", "array"}:
            return json.dumps(value)
        return value

    def _decode(self, schema: ModelSchema, field: str, value: Any) -> Any:
        if value is None:
            return None
        kind = self._scalar_type(schema, field)
        if kind == "boolean":
            return bool(value)
        if kind == "datetime":
            return datetime.fromisoformat(value)
        if kind == "date":
            return date.fromisoformat(value)
        if kind in {"json", "array"}:
            return json.loads(value)
        return value

    def _row_from_cursor(self, schema: ModelSchema, cursor: sqlite3.Cursor, raw: Sequence[Any]) -> Row:
        names = [d[0] for d in cursor.description]
        return {name: self._decode(schema, name, value) for name, value in zip(names, raw)}

    def _build_comparison(self, schema: ModelSchema, clause: ComparisonFilter, params: List[Any]) -> str:
        column = self._quote_ident(clause.field)
        op = clause.op
        value = clause.value
        if op in {"=", "!="} and value is None:
            return f"{column} IS NULL" if op == "=" else f"{column} IS NOT NULL"
        if op in {"=", "!=", ">", "<", ">=", "<="}:
            params.append(self._encode(schema, clause.field, value))
            return f"{column} {op} ?"
        if op in {"in", "not_in"}:
            if not isinstance(value, (list, tuple)):
                raise TypeError(f"Values for '{op}' operator must be a list or tuple")
            if not value:
                return "1=0" if op == "in" else "1=1"
            placeholders = ",".join("?" for _ in value)
            params.extend(self._encode(schema, clause.field, v) for v in value)
            keyword = "IN" if op == "in" else "NOT IN"
            return f"{column} {keyword} ({placeholders})"
        if op == "like":
            params.append(str(value).lower())
            return f"LOWER({column}) LIKE ?"
        if op in {"contains", "starts_with", "ends_with"}:
            needle = str(value).lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            pattern = {"contains": "%{}%", "starts_with": "{}%", "ends_with": "%{}"}[op].format(needle)
            params.append(pattern)
            return f"LOWER({column}) LIKE ? ESCAPE '\\'"
        raise ValueError(f"Unsupported comparison operator: {op}")

    def _build_filters(self, schema: ModelSchema, clause: Optional[FilterClause], params: List[Any]) -> Optional[str]:
        if clause is None:
            return None
        if isinstance(clause, ComparisonFilter):
            return self._build_comparison(schema, clause, params)
        if isinstance(clause, LogicalFilter):
            parts = [self._build_filters(schema, sub, params) for sub in clause.clauses]
            parts = [p for p in parts if p]
            if not parts:
                return "1=1" if clause.op == "and" else "1=0"
            joiner = " AND " if clause.op == "and" else " OR "
            return "(" + joiner.join(parts) + ")"
        raise TypeError(f"Unsupported filter clause: {clause!r}")

    def _select_sql(self, identity: str, criteria: Criteria) -> Tuple[str, List[Any]]:
        schema = self._schema(identity)
        params: List[Any] = []
        sql = f"SELECT * FROM {self._quote_ident(identity)}"
        where = self._build_filters(schema, criteria.where, params)
        if where:
            sql += f" WHERE {where}"
        if criteria.sort:
            order = ", ".join(
                f"{self._quote_ident(s.field)} {s.direction.upper()}" for s in criteria.sort
            )
            sql += f" ORDER BY {order}"
        if criteria.limit is not None or criteria.skip:
            sql += " LIMIT ? OFFSET ?"
            params.extend([criteria.limit if criteria.limit is not None else -1, criteria.skip])
        return sql, params

    def _unique_error(self, identity: str, exc: sqlite3.IntegrityError, values: Row) -> Optional[UniquenessError]:
        match = _UNIQUE_RE.search(str(exc))
        if not match:
            return None
        attr = match.group(1)
        return UniquenessError(identity, attr, values.get(attr))

    async def _run(self, fn, *args):
        async with self._lock:
            return await asyncio.to_thread(fn, *args)

    # --- lifecycle ---
    async def define(self, identity: str, schema: ModelSchema) -> None:
        await super().define(identity, schema)
        cols: List[str] = []
        for name in schema.storable_attributes():
            spec = schema.attributes[name]
            col = f"{self._quote_ident(name)} {self._column_type(spec)}".rstrip()
            if name == schema.primary_key:
                col += " PRIMARY KEY"
                if schema.key_type == "integer":
                    col += " AUTOINCREMENT"
            elif isinstance(spec, ScalarAttribute) and spec.unique:
                col += " UNIQUE"
            cols.append(col)
        sql = f"CREATE TABLE IF NOT EXISTS {self._quote_ident(identity)} (\n" + ",\n".join(cols) + "\n)"

        def _create():
            with self.connection:
                self.connection.execute(sql)

        await self._run(_create)
        logger.debug("sqlite: defined table %s", identity)

    async def teardown(self) -> None:
        if self._owns_connection:
            await self._run(self.connection.close)

    # --- capability API ---
    async def create(self, identity: str, values: Row) -> Row:
        schema = self._schema(identity)
        pk = schema.primary_key
        names = [n for n in values if values[n] is not None or n != pk]
        cols = ", ".join(self._quote_ident(n) for n in names)
        placeholders = ", ".join("?" for _ in names)
        params = [self._encode(schema, n, values[n]) for n in names]
        if names:
            sql = f"INSERT INTO {self._quote_ident(identity)} ({cols}) VALUES ({placeholders})"
        else:
            sql = f"INSERT INTO {self._quote_ident(identity)} DEFAULT VALUES"

        def _insert() -> Row:
            try:
                with self.connection:
                    cur = self.connection.execute(sql, params)
            except sqlite3.IntegrityError as exc:
                error = self._unique_error(identity, exc, values)
                if error is None:
                    raise
                raise error from exc
            key = values.get(pk)
            if key is None:
                key = cur.lastrowid
            cur = self.connection.execute(
                f"SELECT * FROM {self._quote_ident(identity)} WHERE {self._quote_ident(pk)} = ?",
                [key],
            )
            return self._row_from_cursor(schema, cur, cur.fetchone())

        return await self._run(_insert)

    async def find(self, identity: str, criteria: Criteria) -> List[Row]:
        schema = self._schema(identity)
        sql, params = self._select_sql(identity, criteria)

        def _select() -> List[Row]:
            cur = self.connection.execute(sql, params)
            return [self._row_from_cursor(schema, cur, raw) for raw in cur.fetchall()]

        return await self._run(_select)

    async def update(self, identity: str, criteria: Criteria, changes: Row) -> List[Row]:
        schema = self._schema(identity)
        pk = schema.primary_key
        table = self._quote_ident(identity)
        key_sql, key_params = self._select_sql(identity, criteria)
        key_sql = key_sql.replace("SELECT *", f"SELECT {self._quote_ident(pk)}", 1)

        def _update() -> List[Row]:
            keys = [r[0] for r in self.connection.execute(key_sql, key_params).fetchall()]
            if not keys:
                return []
            in_clause = ",".join("?" for _ in keys)
            if changes:
                assignments = ", ".join(f"{self._quote_ident(n)} = ?" for n in changes)
                params = [self._encode(schema, n, v) for n, v in changes.items()]
                try:
                    with self.connection:
                        self.connection.execute(
                            f"UPDATE {table} SET {assignments} WHERE {self._quote_ident(pk)} IN ({in_clause})",
                            params + keys,
                        )
                except sqlite3.IntegrityError as exc:
                    error = self._unique_error(identity, exc, changes)
                    if error is None:
                        raise
                    raise error from exc
            new_keys = [changes[pk]] if pk in changes else keys
            in_clause = ",".join("?" for _ in new_keys)
            cur = self.connection.execute(
                f"SELECT * FROM {table} WHERE {self._quote_ident(pk)} IN ({in_clause})",
                new_keys,
            )
            return [self._row_from_cursor(schema, cur, raw) for raw in cur.fetchall()]

        return await self._run(_update)

    async def destroy(self, identity: str, criteria: Criteria) -> int:
        schema = self._schema(identity)
        params: List[Any] = []
        sql = f"DELETE FROM {self._quote_ident(identity)}"
        where = self._build_filters(schema, criteria.where, params)
        if where:
            sql += f" WHERE {where}"

        def _delete() -> int:
            with self.connection:
                cur = self.connection.execute(sql, params)
            return cur.rowcount

        return await self._run(_delete)

    async def count(self, identity: str, criteria: Criteria) -> int:
        schema = self._schema(identity)
        params: List[Any] = []
        sql = f"SELECT COUNT(*) FROM {self._quote_ident(identity)}"
        where = self._build_filters(schema, criteria.where, params)
        if where:
            sql += f" WHERE {where}"

        def _count() -> int:
            return self.connection.execute(sql, params).fetchone()[0]

        return await self._run(_count)


__all__ = ["SqliteAdapter"]
