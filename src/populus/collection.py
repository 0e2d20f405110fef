from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional

from .adapters.base import Adapter
from .associations import AssociationResolver, PopulationRun, PopulationState
from .binding import Binding
from .errors import StaleRecordError, UnresolvedAssociationError, ValidationError
from .query.builder import WhereInput, build_criteria
from .query.models import ComparisonFilter, Criteria, and_clauses
from .query.operations import FindOneQuery, FindQuery, Operation
from .records import Record, RecordCursor
from .schema.types import CREATED_AT, UPDATED_AT, CollectionAssociation, ModelSchema
from .schema.validation import check_values

if TYPE_CHECKING:  # pragma: no cover
    from .schema.registry import SchemaRegistry

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Collection:
    """Live, queryable collection bound to one adapter.

    Every public method returns an awaitable; storage is only touched when
    it is awaited.
    """

    def __init__(
        self,
        schema: ModelSchema,
        binding: Binding,
        registry: "SchemaRegistry",
        collections: Mapping[str, "Collection"],
        resolver: AssociationResolver,
    ):
        self.schema = schema
        self.binding = binding
        self.registry = registry
        self._collections = collections
        self._resolver = resolver

    @property
    def identity(self) -> str:
        return self.schema.identity

    @property
    def adapter(self) -> Adapter:
        return self.binding.adapter

    def __repr__(self) -> str:
        return f"<Collection {self.identity} via {self.binding.connection}/{self.binding.adapter_name}>"

    # --- hydration ---
    def hydrate(self, row: Mapping[str, Any], attachments: Optional[Mapping[str, Mapping[Any, Any]]] = None) -> Record:
        """Build a record from an adapter row, attaching populated associations."""
        values = {k: v for k, v in row.items() if v is not None and k in self.schema.attributes}
        record = Record(self, values)
        for name, by_key in (attachments or {}).items():
            spec = self.schema.attributes[name]
            if isinstance(spec, CollectionAssociation):
                target = self._collections[spec.collection]
                children = by_key.get(record.primary_key_value, [])
                record._attach(name, [target.hydrate(child) for child in children])
            else:
                target = self._collections[spec.model]
                parent = by_key.get(row.get(name))
                record._attach(name, target.hydrate(parent) if parent is not None else None)
        return record

    def _by_key(self, key: Any) -> Criteria:
        return Criteria(where=ComparisonFilter(field=self.schema.primary_key, op="=", value=key))

    def _split_values(self, values: Mapping[str, Any]):
        stored: Dict[str, Any] = {}
        links: Dict[str, List[Any]] = {}
        for name, value in values.items():
            spec = self.schema.attributes.get(name)
            if isinstance(spec, CollectionAssociation):
                links[name] = list(value or [])
            else:
                stored[name] = value
        return stored, links

    # --- public API ---
    def create(self, values: Mapping[str, Any]) -> Operation:
        return Operation(f"create {self.identity}", lambda: self._create(dict(values)))

    def create_each(self, items: Iterable[Mapping[str, Any]]) -> Operation:
        batch = [dict(v) for v in items]

        async def _run() -> List[Record]:
            return [await self._create(v) for v in batch]

        return Operation(f"create_each {self.identity}", _run)

    def find(self, where: WhereInput = None) -> FindQuery:
        return FindQuery(self, where)

    def find_one(self, where: WhereInput = None) -> FindOneQuery:
        return FindOneQuery(self, where)

    def count(self, where: WhereInput = None) -> Operation:
        async def _run() -> int:
            criteria = build_criteria(self.schema, where=where)
            counter = getattr(self.adapter, "count", None)
            if callable(counter):
                return await counter(self.identity, criteria)
            return len(await self.adapter.find(self.identity, criteria))

        return Operation(f"count {self.identity}", _run)

    def update(self, where: WhereInput, changes: Mapping[str, Any]) -> Operation:
        return Operation(f"update {self.identity}", lambda: self._update(where, dict(changes)))

    def destroy(self, where: WhereInput = None) -> Operation:
        async def _run() -> int:
            criteria = build_criteria(self.schema, where=where)
            removed = await self.adapter.destroy(self.identity, criteria)
            logger.debug("%s: destroyed %d record(s)", self.identity, removed)
            return removed

        return Operation(f"destroy {self.identity}", _run)

    async def save(self, record: Record) -> Record:
        """Persist in-memory changes of ``record``.

        Raises :class:`StaleRecordError` when the record's primary key no
        longer exists in storage.
        """
        if record._collection is not self:
            raise ValueError(f"Record belongs to '{record.identity}', not '{self.identity}'")
        key = record.primary_key_value
        changes = check_values(self.schema, record.changes(), partial=True)
        link_changes = record.collection_changes()
        if self.schema.auto_updated_at and (changes or link_changes):
            changes[UPDATED_AT] = _now()

        if changes:
            rows = await self.adapter.update(self.identity, self._by_key(key), changes)
        else:
            rows = await self.adapter.find(self.identity, self._by_key(key))
        if not rows:
            raise StaleRecordError(self.identity, key)
        row = rows[0]
        new_key = row[self.schema.primary_key]

        for name, child_keys in link_changes.items():
            await self._relink(name, new_key, child_keys, known=record._links.get(name))

        record._mark_persisted(
            {k: v for k, v in row.items() if v is not None and k in self.schema.attributes},
            links=link_changes,
        )
        logger.debug("%s: saved %r (%d change(s))", self.identity, new_key, len(changes) + len(link_changes))
        return record

    async def destroy_record(self, record: Record) -> int:
        removed = await self.adapter.destroy(self.identity, self._by_key(record.primary_key_value))
        if not removed:
            raise StaleRecordError(self.identity, record.primary_key_value)
        return removed

    # --- internals ---
    async def _create(self, values: Dict[str, Any]) -> Record:
        stored, links = self._split_values(values)
        checked = check_values(self.schema, stored, partial=False)
        pk = self.schema.primary_key
        if checked.get(pk) is None:
            checked.pop(pk, None)
            if self.schema.key_type == "string":
                checked[pk] = uuid.uuid4().hex
        if self.schema.auto_created_at:
            checked[CREATED_AT] = _now()
        if self.schema.auto_updated_at:
            checked[UPDATED_AT] = _now()

        row = await self.adapter.create(self.identity, checked)
        record = self.hydrate(row)
        logger.debug("%s: created %r", self.identity, record.primary_key_value)
        for name, children in links.items():
            keys = [getattr(c, "primary_key_value", c) for c in children]
            await self._relink(name, record.primary_key_value, keys)
            record._values[name] = children
            record._links[name] = keys
        return record

    async def _find(self, query: FindQuery) -> RecordCursor:
        run = PopulationRun(self.identity)
        query.run = run
        try:
            criteria = query._criteria()
            run.advance(PopulationState.FETCHING_PRIMARY)
            rows = await self.adapter.find(self.identity, criteria.storage_view())
            attachments: Dict[str, Dict[Any, Any]] = {}
            if criteria.populate:
                run.advance(PopulationState.FETCHING_ASSOCIATIONS)
                attachments = await self._resolver.resolve(self.schema, rows, criteria.populate)
            run.advance(PopulationState.ATTACHED)
        except BaseException:
            if run.state not in (PopulationState.ATTACHED, PopulationState.FAILED):
                run.advance(PopulationState.FAILED)
            raise
        return RecordCursor(rows, lambda row: self.hydrate(row, attachments))

    async def _update(self, where: WhereInput, changes: Dict[str, Any]) -> List[Record]:
        criteria = build_criteria(self.schema, where=where)
        stored, links = self._split_values(changes)
        if links:
            name = next(iter(links))
            raise ValidationError(self.identity, name, links[name], "use save() to change collection associations")
        checked = check_values(self.schema, stored, partial=True)
        if self.schema.auto_updated_at:
            checked[UPDATED_AT] = _now()
        rows = await self.adapter.update(self.identity, criteria.storage_view(), checked)
        logger.debug("%s: updated %d record(s)", self.identity, len(rows))
        return [self.hydrate(row) for row in rows]

    async def _relink(
        self,
        name: str,
        owner_key: Any,
        child_keys: List[Any],
        *,
        known: Optional[List[Any]] = None,
    ) -> None:
        """Link ``child_keys`` of the ``name`` association to ``owner_key``.

        With ``known`` (the members the record last saw) only the difference
        is applied, so children the record never loaded stay linked. Without
        it the association is replaced: every stored child not in
        ``child_keys`` is unlinked.
        """
        spec = self.schema.attributes.get(name)
        if not isinstance(spec, CollectionAssociation):
            raise UnresolvedAssociationError(
                self.identity, name, candidates=self.schema.collection_associations().keys()
            )
        target = self._collections[spec.collection]
        target_pk = target.schema.primary_key
        desired = list(dict.fromkeys(child_keys))
        if known is None:
            current_rows = await target.adapter.find(
                target.identity, Criteria(where=ComparisonFilter(field=spec.via, op="=", value=owner_key))
            )
            current = [row[target_pk] for row in current_rows]
        else:
            current = list(dict.fromkeys(known))
        added = [k for k in desired if k not in current]
        removed = [k for k in current if k not in set(desired)]

        if added:
            rows = await target.adapter.update(
                target.identity, Criteria.by_keys(target_pk, added), {spec.via: owner_key}
            )
            linked = {row[target_pk] for row in rows}
            missing = [k for k in added if k not in linked]
            if missing:
                raise StaleRecordError(target.identity, missing[0])
        if removed:
            # only children still pointing at this owner are unlinked
            still_ours = and_clauses(
                Criteria.by_keys(target_pk, removed).where,
                ComparisonFilter(field=spec.via, op="=", value=owner_key),
            )
            await target.adapter.update(target.identity, Criteria(where=still_ours), {spec.via: None})
        logger.debug(
            "%s.%s: linked %d, unlinked %d %s record(s)",
            self.identity,
            name,
            len(added),
            len(removed),
            target.identity,
        )


__all__ = ["Collection"]
