from __future__ import annotations

"""Batched population of associations.

For a page of primary rows every requested association is resolved with a
single secondary fetch filtered by the set of owning (or referenced) keys,
never one fetch per row. Independent associations are fetched concurrently;
if any of them fails the whole population fails.
"""

import asyncio
import enum
import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Sequence

from .errors import UnresolvedAssociationError
from .query.models import ComparisonFilter, Criteria, PopulateRequest, and_clauses
from .schema.types import CollectionAssociation, ModelAssociation, ModelSchema

if TYPE_CHECKING:  # pragma: no cover
    from .collection import Collection

logger = logging.getLogger(__name__)

# owner key -> raw target rows (a list for one-to-many, a row or None for many-to-one)
Attachment = Dict[Any, Any]


class PopulationState(str, enum.Enum):
    PENDING = "pending"
    FETCHING_PRIMARY = "fetching_primary"
    FETCHING_ASSOCIATIONS = "fetching_associations"
    ATTACHED = "attached"
    FAILED = "failed"


_TRANSITIONS = {
    PopulationState.PENDING: {PopulationState.FETCHING_PRIMARY, PopulationState.FAILED},
    PopulationState.FETCHING_PRIMARY: {
        PopulationState.FETCHING_ASSOCIATIONS,
        PopulationState.ATTACHED,
        PopulationState.FAILED,
    },
    PopulationState.FETCHING_ASSOCIATIONS: {PopulationState.ATTACHED, PopulationState.FAILED},
    PopulationState.ATTACHED: set(),
    PopulationState.FAILED: set(),
}


class PopulationRun:
    """Tracks one ``find`` operation through its population stages."""

    def __init__(self, identity: str):
        self.identity = identity
        self.state = PopulationState.PENDING
        self.history: List[PopulationState] = [self.state]

    def advance(self, state: PopulationState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid population transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)
        logger.debug("population[%s]: %s", self.identity, state.value)


def _chunks(items: List[Any], size: int) -> Iterable[List[Any]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


def _unique(values: Iterable[Any]) -> List[Any]:
    seen: Dict[Any, None] = {}
    for value in values:
        if value is not None and value not in seen:
            seen[value] = None
    return list(seen)


class AssociationResolver:
    """Resolve population requests for rows of one collection."""

    def __init__(self, collections: Mapping[str, "Collection"], *, max_keys_per_batch: int = 1000):
        self.collections = collections
        self.max_keys_per_batch = max_keys_per_batch

    async def resolve(
        self,
        schema: ModelSchema,
        rows: Sequence[Mapping[str, Any]],
        requests: Sequence[PopulateRequest],
    ) -> Dict[str, Attachment]:
        """Return ``association -> {owner key -> attached value}``."""
        for req in requests:
            if req.association not in schema.associations():
                raise UnresolvedAssociationError(
                    schema.identity, req.association, candidates=schema.associations().keys()
                )
        if not rows or not requests:
            return {req.association: {} for req in requests}

        tasks = [asyncio.ensure_future(self._resolve_one(schema, rows, req)) for req in requests]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            # collect the cancelled siblings so their outcomes are retrieved
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return {req.association: res for req, res in zip(requests, results)}

    async def _resolve_one(
        self, schema: ModelSchema, rows: Sequence[Mapping[str, Any]], req: PopulateRequest
    ) -> Attachment:
        spec = schema.attributes[req.association]
        if isinstance(spec, CollectionAssociation):
            return await self._resolve_via(schema, rows, spec, req)
        if isinstance(spec, ModelAssociation):
            return await self._resolve_model(schema, rows, req.association, spec, req)
        raise UnresolvedAssociationError(schema.identity, req.association)

    async def _fetch_by_keys(self, target: "Collection", field: str, keys: List[Any], req: PopulateRequest) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for chunk in _chunks(keys, self.max_keys_per_batch):
            criteria = Criteria(
                where=and_clauses(ComparisonFilter(field=field, op="in", value=chunk), req.where),
                sort=req.sort,
            )
            rows.extend(await target.adapter.find(target.identity, criteria))
        logger.debug(
            "population: fetched %d %s row(s) for %d key(s) on %s",
            len(rows),
            target.identity,
            len(keys),
            field,
        )
        return rows

    async def _resolve_via(
        self,
        schema: ModelSchema,
        rows: Sequence[Mapping[str, Any]],
        spec: CollectionAssociation,
        req: PopulateRequest,
    ) -> Attachment:
        target = self.collections[spec.collection]
        owner_keys = _unique(row.get(schema.primary_key) for row in rows)
        grouped: Dict[Any, List[Dict[str, Any]]] = {key: [] for key in owner_keys}
        if owner_keys:
            for child in await self._fetch_by_keys(target, spec.via, owner_keys, req):
                bucket = grouped.get(child.get(spec.via))
                if bucket is not None:
                    bucket.append(child)
        stop = None if req.limit is None else req.skip + req.limit
        return {key: children[req.skip : stop] for key, children in grouped.items()}

    async def _resolve_model(
        self,
        schema: ModelSchema,
        rows: Sequence[Mapping[str, Any]],
        name: str,
        spec: ModelAssociation,
        req: PopulateRequest,
    ) -> Attachment:
        target = self.collections[spec.model]
        keys = _unique(row.get(name) for row in rows)
        found: Dict[Any, Dict[str, Any]] = {}
        if keys:
            for parent in await self._fetch_by_keys(target, target.schema.primary_key, keys, req):
                found[parent[target.schema.primary_key]] = parent
        return {key: found.get(key) for key in keys}


__all__ = ["PopulationState", "PopulationRun", "AssociationResolver", "Attachment"]
