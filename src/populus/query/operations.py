from __future__ import annotations

"""Deferred operations returned by collection methods.

Nothing touches storage until an operation is awaited. Errors (criteria
validation included) are raised from the ``await``, so a failing operation
never affects operations running beside it.
"""

from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Generator, List, Optional

from .builder import SortInput, WhereInput, build_criteria, compile_populate

if TYPE_CHECKING:  # pragma: no cover
    from ..associations import PopulationRun
    from ..collection import Collection
    from ..records import Record, RecordCursor


class Operation:
    """An awaitable unit of work wrapping a coroutine factory."""

    def __init__(self, description: str, factory: Callable[[], Awaitable[Any]]):
        self.description = description
        self._factory = factory

    def __await__(self) -> Generator[Any, None, Any]:
        return self._factory().__await__()

    def __repr__(self) -> str:
        return f"<Operation {self.description}>"


class FindQuery:
    """Chainable ``find``; awaiting it yields a :class:`RecordCursor`."""

    def __init__(self, collection: "Collection", where: WhereInput = None):
        self.collection = collection
        self._where: List[WhereInput] = [] if where is None else [where]
        self._sort: List[SortInput] = []
        self._limit: Optional[int] = None
        self._skip = 0
        self._populate: Dict[str, Dict[str, Any]] = {}
        self.run: Optional["PopulationRun"] = None

    # --- chaining ---
    def where(self, where: WhereInput) -> "FindQuery":
        if where is not None:
            self._where.append(where)
        return self

    def populate(
        self,
        association: str,
        where: WhereInput = None,
        *,
        sort: SortInput = None,
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> "FindQuery":
        self._populate[association] = {"where": where, "sort": sort, "limit": limit, "skip": skip}
        return self

    def sort(self, sort: SortInput) -> "FindQuery":
        self._sort.append(sort)
        return self

    def limit(self, limit: int) -> "FindQuery":
        self._limit = limit
        return self

    def skip(self, skip: int) -> "FindQuery":
        self._skip = skip
        return self

    # --- execution ---
    def _criteria(self):
        schema = self.collection.schema
        registry = self.collection.registry
        where: WhereInput
        if not self._where:
            where = None
        elif len(self._where) == 1:
            where = self._where[0]
        else:
            where = {"and": list(self._where)}
        populate = [
            compile_populate(schema, registry, name, **opts) for name, opts in self._populate.items()
        ]
        return build_criteria(
            schema,
            where=where,
            sort=[s for s in self._sort if s is not None] or None,
            limit=self._limit,
            skip=self._skip,
            populate=populate,
        )

    async def _execute(self) -> "RecordCursor":
        return await self.collection._find(self)

    def __await__(self) -> Generator[Any, None, "RecordCursor"]:
        return self._execute().__await__()


class FindOneQuery(FindQuery):
    """``find`` limited to the first match; awaiting yields a record or ``None``."""

    async def _execute(self) -> Optional["Record"]:  # type: ignore[override]
        self._limit = 1
        cursor = await self.collection._find(self)
        return next(cursor, None)


__all__ = ["Operation", "FindQuery", "FindOneQuery"]
