from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Dict, Iterable, Iterator, List, Mapping, Optional

from .errors import UnknownAttributeError
from .schema.types import CollectionAssociation, ModelAssociation, ModelSchema

if TYPE_CHECKING:  # pragma: no cover
    from .collection import Collection


def _key_of(value: Any) -> Any:
    return value.primary_key_value if isinstance(value, Record) else value


class Record:
    """One stored row of a collection.

    Attributes are readable as ``record.name`` or ``record["name"]``.
    Declared attributes without a stored value read as ``None``. Assignments
    stay in memory until :meth:`save` is awaited.
    """

    def __init__(self, collection: "Collection", values: Mapping[str, Any]):
        object.__setattr__(self, "_collection", collection)
        object.__setattr__(self, "_values", dict(values))
        object.__setattr__(self, "_snapshot", {})
        object.__setattr__(self, "_attached", {})
        object.__setattr__(self, "_links", {})
        self._take_snapshot()

    # --- attribute access ---
    @property
    def schema(self) -> ModelSchema:
        return self._collection.schema

    @property
    def identity(self) -> str:
        return self._collection.identity

    @property
    def primary_key_value(self) -> Any:
        return self._snapshot.get(self.schema.primary_key, self._values.get(self.schema.primary_key))

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        values = self.__dict__["_values"]
        if name in values:
            return values[name]
        if self.__dict__["_collection"].schema.has_attribute(name):
            return None
        raise AttributeError(f"'{self.__dict__['_collection'].identity}' record has no attribute '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            object.__setattr__(self, name, value)
            return
        if not self.schema.has_attribute(name):
            raise UnknownAttributeError(self.identity, name, candidates=self.schema.attributes.keys())
        self._values[name] = value

    def __getitem__(self, name: str) -> Any:
        if name in self._values:
            return self._values[name]
        if self.schema.has_attribute(name):
            return None
        raise KeyError(name)

    def __setitem__(self, name: str, value: Any) -> None:
        self.__setattr__(name, value)

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def keys(self) -> List[str]:
        return list(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Record):
            return self.identity == other.identity and self.to_object() == other.to_object()
        if isinstance(other, Mapping):
            return self.to_object() == dict(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"<Record {self.identity} {self.to_object()!r}>"

    # --- serialization ---
    def _convert(self, value: Any, convert: Callable[["Record"], Dict[str, Any]]) -> Any:
        if isinstance(value, Record):
            return convert(value)
        if isinstance(value, list):
            return [self._convert(v, convert) for v in value]
        return copy.deepcopy(value)

    def to_object(self) -> Dict[str, Any]:
        """Plain mapping of the record, populated associations included."""
        return {k: self._convert(v, Record.to_object) for k, v in self._values.items()}

    def to_json(self) -> Dict[str, Any]:
        """Presentation form: the model's ``to_json`` hook applied to a copy.

        Nested populated records are rendered with their own model's hook.
        The record itself is never modified.
        """
        obj = {k: self._convert(v, Record.to_json) for k, v in self._values.items()}
        hook = self.schema.to_json
        return hook(obj) if hook is not None else obj

    # --- change tracking ---
    def _take_snapshot(self) -> None:
        stored = {}
        for name, value in self._values.items():
            spec = self.schema.attributes.get(name)
            if isinstance(spec, CollectionAssociation):
                continue
            stored[name] = copy.deepcopy(_key_of(value))
        object.__setattr__(self, "_snapshot", stored)

    def _attach(self, name: str, value: Any) -> None:
        """Attach a populated association without marking it as changed."""
        spec = self.schema.attributes[name]
        self._values[name] = value
        self._attached[name] = value
        if isinstance(spec, CollectionAssociation):
            self._links[name] = [_key_of(v) for v in value]

    def changes(self) -> Dict[str, Any]:
        """Stored attributes that differ from the last persisted state."""
        diff: Dict[str, Any] = {}
        for name, value in self._values.items():
            spec = self.schema.attributes.get(name)
            if isinstance(spec, CollectionAssociation):
                continue
            if isinstance(spec, ModelAssociation) and name in self._attached and value is self._attached[name]:
                continue
            stored = _key_of(value)
            if name not in self._snapshot or self._snapshot[name] != stored:
                diff[name] = stored
        for name in self._snapshot:
            if name not in self._values:
                diff[name] = None
        return diff

    def collection_changes(self) -> Dict[str, List[Any]]:
        """Collection associations whose member keys differ from the last
        known state. Assignments on unpopulated records always count."""
        diff: Dict[str, List[Any]] = {}
        for name in self.schema.collection_associations():
            if name not in self._values:
                continue
            value = self._values[name]
            keys = [_key_of(v) for v in (value or [])]
            if name not in self._links or self._links[name] != keys:
                diff[name] = keys
        return diff

    def _mark_persisted(self, row: Mapping[str, Any], links: Optional[Mapping[str, List[Any]]] = None) -> None:
        for name, value in row.items():
            if name in self._attached and _key_of(self._attached[name]) == value:
                continue
            self._values[name] = value
            self._attached.pop(name, None)
        for name in list(self._values):
            spec = self.schema.attributes.get(name)
            if name not in row and not isinstance(spec, CollectionAssociation):
                del self._values[name]
        if links:
            self._links.update({k: list(v) for k, v in links.items()})
        self._take_snapshot()

    # --- persistence shortcuts ---
    async def save(self) -> "Record":
        return await self._collection.save(self)

    async def destroy(self) -> int:
        return await self._collection.destroy_record(self)


class RecordCursor(Iterator[Record]):
    """One-shot, lazily hydrated sequence of records returned by ``find``.

    Iterating consumes the cursor; a new ``find`` is needed to read the
    results again.
    """

    def __init__(self, rows: Iterable[Any], hydrate: Callable[[Any], Record]):
        self._rows = iter(rows)
        self._hydrate = hydrate

    def __iter__(self) -> "RecordCursor":
        return self

    def __next__(self) -> Record:
        return self._hydrate(next(self._rows))

    def __aiter__(self) -> AsyncIterator[Record]:
        return self._aiter()

    async def _aiter(self) -> AsyncIterator[Record]:
        for record in self:
            yield record

    def to_list(self) -> List[Record]:
        return list(self)


__all__ = ["Record", "RecordCursor"]
