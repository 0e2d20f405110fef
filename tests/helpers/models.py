from __future__ import annotations

from collections import Counter
from typing import Any, Dict, List, Mapping, Optional

from populus import MemoryAdapter, Ontology, initialize


def strip_password(obj: Dict[str, Any]) -> Dict[str, Any]:
    obj.pop("password", None)
    return obj


USER: Dict[str, Any] = {
    "identity": "user",
    "connection": "default",
    "attributes": {
        "username": {"type": "string", "unique": True},
        "password": "string",
        "age": "integer",
        "pets": {"collection": "pet", "via": "owner"},
        "toJSON": strip_password,
    },
}

PET: Dict[str, Any] = {
    "identity": "pet",
    "connection": "default",
    "attributes": {
        "name": {"type": "string", "required": True},
        "breed": "string",
        "owner": {"model": "user"},
    },
}


class CountingAdapter(MemoryAdapter):
    """Memory adapter that records every call it receives."""

    def __init__(self, name: Optional[str] = None):
        super().__init__(name)
        self.calls: Counter = Counter()
        self.finds: List[tuple] = []

    def reset(self) -> None:
        self.calls.clear()
        self.finds.clear()

    async def create(self, identity, values):
        self.calls[("create", identity)] += 1
        return await super().create(identity, values)

    async def find(self, identity, criteria):
        self.calls[("find", identity)] += 1
        self.finds.append((identity, criteria))
        return await super().find(identity, criteria)

    async def update(self, identity, criteria, changes):
        self.calls[("update", identity)] += 1
        return await super().update(identity, criteria, changes)

    async def destroy(self, identity, criteria):
        self.calls[("destroy", identity)] += 1
        return await super().destroy(identity, criteria)


def memory_config(adapter: Any, **extra: Any) -> Dict[str, Any]:
    config: Dict[str, Any] = {
        "adapters": {"memory": adapter},
        "connections": {"default": {"adapter": "memory"}},
    }
    config.update(extra)
    return config


async def build_ontology(
    definitions: List[Mapping[str, Any]],
    adapter: Any = None,
    **extra: Any,
) -> Ontology:
    return await initialize(list(definitions), memory_config(adapter or MemoryAdapter(), **extra))


BACKENDS = ("memory", "sqlite", "pandas")


async def build_backend(name: str, definitions: List[Mapping[str, Any]]) -> Ontology:
    """Initialize ``definitions`` on a fresh instance of a bundled adapter."""
    return await initialize(list(definitions), {"connections": {"default": {"adapter": name}}})
