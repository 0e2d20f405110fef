from __future__ import annotations

"""Route each collection to the adapter instance behind its connection."""

import importlib
import inspect
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping

from .adapters import BUILTIN_ADAPTERS
from .adapters.base import Adapter
from .config import OrmConfig
from .errors import UnboundConnectionError, UnknownModelError, UnregisteredAdapterError
from .schema.registry import SchemaRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Binding:
    identity: str
    connection: str
    adapter_name: str
    adapter: Adapter


def _import_object(path: str) -> Any:
    module_name, _, attr = path.partition(":")
    if not attr:
        module_name, _, attr = path.rpartition(".")
    module = importlib.import_module(module_name)
    return getattr(module, attr)


def _resolve_adapter(name: str, spec: Any, options: Mapping[str, Any]) -> Adapter:
    if isinstance(spec, str):
        spec = _import_object(spec)
    if inspect.isclass(spec):
        return spec(name=name, **options) if options else spec(name=name)
    if callable(getattr(spec, "find", None)) and callable(getattr(spec, "create", None)):
        return spec
    raise TypeError(f"Adapter '{name}' must be an adapter instance, class or import path, got {spec!r}")


class AdapterBindings(Mapping[str, Binding]):
    """Read-only mapping ``identity -> Binding``."""

    def __init__(self, bindings: Mapping[str, Binding]):
        self._bindings = MappingProxyType(dict(bindings))

    @classmethod
    def from_config(cls, config: OrmConfig, registry: SchemaRegistry) -> "AdapterBindings":
        # Adapter instances given directly are shared by every connection naming
        # them; classes and import paths get one instance per connection.
        per_connection: Dict[str, Adapter] = {}
        connection_adapter: Dict[str, str] = {}
        for conn_name, conn in config.connections.items():
            spec = config.adapters.get(conn.adapter, BUILTIN_ADAPTERS.get(conn.adapter))
            if spec is None:
                raise UnregisteredAdapterError(conn.adapter, connection=conn_name)
            connection_adapter[conn_name] = conn.adapter
            if conn_name in registry.connections():
                per_connection[conn_name] = _resolve_adapter(conn.adapter, spec, conn.options())

        bindings: Dict[str, Binding] = {}
        for identity, schema in registry.items():
            adapter = per_connection.get(schema.connection)
            if adapter is None:
                raise UnboundConnectionError(schema.connection, identity=identity)
            bindings[identity] = Binding(
                identity=identity,
                connection=schema.connection,
                adapter_name=connection_adapter[schema.connection],
                adapter=adapter,
            )
            logger.debug(
                "Bound model %s -> connection %s (adapter %s)",
                identity,
                schema.connection,
                connection_adapter[schema.connection],
            )
        return cls(bindings)

    def __getitem__(self, identity: str) -> Binding:
        try:
            return self._bindings[identity]
        except KeyError:
            raise UnknownModelError(identity) from None

    def get(self, identity: str, default: Any = None) -> Any:
        return self._bindings.get(identity, default)

    def __iter__(self) -> Iterator[str]:
        return iter(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    def adapter_for(self, identity: str) -> Adapter:
        return self[identity].adapter

    def adapters(self) -> List[Adapter]:
        """Distinct adapter instances, in binding order."""
        seen: List[Adapter] = []
        for binding in self._bindings.values():
            if not any(binding.adapter is a for a in seen):
                seen.append(binding.adapter)
        return seen


__all__ = ["Binding", "AdapterBindings"]
