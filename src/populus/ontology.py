from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Union

from .associations import AssociationResolver
from .binding import AdapterBindings
from .collection import Collection
from .config import OrmConfig
from .errors import InitializationError
from .logging_config import LOGGER_NAME
from .schema.registry import DefinitionInput, SchemaRegistry

logger = logging.getLogger(__name__)


class Ontology(Mapping[str, Collection]):
    """The initialized set of collections; the handle passed to consumers.

    ``ontology["user"]`` and ``ontology.collections["user"]`` are equivalent.
    """

    def __init__(self, registry: SchemaRegistry, bindings: AdapterBindings, collections: Mapping[str, Collection]):
        self.registry = registry
        self.bindings = bindings
        self.collections = MappingProxyType(dict(collections))
        self._closed = False

    def __getitem__(self, identity: str) -> Collection:
        return self.collections[identity.lower()]

    def __iter__(self) -> Iterator[str]:
        return iter(self.collections)

    def __len__(self) -> int:
        return len(self.collections)

    async def teardown(self) -> None:
        """Release adapters; each distinct adapter is torn down once."""
        if self._closed:
            return
        self._closed = True
        for adapter in self.bindings.adapters():
            teardown = getattr(adapter, "teardown", None)
            if callable(teardown):
                await teardown()
        logger.debug("Ontology torn down (%d adapter(s))", len(self.bindings.adapters()))


class Orm:
    """Collects model definitions and initializes them once into an :class:`Ontology`."""

    def __init__(self, definitions: Union[List[DefinitionInput], None] = None):
        self._definitions: List[DefinitionInput] = list(definitions or [])
        self._state = "pending"

    @property
    def state(self) -> str:
        return self._state

    def load_collection(self, definition: DefinitionInput) -> "Orm":
        if self._state != "pending":
            raise InitializationError("Cannot load collections after initialize() was called")
        self._definitions.append(definition)
        return self

    async def initialize(self, config: Union[OrmConfig, Mapping[str, Any]]) -> Ontology:
        """Validate schemas, bind adapters and build the ontology.

        This is a one-time barrier: a failure is raised once and the instance
        cannot be initialized again.
        """
        if self._state != "pending":
            raise InitializationError(f"Orm.initialize() already called (state: {self._state})")
        self._state = "initializing"
        try:
            cfg = config if isinstance(config, OrmConfig) else OrmConfig.model_validate(config)
            if cfg.log_level is not None:
                logging.getLogger(LOGGER_NAME).setLevel(cfg.log_level)
            registry = SchemaRegistry.build(self._definitions)
            bindings = AdapterBindings.from_config(cfg, registry)
            for identity, binding in bindings.items():
                define = getattr(binding.adapter, "define", None)
                if callable(define):
                    await define(identity, registry[identity])

            collections: Dict[str, Collection] = {}
            resolver = AssociationResolver(collections, max_keys_per_batch=cfg.max_keys_per_batch)
            for identity, schema in registry.items():
                collections[identity] = Collection(schema, bindings[identity], registry, collections, resolver)
            ontology = Ontology(registry, bindings, collections)
        except Exception:
            self._state = "failed"
            logger.exception("ORM initialization failed")
            raise
        self._state = "initialized"
        logger.info("ORM initialized with %d collection(s): %s", len(collections), ", ".join(collections))
        return ontology


async def initialize(definitions: List[DefinitionInput], config: Union[OrmConfig, Mapping[str, Any]]) -> Ontology:
    """Shorthand for ``await Orm(definitions).initialize(config)``."""
    return await Orm(definitions).initialize(config)


__all__ = ["Ontology", "Orm", "initialize"]
