from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Union

from ..errors import DuplicateIdentityError, InvalidAssociationError, UnknownModelError
from .types import CollectionAssociation, ModelAssociation, ModelDefinition, ModelSchema

logger = logging.getLogger(__name__)

DefinitionInput = Union[ModelDefinition, Mapping[str, Any]]


class SchemaRegistry(Mapping[str, ModelSchema]):
    """Read-only mapping ``identity -> ModelSchema`` built from one batch.

    The registry is validated as a whole: every association must reference a
    model defined in the same batch and every ``via`` must name a many-to-one
    attribute on the target pointing back at the owner.
    """

    def __init__(self, schemas: Mapping[str, ModelSchema]):
        self._schemas = MappingProxyType(dict(schemas))

    @classmethod
    def build(cls, definitions: Iterable[DefinitionInput]) -> "SchemaRegistry":
        schemas: Dict[str, ModelSchema] = {}
        for raw in definitions:
            definition = raw if isinstance(raw, ModelDefinition) else ModelDefinition.model_validate(raw)
            if definition.identity in schemas:
                raise DuplicateIdentityError(definition.identity)
            schemas[definition.identity] = ModelSchema.from_definition(definition)

        for identity, schema in schemas.items():
            for name, spec in schema.associations().items():
                ref = f"{identity}.{name}"
                if isinstance(spec, ModelAssociation):
                    if spec.model not in schemas:
                        raise UnknownModelError(spec.model, referenced_by=ref)
                    continue
                target = schemas.get(spec.collection)
                if target is None:
                    raise UnknownModelError(spec.collection, referenced_by=ref)
                back = target.attributes.get(spec.via)
                if back is None:
                    raise InvalidAssociationError(
                        identity, name, f"'{spec.collection}' has no attribute '{spec.via}'"
                    )
                if not isinstance(back, ModelAssociation) or back.model != identity:
                    raise InvalidAssociationError(
                        identity, name, f"'{spec.collection}.{spec.via}' does not reference '{identity}'"
                    )

        logger.debug("Schema registry built with models: %s", ", ".join(sorted(schemas)))
        return cls(schemas)

    # --- Mapping API ---
    def __getitem__(self, identity: str) -> ModelSchema:
        try:
            return self._schemas[identity.lower()]
        except KeyError:
            raise UnknownModelError(identity) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._schemas)

    def __len__(self) -> int:
        return len(self._schemas)

    def __contains__(self, identity: object) -> bool:
        return isinstance(identity, str) and identity.lower() in self._schemas

    def get(self, identity: str, default: Any = None) -> Any:
        return self._schemas.get(identity.lower(), default)

    # --- helpers ---
    def target_of(self, identity: str, association: str) -> ModelSchema:
        spec = self[identity].attributes[association]
        if isinstance(spec, CollectionAssociation):
            return self[spec.collection]
        if isinstance(spec, ModelAssociation):
            return self[spec.model]
        raise KeyError(association)

    def connections(self) -> List[str]:
        return sorted({s.connection for s in self._schemas.values()})


__all__ = ["SchemaRegistry", "DefinitionInput"]
