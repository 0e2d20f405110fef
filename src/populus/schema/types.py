from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SCALAR_TYPES = (
    "string",
    "text",
    "email",
    "integer",
    "float",
    "number",
    "boolean",
    "date",
    "datetime",
    "json",
    "array",
)

CREATED_AT = "created_at"
UPDATED_AT = "updated_at"

ToJSONHook = Callable[[Dict[str, Any]], Dict[str, Any]]


@dataclass(frozen=True)
class ScalarAttribute:
    type: str = "string"
    unique: bool = False
    required: bool = False
    default: Any = None


@dataclass(frozen=True)
class CollectionAssociation:
    """One-to-many: target records whose ``via`` attribute holds our key."""

    collection: str
    via: str


@dataclass(frozen=True)
class ModelAssociation:
    """Many-to-one: stores the primary key of a ``model`` record."""

    model: str


AttributeSpec = Union[ScalarAttribute, CollectionAssociation, ModelAssociation]


def parse_attribute(name: str, raw: Any) -> AttributeSpec:
    """Normalize one attribute declaration into its tagged variant.

    Accepts a bare type name (``"string"``), a mapping in the declarative
    input format, or an already-built spec.
    """
    if isinstance(raw, (ScalarAttribute, CollectionAssociation, ModelAssociation)):
        return raw
    if isinstance(raw, str):
        raw = {"type": raw}
    if not isinstance(raw, Mapping):
        raise ValueError(f"Attribute '{name}' must be a type name or a mapping, got {type(raw).__name__}")

    if "collection" in raw:
        via = raw.get("via")
        if not via:
            raise ValueError(f"Collection attribute '{name}' requires 'via'")
        return CollectionAssociation(collection=str(raw["collection"]).lower(), via=str(via))
    if "model" in raw:
        return ModelAssociation(model=str(raw["model"]).lower())

    type_name = raw.get("type", "string")
    if type_name not in SCALAR_TYPES:
        raise ValueError(f"Attribute '{name}' has unsupported type '{type_name}'")
    default = raw.get("default", raw.get("defaultsTo"))
    return ScalarAttribute(
        type=type_name,
        unique=bool(raw.get("unique", False)),
        required=bool(raw.get("required", False)),
        default=default,
    )


class ModelDefinition(BaseModel):
    """Declarative description of one model, as supplied by the application."""

    identity: str
    connection: str = "default"
    attributes: Dict[str, AttributeSpec] = Field(default_factory=dict)
    primary_key: str = "id"
    to_json: Optional[ToJSONHook] = None
    auto_created_at: bool = False
    auto_updated_at: bool = False
    description: Optional[str] = None

    model_config = ConfigDict(extra="ignore", frozen=True, arbitrary_types_allowed=True)

    @model_validator(mode="before")
    @classmethod
    def _lift_hooks(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        data = dict(data)
        if "connection" not in data and isinstance(data.get("adapter"), str):
            data["connection"] = data["adapter"]
        attrs = dict(data.get("attributes") or {})
        for hook_name in ("toJSON", "to_json"):
            hook = attrs.get(hook_name)
            if callable(hook):
                attrs.pop(hook_name)
                data.setdefault("to_json", hook)
        data["attributes"] = attrs
        return data

    @field_validator("identity")
    @classmethod
    def _normalize_identity(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("identity must not be empty")
        return value

    @field_validator("attributes", mode="before")
    @classmethod
    def _parse_attributes(cls, value: Any) -> Dict[str, AttributeSpec]:
        return {name: parse_attribute(name, raw) for name, raw in (value or {}).items()}


@dataclass(frozen=True)
class ModelSchema:
    """Normalized, read-only view of a registered model."""

    identity: str
    connection: str
    primary_key: str
    attributes: Mapping[str, AttributeSpec]
    to_json: Optional[ToJSONHook] = None
    auto_created_at: bool = False
    auto_updated_at: bool = False
    _scalars: Dict[str, ScalarAttribute] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_definition(cls, definition: ModelDefinition) -> "ModelSchema":
        attrs: Dict[str, AttributeSpec] = {}
        pk = definition.primary_key
        declared_pk = definition.attributes.get(pk)
        if declared_pk is None:
            attrs[pk] = ScalarAttribute(type="integer", unique=True)
        elif isinstance(declared_pk, ScalarAttribute):
            attrs[pk] = ScalarAttribute(type=declared_pk.type, unique=True, default=declared_pk.default)
        else:
            raise ValueError(f"Primary key '{pk}' of '{definition.identity}' cannot be an association")
        for name, spec in definition.attributes.items():
            if name != pk:
                attrs[name] = spec
        if definition.auto_created_at:
            attrs.setdefault(CREATED_AT, ScalarAttribute(type="datetime"))
        if definition.auto_updated_at:
            attrs.setdefault(UPDATED_AT, ScalarAttribute(type="datetime"))
        return cls(
            identity=definition.identity,
            connection=definition.connection,
            primary_key=pk,
            attributes=MappingProxyType(attrs),
            to_json=definition.to_json,
            auto_created_at=definition.auto_created_at,
            auto_updated_at=definition.auto_updated_at,
            _scalars={n: s for n, s in attrs.items() if isinstance(s, ScalarAttribute)},
        )

    @property
    def key_type(self) -> str:
        return self._scalars[self.primary_key].type

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    def attribute(self, name: str) -> AttributeSpec:
        return self.attributes[name]

    def scalars(self) -> Dict[str, ScalarAttribute]:
        return dict(self._scalars)

    def associations(self) -> Dict[str, Union[CollectionAssociation, ModelAssociation]]:
        return {
            n: s
            for n, s in self.attributes.items()
            if isinstance(s, (CollectionAssociation, ModelAssociation))
        }

    def collection_associations(self) -> Dict[str, CollectionAssociation]:
        return {n: s for n, s in self.attributes.items() if isinstance(s, CollectionAssociation)}

    def unique_attributes(self) -> List[str]:
        return [n for n, s in self._scalars.items() if s.unique]

    def storable_attributes(self) -> List[str]:
        """Attributes persisted by adapters: scalars and many-to-one keys."""
        return [n for n, s in self.attributes.items() if not isinstance(s, CollectionAssociation)]


__all__ = [
    "SCALAR_TYPES",
    "CREATED_AT",
    "UPDATED_AT",
    "ToJSONHook",
    "ScalarAttribute",
    "CollectionAssociation",
    "ModelAssociation",
    "AttributeSpec",
    "parse_attribute",
    "ModelDefinition",
    "ModelSchema",
]
