"""Model definitions and the schema registry built from them."""

from .types import (
    AttributeSpec,
    CollectionAssociation,
    ModelAssociation,
    ModelDefinition,
    ModelSchema,
    ScalarAttribute,
    SCALAR_TYPES,
)
from .registry import SchemaRegistry
from .validation import check_value

__all__ = [
    "AttributeSpec",
    "CollectionAssociation",
    "ModelAssociation",
    "ModelDefinition",
    "ModelSchema",
    "ScalarAttribute",
    "SCALAR_TYPES",
    "SchemaRegistry",
    "check_value",
]
