from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Dict, Mapping

from ..errors import UnknownAttributeError, ValidationError
from .types import CollectionAssociation, ModelAssociation, ModelSchema, ScalarAttribute

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _check_scalar(identity: str, name: str, spec: ScalarAttribute, value: Any) -> Any:
    kind = spec.type
    if kind in {"string", "text"}:
        if not isinstance(value, str):
            raise ValidationError(identity, name, value, f"expected {kind}")
        return value
    if kind == "email":
        if not isinstance(value, str) or not _EMAIL_RE.match(value):
            raise ValidationError(identity, name, value, "expected an email address")
        return value
    if kind == "integer":
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(identity, name, value, "expected integer")
        return value
    if kind in {"float", "number"}:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(identity, name, value, f"expected {kind}")
        return float(value) if kind == "float" else value
    if kind == "boolean":
        if not isinstance(value, bool):
            raise ValidationError(identity, name, value, "expected boolean")
        return value
    if kind == "datetime":
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value)
            except ValueError:
                pass
        raise ValidationError(identity, name, value, "expected datetime or ISO-8601 string")
    if kind == "date":
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                return date.fromisoformat(value)
            except ValueError:
                pass
        raise ValidationError(identity, name, value, "expected date or ISO-8601 string")
    if kind == "array":
        if not isinstance(value, (list, tuple)):
            raise ValidationError(identity, name, value, "expected array")
        return list(value)
    # json: any value is accepted
    return value


def check_value(schema: ModelSchema, name: str, value: Any) -> Any:
    """Validate ``value`` for attribute ``name`` and return the stored form.

    Many-to-one values may be given as a record; they are reduced to the
    record's primary key.
    """
    spec = schema.attributes[name]
    if isinstance(spec, CollectionAssociation):
        raise ValidationError(schema.identity, name, value, "collection associations are not stored")
    if isinstance(spec, ModelAssociation):
        key = getattr(value, "primary_key_value", value)
        if isinstance(key, Mapping) or isinstance(key, (list, tuple, set)):
            raise ValidationError(schema.identity, name, value, "expected a primary key or record")
        return key
    if value is None:
        if spec.required:
            raise ValidationError(schema.identity, name, value, "attribute is required")
        return None
    return _check_scalar(schema.identity, name, spec, value)


def check_values(schema: ModelSchema, values: Mapping[str, Any], *, partial: bool) -> Dict[str, Any]:
    """Validate a mapping of attribute values against ``schema``.

    ``partial`` skips required/default handling for attributes that are not
    present (used for updates).
    """
    checked: Dict[str, Any] = {}
    for name, value in values.items():
        if not schema.has_attribute(name):
            raise UnknownAttributeError(schema.identity, name, candidates=schema.attributes.keys())
        checked[name] = check_value(schema, name, value)
    if partial:
        return checked
    for name, spec in schema.scalars().items():
        if name in checked or name == schema.primary_key:
            continue
        if spec.default is not None:
            default = spec.default() if callable(spec.default) else spec.default
            checked[name] = _check_scalar(schema.identity, name, spec, default)
        elif spec.required:
            raise ValidationError(schema.identity, name, None, "attribute is required")
    return checked


__all__ = ["check_value", "check_values"]
