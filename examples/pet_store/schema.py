# examples/pet_store/schema.py
from __future__ import annotations

from typing import Any, Dict


def hide_password(obj: Dict[str, Any]) -> Dict[str, Any]:
    obj.pop("password", None)
    return obj


USER = {
    "identity": "user",
    "connection": "default",
    "auto_created_at": True,
    "attributes": {
        "username": {"type": "string", "unique": True, "required": True},
        "email": "email",
        "password": "string",
        "pets": {"collection": "pet", "via": "owner"},
        "toJSON": hide_password,
    },
}

PET = {
    "identity": "pet",
    "connection": "default",
    "attributes": {
        "name": {"type": "string", "required": True},
        "species": {"type": "string", "default": "dog"},
        "owner": {"model": "user"},
    },
}

DEFINITIONS = [USER, PET]
