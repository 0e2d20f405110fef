from __future__ import annotations

"""Exception taxonomy raised by the ORM core.

Schema and binding errors surface from :meth:`populus.Orm.initialize`;
the remaining errors are raised when an individual operation is awaited.
Errors raised by adapters for storage failures are propagated unchanged.
"""

from typing import Any, Iterable, List, Optional


class PopulusError(Exception):
    """Base class for all errors raised by populus itself."""


# --- schema ---
class DuplicateIdentityError(PopulusError):
    def __init__(self, identity: str):
        super().__init__(f"Model identity '{identity}' is registered more than once")
        self.identity = identity


class UnknownModelError(PopulusError):
    def __init__(self, identity: str, *, referenced_by: Optional[str] = None):
        msg = f"Unknown model '{identity}'"
        if referenced_by:
            msg += f" (referenced by {referenced_by})"
        super().__init__(msg)
        self.identity = identity
        self.referenced_by = referenced_by


class InvalidAssociationError(PopulusError):
    def __init__(self, identity: str, attribute: str, reason: str):
        super().__init__(f"Invalid association {identity}.{attribute}: {reason}")
        self.identity = identity
        self.attribute = attribute
        self.reason = reason


# --- binding ---
class UnboundConnectionError(PopulusError):
    def __init__(self, connection: str, *, identity: Optional[str] = None):
        msg = f"Connection '{connection}' is not configured"
        if identity:
            msg += f" (used by model '{identity}')"
        super().__init__(msg)
        self.connection = connection
        self.identity = identity


class UnregisteredAdapterError(PopulusError):
    def __init__(self, adapter: str, *, connection: Optional[str] = None):
        msg = f"Adapter '{adapter}' is not registered"
        if connection:
            msg += f" (requested by connection '{connection}')"
        super().__init__(msg)
        self.adapter = adapter
        self.connection = connection


class InitializationError(PopulusError):
    """Raised when an ORM instance is initialized more than once."""


# --- query ---
class UnknownAttributeError(PopulusError):
    def __init__(self, identity: str, attribute: str, *, candidates: Optional[Iterable[str]] = None):
        self.candidates: List[str] = sorted(candidates or [])
        msg = f"Unknown attribute '{attribute}' for model '{identity}'"
        if self.candidates:
            msg += f" (candidates: {', '.join(self.candidates)})"
        super().__init__(msg)
        self.identity = identity
        self.attribute = attribute


class UnresolvedAssociationError(UnknownAttributeError):
    """A population request named something that is not an association."""

    def __init__(self, identity: str, association: str, *, candidates: Optional[Iterable[str]] = None):
        super().__init__(identity, association, candidates=candidates)
        self.args = (f"Model '{identity}' has no association named '{association}'",)
        self.association = association


class InvalidCriteriaError(PopulusError):
    pass


# --- records ---
class ValidationError(PopulusError):
    def __init__(self, identity: str, attribute: str, value: Any, reason: str):
        super().__init__(f"Invalid value for {identity}.{attribute}: {reason} (got {value!r})")
        self.identity = identity
        self.attribute = attribute
        self.value = value
        self.reason = reason


class UniquenessError(PopulusError):
    def __init__(self, identity: str, attribute: str, value: Any):
        super().__init__(f"A '{identity}' record with {attribute}={value!r} already exists")
        self.identity = identity
        self.attribute = attribute
        self.value = value


class StaleRecordError(PopulusError):
    def __init__(self, identity: str, key: Any):
        super().__init__(f"Record '{identity}' with primary key {key!r} no longer exists")
        self.identity = identity
        self.key = key


__all__ = [
    "PopulusError",
    "DuplicateIdentityError",
    "UnknownModelError",
    "InvalidAssociationError",
    "UnboundConnectionError",
    "UnregisteredAdapterError",
    "InitializationError",
    "UnknownAttributeError",
    "UnresolvedAssociationError",
    "InvalidCriteriaError",
    "ValidationError",
    "UniquenessError",
    "StaleRecordError",
]
