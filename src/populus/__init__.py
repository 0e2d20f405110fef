import logging

from pydantic import __version__ as _pydantic_version

# populus relies on the Pydantic v2 API (model_validate/model_dump, etc.).
# Import errors should surface early if an incompatible version is installed.
if not _pydantic_version.startswith("2"):
    raise ImportError(
        "populus requires pydantic>=2.0; detected version %s" % _pydantic_version
    )

logging.getLogger(__name__).addHandler(logging.NullHandler())

from .adapters import Adapter, BaseAdapter, MemoryAdapter, SqliteAdapter
from .associations import AssociationResolver, PopulationRun, PopulationState
from .binding import AdapterBindings, Binding
from .collection import Collection
from .config import ConnectionConfig, OrmConfig, load_config
from .errors import (
    DuplicateIdentityError,
    InitializationError,
    InvalidAssociationError,
    InvalidCriteriaError,
    PopulusError,
    StaleRecordError,
    UnboundConnectionError,
    UniquenessError,
    UnknownAttributeError,
    UnknownModelError,
    UnregisteredAdapterError,
    UnresolvedAssociationError,
    ValidationError,
)
from .logging_config import configure_logging
from .ontology import Ontology, Orm, initialize
from .query import Criteria, FindQuery, Operation
from .records import Record, RecordCursor
from .schema import ModelDefinition, ModelSchema, SchemaRegistry

__all__ = [
    # runtime
    "Orm",
    "Ontology",
    "initialize",
    "Collection",
    "Record",
    "RecordCursor",
    "FindQuery",
    "Operation",
    "Criteria",
    # schema
    "ModelDefinition",
    "ModelSchema",
    "SchemaRegistry",
    # binding / adapters
    "AdapterBindings",
    "Binding",
    "Adapter",
    "BaseAdapter",
    "MemoryAdapter",
    "SqliteAdapter",
    # population
    "AssociationResolver",
    "PopulationRun",
    "PopulationState",
    # config / logging
    "ConnectionConfig",
    "OrmConfig",
    "load_config",
    "configure_logging",
    # errors
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
