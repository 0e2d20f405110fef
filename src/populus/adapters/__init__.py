"""Storage adapters implementing the capability interface.

:class:`PandasAdapter` lives in :mod:`populus.adapters.pandas` and needs the
optional ``pandas`` dependency; it is not imported here.
"""

from .base import Adapter, BaseAdapter, Row
from .memory import MemoryAdapter
from .sql import SqliteAdapter

BUILTIN_ADAPTERS = {
    "memory": "populus.adapters.memory:MemoryAdapter",
    "sqlite": "populus.adapters.sql:SqliteAdapter",
    "pandas": "populus.adapters.pandas:PandasAdapter",
}

__all__ = [
    "Adapter",
    "BaseAdapter",
    "Row",
    "MemoryAdapter",
    "SqliteAdapter",
    "BUILTIN_ADAPTERS",
]
