"""Relational storage adapter for dataclass entities on PostgreSQL."""

from .core import *  # noqa: F401,F403
from .core import __all__ as _core_all
from .ports import ConnectionPool, PgConnection, PgTable, PostgresqlCrudDriver

__all__ = [
    *_core_all,
    "ConnectionPool",
    "PgConnection",
    "PgTable",
    "PostgresqlCrudDriver",
]
