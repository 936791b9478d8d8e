"""Public port exports for concrete engine adapters."""

from .postgres import ConnectionPool, PgConnection, PgTable, PostgresqlCrudDriver

__all__ = [
    "ConnectionPool",
    "PgConnection",
    "PgTable",
    "PostgresqlCrudDriver",
]
