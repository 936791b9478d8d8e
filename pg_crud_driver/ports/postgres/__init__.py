"""PostgreSQL adapter: pool, transactions, marshaling, and the CRUD driver."""

from .connection import PgConnection, open_connection
from .driver import PgTable, PostgresqlCrudDriver
from .marshaling import AttributeMarshaler, ColumnInfo, parse_array_literal
from .pool import ConnectionPool
from .transaction import PgTransaction, TransactionManager

__all__ = [
    "AttributeMarshaler",
    "ColumnInfo",
    "ConnectionPool",
    "PgConnection",
    "PgTable",
    "PgTransaction",
    "PostgresqlCrudDriver",
    "TransactionManager",
    "open_connection",
    "parse_array_literal",
]
