"""Error vocabulary shared by the driver, its table bindings, and the store."""

from __future__ import annotations

from typing import Any


class CrudDriverError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(CrudDriverError, ValueError):
    """Raised when a driver cannot be built from the supplied configuration."""


class NoDatabaseUrlError(ConfigurationError):
    """Raised when no connection source was given and none is in the environment."""


class TooManyConnectionsError(CrudDriverError, RuntimeError):
    """Raised when the pool is asked for more connections than it may hold."""

    def __init__(self, in_use: int, max_connections: int):
        self.in_use = in_use
        self.max_connections = max_connections
        super().__init__(
            f"{in_use} connections in use (max_connections={max_connections}), "
            "cannot allocate more."
        )


class SchemaMappingError(CrudDriverError, TypeError):
    """Base class for mismatches between an entity and its table."""


class UnsupportedColumnTypeError(SchemaMappingError):
    def __init__(self, pg_type: str, attribute_name: str, entity_name: str):
        self.pg_type = pg_type
        self.attribute_name = attribute_name
        self.entity_name = entity_name
        super().__init__(
            f"Unsupported column type {pg_type} for attribute {attribute_name} "
            f"on {entity_name}"
        )


class UnexpectedNullError(SchemaMappingError):
    def __init__(self, attribute_name: str, entity_name: str):
        self.attribute_name = attribute_name
        self.entity_name = entity_name
        super().__init__(
            f"Unexpected null for non-nullable column {attribute_name} on {entity_name}"
        )


class UnknownColumnError(SchemaMappingError):
    def __init__(self, attribute_name: str, table_name: str):
        self.attribute_name = attribute_name
        self.table_name = table_name
        super().__init__(f"Table {table_name!r} has no column {attribute_name!r}")


class UnknownTableError(SchemaMappingError):
    def __init__(self, table_name: str, schema: str):
        self.table_name = table_name
        self.schema = schema
        super().__init__(f"Table {schema}.{table_name} does not exist or has no columns")


class CannotInsertError(CrudDriverError):
    """Raised when the engine refuses an insert because of a uniqueness conflict."""

    def __init__(self, key: Any, message: str):
        self.key = key
        self.message = message
        super().__init__(f"Cannot insert record with key {key!r}: {message}")


class CannotUpdateError(CrudDriverError):
    def __init__(self, key: Any, message: str | None = None):
        self.key = key
        super().__init__(message or f"Cannot update record {key!r}: it does not exist")


class CannotDeleteError(CrudDriverError):
    def __init__(self, key: Any, message: str | None = None):
        self.key = key
        super().__init__(message or f"Cannot delete record {key!r}: it does not exist")


class TransactionClosedError(CrudDriverError, RuntimeError):
    """Raised when a committed or rolled back transaction is used again."""


class NoActiveTransactionError(CrudDriverError, RuntimeError):
    """Raised when a table operation runs outside of a transaction scope."""


class NestedTransactionError(CrudDriverError, RuntimeError):
    """Raised when transaction scopes nest deeper than one checkpoint."""
