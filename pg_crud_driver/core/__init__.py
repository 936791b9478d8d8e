"""Public core API: entity schemas, errors, contracts, and the entity store."""

from .config import DATABASE_URL_ENV, resolve_connection_source
from .contracts import CrudDriverPort, EngineConnection, TablePort, TransactionPort
from .entities import (
    AttributeSpec,
    EntitySchema,
    SemanticType,
    build_entity,
    entity_attributes,
    entity_schema,
    primary_key,
    table_name,
)
from .errors import (
    CannotDeleteError,
    CannotInsertError,
    CannotUpdateError,
    ConfigurationError,
    CrudDriverError,
    NestedTransactionError,
    NoActiveTransactionError,
    NoDatabaseUrlError,
    SchemaMappingError,
    TooManyConnectionsError,
    TransactionClosedError,
    UnexpectedNullError,
    UnknownColumnError,
    UnknownTableError,
    UnsupportedColumnTypeError,
)
from .store import EntityStore
from .validated_entity import ValidatedEntity, ValidationError

__all__ = [
    "DATABASE_URL_ENV",
    "resolve_connection_source",
    "CrudDriverPort",
    "EngineConnection",
    "TablePort",
    "TransactionPort",
    "AttributeSpec",
    "EntitySchema",
    "SemanticType",
    "build_entity",
    "entity_attributes",
    "entity_schema",
    "primary_key",
    "table_name",
    "CannotDeleteError",
    "CannotInsertError",
    "CannotUpdateError",
    "ConfigurationError",
    "CrudDriverError",
    "NestedTransactionError",
    "NoActiveTransactionError",
    "NoDatabaseUrlError",
    "SchemaMappingError",
    "TooManyConnectionsError",
    "TransactionClosedError",
    "UnexpectedNullError",
    "UnknownColumnError",
    "UnknownTableError",
    "UnsupportedColumnTypeError",
    "EntityStore",
    "ValidatedEntity",
    "ValidationError",
]
