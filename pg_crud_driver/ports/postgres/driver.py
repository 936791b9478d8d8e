"""PostgreSQL CRUD driver and its per-entity table bindings."""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable, Iterator, Mapping
from typing import Any, Dict, Optional, Type

import psycopg

from ...core.config import resolve_connection_source
from ...core.contracts import EngineConnection, TransactionProvider
from ...core.entities import build_entity, entity_attributes, entity_schema
from ...core.errors import (
    CannotDeleteError,
    CannotInsertError,
    CannotUpdateError,
    ConfigurationError,
    TransactionClosedError,
    UnknownTableError,
)
from ...core.types import Attributes, MaybeAttributes, RowMapping
from . import statements
from .connection import PgConnection, open_connection
from .marshaling import AttributeMarshaler, ColumnInfo
from .pool import ConnectionPool
from .transaction import PgTransaction, TransactionManager

logger = logging.getLogger(__name__)

_driver_ids = itertools.count(1)

DEFAULT_PAGE_SIZE = 100


class PostgresqlCrudDriver:
    """CRUD driver that stores dataclass entities in PostgreSQL tables."""

    def __init__(
        self,
        source: Any = None,
        *,
        connect: Optional[Callable[[], EngineConnection]] = None,
        max_connections: int = 5,
        schema: str = "public",
        env: Optional[Mapping[str, str]] = None,
    ):
        """Create a driver and its connection pool.

        Args:
            source: URL string, credentials mapping, or an open connection.
                `DATABASE_URL` from `env` is used when omitted.
            connect: Factory for new engine connections; replaces `source`.
            max_connections: Cap on concurrently checked out connections.
            schema: Schema holding the entity tables.
            env: Environment mapping, `os.environ` when omitted.

        Raises:
            NoDatabaseUrlError: If no connection source is available.
        """

        self._owns_connections = True
        if connect is None:
            connect, max_connections = self._connection_factory(
                resolve_connection_source(source, env), max_connections
            )
        self.schema = schema
        self.savepoint = f"crud_driver_{next(_driver_ids)}"
        self.pool = ConnectionPool(connect, max_connections=max_connections)
        self.transactions = TransactionManager(self.pool, self.savepoint)

    def _connection_factory(
        self, source: Any, max_connections: int
    ) -> tuple[Callable[[], EngineConnection], int]:
        if isinstance(source, (str, Mapping)):
            return (lambda: open_connection(source)), max_connections

        if isinstance(source, psycopg.Connection):
            existing: Any = PgConnection(source, owned=False)
        elif callable(getattr(source, "execute", None)) and callable(
            getattr(source, "escape_string", None)
        ):
            existing = source
        else:
            raise ConfigurationError(
                f"Unsupported connection source of type {type(source).__name__}."
            )
        # A caller-supplied session can back only one transaction at a time.
        self._owns_connections = False
        return (lambda: existing), 1

    def open_transaction(self) -> PgTransaction:
        return self.transactions.open()

    def flush_transaction(self, tx: PgTransaction) -> None:
        self.transactions.flush(tx)

    def revert_transaction(self, tx: PgTransaction) -> None:
        self.transactions.revert(tx)

    def commit_transaction(self, tx: PgTransaction) -> None:
        self.transactions.commit(tx)

    def rollback_transaction(self, tx: PgTransaction) -> None:
        self.transactions.rollback(tx)

    def table_for(
        self,
        entity_class: Type[Any],
        table_name: str,
        transaction_provider: TransactionProvider,
    ) -> PgTable:
        return PgTable(self, entity_class, table_name, transaction_provider)

    def reset(self) -> None:
        """Close every pooled connection and start over with an empty pool.

        A connection supplied by the caller is released but left open.
        """

        self.pool.clear(_close_connection if self._owns_connections else None)

    def close(self) -> None:
        self.reset()


class PgTable:
    """CRUD operations of one entity class against one physical table.

    Statements run on the connection of the transaction returned by
    `transaction_provider` at call time.
    """

    def __init__(
        self,
        driver: PostgresqlCrudDriver,
        entity_class: Type[Any],
        table_name: str,
        transaction_provider: TransactionProvider,
    ):
        self.driver = driver
        self.entity_class = entity_class
        self.entity = entity_schema(entity_class)
        self.table_name = table_name
        self._transaction_provider = transaction_provider
        self._marshaler: Optional[AttributeMarshaler] = None
        self._lock = threading.Lock()

    @property
    def primary_key(self) -> str:
        return self.entity.primary_key

    @property
    def raw_connection(self) -> Any:
        tx = self._transaction_provider()
        if tx.closed:
            raise TransactionClosedError("Table operation on a closed transaction.")
        return tx.connection

    def column_metadata(self) -> Dict[str, ColumnInfo]:
        return self.marshaler().columns

    def marshaler(self) -> AttributeMarshaler:
        """Return the marshaler, introspecting the table on first use."""

        if self._marshaler is None:
            with self._lock:
                if self._marshaler is None:
                    self._marshaler = AttributeMarshaler(
                        self.entity, self.table_name, self._fetch_columns()
                    )
        return self._marshaler

    def _fetch_columns(self) -> Dict[str, ColumnInfo]:
        conn = self.raw_connection
        rows = conn.execute(
            statements.column_metadata_sql(conn, self.driver.schema, self.table_name)
        )
        if not rows:
            raise UnknownTableError(self.table_name, self.driver.schema)
        columns = [ColumnInfo.from_row(row) for row in rows]
        logger.debug("loaded %d columns for table %s", len(columns), self.table_name)
        return {column.name: column for column in columns}

    def insert(self, attributes: Attributes) -> Attributes:
        """Insert one record and return it as stored."""

        conn = self.raw_connection
        marshaler = self.marshaler()
        values = dict(attributes)
        # Only an engine-generated key may be left for the column default.
        if self.entity.auto_primary_key and values.get(self.primary_key) is None:
            values.pop(self.primary_key, None)
        fragments = [marshaler.encode(conn, name, value) for name, value in values.items()]
        sql = statements.insert_sql(
            self.table_name, fragments, statements.quote_identifier(self.primary_key)
        )

        try:
            rows = conn.execute(sql)
        except Exception as exc:
            if not _is_unique_violation(exc):
                raise
            raise CannotInsertError(values.get(self.primary_key), str(exc)) from exc

        pk_value = rows[0][self.primary_key]
        record = self.find(pk_value)
        if record is None:
            raise CannotInsertError(pk_value, "Inserted record could not be read back.")
        return record

    def find(self, pk_value: Any) -> MaybeAttributes:
        conn = self.raw_connection
        pk = self.marshaler().encode(conn, self.primary_key, pk_value)
        rows = conn.execute(statements.select_by_pk_sql(self.table_name, pk))
        if not rows:
            return None
        return self._decode_record(rows[0])

    def exists(self, pk_value: Any) -> bool:
        if pk_value is None:
            return False
        conn = self.raw_connection
        pk = self.marshaler().encode(conn, self.primary_key, pk_value)
        return bool(conn.execute(statements.exists_sql(self.table_name, pk)))

    def update(self, attributes: Attributes) -> Attributes:
        """Write every given attribute of an existing record and return it."""

        pk_value = attributes.get(self.primary_key)
        if pk_value is None:
            raise CannotUpdateError(None, "Cannot update a record without a primary key.")

        conn = self.raw_connection
        marshaler = self.marshaler()
        pk = marshaler.encode(conn, self.primary_key, pk_value)
        fragments = [
            marshaler.encode(conn, name, value)
            for name, value in attributes.items()
            if name != self.primary_key
        ]
        if not conn.execute(statements.exists_sql(self.table_name, pk)):
            raise CannotUpdateError(pk_value)
        if fragments:
            conn.execute(statements.update_sql(self.table_name, fragments, pk))

        record = self.find(pk_value)
        if record is None:
            raise CannotUpdateError(pk_value)
        return record

    def hard_delete(self, pk_value: Any) -> None:
        if pk_value is None:
            raise CannotDeleteError(None, "Cannot delete a record without a primary key.")
        conn = self.raw_connection
        pk = self.marshaler().encode(conn, self.primary_key, pk_value)
        if not conn.execute(statements.exists_sql(self.table_name, pk)):
            raise CannotDeleteError(pk_value)
        conn.execute(statements.delete_sql(self.table_name, pk))

    def hard_delete_all(self) -> None:
        self.raw_connection.execute(statements.delete_all_sql(self.table_name))

    def count(self) -> int:
        rows = self.raw_connection.execute(statements.count_sql(self.table_name))
        if not rows:
            return 0
        return int(rows[0]["count"])

    def all(self, page_size: int = DEFAULT_PAGE_SIZE) -> Iterator[Attributes]:
        """Lazily yield every record in primary key order, one page at a time."""

        if page_size < 1:
            raise ValueError("page_size must be >= 1.")
        return self._scan(page_size)

    def _scan(self, page_size: int) -> Iterator[Attributes]:
        order_column = statements.quote_identifier(self.primary_key)
        after = None
        while True:
            conn = self.raw_connection
            sql = statements.page_sql(self.table_name, order_column, page_size, after)
            rows = conn.execute(sql)
            if not rows:
                return
            for row in rows:
                yield self._decode_record(row)
            last_key = rows[-1][self.primary_key]
            after = self.marshaler().encode(conn, self.primary_key, last_key)

    def _decode_record(self, row: RowMapping) -> Attributes:
        attributes = self.marshaler().decode(row)
        return entity_attributes(build_entity(self.entity_class, attributes))


def _is_unique_violation(exc: Exception) -> bool:
    """Detect uniqueness violations from the engine with driver-agnostic fallbacks."""

    sqlstate = getattr(exc, "sqlstate", None)
    if sqlstate is not None:
        return sqlstate == "23505"
    names = {cls.__name__ for cls in type(exc).mro()}
    return "UniqueViolation" in names or "IntegrityError" in names


def _close_connection(conn: Any) -> None:
    close = getattr(conn, "close", None)
    if callable(close):
        close()
