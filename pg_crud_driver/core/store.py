"""Entity store: transaction scopes and entity-level CRUD over a driver."""

from __future__ import annotations

import contextlib
import logging
import threading
from typing import Any, Dict, Iterator, Optional, Type, TypeVar

from .contracts import CrudDriverPort, TablePort, TransactionPort
from .entities import (
    EntityModel,
    build_entity,
    entity_attributes,
    entity_schema,
    require_entity_class,
)
from .entities import table_name as default_table_name
from .errors import NestedTransactionError, NoActiveTransactionError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=EntityModel)


class EntityStore:
    """Binds entity classes to driver tables and scopes work in transactions.

    Transaction scopes are tracked per thread. The outermost `transaction()`
    owns the engine transaction; one nested scope is supported and is backed
    by the driver's savepoint checkpoint.
    """

    def __init__(self, driver: CrudDriverPort):
        self.driver = driver
        self._tables: Dict[type, TablePort] = {}
        self._tables_lock = threading.Lock()
        self._local = threading.local()

    def register(self, entity_class: Type[T], table: Optional[str] = None) -> TablePort:
        """Bind `entity_class` to `table` (default: its derived table name)."""

        require_entity_class(entity_class)
        binding = self.driver.table_for(
            entity_class,
            table or default_table_name(entity_class),
            self.current_transaction,
        )
        with self._tables_lock:
            self._tables[entity_class] = binding
        return binding

    def table(self, entity_class: Type[T]) -> TablePort:
        with self._tables_lock:
            binding = self._tables.get(entity_class)
        if binding is None:
            binding = self.register(entity_class)
        return binding

    def current_transaction(self) -> TransactionPort:
        tx = getattr(self._local, "tx", None)
        if tx is None:
            raise NoActiveTransactionError("No transaction is open in this thread.")
        return tx

    @contextlib.contextmanager
    def transaction(self) -> Iterator[TransactionPort]:
        """Run operations in a commit/rollback scope, or a nested checkpoint."""

        depth = getattr(self._local, "depth", 0)
        if depth == 0:
            with self._outer_scope() as tx:
                yield tx
        elif depth == 1:
            with self._nested_scope() as tx:
                yield tx
        else:
            raise NestedTransactionError(
                "Transaction scopes support only one level of nesting."
            )

    @contextlib.contextmanager
    def _outer_scope(self) -> Iterator[TransactionPort]:
        tx = self.driver.open_transaction()
        self._local.tx = tx
        self._local.depth = 1
        try:
            yield tx
        except BaseException:
            logger.debug("rolling back transaction after error")
            self.driver.rollback_transaction(tx)
            raise
        else:
            self.driver.commit_transaction(tx)
        finally:
            self._local.tx = None
            self._local.depth = 0

    @contextlib.contextmanager
    def _nested_scope(self) -> Iterator[TransactionPort]:
        tx = self.current_transaction()
        self.driver.flush_transaction(tx)
        self._local.depth = 2
        try:
            yield tx
        except BaseException:
            logger.debug("reverting nested scope after error")
            self.driver.revert_transaction(tx)
            raise
        else:
            self.driver.flush_transaction(tx)
        finally:
            self._local.depth = 1

    def flush(self) -> None:
        """Advance the current transaction's checkpoint."""

        self.driver.flush_transaction(self.current_transaction())

    def revert(self) -> None:
        """Undo the current transaction's work since its last checkpoint."""

        self.driver.revert_transaction(self.current_transaction())

    def insert(self, obj: T) -> T:
        record = self.table(type(obj)).insert(entity_attributes(obj))
        return build_entity(type(obj), record)

    def find(self, entity_class: Type[T], pk_value: Any) -> Optional[T]:
        record = self.table(entity_class).find(pk_value)
        if record is None:
            return None
        return build_entity(entity_class, record)

    def exists(self, entity_class: Type[T], pk_value: Any) -> bool:
        return self.table(entity_class).exists(pk_value)

    def update(self, obj: T) -> T:
        record = self.table(type(obj)).update(entity_attributes(obj))
        return build_entity(type(obj), record)

    def hard_delete(self, entity_or_class: Any, pk_value: Any = None) -> None:
        """Delete one record given an entity instance, or a class and a key."""

        if isinstance(entity_or_class, type):
            self.table(entity_or_class).hard_delete(pk_value)
            return
        pk_name = entity_schema(type(entity_or_class)).primary_key
        self.table(type(entity_or_class)).hard_delete(getattr(entity_or_class, pk_name))

    def hard_delete_all(self, entity_class: Type[T]) -> None:
        self.table(entity_class).hard_delete_all()

    def count(self, entity_class: Type[T]) -> int:
        return self.table(entity_class).count()

    def all(self, entity_class: Type[T], page_size: int = 100) -> Iterator[T]:
        records = self.table(entity_class).all(page_size)
        return (build_entity(entity_class, record) for record in records)

    def close(self) -> None:
        self.driver.close()

    def __enter__(self) -> EntityStore:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()
