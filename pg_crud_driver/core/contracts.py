"""Core port contracts implemented by engine adapters."""

from __future__ import annotations

from typing import Any, Iterator, List, Protocol, Type

from .types import Attributes, MaybeAttributes, RowMapping


class EngineConnection(Protocol):
    """One exclusive engine session, as seen by pools and transactions."""

    closed: bool

    def execute(self, sql: str) -> List[RowMapping]: ...

    def escape_string(self, text: str) -> str: ...

    def begin(self) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def close(self) -> None: ...


class TransactionPort(Protocol):
    """Binding between one checked out connection and its checkpoint."""

    connection: Any
    closed: bool


class TransactionProvider(Protocol):
    def __call__(self) -> TransactionPort: ...


class TablePort(Protocol):
    """CRUD surface of one entity table binding."""

    entity_class: Type[Any]
    table_name: str

    def insert(self, attributes: Attributes) -> Attributes: ...

    def find(self, pk_value: Any) -> MaybeAttributes: ...

    def exists(self, pk_value: Any) -> bool: ...

    def update(self, attributes: Attributes) -> Attributes: ...

    def hard_delete(self, pk_value: Any) -> None: ...

    def hard_delete_all(self) -> None: ...

    def count(self) -> int: ...

    def all(self, page_size: int = 100) -> Iterator[Attributes]: ...


class CrudDriverPort(Protocol):
    """Capability interface every storage engine driver implements."""

    def open_transaction(self) -> TransactionPort: ...

    def flush_transaction(self, tx: TransactionPort) -> None: ...

    def revert_transaction(self, tx: TransactionPort) -> None: ...

    def commit_transaction(self, tx: TransactionPort) -> None: ...

    def rollback_transaction(self, tx: TransactionPort) -> None: ...

    def table_for(
        self,
        entity_class: Type[Any],
        table_name: str,
        transaction_provider: TransactionProvider,
    ) -> TablePort: ...

    def close(self) -> None: ...
