"""Flat engine transactions with a single reusable savepoint checkpoint."""

from __future__ import annotations

import logging
from typing import Any

from ...core.errors import TransactionClosedError
from .pool import ConnectionPool
from .statements import quote_identifier

logger = logging.getLogger(__name__)


class PgTransaction:
    """One checked out connection bound to one named savepoint."""

    def __init__(self, connection: Any, savepoint: str):
        self.connection = connection
        self.savepoint = savepoint
        self.closed = False

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<PgTransaction savepoint={self.savepoint!r} {state}>"


class TransactionManager:
    """Opens, checkpoints, and ends transactions over pooled connections.

    The engine only offers a flat transaction. A logical transaction keeps one
    savepoint armed: `flush()` moves it forward, `revert()` rolls back to it,
    and `commit()` / `rollback()` end the engine transaction and return the
    connection to the pool.
    """

    def __init__(self, pool: ConnectionPool, savepoint: str):
        self.pool = pool
        self.savepoint = savepoint

    def open(self) -> PgTransaction:
        conn = self.pool.checkout()
        began = False
        try:
            conn.begin()
            began = True
            conn.execute(f"SAVEPOINT {quote_identifier(self.savepoint)}")
        except BaseException:
            if began:
                self._abort(conn)
            self.pool.checkin(conn)
            raise
        logger.debug("opened transaction with savepoint %s", self.savepoint)
        return PgTransaction(conn, self.savepoint)

    def flush(self, tx: PgTransaction) -> None:
        """Advance the checkpoint past all work done so far."""

        self._require_open(tx)
        tx.connection.execute(f"RELEASE SAVEPOINT {quote_identifier(tx.savepoint)}")
        tx.connection.execute(f"SAVEPOINT {quote_identifier(tx.savepoint)}")
        logger.debug("flushed transaction checkpoint %s", tx.savepoint)

    def revert(self, tx: PgTransaction) -> None:
        """Discard all work done since the last checkpoint."""

        self._require_open(tx)
        tx.connection.execute(f"ROLLBACK TO SAVEPOINT {quote_identifier(tx.savepoint)}")
        logger.debug("reverted transaction to checkpoint %s", tx.savepoint)

    def commit(self, tx: PgTransaction) -> None:
        self._require_open(tx)
        try:
            tx.connection.commit()
        finally:
            self._close(tx)
        logger.debug("committed transaction %s", tx.savepoint)

    def rollback(self, tx: PgTransaction) -> None:
        self._require_open(tx)
        try:
            tx.connection.rollback()
        finally:
            self._close(tx)
        logger.warning("rolled back transaction %s", tx.savepoint)

    def _abort(self, conn: Any) -> None:
        """End a half-opened engine transaction; the caller re-raises its error."""

        try:
            conn.rollback()
        except Exception:
            logger.warning(
                "rollback of half-opened transaction %s failed", self.savepoint, exc_info=True
            )

    def _close(self, tx: PgTransaction) -> None:
        tx.closed = True
        self.pool.checkin(tx.connection)

    def _require_open(self, tx: PgTransaction) -> None:
        if tx.closed:
            raise TransactionClosedError(
                f"Transaction with savepoint {tx.savepoint!r} is already closed."
            )
