"""Bounded, thread-safe pool of engine connections."""

from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Callable, Iterator
from typing import Any

from ...core.errors import TooManyConnectionsError

logger = logging.getLogger(__name__)


class ConnectionPool:
    """Hands out at most `max_connections` connections created by `connect`.

    The pool grows on demand up to the cap and never shrinks except through
    `clear()`. Exhaustion fails immediately instead of waiting.
    """

    def __init__(self, connect: Callable[[], Any], *, max_connections: int = 5):
        if max_connections < 1:
            raise ValueError("max_connections must be >= 1.")

        self._connect = connect
        self._max_connections = max_connections
        self._available: list[Any] = []
        self._in_use: list[Any] = []
        self._released: list[Any] = []
        self._creating = 0
        self._lock = threading.Lock()

    @property
    def max_connections(self) -> int:
        return self._max_connections

    @property
    def in_use_count(self) -> int:
        with self._lock:
            return len(self._in_use) + self._creating

    @property
    def available_count(self) -> int:
        with self._lock:
            return len(self._available)

    def checkout(self) -> Any:
        """Borrow one connection, creating it when none is idle.

        Raises:
            TooManyConnectionsError: If `max_connections` are already in use.
        """

        with self._lock:
            if self._available:
                conn = self._available.pop()
                self._in_use.append(conn)
                logger.debug("checked out idle connection (%d in use)", len(self._in_use))
                return conn

            in_use = len(self._in_use) + self._creating
            if in_use >= self._max_connections:
                logger.warning(
                    "connection pool exhausted: %d in use, max_connections=%d",
                    in_use,
                    self._max_connections,
                )
                raise TooManyConnectionsError(in_use, self._max_connections)
            self._creating += 1

        try:
            conn = self._connect()
        except BaseException:
            with self._lock:
                self._creating -= 1
            raise

        with self._lock:
            self._creating -= 1
            self._in_use.append(conn)
            logger.debug("created connection (%d in use)", len(self._in_use))
        return conn

    def checkin(self, conn: Any) -> None:
        """Return one borrowed connection to the pool.

        A connection that was in use when the pool was cleared is dropped.
        """

        with self._lock:
            index = self._index_of(self._in_use, conn)
            if index is None:
                released = self._index_of(self._released, conn)
                if released is not None:
                    del self._released[released]
                    logger.debug("dropped connection checked in after clear()")
                    return
                raise ValueError(
                    "Connection was not checked out from this pool or already checked in."
                )
            del self._in_use[index]
            self._available.append(conn)
            logger.debug("checked in connection (%d in use)", len(self._in_use))

    @contextlib.contextmanager
    def connection(self) -> Iterator[Any]:
        """Borrow and auto-return one connection with a context manager."""

        conn = self.checkout()
        try:
            yield conn
        finally:
            self.checkin(conn)

    def clear(self, close: Callable[[Any], None] | None = None) -> None:
        """Apply `close` to every pooled connection and forget all of them.

        Connections still checked out may be checked in later; they are
        dropped instead of being reused.
        """

        with self._lock:
            connections = self._available + self._in_use
            self._released.extend(self._in_use)
            self._available.clear()
            self._in_use.clear()

        if close is None:
            return
        for conn in connections:
            close(conn)

    def _index_of(self, connections: list[Any], conn: Any) -> int | None:
        for index, candidate in enumerate(connections):
            if candidate is conn:
                return index
        return None
