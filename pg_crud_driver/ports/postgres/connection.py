"""psycopg connection wrapper implementing the `EngineConnection` port."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import psycopg
from psycopg.pq import Escaping
from psycopg.rows import dict_row

from ...core.types import RowMapping, Rows

logger = logging.getLogger(__name__)


def open_connection(source: str | Mapping[str, Any]) -> PgConnection:
    """Open a new autocommit session from a URL or a credentials mapping."""

    if isinstance(source, Mapping):
        conn = psycopg.connect(autocommit=True, row_factory=dict_row, **dict(source))
    else:
        conn = psycopg.connect(source, autocommit=True, row_factory=dict_row)
    logger.debug("opened postgres connection to %s", conn.info.dbname)
    return PgConnection(conn)


class PgConnection:
    """Thin psycopg wrapper that executes text and normalizes rows.

    The session runs in autocommit mode; transaction boundaries are issued as
    plain `BEGIN` / `COMMIT` / `ROLLBACK` statements.
    """

    def __init__(self, conn: Any, *, owned: bool = True):
        """Wrap an open psycopg connection.

        Args:
            conn: Open `psycopg.Connection`.
            owned: Whether `close()` closes the wrapped connection.
        """

        if not conn.autocommit:
            conn.autocommit = True
        self.conn = conn
        self.owned = owned

    @property
    def closed(self) -> bool:
        return bool(self.conn.closed)

    def execute(self, sql: str) -> Rows:
        """Execute SQL text and return the result rows as mappings."""

        logger.debug("executing: %s", sql)
        with self.conn.cursor() as cur:
            cur.execute(sql)
            if cur.description is None:
                return []
            return [self._row_to_mapping(cur, row) for row in cur.fetchall()]

    def escape_string(self, text: str) -> str:
        """Escape `text` for use inside a single-quoted SQL literal."""

        escaped = Escaping(self.conn.pgconn).escape_string(text.encode("utf-8"))
        return escaped.decode("utf-8")

    def begin(self) -> None:
        self.execute("BEGIN")

    def commit(self) -> None:
        self.execute("COMMIT")

    def rollback(self) -> None:
        self.execute("ROLLBACK")

    def close(self) -> None:
        if not self.owned or self.closed:
            return
        self.conn.close()

    def _row_to_mapping(self, cursor: Any, row: Any) -> RowMapping:
        """Normalize row object to mapping.

        Supports mapping rows directly and tuple/list rows via
        `cursor.description`.
        """

        if isinstance(row, Mapping):
            return row

        if isinstance(row, (tuple, list)):
            desc = getattr(cursor, "description", None)
            if not desc:
                raise TypeError(
                    "Cursor has no description; cannot map tuple rows to dict."
                )
            cols = [d[0] for d in desc]
            return dict(zip(cols, row))

        raise TypeError(f"Unsupported row type: {type(row)}")
