"""SQL text builders for table bindings.

Every builder takes fragments that were already escaped by the marshaling
layer (column identifiers and literals) and only adds SQL keywords around
them. Table names are escaped here with `quote_identifier`.
"""

from __future__ import annotations

from typing import Any, Sequence

from ...core.types import ColumnFragment


def quote_identifier(ident: str) -> str:
    """Quote SQL identifier, doubling embedded double quotes."""

    return '"' + str(ident).replace('"', '""') + '"'


def quote_literal(conn: Any, text: str) -> str:
    """Escape `text` through the engine client and single-quote it."""

    return "'" + conn.escape_string(text) + "'"


def column_metadata_sql(conn: Any, schema: str, table: str) -> str:
    return (
        "SELECT column_name, data_type, is_nullable, udt_name "
        "FROM information_schema.columns "
        f"WHERE table_schema = {quote_literal(conn, schema)} "
        f"AND table_name = {quote_literal(conn, table)} "
        "ORDER BY ordinal_position"
    )


def insert_sql(table: str, fragments: Sequence[ColumnFragment], pk_column: str) -> str:
    table_sql = quote_identifier(table)
    returning = f" RETURNING {pk_column}"
    if not fragments:
        return f"INSERT INTO {table_sql} DEFAULT VALUES{returning}"

    columns = ", ".join(column for column, _ in fragments)
    values = ", ".join(value for _, value in fragments)
    return f"INSERT INTO {table_sql} ({columns}) VALUES ({values}){returning}"


def select_by_pk_sql(table: str, pk: ColumnFragment) -> str:
    column, value = pk
    return f"SELECT * FROM {quote_identifier(table)} WHERE {column} = {value} LIMIT 1"


def exists_sql(table: str, pk: ColumnFragment) -> str:
    column, value = pk
    return (
        f'SELECT 1 AS "exists" FROM {quote_identifier(table)} '
        f"WHERE {column} = {value} LIMIT 1"
    )


def update_sql(table: str, fragments: Sequence[ColumnFragment], pk: ColumnFragment) -> str:
    if not fragments:
        raise ValueError("update_sql() requires at least one assignment.")
    column, value = pk
    assignments = ", ".join(f"{col} = {val}" for col, val in fragments)
    return f"UPDATE {quote_identifier(table)} SET {assignments} WHERE {column} = {value}"


def delete_sql(table: str, pk: ColumnFragment) -> str:
    column, value = pk
    return f"DELETE FROM {quote_identifier(table)} WHERE {column} = {value}"


def delete_all_sql(table: str) -> str:
    return f"DELETE FROM {quote_identifier(table)}"


def count_sql(table: str) -> str:
    return f'SELECT COUNT(*) AS "count" FROM {quote_identifier(table)}'


def page_sql(
    table: str,
    order_column: str,
    page_size: int,
    after: ColumnFragment | None = None,
) -> str:
    """Build one keyset page: rows ordered by `order_column` after a key."""

    if page_size < 1:
        raise ValueError("page_size must be >= 1.")
    sql = f"SELECT * FROM {quote_identifier(table)}"
    if after is not None:
        column, value = after
        sql += f" WHERE {column} > {value}"
    return sql + f" ORDER BY {order_column} ASC LIMIT {int(page_size)}"
