"""Post-processors applied to query results.

A processor shapes what the connection returns before the builder hands
it to the caller.  The insert-and-return-id flow differs per database, so
each dialect that needs it has its own processor.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fluentql.query.builder import Builder


class Processor:
    """Default processor: rows pass through; ids come from the driver."""

    def process_select(self, query: Builder, results: list[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
        return results

    def process_insert_get_id(
        self, query: Builder, sql: str, values: list[Any], sequence: str | None = None
    ) -> Any:
        """Run an insert and return the generated id.

        Args:
            query: The builder issuing the insert.
            sql: The compiled insert statement.
            values: Its bindings.
            sequence: Sequence (or id column) name, for drivers that need it.

        Returns:
            The id as an ``int`` when it is numeric, otherwise unchanged.
        """
        connection = query.get_connection()
        connection.insert(sql, values)
        return _numeric_id(connection.last_insert_id(sequence))


class MySqlProcessor(Processor):
    """``cursor.lastrowid`` carries the auto-increment id."""


class PostgresProcessor(Processor):
    """Reads the id from the ``returning`` row of the insert."""

    def process_insert_get_id(
        self, query: Builder, sql: str, values: list[Any], sequence: str | None = None
    ) -> Any:
        rows = query.get_connection().select(sql, values)
        return _numeric_id(rows[0][sequence or "id"])


class SQLiteProcessor(Processor):
    """``cursor.lastrowid`` carries the rowid of the inserted row."""


class SqlServerProcessor(Processor):
    """Selects ``scope_identity()`` in the same batch as the insert."""

    def process_insert_get_id(
        self, query: Builder, sql: str, values: list[Any], sequence: str | None = None
    ) -> Any:
        rows = query.get_connection().select(f"{sql}; select scope_identity() as id", values)
        return _numeric_id(rows[0]["id"])


def _numeric_id(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    try:
        as_float = float(value)
    except (TypeError, ValueError):
        return value
    return int(as_float) if as_float.is_integer() else as_float
