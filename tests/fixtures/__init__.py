"""Test fixtures: builder factories and an in-memory recording connection."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from fluentql.compile.base import Grammar
from fluentql.compile.mysql import MySqlGrammar
from fluentql.compile.postgres import PostgresGrammar
from fluentql.compile.sqlite import SQLiteGrammar
from fluentql.compile.sqlserver import SqlServerGrammar
from fluentql.query.builder import Builder
from fluentql.query.processors import (
    PostgresProcessor,
    Processor,
    SqlServerProcessor,
)


class RecordingConnection:
    """A connection that records every statement and returns canned rows.

    Attributes:
        executed: ``(method, sql, bindings)`` for each statement run.
        rows: Rows returned by every ``select``.
        affected: Row count returned by writes.
        inserted_id: Value returned by ``last_insert_id``.
    """

    def __init__(
        self,
        grammar: Grammar,
        processor: Processor | None = None,
        database: str | None = None,
        rows: Iterable[Mapping[str, Any]] = (),
    ) -> None:
        self.grammar = grammar
        self.processor = processor if processor is not None else Processor()
        self.database = database
        self.rows = [dict(row) for row in rows]
        self.affected = 1
        self.inserted_id: Any = 1
        self.executed: list[tuple[str, str, list[Any]]] = []

    def _record(self, method: str, sql: str, bindings: Sequence[Any]) -> None:
        self.executed.append((method, sql, list(bindings)))

    @property
    def last(self) -> tuple[str, str, list[Any]]:
        return self.executed[-1]

    def select(self, sql: str, bindings: Sequence[Any] = ()) -> list[dict[str, Any]]:
        self._record("select", sql, bindings)
        return [dict(row) for row in self.rows]

    def insert(self, sql: str, bindings: Sequence[Any] = ()) -> bool:
        self._record("insert", sql, bindings)
        return True

    def update(self, sql: str, bindings: Sequence[Any] = ()) -> int:
        self._record("update", sql, bindings)
        return self.affected

    def delete(self, sql: str, bindings: Sequence[Any] = ()) -> int:
        self._record("delete", sql, bindings)
        return self.affected

    def affecting_statement(self, sql: str, bindings: Sequence[Any] = ()) -> int:
        self._record("affecting_statement", sql, bindings)
        return self.affected

    def statement(self, sql: str, bindings: Sequence[Any] = ()) -> bool:
        self._record("statement", sql, bindings)
        return True

    def last_insert_id(self, sequence: str | None = None) -> Any:
        return self.inserted_id

    def get_query_grammar(self) -> Grammar:
        return self.grammar

    def get_post_processor(self) -> Processor:
        return self.processor

    def get_database_name(self) -> str | None:
        return self.database

    def get_table_prefix(self) -> str:
        return self.grammar.get_table_prefix()

    def query(self) -> Builder:
        return Builder(self)

    def table(self, table: Any, as_: str | None = None) -> Builder:
        return self.query().from_(table, as_)


def get_builder(rows: Iterable[Mapping[str, Any]] = (), database: str | None = None) -> Builder:
    """Return a builder on the base grammar."""
    return Builder(RecordingConnection(Grammar(), rows=rows, database=database))


def get_mysql_builder(rows: Iterable[Mapping[str, Any]] = ()) -> Builder:
    return Builder(RecordingConnection(MySqlGrammar(), rows=rows))


def get_postgres_builder(rows: Iterable[Mapping[str, Any]] = ()) -> Builder:
    return Builder(RecordingConnection(PostgresGrammar(), PostgresProcessor(), rows=rows))


def get_sqlite_builder(rows: Iterable[Mapping[str, Any]] = ()) -> Builder:
    return Builder(RecordingConnection(SQLiteGrammar(), rows=rows))


def get_sqlserver_builder(rows: Iterable[Mapping[str, Any]] = ()) -> Builder:
    return Builder(RecordingConnection(SqlServerGrammar(), SqlServerProcessor(), rows=rows))


class PrecompiledQuery:
    """A sub-query that is not a builder: fixed SQL text and bindings."""

    def __init__(self, sql: str, bindings: Sequence[Any] = (), connection: Any = None) -> None:
        self.sql = sql
        self.bindings = list(bindings)
        self.connection = connection

    def to_sql(self) -> str:
        return self.sql

    def get_bindings(self) -> list[Any]:
        return list(self.bindings)

    def get_connection(self) -> Any:
        return self.connection
