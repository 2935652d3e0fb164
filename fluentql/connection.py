"""Connections: where compiled statements meet a database.

The builder only needs the small :class:`Connection` protocol.
:class:`SQLAlchemyConnection` implements it on SQLAlchemy Core, sending
the compiled SQL through ``exec_driver_sql`` so the text reaches the
driver exactly as the grammar produced it.  Grammars always emit ``?``
placeholders; they are rewritten into the driver's DBAPI paramstyle just
before execution.

Usage::

    from fluentql import DatabaseConfig, DatabaseManager

    db = DatabaseManager(DatabaseConfig.from_mapping({...}))
    rows = db.table("users").where("votes", ">", 100).get()
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection as SAConnection
from sqlalchemy.engine import CursorResult, Engine
from sqlalchemy.exc import SQLAlchemyError

from fluentql.compile.registry import GrammarFactory
from fluentql.errors import ConfigError
from fluentql.query.builder import Builder
from fluentql.query.processors import (
    MySqlProcessor,
    PostgresProcessor,
    Processor,
    SQLiteProcessor,
    SqlServerProcessor,
)

if TYPE_CHECKING:
    from fluentql.compile.base import Grammar
    from fluentql.config import ConnectionConfig, DatabaseConfig

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

#: Post-processor class for each driver.
PROCESSORS: dict[str, type[Processor]] = {
    "mysql": MySqlProcessor,
    "pgsql": PostgresProcessor,
    "sqlite": SQLiteProcessor,
    "sqlsrv": SqlServerProcessor,
}

_QUOTE_PAIRS: dict[str, str] = {"'": "'", '"': '"', "`": "`", "[": "]"}


@runtime_checkable
class Connection(Protocol):
    """What a :class:`~fluentql.query.builder.Builder` needs from a database."""

    def select(self, sql: str, bindings: Sequence[Any] = ()) -> list[dict[str, Any]]: ...

    def insert(self, sql: str, bindings: Sequence[Any] = ()) -> bool: ...

    def update(self, sql: str, bindings: Sequence[Any] = ()) -> int: ...

    def delete(self, sql: str, bindings: Sequence[Any] = ()) -> int: ...

    def affecting_statement(self, sql: str, bindings: Sequence[Any] = ()) -> int: ...

    def statement(self, sql: str, bindings: Sequence[Any] = ()) -> bool: ...

    def last_insert_id(self, sequence: str | None = None) -> Any: ...

    def get_query_grammar(self) -> Grammar: ...

    def get_post_processor(self) -> Processor: ...

    def get_database_name(self) -> str | None: ...

    def get_table_prefix(self) -> str: ...

    def query(self) -> Builder: ...

    def table(self, table: Any, as_: str | None = None) -> Builder: ...


@dataclass(frozen=True)
class QueryLogEntry:
    """One executed statement, as recorded in the query log."""

    query: str
    bindings: list[Any]
    time: float


# ---------------------------------------------------------------------------
# Placeholder translation
# ---------------------------------------------------------------------------


def translate_placeholders(
    sql: str, paramstyle: str, bindings: Sequence[Any]
) -> tuple[str, tuple[Any, ...] | dict[str, Any] | None]:
    """Rewrite ``?`` placeholders into a DBAPI paramstyle.

    Question marks inside quoted literals and quoted identifiers are left
    alone, and ``??`` is sent as a literal ``?``.  For the ``format`` and
    ``pyformat`` styles, literal ``%`` signs are doubled whenever
    parameters are sent.

    Args:
        sql: SQL text using ``?`` placeholders.
        paramstyle: The driver's paramstyle (``qmark``, ``format``,
            ``numeric``, ``named`` or ``pyformat``).
        bindings: The positional values.

    Returns:
        The rewritten SQL and the parameters in the shape the driver
        expects (``None`` when there are no bindings).

    Raises:
        ValueError: If the paramstyle is unknown.
    """
    values = tuple(bindings)
    if paramstyle not in ("qmark", "format", "numeric", "named", "pyformat"):
        raise ValueError(f"Unsupported paramstyle: {paramstyle!r}")
    if paramstyle == "qmark":
        return sql, values or None

    escape_percent = bool(values) and paramstyle in ("format", "pyformat")
    parts: list[str] = []
    closing: str | None = None
    index = 0

    position = 0
    while position < len(sql):
        char = sql[position]
        position += 1

        if closing is None and char == "?":
            if sql.startswith("?", position):
                position += 1
                parts.append("?")
                continue
            index += 1
            parts.append(_placeholder(paramstyle, index))
            continue

        if closing is None and char in _QUOTE_PAIRS:
            closing = _QUOTE_PAIRS[char]
        elif closing is not None and char == closing:
            closing = None

        parts.append("%%" if escape_percent and char == "%" else char)

    if not values:
        return "".join(parts), None
    if paramstyle in ("named", "pyformat"):
        return "".join(parts), {f"p{i}": value for i, value in enumerate(values, start=1)}
    return "".join(parts), values


def _placeholder(paramstyle: str, index: int) -> str:
    if paramstyle == "format":
        return "%s"
    if paramstyle == "numeric":
        return f":{index}"
    if paramstyle == "named":
        return f":p{index}"
    return f"%(p{index})s"


# ---------------------------------------------------------------------------
# SQLAlchemy connection
# ---------------------------------------------------------------------------


class SQLAlchemyConnection:
    """A :class:`Connection` backed by a SQLAlchemy :class:`~sqlalchemy.engine.Engine`.

    One SQLAlchemy connection is opened lazily and reused.  Outside a
    :meth:`transaction` block every statement is committed as soon as it
    has run; a failing statement rolls the open transaction back.

    Args:
        engine: The engine to execute on.
        grammar: The grammar builders of this connection compile with.
        processor: Post-processor; defaults to the base :class:`Processor`.
        database: Database name, used to qualify cross-database sub-queries.
        log_queries: Start with the query log enabled.
    """

    def __init__(
        self,
        engine: Engine,
        grammar: Grammar,
        processor: Processor | None = None,
        database: str | None = None,
        log_queries: bool = False,
    ) -> None:
        self.engine = engine
        self.grammar = grammar
        self.processor = processor if processor is not None else Processor()
        self.database = database
        self.logging_queries = log_queries
        self.query_log: list[QueryLogEntry] = []
        self._connection: SAConnection | None = None
        self._transactions = 0
        self._last_insert_id: Any = None

    # ------------------------------------------------------------------
    # Builders and collaborators
    # ------------------------------------------------------------------

    def query(self) -> Builder:
        return Builder(self, self.grammar, self.processor)

    def table(self, table: Any, as_: str | None = None) -> Builder:
        """Begin a fluent query against *table*."""
        return self.query().from_(table, as_)

    def get_query_grammar(self) -> Grammar:
        return self.grammar

    def get_post_processor(self) -> Processor:
        return self.processor

    def get_database_name(self) -> str | None:
        return self.database

    def get_table_prefix(self) -> str:
        return self.grammar.get_table_prefix()

    @property
    def paramstyle(self) -> str:
        return self.engine.dialect.paramstyle

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def select(self, sql: str, bindings: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a select statement and return its rows as dicts."""
        return self._run(sql, bindings, lambda result: [dict(row) for row in result.mappings()])

    def insert(self, sql: str, bindings: Sequence[Any] = ()) -> bool:
        self._last_insert_id = self._run(sql, bindings, lambda result: result.lastrowid)
        return True

    def update(self, sql: str, bindings: Sequence[Any] = ()) -> int:
        return self.affecting_statement(sql, bindings)

    def delete(self, sql: str, bindings: Sequence[Any] = ()) -> int:
        return self.affecting_statement(sql, bindings)

    def affecting_statement(self, sql: str, bindings: Sequence[Any] = ()) -> int:
        """Run a statement and return the number of affected rows."""
        return self._run(sql, bindings, lambda result: result.rowcount)

    def statement(self, sql: str, bindings: Sequence[Any] = ()) -> bool:
        return self._run(sql, bindings, lambda result: True)

    def last_insert_id(self, sequence: str | None = None) -> Any:
        return self._last_insert_id

    def _run(
        self, sql: str, bindings: Sequence[Any], handler: Callable[[CursorResult[Any]], _T]
    ) -> _T:
        """Execute *sql* and return what *handler* extracts from the cursor.

        The handler runs before the statement is committed, while the
        cursor is still open.
        """
        bindings = list(bindings)
        statement, parameters = translate_placeholders(sql, self.paramstyle, bindings)
        connection = self._get_connection()

        start = time.perf_counter()
        try:
            value = handler(connection.exec_driver_sql(statement, parameters))
            if self._transactions == 0:
                connection.commit()
        except SQLAlchemyError:
            logger.debug("Statement failed: %s", sql)
            if self._transactions == 0:
                connection.rollback()
            raise

        elapsed = round((time.perf_counter() - start) * 1000, 2)
        self.log_query(sql, bindings, elapsed)
        return value

    def _get_connection(self) -> SAConnection:
        if self._connection is None:
            self._connection = self.engine.connect()
        return self._connection

    @contextmanager
    def transaction(self) -> Iterator[SQLAlchemyConnection]:
        """Run the enclosed statements in one transaction.

        The transaction commits when the outermost block exits normally and
        rolls back when it raises.  Nested blocks join the outer transaction.
        """
        connection = self._get_connection()
        if self._transactions == 0 and connection.in_transaction():
            connection.commit()

        self._transactions += 1
        try:
            yield self
        except BaseException:
            self._transactions -= 1
            if self._transactions == 0:
                connection.rollback()
            raise
        self._transactions -= 1
        if self._transactions == 0:
            connection.commit()

    def disconnect(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    # ------------------------------------------------------------------
    # Query log
    # ------------------------------------------------------------------

    def log_query(self, sql: str, bindings: list[Any], elapsed: float) -> None:
        logger.debug("%s [%d bindings] %.2fms", sql, len(bindings), elapsed)
        if self.logging_queries:
            self.query_log.append(QueryLogEntry(sql, bindings, elapsed))

    def enable_query_log(self) -> None:
        self.logging_queries = True

    def disable_query_log(self) -> None:
        self.logging_queries = False

    def get_query_log(self) -> list[QueryLogEntry]:
        return list(self.query_log)

    def flush_query_log(self) -> None:
        self.query_log = []


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def connect(config: ConnectionConfig) -> SQLAlchemyConnection:
    """Build a connection from its configuration.

    Args:
        config: The connection settings.

    Returns:
        A connection with the driver's grammar and post-processor.
    """
    engine = create_engine(config.url, **config.engine_options)
    grammar = GrammarFactory.create(config.driver, table_prefix=config.prefix)
    logger.debug("Connecting to %s with the %s driver", engine.url.render_as_string(), config.driver)

    return SQLAlchemyConnection(
        engine,
        grammar,
        PROCESSORS[config.driver](),
        database=config.database,
        log_queries=config.log_queries,
    )


class DatabaseManager:
    """Creates connections on first use and caches them by name.

    Args:
        config: Every configured connection plus the default's name.
        factory: Builds a connection from its settings; defaults to
            :func:`connect`.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        factory: Callable[[ConnectionConfig], Any] = connect,
    ) -> None:
        self.config = config
        self.factory = factory
        self._connections: dict[str, Any] = {}

    def connection(self, name: str | None = None) -> Any:
        """Return the named connection (the default one when *name* is None).

        Raises:
            ConfigError: If no connection is configured under *name*.
        """
        name = name or self.config.default

        if name not in self._connections:
            settings = self.config.connections.get(name)
            if settings is None:
                raise ConfigError(f"Database connection '{name}' is not configured.", field=name)
            self._connections[name] = self.factory(settings)

        return self._connections[name]

    def table(self, table: Any, as_: str | None = None) -> Builder:
        return self.connection().table(table, as_)

    def purge(self, name: str | None = None) -> None:
        """Disconnect and forget the named connection."""
        connection = self._connections.pop(name or self.config.default, None)
        if connection is not None and hasattr(connection, "disconnect"):
            connection.disconnect()

    def get_connections(self) -> Mapping[str, Any]:
        return dict(self._connections)
