"""fluentQL – a fluent, dialect-aware SQL query builder.

Build queries, not strings.

Public API
----------
``Builder``
    Fluent model of one statement: projection, joins, wheres, grouping,
    ordering, unions, locks, and the insert/update/upsert/delete writes.

``connect`` / ``DatabaseManager``
    Open SQLAlchemy-backed connections from a pydantic configuration and
    start queries with ``connection.table("users")``.

Grammars
--------
``MySqlGrammar``, ``PostgresGrammar``, ``SQLiteGrammar`` and
``SqlServerGrammar`` turn a builder into SQL text with ``?`` placeholders
and an ordered list of bindings.

Extensibility
-------------
New grammars can be registered via::

    from fluentql.compile.registry import GrammarFactory

    @GrammarFactory.register("oracle")
    class OracleGrammar(Grammar):
        ...

After registration, ``connect`` picks it up for any configuration whose
``driver`` names it.
"""

from __future__ import annotations

from fluentql.compile.base import Grammar
from fluentql.compile.mysql import MySqlGrammar
from fluentql.compile.operators import BUILDER_OPERATORS, DIALECT_OPERATORS
from fluentql.compile.postgres import PostgresGrammar
from fluentql.compile.registry import GrammarFactory
from fluentql.compile.sqlite import SQLiteGrammar
from fluentql.compile.sqlserver import SqlServerGrammar
from fluentql.config import ConnectionConfig, DatabaseConfig
from fluentql.connection import (
    Connection,
    DatabaseManager,
    QueryLogEntry,
    SQLAlchemyConnection,
    connect,
)
from fluentql.errors import (
    CompilationError,
    ConfigError,
    FluentQLError,
    InvalidArgumentError,
    UnsupportedOperationError,
)
from fluentql.query.builder import BINDING_TYPES, Builder
from fluentql.query.expression import Expression, HasSqlAndBindings, raw
from fluentql.query.join_clause import JoinClause
from fluentql.query.processors import (
    MySqlProcessor,
    PostgresProcessor,
    Processor,
    SQLiteProcessor,
    SqlServerProcessor,
)

# ---------------------------------------------------------------------------
# Register built-in grammars with GrammarFactory
# ---------------------------------------------------------------------------

GrammarFactory.register_class("mysql", MySqlGrammar)
GrammarFactory.register_class("pgsql", PostgresGrammar)
GrammarFactory.register_class("sqlite", SQLiteGrammar)
GrammarFactory.register_class("sqlsrv", SqlServerGrammar)

__all__ = [
    # Building
    "Builder",
    "JoinClause",
    "Expression",
    "HasSqlAndBindings",
    "raw",
    "BINDING_TYPES",
    # Compilation
    "Grammar",
    "GrammarFactory",
    "MySqlGrammar",
    "PostgresGrammar",
    "SQLiteGrammar",
    "SqlServerGrammar",
    "BUILDER_OPERATORS",
    "DIALECT_OPERATORS",
    # Processing
    "Processor",
    "MySqlProcessor",
    "PostgresProcessor",
    "SQLiteProcessor",
    "SqlServerProcessor",
    # Connections and configuration
    "Connection",
    "SQLAlchemyConnection",
    "QueryLogEntry",
    "connect",
    "DatabaseManager",
    "ConnectionConfig",
    "DatabaseConfig",
    # Errors
    "FluentQLError",
    "InvalidArgumentError",
    "UnsupportedOperationError",
    "CompilationError",
    "ConfigError",
]
