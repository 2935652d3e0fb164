"""fluentQL compilation layer: Builder state → SQL text with ``?`` placeholders."""
from fluentql.compile.base import Grammar
from fluentql.compile.mysql import MySqlGrammar
from fluentql.compile.postgres import PostgresGrammar
from fluentql.compile.registry import GrammarFactory
from fluentql.compile.sqlite import SQLiteGrammar
from fluentql.compile.sqlserver import SqlServerGrammar

__all__ = [
    "Grammar",
    "GrammarFactory",
    "MySqlGrammar",
    "PostgresGrammar",
    "SQLiteGrammar",
    "SqlServerGrammar",
]
