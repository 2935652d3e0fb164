"""Comparison operator allow-lists.

The builder recognises :data:`BUILDER_OPERATORS` everywhere.  Each
dialect contributes extra operators through :data:`DIALECT_OPERATORS`;
a grammar is configured with one of these tuples rather than overriding
a class attribute, so callers can widen a grammar's vocabulary by passing
``operators=`` at construction time.
"""
from __future__ import annotations

BUILDER_OPERATORS: tuple[str, ...] = (
    "=", "<", ">", "<=", ">=", "<>", "!=", "<=>",
    "like", "like binary", "not like", "ilike",
    "&", "|", "^", "<<", ">>",
    "rlike", "not rlike", "regexp", "not regexp",
    "~", "~*", "!~", "!~*", "similar to",
    "not similar to", "not ilike", "~~*", "!~~*",
)

MYSQL_OPERATORS: tuple[str, ...] = ("sounds like",)

POSTGRES_OPERATORS: tuple[str, ...] = (
    "=", "<", ">", "<=", ">=", "<>", "!=",
    "like", "not like", "ilike", "not ilike",
    "~", "&", "|", "#", "<<", ">>", "<<=", ">>=",
    "&&", "@>", "<@", "?", "?|", "?&", "||", "-", "@?", "@@", "#-",
    "is distinct from", "is not distinct from",
)

SQLITE_OPERATORS: tuple[str, ...] = (
    "=", "<", ">", "<=", ">=", "<>", "!=",
    "like", "not like", "ilike",
    "&", "|", "<<", ">>",
)

SQLSERVER_OPERATORS: tuple[str, ...] = (
    "=", "<", ">", "<=", ">=", "!<", "!>", "<>", "!=",
    "like", "not like", "ilike",
    "&", "&=", "|", "|=", "^", "^=",
)

#: Extra operators per dialect name.
DIALECT_OPERATORS: dict[str, tuple[str, ...]] = {
    "base": (),
    "mysql": MYSQL_OPERATORS,
    "pgsql": POSTGRES_OPERATORS,
    "sqlite": SQLITE_OPERATORS,
    "sqlsrv": SQLSERVER_OPERATORS,
}


def operators_for(dialect: str) -> tuple[str, ...]:
    """Return the extra operators configured for *dialect* (empty if unknown)."""
    return DIALECT_OPERATORS.get(dialect, ())
