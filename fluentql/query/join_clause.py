"""The condition builder for a single join."""

from __future__ import annotations

from typing import Any

from fluentql.query.builder import Builder
from fluentql.query.expression import Expression


class JoinClause(Builder):
    """A builder holding the ``on`` conditions of one join.

    Every where method is available; :meth:`on` compares two columns.
    Sub-queries created inside a join are plain builders of the parent's
    class.

    Args:
        parent_query: The builder the join belongs to.
        type: Join type (``inner``, ``left``, ``right``, ``cross``).
        table: Joined table name or raw expression.
    """

    where_conjunction = "on"

    def __init__(self, parent_query: Builder, type: str, table: str | Expression) -> None:
        super().__init__(
            parent_query.get_connection(),
            parent_query.get_grammar(),
            parent_query.get_processor(),
        )
        self.type = type
        self.table = table
        self.parent_class: type[Builder] = _parent_class_of(parent_query)

    def on(
        self,
        first: Any,
        operator: Any = None,
        second: Any = None,
        boolean: str = "and",
    ) -> JoinClause:
        """Add an ``on`` condition, or a nested group when *first* is callable."""
        if callable(first) and not isinstance(first, (str, Expression)):
            return self.where_nested(first, boolean)

        return self.where_column(first, operator, second, boolean)

    def or_on(self, first: Any, operator: Any = None, second: Any = None) -> JoinClause:
        return self.on(first, operator, second, "or")

    def new_query(self) -> JoinClause:
        return JoinClause(self.new_parent_query(), self.type, self.table)

    def for_sub_query(self) -> Builder:
        return self.new_parent_query().new_query()

    def new_parent_query(self) -> Builder:
        return self.parent_class(self.connection, self.grammar, self.processor)


def _parent_class_of(query: Builder) -> type[Builder]:
    # A join nested in a join still creates sub-queries of the outer class.
    if isinstance(query, JoinClause):
        return query.parent_class
    return type(query)
