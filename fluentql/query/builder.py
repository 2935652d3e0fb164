"""The fluent query builder.

A :class:`Builder` accumulates the clauses of a single SQL statement and
the values bound to its placeholders.  Compilation is delegated to the
connection's :class:`~fluentql.compile.base.Grammar`; execution is
delegated to the :class:`~fluentql.connection.Connection` and its
post-processor.

Bound values live in named buckets.  :meth:`Builder.get_bindings`
flattens the buckets in :data:`BINDING_TYPES` order, which is the order
their placeholders appear in the compiled SQL.
"""
from __future__ import annotations

import copy
import numbers
import re
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime, time
from typing import TYPE_CHECKING, Any

from fluentql.compile.operators import BUILDER_OPERATORS
from fluentql.errors import InvalidArgumentError
from fluentql.query.clauses import (
    Aggregate,
    BasicHaving,
    BasicWhere,
    BetweenColumnsWhere,
    BetweenHaving,
    BetweenWhere,
    ColumnWhere,
    DatePart,
    DateWhere,
    ExistsWhere,
    InRawWhere,
    InWhere,
    JsonBooleanWhere,
    NestedWhere,
    NullWhere,
    Order,
    RawHaving,
    RawOrder,
    RawWhere,
    SubWhere,
    Union,
    copy_clause,
)
from fluentql.query.expression import Expression, HasSqlAndBindings, is_queryable
from fluentql.support import flatten, head, wrap_list

if TYPE_CHECKING:
    from fluentql.compile.base import Grammar
    from fluentql.connection import Connection
    from fluentql.query.join_clause import JoinClause
    from fluentql.query.processors import Processor

#: Binding buckets, in placeholder order.
BINDING_TYPES: tuple[str, ...] = (
    "select",
    "from",
    "join",
    "where",
    "groupBy",
    "having",
    "order",
    "union",
    "unionOrder",
)

_ALIAS_PATTERN = re.compile(r"\s+as\s+", re.IGNORECASE)


class _Unset:
    """Marker for an argument the caller did not pass."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


class Builder:
    """Fluent, mutable model of one SQL statement.

    Args:
        connection: The connection the query runs on.
        grammar: Grammar override; defaults to the connection's grammar.
        processor: Post-processor override; defaults to the connection's.
    """

    #: Keyword that introduces this builder's where clauses.
    where_conjunction = "where"

    #: Operators recognised regardless of the grammar.
    operators: tuple[str, ...] = BUILDER_OPERATORS

    def __init__(
        self,
        connection: Connection,
        grammar: Grammar | None = None,
        processor: Processor | None = None,
    ) -> None:
        self.connection = connection
        self.grammar = grammar if grammar is not None else connection.get_query_grammar()
        self.processor = processor if processor is not None else connection.get_post_processor()

        self.bindings: dict[str, list[Any]] = {bucket: [] for bucket in BINDING_TYPES}
        self.aggregate_clause: Aggregate | None = None
        self.columns: list[Any] = []
        self.distinct_value: bool | list[Any] = False
        self.from_table: Any = None
        self.joins: list[JoinClause] = []
        self.wheres: list[Any] = []
        self.groups: list[Any] = []
        self.havings: list[Any] = []
        self.orders: list[Order | RawOrder] = []
        self.limit_value: int | None = None
        self.offset_value: int | None = None
        self.unions: list[Union] = []
        self.union_limit: int | None = None
        self.union_offset: int | None = None
        self.union_orders: list[Order | RawOrder] = []
        self.lock_value: bool | str | None = None
        self.before_query_callbacks: list[Callable[[Builder], Any]] = []

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def select(self, *columns: Any) -> Builder:
        """Set the columns to be selected, replacing any previous ones."""
        self.columns = []
        self.bindings["select"] = []
        return self.add_select(*(columns or ("*",)))

    def add_select(self, *columns: Any) -> Builder:
        """Add columns to the select list.

        A mapping entry ``{"alias": query}`` selects a sub-query under that
        alias.
        """
        for column in _column_list(columns):
            if isinstance(column, Mapping):
                for alias, value in column.items():
                    if isinstance(alias, str) and is_queryable(value):
                        self.select_sub(value, alias)
                    else:
                        self.columns.append(value)
            else:
                self.columns.append(column)
        return self

    def select_raw(self, expression: str, bindings: Iterable[Any] | None = None) -> Builder:
        self.add_select(Expression(expression))
        if bindings:
            self.add_binding(list(bindings), "select")
        return self

    def select_sub(self, query: Any, as_: str) -> Builder:
        sql, bindings = self.create_sub(query)
        return self.select_raw(f"({sql}) as {self.grammar.wrap(as_)}", bindings)

    def distinct(self, *columns: Any) -> Builder:
        """Force the query to return distinct rows, optionally on given columns."""
        if columns:
            first = columns[0]
            if isinstance(first, bool):
                self.distinct_value = first
            else:
                self.distinct_value = _column_list(columns)
        else:
            self.distinct_value = True
        return self

    # ------------------------------------------------------------------
    # Source table
    # ------------------------------------------------------------------

    def from_(self, table: Any, as_: str | None = None) -> Builder:
        """Set the table, aliased table or sub-query the query selects from."""
        if is_queryable(table):
            return self.from_sub(table, as_)

        self.from_table = f"{table} as {as_}" if as_ else table
        return self

    def from_sub(self, query: Any, as_: str) -> Builder:
        sql, bindings = self.create_sub(query)
        return self.from_raw(f"({sql}) as {self.grammar.wrap_table(as_)}", bindings)

    def from_raw(self, expression: str, bindings: Iterable[Any] | None = None) -> Builder:
        self.from_table = Expression(expression)
        self.add_binding(list(bindings or []), "from")
        return self

    def create_sub(self, query: Any) -> tuple[str, list[Any]]:
        """Compile a sub-query given as a builder, callable or raw string.

        Returns:
            The sub-query SQL and its bindings.
        """
        if callable(query) and not isinstance(query, HasSqlAndBindings):
            callback = query
            query = self.for_sub_query()
            callback(query)

        return self.parse_sub(query)

    def parse_sub(self, query: Any) -> tuple[str, list[Any]]:
        """Return the SQL and bindings of an already-built sub-query.

        Raises:
            InvalidArgumentError: If *query* is not a builder-like object,
                a string or an expression.
        """
        if isinstance(query, HasSqlAndBindings):
            query = self.prepend_database_name_if_cross_database_query(query)
            return query.to_sql(), list(query.get_bindings())
        if isinstance(query, (str, Expression)):
            return str(query), []
        raise InvalidArgumentError(
            "A subquery must be a query builder instance, a callable, or a string.",
            argument=query,
        )

    def prepend_database_name_if_cross_database_query(self, query: Any) -> Any:
        """Qualify a sub-query's table with its database when it lives elsewhere.

        The table is only qualified when the sub-query's connection names a
        different database and the table carries no qualifier of its own.
        """
        database = query.get_connection().get_database_name()
        if not database or database == self.get_connection().get_database_name():
            return query

        table = getattr(query, "from_table", None)
        if not isinstance(table, str):
            return query

        name = _ALIAS_PATTERN.split(table, maxsplit=1)[0]
        if "." not in name:
            query.from_(f"{database}.{table}")

        return query

    # ------------------------------------------------------------------
    # Joins
    # ------------------------------------------------------------------

    def join(
        self,
        table: Any,
        first: Any,
        operator: Any = None,
        second: Any = None,
        type: str = "inner",
        where: bool = False,
    ) -> Builder:
        """Add a join clause to the query.

        Args:
            table: Table to join (string or expression).
            first: First column of the condition, or a callable that
                receives the :class:`JoinClause` and builds the condition.
            operator: Comparison operator.
            second: Second column, or a value when ``where`` is set.
            type: Join type (``inner``, ``left``, ``right``, ``cross``).
            where: Compare ``first`` against a bound value instead of a
                column.
        """
        join = self.new_join_clause(self, type, table)

        if callable(first) and not isinstance(first, (str, Expression)):
            first(join)
        elif where:
            join.where(first, operator, second)
        else:
            join.on(first, operator, second)

        self.joins.append(join)
        self.add_binding(join.get_bindings(), "join")
        return self

    def join_where(
        self, table: Any, first: Any, operator: Any, second: Any, type: str = "inner"
    ) -> Builder:
        return self.join(table, first, operator, second, type, True)

    def join_sub(
        self,
        query: Any,
        as_: str,
        first: Any,
        operator: Any = None,
        second: Any = None,
        type: str = "inner",
        where: bool = False,
    ) -> Builder:
        """Join a sub-query under the alias *as_*."""
        sql, bindings = self.create_sub(query)
        expression = f"({sql}) as {self.grammar.wrap_table(as_)}"
        self.add_binding(bindings, "join")
        return self.join(Expression(expression), first, operator, second, type, where)

    def left_join(self, table: Any, first: Any, operator: Any = None, second: Any = None) -> Builder:
        return self.join(table, first, operator, second, "left")

    def left_join_where(self, table: Any, first: Any, operator: Any, second: Any) -> Builder:
        return self.join_where(table, first, operator, second, "left")

    def left_join_sub(
        self, query: Any, as_: str, first: Any, operator: Any = None, second: Any = None
    ) -> Builder:
        return self.join_sub(query, as_, first, operator, second, "left")

    def right_join(self, table: Any, first: Any, operator: Any = None, second: Any = None) -> Builder:
        return self.join(table, first, operator, second, "right")

    def right_join_where(self, table: Any, first: Any, operator: Any, second: Any) -> Builder:
        return self.join_where(table, first, operator, second, "right")

    def right_join_sub(
        self, query: Any, as_: str, first: Any, operator: Any = None, second: Any = None
    ) -> Builder:
        return self.join_sub(query, as_, first, operator, second, "right")

    def cross_join(
        self, table: Any, first: Any = None, operator: Any = None, second: Any = None
    ) -> Builder:
        if first is not None:
            return self.join(table, first, operator, second, "cross")

        self.joins.append(self.new_join_clause(self, "cross", table))
        return self

    def cross_join_sub(self, query: Any, as_: str) -> Builder:
        sql, bindings = self.create_sub(query)
        expression = f"({sql}) as {self.grammar.wrap_table(as_)}"
        self.add_binding(bindings, "join")
        self.joins.append(self.new_join_clause(self, "cross", Expression(expression)))
        return self

    def new_join_clause(self, parent_query: Builder, type: str, table: Any) -> JoinClause:
        from fluentql.query.join_clause import JoinClause

        return JoinClause(parent_query, type, table)

    # ------------------------------------------------------------------
    # Where clauses
    # ------------------------------------------------------------------

    def merge_wheres(self, wheres: list[Any], bindings: Iterable[Any]) -> Builder:
        self.wheres.extend(wheres)
        self.bindings["where"].extend(bindings)
        return self

    def where(
        self,
        column: Any,
        operator: Any = UNSET,
        value: Any = UNSET,
        boolean: str = "and",
    ) -> Builder:
        """Add a basic where clause to the query.

        ``where(column, value)`` compares with ``=``.  A list or mapping of
        conditions becomes one nested group, and a callable column builds a
        nested group itself.

        Raises:
            InvalidArgumentError: If ``None`` is compared with an operator
                other than ``=``, ``<>`` or ``!=``.
        """
        if isinstance(column, (list, Mapping)):
            return self.add_array_of_wheres(column, boolean)

        value, operator = self.prepare_value_and_operator(
            value, operator, value is UNSET and operator is not UNSET
        )

        if callable(column) and not isinstance(column, HasSqlAndBindings) and operator is None:
            return self.where_nested(column, boolean)

        if is_queryable(column) and operator is not None:
            sub, bindings = self.create_sub(column)
            return self.add_binding(bindings, "where").where(
                Expression(f"({sub})"), operator, value, boolean
            )

        # An unknown operator is really the value: where("id", 5).
        if self.invalid_operator(operator):
            value, operator = operator, "="

        if is_queryable(value):
            return self.where_sub(column, operator, value, boolean)

        if value is None:
            return self.where_null(column, boolean, operator != "=")

        where_cls: type[BasicWhere] | type[JsonBooleanWhere] = BasicWhere
        if isinstance(column, str) and "->" in column and isinstance(value, bool):
            value = Expression("true" if value else "false")
            where_cls = JsonBooleanWhere

        self.wheres.append(where_cls(column, operator, value, boolean))

        if not isinstance(value, Expression):
            self.add_binding(self.flatten_value(value), "where")

        return self

    def or_where(self, column: Any, operator: Any = UNSET, value: Any = UNSET) -> Builder:
        return self.where(column, operator, value, "or")

    def add_array_of_wheres(
        self, column: list[Any] | Mapping[str, Any], boolean: str, method: str = "where"
    ) -> Builder:
        """Add one nested group holding a condition per list entry or mapping key."""

        def build(query: Builder) -> None:
            items = column.items() if isinstance(column, Mapping) else enumerate(column)
            for key, value in items:
                if isinstance(key, int) and isinstance(value, (list, tuple)):
                    getattr(query, method)(*value)
                else:
                    getattr(query, method)(key, "=", value, boolean)

        return self.where_nested(build, boolean)

    def prepare_value_and_operator(
        self, value: Any, operator: Any, use_default: bool = False
    ) -> tuple[Any, Any]:
        """Resolve the two-argument shortcut and reject illegal combinations.

        Returns:
            A ``(value, operator)`` pair.
        """
        if use_default:
            return operator, "="

        value = None if value is UNSET else value
        operator = None if operator is UNSET else operator

        if self.invalid_operator_and_value(operator, value):
            raise InvalidArgumentError("Illegal operator and value combination.", argument=operator)

        return value, operator

    def invalid_operator_and_value(self, operator: Any, value: Any) -> bool:
        return (
            value is None
            and isinstance(operator, str)
            and operator in self.operators
            and operator not in ("=", "<>", "!=")
        )

    def invalid_operator(self, operator: Any) -> bool:
        if not isinstance(operator, str):
            return True
        lowered = operator.lower()
        return lowered not in self.operators and lowered not in self.grammar.get_operators()

    def where_column(
        self, first: Any, operator: Any = None, second: Any = None, boolean: str = "and"
    ) -> Builder:
        """Compare two columns.  ``where_column(a, b)`` compares with ``=``."""
        if isinstance(first, (list, Mapping)):
            return self.add_array_of_wheres(first, boolean, "where_column")

        if self.invalid_operator(operator):
            second, operator = operator, "="

        self.wheres.append(ColumnWhere(first, operator, second, boolean))
        return self

    def or_where_column(self, first: Any, operator: Any = None, second: Any = None) -> Builder:
        return self.where_column(first, operator, second, "or")

    def where_raw(self, sql: Any, bindings: Iterable[Any] | None = None, boolean: str = "and") -> Builder:
        self.wheres.append(RawWhere(sql, boolean))
        self.add_binding(list(bindings or []), "where")
        return self

    def or_where_raw(self, sql: Any, bindings: Iterable[Any] | None = None) -> Builder:
        return self.where_raw(sql, bindings, "or")

    def where_in(self, column: Any, values: Any, boolean: str = "and", not_: bool = False) -> Builder:
        """Add a ``where in`` clause; *values* may also be a sub-query."""
        if is_queryable(values):
            sql, bindings = self.create_sub(values)
            values = [Expression(sql)]
            self.add_binding(bindings, "where")
        else:
            values = list(values)

        self.wheres.append(InWhere(column, values, boolean, not_))
        self.add_binding(self.clean_bindings(values), "where")
        return self

    def or_where_in(self, column: Any, values: Any) -> Builder:
        return self.where_in(column, values, "or")

    def where_not_in(self, column: Any, values: Any, boolean: str = "and") -> Builder:
        return self.where_in(column, values, boolean, True)

    def or_where_not_in(self, column: Any, values: Any) -> Builder:
        return self.where_not_in(column, values, "or")

    def where_integer_in_raw(
        self, column: Any, values: Iterable[Any], boolean: str = "and", not_: bool = False
    ) -> Builder:
        """Add a ``where in`` clause whose integer values are inlined, not bound."""
        self.wheres.append(InRawWhere(column, [int(value) for value in values], boolean, not_))
        return self

    def or_where_integer_in_raw(self, column: Any, values: Iterable[Any]) -> Builder:
        return self.where_integer_in_raw(column, values, "or")

    def where_integer_not_in_raw(self, column: Any, values: Iterable[Any], boolean: str = "and") -> Builder:
        return self.where_integer_in_raw(column, values, boolean, True)

    def or_where_integer_not_in_raw(self, column: Any, values: Iterable[Any]) -> Builder:
        return self.where_integer_not_in_raw(column, values, "or")

    def where_null(self, columns: Any, boolean: str = "and", not_: bool = False) -> Builder:
        for column in wrap_list(columns):
            self.wheres.append(NullWhere(column, boolean, not_))
        return self

    def or_where_null(self, columns: Any) -> Builder:
        return self.where_null(columns, "or")

    def where_not_null(self, columns: Any, boolean: str = "and") -> Builder:
        return self.where_null(columns, boolean, True)

    def or_where_not_null(self, columns: Any) -> Builder:
        return self.where_not_null(columns, "or")

    def where_between(self, column: Any, values: Any, boolean: str = "and", not_: bool = False) -> Builder:
        """Add a ``between`` clause using the first two of *values*."""
        values = _between_values(values)
        self.wheres.append(BetweenWhere(column, values, boolean, not_))
        self.add_binding(self.clean_bindings(values), "where")
        return self

    def or_where_between(self, column: Any, values: Any) -> Builder:
        return self.where_between(column, values, "or")

    def where_not_between(self, column: Any, values: Any, boolean: str = "and") -> Builder:
        return self.where_between(column, values, boolean, True)

    def or_where_not_between(self, column: Any, values: Any) -> Builder:
        return self.where_not_between(column, values, "or")

    def where_between_columns(
        self, column: Any, values: Any, boolean: str = "and", not_: bool = False
    ) -> Builder:
        self.wheres.append(BetweenColumnsWhere(column, _between_values(values), boolean, not_))
        return self

    def or_where_between_columns(self, column: Any, values: Any) -> Builder:
        return self.where_between_columns(column, values, "or")

    def where_not_between_columns(self, column: Any, values: Any, boolean: str = "and") -> Builder:
        return self.where_between_columns(column, values, boolean, True)

    def or_where_not_between_columns(self, column: Any, values: Any) -> Builder:
        return self.where_not_between_columns(column, values, "or")

    def where_date(self, column: Any, operator: Any = UNSET, value: Any = UNSET, boolean: str = "and") -> Builder:
        return self._add_date_where(DatePart.DATE, "%Y-%m-%d", (date,), column, operator, value, boolean)

    def or_where_date(self, column: Any, operator: Any = UNSET, value: Any = UNSET) -> Builder:
        return self.where_date(column, operator, value, "or")

    def where_time(self, column: Any, operator: Any = UNSET, value: Any = UNSET, boolean: str = "and") -> Builder:
        return self._add_date_where(DatePart.TIME, "%H:%M:%S", (datetime, time), column, operator, value, boolean)

    def or_where_time(self, column: Any, operator: Any = UNSET, value: Any = UNSET) -> Builder:
        return self.where_time(column, operator, value, "or")

    def where_day(self, column: Any, operator: Any = UNSET, value: Any = UNSET, boolean: str = "and") -> Builder:
        return self._add_date_where(DatePart.DAY, "%d", (date,), column, operator, value, boolean)

    def or_where_day(self, column: Any, operator: Any = UNSET, value: Any = UNSET) -> Builder:
        return self.where_day(column, operator, value, "or")

    def where_month(self, column: Any, operator: Any = UNSET, value: Any = UNSET, boolean: str = "and") -> Builder:
        return self._add_date_where(DatePart.MONTH, "%m", (date,), column, operator, value, boolean)

    def or_where_month(self, column: Any, operator: Any = UNSET, value: Any = UNSET) -> Builder:
        return self.where_month(column, operator, value, "or")

    def where_year(self, column: Any, operator: Any = UNSET, value: Any = UNSET, boolean: str = "and") -> Builder:
        return self._add_date_where(DatePart.YEAR, "%Y", (date,), column, operator, value, boolean)

    def or_where_year(self, column: Any, operator: Any = UNSET, value: Any = UNSET) -> Builder:
        return self.where_year(column, operator, value, "or")

    def _add_date_where(
        self,
        part: DatePart,
        fmt: str,
        date_types: tuple[type, ...],
        column: Any,
        operator: Any,
        value: Any,
        boolean: str,
    ) -> Builder:
        value, operator = self.prepare_value_and_operator(
            value, operator, value is UNSET and operator is not UNSET
        )
        value = self.flatten_value(value)

        if isinstance(value, date_types):
            value = value.strftime(fmt)

        return self.add_date_based_where(part, column, operator, value, boolean)

    def add_date_based_where(
        self, part: DatePart, column: Any, operator: str, value: Any, boolean: str = "and"
    ) -> Builder:
        self.wheres.append(DateWhere(part, column, operator, value, boolean))

        if not isinstance(value, Expression):
            self.add_binding(value, "where")

        return self

    def where_nested(self, callback: Callable[[Builder], Any], boolean: str = "and") -> Builder:
        """Add a parenthesised group of conditions built by *callback*."""
        query = self.for_nested_where()
        callback(query)
        return self.add_nested_where_query(query, boolean)

    def for_nested_where(self) -> Builder:
        return self.new_query().from_(self.from_table)

    def add_nested_where_query(self, query: Builder, boolean: str = "and") -> Builder:
        """Add *query*'s where clauses as one nested group.

        Only the ``where`` bindings of *query* are carried over.
        """
        if query.wheres:
            self.wheres.append(NestedWhere(query, boolean))
            self.add_binding(query.get_raw_bindings()["where"], "where")
        return self

    def where_sub(self, column: Any, operator: str, callback: Any, boolean: str = "and") -> Builder:
        """Compare *column* against the result of a sub-select."""
        query = self._sub_query_from(callback)
        self.wheres.append(SubWhere(column, operator, query, boolean))
        self.add_binding(query.get_bindings(), "where")
        return self

    def where_exists(self, callback: Any, boolean: str = "and", not_: bool = False) -> Builder:
        """Add an ``exists`` clause built by *callback* (or given as a builder)."""
        return self.add_where_exists_query(self._sub_query_from(callback), boolean, not_)

    def or_where_exists(self, callback: Any, not_: bool = False) -> Builder:
        return self.where_exists(callback, "or", not_)

    def where_not_exists(self, callback: Any, boolean: str = "and") -> Builder:
        return self.where_exists(callback, boolean, True)

    def or_where_not_exists(self, callback: Any) -> Builder:
        return self.or_where_exists(callback, True)

    def add_where_exists_query(self, query: Builder, boolean: str = "and", not_: bool = False) -> Builder:
        self.wheres.append(ExistsWhere(query, boolean, not_))
        self.add_binding(query.get_bindings(), "where")
        return self

    def _sub_query_from(self, callback: Any) -> Any:
        if isinstance(callback, HasSqlAndBindings):
            return callback
        query = self.for_sub_query()
        callback(query)
        return query

    # ------------------------------------------------------------------
    # Grouping
    # ------------------------------------------------------------------

    def group_by(self, *groups: Any) -> Builder:
        for group in groups:
            self.groups.extend(wrap_list(group))
        return self

    def group_by_raw(self, sql: str, bindings: Iterable[Any] | None = None) -> Builder:
        self.groups.append(Expression(sql))
        self.add_binding(list(bindings or []), "groupBy")
        return self

    def having(
        self,
        column: Any,
        operator: Any = UNSET,
        value: Any = UNSET,
        boolean: str = "and",
    ) -> Builder:
        """Add a having clause; the argument rules match :meth:`where`."""
        value, operator = self.prepare_value_and_operator(
            value, operator, value is UNSET and operator is not UNSET
        )

        if self.invalid_operator(operator):
            value, operator = operator, "="

        self.havings.append(BasicHaving(column, operator, value, boolean))

        if not isinstance(value, Expression):
            self.add_binding(self.flatten_value(value), "having")

        return self

    def or_having(self, column: Any, operator: Any = UNSET, value: Any = UNSET) -> Builder:
        return self.having(column, operator, value, "or")

    def having_between(self, column: Any, values: Any, boolean: str = "and", not_: bool = False) -> Builder:
        values = _between_values(values)
        self.havings.append(BetweenHaving(column, values, boolean, not_))
        self.add_binding(self.clean_bindings(values), "having")
        return self

    def having_raw(self, sql: Any, bindings: Iterable[Any] | None = None, boolean: str = "and") -> Builder:
        self.havings.append(RawHaving(sql, boolean))
        self.add_binding(list(bindings or []), "having")
        return self

    def or_having_raw(self, sql: Any, bindings: Iterable[Any] | None = None) -> Builder:
        return self.having_raw(sql, bindings, "or")

    # ------------------------------------------------------------------
    # Ordering, limits and unions
    # ------------------------------------------------------------------

    def order_by(self, column: Any, direction: str = "asc") -> Builder:
        """Add an ``order by`` clause.

        Raises:
            InvalidArgumentError: If *direction* is not ``asc`` or ``desc``.
        """
        direction = str(direction).lower()
        if direction not in ("asc", "desc"):
            raise InvalidArgumentError('Order direction must be "asc" or "desc".', argument=direction)

        if is_queryable(column):
            sql, bindings = self.create_sub(column)
            column = Expression(f"({sql})")
            self.add_binding(bindings, "unionOrder" if self.unions else "order")

        self._order_target().append(Order(column, direction))
        return self

    def order_by_desc(self, column: Any) -> Builder:
        return self.order_by(column, "desc")

    def latest(self, column: Any = "created_at") -> Builder:
        return self.order_by(column, "desc")

    def oldest(self, column: Any = "created_at") -> Builder:
        return self.order_by(column, "asc")

    def in_random_order(self, seed: Any = "") -> Builder:
        return self.order_by_raw(self.grammar.compile_random(seed))

    def order_by_raw(self, sql: Any, bindings: Iterable[Any] | None = None) -> Builder:
        self._order_target().append(RawOrder(sql))
        self.add_binding(list(bindings or []), "unionOrder" if self.unions else "order")
        return self

    def reorder(self, column: Any = None, direction: str = "asc") -> Builder:
        """Remove every ordering and optionally add a new one."""
        self.orders = []
        self.union_orders = []
        self.bindings["order"] = []
        self.bindings["unionOrder"] = []

        if column:
            return self.order_by(column, direction)
        return self

    def _order_target(self) -> list[Order | RawOrder]:
        return self.union_orders if self.unions else self.orders

    def limit(self, value: int | None) -> Builder:
        """Set the row limit; negative values are ignored."""
        if value is None or value >= 0:
            setattr(self, "union_limit" if self.unions else "limit_value", value)
        return self

    def take(self, value: int | None) -> Builder:
        return self.limit(value)

    def offset(self, value: int | None) -> Builder:
        """Set the row offset; ``None`` and negative values become zero."""
        setattr(self, "union_offset" if self.unions else "offset_value", max(0, int(value or 0)))
        return self

    def skip(self, value: int) -> Builder:
        return self.offset(value)

    def for_page(self, page: int, per_page: int = 15) -> Builder:
        return self.offset((page - 1) * per_page).limit(per_page)

    def union(self, query: Any, all: bool = False) -> Builder:
        """Union this query with *query* (a builder or a callable building one)."""
        if callable(query) and not isinstance(query, HasSqlAndBindings):
            callback = query
            query = self.new_query()
            callback(query)

        self.unions.append(Union(query, all))
        self.add_binding(query.get_bindings(), "union")
        return self

    def union_all(self, query: Any) -> Builder:
        return self.union(query, True)

    def lock(self, value: bool | str = True) -> Builder:
        self.lock_value = value
        return self

    def lock_for_update(self) -> Builder:
        return self.lock(True)

    def shared_lock(self) -> Builder:
        return self.lock(False)

    # ------------------------------------------------------------------
    # Conditionals and callbacks
    # ------------------------------------------------------------------

    def when(self, value: Any, callback: Callable[..., Any], default: Callable[..., Any] | None = None) -> Builder:
        if value:
            return callback(self, value) or self
        if default is not None:
            return default(self, value) or self
        return self

    def unless(self, value: Any, callback: Callable[..., Any], default: Callable[..., Any] | None = None) -> Builder:
        if not value:
            return callback(self, value) or self
        if default is not None:
            return default(self, value) or self
        return self

    def tap(self, callback: Callable[..., Any]) -> Builder:
        return self.when(True, callback)

    def before_query(self, callback: Callable[[Builder], Any]) -> Builder:
        self.before_query_callbacks.append(callback)
        return self

    def apply_before_query_callbacks(self) -> None:
        """Run the queued before-query callbacks once, then forget them."""
        callbacks, self.before_query_callbacks = self.before_query_callbacks, []
        for callback in callbacks:
            callback(self)

    # ------------------------------------------------------------------
    # Compilation and bindings
    # ------------------------------------------------------------------

    def to_sql(self) -> str:
        """Return the SQL text of this select query."""
        self.apply_before_query_callbacks()
        return self.grammar.compile_select(self)

    def get_bindings(self) -> list[Any]:
        """Return every bound value, in placeholder order."""
        return [value for bucket in BINDING_TYPES for value in self.bindings[bucket]]

    def get_raw_bindings(self) -> dict[str, list[Any]]:
        return self.bindings

    def set_bindings(self, bindings: Iterable[Any], type: str = "where") -> Builder:
        self._check_binding_type(type)
        self.bindings[type] = list(bindings)
        return self

    def add_binding(self, value: Any, type: str = "where") -> Builder:
        """Add a value (or list of values) to the *type* bucket.

        Raises:
            InvalidArgumentError: If *type* is not a known bucket.
        """
        self._check_binding_type(type)
        if isinstance(value, (list, tuple)):
            self.bindings[type].extend(value)
        else:
            self.bindings[type].append(value)
        return self

    def _check_binding_type(self, type: str) -> None:
        if type not in self.bindings:
            raise InvalidArgumentError(f"Invalid binding type: {type}.", argument=type)

    def merge_bindings(self, query: Builder) -> Builder:
        for bucket, values in query.get_raw_bindings().items():
            self.bindings.setdefault(bucket, []).extend(values)
        return self

    @staticmethod
    def clean_bindings(bindings: Iterable[Any]) -> list[Any]:
        """Drop raw expressions, which are inlined rather than bound."""
        return [binding for binding in bindings if not isinstance(binding, Expression)]

    @staticmethod
    def flatten_value(value: Any) -> Any:
        return head(flatten(value)) if isinstance(value, (list, tuple)) else value

    def get_connection(self) -> Connection:
        return self.connection

    def get_grammar(self) -> Grammar:
        return self.grammar

    def get_processor(self) -> Processor:
        return self.processor

    def new_query(self) -> Builder:
        return Builder(self.connection, self.grammar, self.processor)

    def for_sub_query(self) -> Builder:
        return self.new_query()

    # ------------------------------------------------------------------
    # Cloning
    # ------------------------------------------------------------------

    def clone(self) -> Builder:
        """Return an independent copy of this builder.

        Clause lists, nested queries and binding buckets are copied by value.
        """
        clone = copy.copy(self)
        clone.bindings = {bucket: list(values) for bucket, values in self.bindings.items()}
        clone.aggregate_clause = copy_clause(self.aggregate_clause) if self.aggregate_clause else None
        clone.columns = list(self.columns)
        clone.distinct_value = (
            list(self.distinct_value) if isinstance(self.distinct_value, list) else self.distinct_value
        )
        clone.joins = [join.clone() for join in self.joins]
        clone.wheres = [copy_clause(where) for where in self.wheres]
        clone.groups = list(self.groups)
        clone.havings = [copy_clause(having) for having in self.havings]
        clone.orders = [copy_clause(order) for order in self.orders]
        clone.unions = [copy_clause(union) for union in self.unions]
        clone.union_orders = [copy_clause(order) for order in self.union_orders]
        clone.before_query_callbacks = list(self.before_query_callbacks)
        return clone

    def clone_without(self, properties: Iterable[str]) -> Builder:
        """Clone the builder with the named state attributes reset."""
        clone = self.clone()
        for name in properties:
            setattr(clone, name, [] if isinstance(getattr(clone, name), list) else None)
        return clone

    def clone_without_bindings(self, buckets: Iterable[str]) -> Builder:
        clone = self.clone()
        for bucket in buckets:
            clone.bindings[bucket] = []
        return clone

    def clone_for_pagination_count(self) -> Builder:
        return self.clone_without(["orders", "limit_value", "offset_value"]).clone_without_bindings(["order"])

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def get(self, columns: Any = ("*",)) -> list[Mapping[str, Any]]:
        """Execute the query and return its rows."""
        return self.once_with_columns(
            wrap_list(columns),
            lambda: self.processor.process_select(self, self.run_select()),
        )

    def first(self, columns: Any = ("*",)) -> Mapping[str, Any] | None:
        rows = self.take(1).get(columns)
        return rows[0] if rows else None

    def find(self, id: Any, columns: Any = ("*",)) -> Mapping[str, Any] | None:
        return self.where("id", "=", id).first(columns)

    def value(self, column: Any) -> Any:
        """Return a single column's value from the first row."""
        row = self.first([column])
        return head(row.values()) if row else None

    def run_select(self) -> list[Mapping[str, Any]]:
        return self.connection.select(self.to_sql(), self.get_bindings())

    def once_with_columns(self, columns: list[Any], callback: Callable[[], Any]) -> Any:
        """Run *callback* with *columns* selected unless columns are already set."""
        original = self.columns
        if not original:
            self.columns = columns

        try:
            return callback()
        finally:
            self.columns = original

    def pluck(self, column: Any, key: Any = None) -> list[Any] | dict[Any, Any]:
        """Return one column's values, optionally keyed by another column."""
        rows = self.once_with_columns(
            [column] if key is None else [column, key],
            lambda: self.processor.process_select(self, self.run_select()),
        )

        column = self.strip_table_for_pluck(column)
        key = self.strip_table_for_pluck(key)

        if key is None:
            return [row[column] for row in rows]
        return {row[key]: row[column] for row in rows}

    @staticmethod
    def strip_table_for_pluck(column: Any) -> Any:
        if column is None:
            return None
        column = str(column)
        separator = _ALIAS_PATTERN if " as " in column.lower() else re.compile(r"\.")
        return separator.split(column)[-1]

    def implode(self, column: Any, glue: str = "") -> str:
        return glue.join(str(value) for value in self.pluck(column))

    def exists(self) -> bool:
        """Return True if the query matches at least one row."""
        self.apply_before_query_callbacks()

        sql = self.grammar.compile_exists(self)
        bindings = self.grammar.prepare_bindings_for_exists(self.get_raw_bindings())

        rows = self.connection.select(sql, bindings)
        if rows:
            return bool(rows[0]["exists"])
        return False

    def doesnt_exist(self) -> bool:
        return not self.exists()

    def exists_or(self, callback: Callable[[], Any]) -> Any:
        return True if self.exists() else callback()

    def doesnt_exist_or(self, callback: Callable[[], Any]) -> Any:
        return True if self.doesnt_exist() else callback()

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def count(self, columns: Any = "*") -> int:
        return int(self.aggregate("count", wrap_list(columns)) or 0)

    def min(self, column: Any) -> Any:
        return self.aggregate("min", [column])

    def max(self, column: Any) -> Any:
        return self.aggregate("max", [column])

    def sum(self, column: Any) -> Any:
        result = self.aggregate("sum", [column])
        return result if result else 0

    def avg(self, column: Any) -> Any:
        return self.aggregate("avg", [column])

    def average(self, column: Any) -> Any:
        return self.avg(column)

    def aggregate(self, function: str, columns: Any = ("*",)) -> Any:
        """Run an aggregate function over the query.

        The aggregate runs on a clone, so the caller's columns and bindings
        are untouched.  Unions and havings keep the select list, since the
        aggregate then wraps the whole query.
        """
        keep_select = bool(self.unions or self.havings)
        rows = (
            self.clone_without([] if keep_select else ["columns"])
            .clone_without_bindings([] if keep_select else ["select"])
            .set_aggregate(function, wrap_list(columns))
            .get(columns)
        )

        if not rows:
            return None
        return {str(key).lower(): value for key, value in rows[0].items()}["aggregate"]

    def numeric_aggregate(self, function: str, columns: Any = ("*",)) -> int | float:
        """Run an aggregate and coerce its result to ``int`` or ``float``."""
        result = self.aggregate(function, columns)

        if not result:
            return 0
        if isinstance(result, (int, float)):
            return result
        return int(result) if "." not in str(result) else float(result)

    def set_aggregate(self, function: str, columns: list[Any]) -> Builder:
        self.aggregate_clause = Aggregate(function, list(columns))

        if not self.groups:
            self.orders = []
            self.bindings["order"] = []

        return self

    def get_count_for_pagination(self, columns: Any = ("*",)) -> int:
        """Return the total row count a paginator would report."""
        rows = self.run_pagination_count_query(wrap_list(columns))

        if not rows:
            return 0
        return int({str(key).lower(): value for key, value in rows[0].items()}["aggregate"])

    def run_pagination_count_query(self, columns: list[Any]) -> list[Mapping[str, Any]]:
        if self.groups or self.havings:
            clone = self.clone_for_pagination_count()

            if not clone.columns and self.joins:
                clone.select(f"{self.from_table}.*")

            return (
                self.new_query()
                .from_(Expression(f"({clone.to_sql()}) as {self.grammar.wrap('aggregate_table')}"))
                .merge_bindings(clone)
                .set_aggregate("count", self.without_select_aliases(columns))
                .get()
            )

        without = (
            ["orders", "limit_value", "offset_value"]
            if self.unions
            else ["columns", "orders", "limit_value", "offset_value"]
        )
        return (
            self.clone_without(without)
            .clone_without_bindings(["order"] if self.unions else ["select", "order"])
            .set_aggregate("count", self.without_select_aliases(columns))
            .get()
        )

    @staticmethod
    def without_select_aliases(columns: list[Any]) -> list[Any]:
        return [
            _ALIAS_PATTERN.split(column, maxsplit=1)[0] if isinstance(column, str) else column
            for column in columns
        ]

    # ------------------------------------------------------------------
    # Inserts
    # ------------------------------------------------------------------

    def insert(self, values: Mapping[str, Any] | list[Mapping[str, Any]]) -> bool:
        """Insert one record (a mapping) or many (a list of mappings)."""
        if not values:
            return True

        records = _normalize_records(values)
        self.apply_before_query_callbacks()

        return self.connection.insert(
            self.grammar.compile_insert(self, records),
            self.clean_bindings(_record_values(records)),
        )

    def insert_or_ignore(self, values: Mapping[str, Any] | list[Mapping[str, Any]]) -> int:
        """Insert records, ignoring errors such as duplicate keys.

        Raises:
            UnsupportedOperationError: If the grammar has no ignore syntax.
        """
        if not values:
            return 0

        records = _normalize_records(values)
        self.apply_before_query_callbacks()

        return self.connection.affecting_statement(
            self.grammar.compile_insert_or_ignore(self, records),
            self.clean_bindings(_record_values(records)),
        )

    def insert_get_id(self, values: Mapping[str, Any], sequence: str | None = None) -> Any:
        """Insert one record and return its generated id."""
        self.apply_before_query_callbacks()

        sql = self.grammar.compile_insert_get_id(self, values, sequence)
        bindings = self.clean_bindings(list(values.values()))

        return self.processor.process_insert_get_id(self, sql, bindings, sequence)

    def insert_using(self, columns: list[Any], query: Any) -> int:
        """Insert the rows produced by a sub-query."""
        self.apply_before_query_callbacks()

        sql, bindings = self.create_sub(query)

        return self.connection.affecting_statement(
            self.grammar.compile_insert_using(self, columns, sql),
            self.clean_bindings(bindings),
        )

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update(self, values: Mapping[str, Any]) -> int:
        """Update the matching rows and return the affected row count."""
        self.apply_before_query_callbacks()

        sql = self.grammar.compile_update(self, values)

        return self.connection.update(
            sql,
            self.clean_bindings(self.grammar.prepare_bindings_for_update(self.bindings, values)),
        )

    def update_or_insert(self, attributes: Mapping[str, Any], values: Mapping[str, Any] | None = None) -> bool:
        """Update the row matching *attributes*, or insert it when missing."""
        values = dict(values or {})

        if not self.where(dict(attributes)).exists():
            return self.insert({**attributes, **values})

        if not values:
            return True

        return bool(self.limit(1).update(values))

    def increment(self, column: str, amount: Any = 1, extra: Mapping[str, Any] | None = None) -> int:
        """Increment a column by *amount*, optionally updating *extra* columns.

        Raises:
            InvalidArgumentError: If *amount* is not numeric.
        """
        if not isinstance(amount, numbers.Number) or isinstance(amount, bool):
            raise InvalidArgumentError("Non-numeric value passed to increment method.", argument=amount)

        wrapped = self.grammar.wrap(column)
        return self.update({column: Expression(f"{wrapped} + {amount}"), **(extra or {})})

    def decrement(self, column: str, amount: Any = 1, extra: Mapping[str, Any] | None = None) -> int:
        """Decrement a column by *amount*, optionally updating *extra* columns.

        Raises:
            InvalidArgumentError: If *amount* is not numeric.
        """
        if not isinstance(amount, numbers.Number) or isinstance(amount, bool):
            raise InvalidArgumentError("Non-numeric value passed to decrement method.", argument=amount)

        wrapped = self.grammar.wrap(column)
        return self.update({column: Expression(f"{wrapped} - {amount}"), **(extra or {})})

    def upsert(
        self,
        values: Mapping[str, Any] | list[Mapping[str, Any]],
        unique_by: str | list[str],
        update: list[Any] | Mapping[str, Any] | None = None,
    ) -> int:
        """Insert records, updating the ones that collide on *unique_by*.

        Args:
            values: One record or a list of records.
            unique_by: Column(s) identifying a collision.
            update: Columns to copy from the incoming record, and/or a
                mapping of columns to explicit values.  Defaults to every
                column of the first record; an empty list means a plain
                insert.

        Returns:
            The affected row count.
        """
        if not values:
            return 0
        if update is not None and not update:
            return int(self.insert(values))

        records = _normalize_records(values, sort_single=True)

        if update is None:
            update = list(records[0].keys())

        entries = _update_entries(update)
        self.apply_before_query_callbacks()

        bindings = self.clean_bindings(
            [*_record_values(records), *(entry[1] for entry in entries if isinstance(entry, tuple))]
        )

        return self.connection.affecting_statement(
            self.grammar.compile_upsert(self, records, wrap_list(unique_by), entries),
            bindings,
        )

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    def delete(self, id: Any = None) -> int:
        """Delete the matching rows (or the row with *id*)."""
        if id is not None:
            self.where(f"{self.from_table}.id", "=", id)

        self.apply_before_query_callbacks()

        return self.connection.delete(
            self.grammar.compile_delete(self),
            self.clean_bindings(self.grammar.prepare_bindings_for_delete(self.bindings)),
        )

    def truncate(self) -> None:
        self.apply_before_query_callbacks()

        for sql, bindings in self.grammar.compile_truncate(self).items():
            self.connection.statement(sql, bindings)


def _column_list(columns: tuple[Any, ...]) -> list[Any]:
    if len(columns) == 1 and isinstance(columns[0], (list, tuple)):
        return list(columns[0])
    return list(columns)


def _between_values(values: Any) -> list[Any]:
    values = flatten(values)[:2]
    if len(values) < 2:
        raise InvalidArgumentError("A between clause needs two values.", argument=values)
    return values


def _normalize_records(
    values: Mapping[str, Any] | list[Mapping[str, Any]], sort_single: bool = False
) -> list[dict[str, Any]]:
    """Return a list of records; multi-record payloads get sorted keys."""
    if isinstance(values, Mapping):
        record = dict(values)
        return [dict(sorted(record.items())) if sort_single else record]
    return [dict(sorted(record.items())) for record in values]


def _record_values(records: list[Mapping[str, Any]]) -> list[Any]:
    return [value for record in records for value in record.values()]


def _update_entries(update: list[Any] | Mapping[str, Any]) -> list[Any]:
    """Normalise an upsert ``update`` argument.

    Column names stay strings; explicit assignments become
    ``(column, value)`` tuples.
    """
    if isinstance(update, Mapping):
        return list(update.items())

    entries: list[Any] = []
    for entry in update:
        if isinstance(entry, Mapping):
            entries.extend(entry.items())
        else:
            entries.append(entry)
    return entries
