"""The dialect-agnostic SQL grammar.

The Template Method pattern (GoF) is used:
- ``Grammar`` defines the skeleton for compiling each statement and each
  select component, in a fixed order.
- ``MySqlGrammar``, ``PostgresGrammar``, ``SQLiteGrammar`` and
  ``SqlServerGrammar`` override the dialect-specific steps (identifier
  quoting, pagination, upserts, JSON access, date casts).

A grammar holds no per-query state: compiling the same builder twice
yields the same SQL text.
"""
from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from fluentql.compile.operators import operators_for
from fluentql.errors import CompilationError, UnsupportedOperationError
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
    RawHaving,
    RawOrder,
    RawWhere,
    SubWhere,
    Union,
)
from fluentql.query.expression import Expression
from fluentql.support import flatten

if TYPE_CHECKING:
    from fluentql.query.builder import Builder
    from fluentql.query.join_clause import JoinClause

#: Builder attribute holding the state for each select component.
_COMPONENT_ATTRIBUTES: dict[str, str] = {
    "aggregate": "aggregate_clause",
    "columns": "columns",
    "from": "from_table",
    "joins": "joins",
    "wheres": "wheres",
    "groups": "groups",
    "havings": "havings",
    "orders": "orders",
    "limit": "limit_value",
    "offset": "offset_value",
    "lock": "lock_value",
}

ALIAS_PATTERN = re.compile(r"\s+as\s+", re.IGNORECASE)


class Grammar:
    """Compiles a :class:`~fluentql.query.builder.Builder` into SQL text.

    Args:
        operators: Extra comparison operators this grammar accepts.  When
            omitted, the operators configured for :attr:`dialect_name` in
            :mod:`fluentql.compile.operators` are used.
    """

    select_components: tuple[str, ...] = tuple(_COMPONENT_ATTRIBUTES)

    def __init__(self, operators: Iterable[str] | None = None) -> None:
        self.table_prefix = ""
        self._operators: tuple[str, ...] = (
            tuple(operators) if operators is not None else operators_for(self.dialect_name)
        )

    @property
    def dialect_name(self) -> str:
        """Return the canonical dialect name."""
        return "base"

    def get_operators(self) -> tuple[str, ...]:
        """Return the extra comparison operators understood by this grammar."""
        return self._operators

    def get_table_prefix(self) -> str:
        return self.table_prefix

    def set_table_prefix(self, prefix: str) -> Grammar:
        self.table_prefix = prefix
        return self

    # ------------------------------------------------------------------
    # Select statements
    # ------------------------------------------------------------------

    def compile_select(self, query: Builder) -> str:
        """Compile a select query into SQL.

        Args:
            query: The builder to compile.

        Returns:
            The SQL text.  The builder's state is left exactly as it was.
        """
        if (query.unions or query.havings) and query.aggregate_clause is not None:
            return self.compile_union_aggregate(query)

        original = query.columns
        if not query.columns:
            query.columns = ["*"]

        try:
            sql = self.concatenate(self.compile_components(query)).strip()
            if query.unions:
                sql = self.wrap_union(sql) + " " + self.compile_unions(query)
        finally:
            query.columns = original

        return sql

    def compile_components(self, query: Builder) -> dict[str, str | None]:
        """Compile every non-empty select component, in component order."""
        sql: dict[str, str | None] = {}
        for component in self.select_components:
            value = getattr(query, _COMPONENT_ATTRIBUTES[component])
            if self._is_executable(value):
                method = getattr(self, f"compile_{component}")
                sql[component] = method(query, value)
        return sql

    @staticmethod
    def _is_executable(value: Any) -> bool:
        if value is None or value == "":
            return False
        if isinstance(value, list) and not value:
            return False
        return True

    def compile_aggregate(self, query: Builder, aggregate: Aggregate) -> str:
        column = self.columnize(aggregate.columns)

        # A distinct column list replaces the aggregated columns; plain
        # distinct only applies to something other than "*".
        if isinstance(query.distinct_value, list):
            column = "distinct " + self.columnize(query.distinct_value)
        elif query.distinct_value and column != "*":
            column = "distinct " + column

        return f"select {aggregate.function}({column}) as aggregate"

    def compile_columns(self, query: Builder, columns: list[Any]) -> str | None:
        if query.aggregate_clause is not None:
            return None

        select = "select distinct " if query.distinct_value else "select "
        return select + self.columnize(columns)

    def compile_from(self, query: Builder, table: Any) -> str:
        return "from " + self.wrap_table(table)

    def compile_joins(self, query: Builder, joins: list[JoinClause]) -> str:
        sql = []
        for join in joins:
            table = self.wrap_table(join.table)

            if join.joins:
                nested = self.compile_joins(query, join.joins)
                table = f"({table} {nested})"

            sql.append(f"{join.type} join {table} {self.compile_wheres(join)}".strip())

        return " ".join(sql)

    def compile_wheres(self, query: Builder, wheres: Any = None) -> str:
        """Compile the where clauses of *query*, including the leading keyword."""
        if not query.wheres:
            return ""

        sql = self.compile_wheres_to_array(query)
        if sql:
            return self.concatenate_where_clauses(query, sql)
        return ""

    def compile_wheres_to_array(self, query: Builder) -> list[str]:
        return [f"{where.boolean} {self.compile_where(query, where)}" for where in query.wheres]

    def concatenate_where_clauses(self, query: Builder, sql: list[str]) -> str:
        return query.where_conjunction + " " + self.remove_leading_boolean(" ".join(sql))

    def compile_where(self, query: Builder, where: Any) -> str:
        """Compile one where record by dispatching on its type."""
        match where:
            case BasicWhere():
                return self.where_basic(query, where)
            case JsonBooleanWhere():
                return self.where_json_boolean(query, where)
            case InWhere(not_=False):
                return self.where_in(query, where)
            case InWhere():
                return self.where_not_in(query, where)
            case InRawWhere(not_=False):
                return self.where_in_raw(query, where)
            case InRawWhere():
                return self.where_not_in_raw(query, where)
            case NullWhere(not_=False):
                return self.where_null(query, where)
            case NullWhere():
                return self.where_not_null(query, where)
            case BetweenWhere():
                return self.where_between(query, where)
            case BetweenColumnsWhere():
                return self.where_between_columns(query, where)
            case ColumnWhere():
                return self.where_column(query, where)
            case ExistsWhere(not_=False):
                return self.where_exists(query, where)
            case ExistsWhere():
                return self.where_not_exists(query, where)
            case SubWhere():
                return self.where_sub(query, where)
            case NestedWhere():
                return self.where_nested(query, where)
            case RawWhere():
                return self.where_raw(query, where)
            case DateWhere(part=DatePart.DATE):
                return self.where_date(query, where)
            case DateWhere(part=DatePart.TIME):
                return self.where_time(query, where)
            case DateWhere(part=DatePart.DAY):
                return self.where_day(query, where)
            case DateWhere(part=DatePart.MONTH):
                return self.where_month(query, where)
            case DateWhere(part=DatePart.YEAR):
                return self.where_year(query, where)
            case _:
                raise CompilationError(f"Unknown where clause: {where!r}.", clause="where")

    def where_raw(self, query: Builder, where: RawWhere) -> str:
        return str(self.get_value(where.sql)) if self.is_expression(where.sql) else where.sql

    def where_basic(self, query: Builder, where: BasicWhere) -> str:
        value = self.parameter(where.value)
        return f"{self.wrap(where.column)} {where.operator} {value}"

    def where_json_boolean(self, query: Builder, where: JsonBooleanWhere) -> str:
        column = self.wrap_json_boolean_selector(where.column)
        value = self.wrap_json_boolean_value(self.parameter(where.value))
        return f"{column} {where.operator} {value}"

    def where_in(self, query: Builder, where: InWhere) -> str:
        if where.values:
            return f"{self.wrap(where.column)} in ({self.parameterize(where.values)})"
        return "0 = 1"

    def where_not_in(self, query: Builder, where: InWhere) -> str:
        if where.values:
            return f"{self.wrap(where.column)} not in ({self.parameterize(where.values)})"
        return "1 = 1"

    def where_in_raw(self, query: Builder, where: InRawWhere) -> str:
        if where.values:
            values = ", ".join(str(value) for value in where.values)
            return f"{self.wrap(where.column)} in ({values})"
        return "0 = 1"

    def where_not_in_raw(self, query: Builder, where: InRawWhere) -> str:
        if where.values:
            values = ", ".join(str(value) for value in where.values)
            return f"{self.wrap(where.column)} not in ({values})"
        return "1 = 1"

    def where_null(self, query: Builder, where: NullWhere) -> str:
        return self.wrap(where.column) + " is null"

    def where_not_null(self, query: Builder, where: NullWhere) -> str:
        return self.wrap(where.column) + " is not null"

    def where_between(self, query: Builder, where: BetweenWhere) -> str:
        between = "not between" if where.not_ else "between"
        low = self.parameter(where.values[0])
        high = self.parameter(where.values[1])
        return f"{self.wrap(where.column)} {between} {low} and {high}"

    def where_between_columns(self, query: Builder, where: BetweenColumnsWhere) -> str:
        between = "not between" if where.not_ else "between"
        low = self.wrap(where.values[0])
        high = self.wrap(where.values[1])
        return f"{self.wrap(where.column)} {between} {low} and {high}"

    def where_date(self, query: Builder, where: DateWhere) -> str:
        return self.date_based_where("date", query, where)

    def where_time(self, query: Builder, where: DateWhere) -> str:
        return self.date_based_where("time", query, where)

    def where_day(self, query: Builder, where: DateWhere) -> str:
        return self.date_based_where("day", query, where)

    def where_month(self, query: Builder, where: DateWhere) -> str:
        return self.date_based_where("month", query, where)

    def where_year(self, query: Builder, where: DateWhere) -> str:
        return self.date_based_where("year", query, where)

    def date_based_where(self, type: str, query: Builder, where: DateWhere) -> str:
        value = self.parameter(where.value)
        return f"{type}({self.wrap(where.column)}) {where.operator} {value}"

    def where_column(self, query: Builder, where: ColumnWhere) -> str:
        return f"{self.wrap(where.first)} {where.operator} {self.wrap(where.second)}"

    def where_nested(self, query: Builder, where: NestedWhere) -> str:
        nested = " ".join(self.compile_wheres_to_array(where.query))
        return "(" + self.remove_leading_boolean(nested) + ")"

    def where_sub(self, query: Builder, where: SubWhere) -> str:
        select = self.compile_sub_select(where.query)
        return f"{self.wrap(where.column)} {where.operator} ({select})"

    def where_exists(self, query: Builder, where: ExistsWhere) -> str:
        return "exists (" + self.compile_sub_select(where.query) + ")"

    def where_not_exists(self, query: Builder, where: ExistsWhere) -> str:
        return "not exists (" + self.compile_sub_select(where.query) + ")"

    def compile_sub_select(self, query: Any) -> str:
        """Compile a sub-query; queryables other than builders supply their own SQL."""
        from fluentql.query.builder import Builder

        if isinstance(query, Builder):
            return self.compile_select(query)
        return query.to_sql()

    def compile_groups(self, query: Builder, groups: list[Any]) -> str:
        return "group by " + self.columnize(groups)

    def compile_havings(self, query: Builder, havings: list[Any]) -> str:
        sql = " ".join(self.compile_having(having) for having in havings)
        return "having " + self.remove_leading_boolean(sql)

    def compile_having(self, having: Any) -> str:
        match having:
            case RawHaving():
                sql = self.get_value(having.sql) if self.is_expression(having.sql) else having.sql
                return f"{having.boolean} {sql}"
            case BetweenHaving():
                return self.compile_having_between(having)
            case BasicHaving():
                return self.compile_basic_having(having)
            case _:
                raise CompilationError(f"Unknown having clause: {having!r}.", clause="having")

    def compile_basic_having(self, having: BasicHaving) -> str:
        column = self.wrap(having.column)
        parameter = self.parameter(having.value)
        return f"{having.boolean} {column} {having.operator} {parameter}"

    def compile_having_between(self, having: BetweenHaving) -> str:
        between = "not between" if having.not_ else "between"
        column = self.wrap(having.column)
        low = self.parameter(having.values[0])
        high = self.parameter(having.values[1])
        return f"{having.boolean} {column} {between} {low} and {high}"

    def compile_orders(self, query: Builder, orders: list[Any]) -> str:
        if orders:
            return "order by " + ", ".join(self.compile_orders_to_array(query, orders))
        return ""

    def compile_orders_to_array(self, query: Builder, orders: list[Any]) -> list[str]:
        compiled = []
        for order in orders:
            if isinstance(order, RawOrder):
                compiled.append(str(order.sql))
            else:
                compiled.append(f"{self.wrap(order.column)} {order.direction}")
        return compiled

    def compile_random(self, seed: Any) -> str:
        return "RANDOM()"

    def compile_limit(self, query: Builder, limit: int) -> str:
        return f"limit {int(limit)}"

    def compile_offset(self, query: Builder, offset: int) -> str:
        return f"offset {int(offset)}"

    def compile_unions(self, query: Builder) -> str:
        sql = "".join(self.compile_union(union) for union in query.unions)

        if query.union_orders:
            sql += " " + self.compile_orders(query, query.union_orders)

        if query.union_limit is not None:
            sql += " " + self.compile_limit(query, query.union_limit)

        if query.union_offset is not None:
            sql += " " + self.compile_offset(query, query.union_offset)

        return sql.strip()

    def compile_union(self, union: Union) -> str:
        conjunction = " union all " if union.all else " union "
        return conjunction + self.wrap_union(union.query.to_sql())

    def wrap_union(self, sql: str) -> str:
        return f"({sql})"

    def compile_union_aggregate(self, query: Builder) -> str:
        aggregate = query.aggregate_clause
        sql = self.compile_aggregate(query, aggregate)

        query.aggregate_clause = None
        try:
            inner = self.compile_select(query)
        finally:
            query.aggregate_clause = aggregate

        return f"{sql} from ({inner}) as {self.wrap_table('temp_table')}"

    def compile_lock(self, query: Builder, value: Any) -> str:
        return value if isinstance(value, str) else ""

    def compile_exists(self, query: Builder) -> str:
        select = self.compile_select(query)
        return f"select exists({select}) as {self.wrap('exists')}"

    def prepare_bindings_for_exists(self, bindings: Mapping[str, list[Any]]) -> list[Any]:
        """Flatten the bindings of an exists query, in placeholder order."""
        return [value for bound in bindings.values() for value in bound]

    # ------------------------------------------------------------------
    # Insert statements
    # ------------------------------------------------------------------

    def compile_insert(self, query: Builder, values: list[Mapping[str, Any]]) -> str:
        """Compile an insert statement.

        Args:
            query: The builder whose ``from`` names the target table.
            values: One mapping per record; every record has the same keys.

        Returns:
            The SQL text.
        """
        table = self.wrap_table(query.from_table)

        if not values:
            return f"insert into {table} default values"

        if isinstance(values, Mapping):
            values = [values]

        columns = self.columnize(list(values[0].keys()))
        parameters = ", ".join(f"({self.parameterize(record)})" for record in values)

        return f"insert into {table} ({columns}) values {parameters}"

    def compile_insert_or_ignore(self, query: Builder, values: list[Mapping[str, Any]]) -> str:
        raise UnsupportedOperationError(
            "This database engine does not support inserting while ignoring errors.",
            grammar=self.dialect_name,
        )

    def compile_insert_get_id(
        self,
        query: Builder,
        values: list[Mapping[str, Any]],
        sequence: str | None = None,
    ) -> str:
        return self.compile_insert(query, values)

    def compile_insert_using(self, query: Builder, columns: list[Any], sql: str) -> str:
        return f"insert into {self.wrap_table(query.from_table)} ({self.columnize(columns)}) {sql}"

    # ------------------------------------------------------------------
    # Update statements
    # ------------------------------------------------------------------

    def compile_update(self, query: Builder, values: Mapping[str, Any]) -> str:
        table = self.wrap_table(query.from_table)
        columns = self.compile_update_columns(query, values)
        where = self.compile_wheres(query)

        if query.joins:
            sql = self.compile_update_with_joins(query, table, columns, where)
        else:
            sql = self.compile_update_without_joins(query, table, columns, where)

        return sql.strip()

    def compile_update_columns(self, query: Builder, values: Mapping[str, Any]) -> str:
        return ", ".join(
            f"{self.wrap(key)} = {self.parameter(value)}" for key, value in values.items()
        )

    def compile_update_without_joins(
        self, query: Builder, table: str, columns: str, where: str
    ) -> str:
        return f"update {table} set {columns} {where}"

    def compile_update_with_joins(
        self, query: Builder, table: str, columns: str, where: str
    ) -> str:
        joins = self.compile_joins(query, query.joins)
        return f"update {table} {joins} set {columns} {where}"

    def prepare_bindings_for_update(
        self, bindings: Mapping[str, list[Any]], values: Mapping[str, Any]
    ) -> list[Any]:
        """Order the bindings of an update to match its placeholders.

        Join bindings come first, then the assigned values, then every
        remaining bucket except ``select``.
        """
        remaining = [
            value
            for bucket, bound in bindings.items()
            if bucket not in ("select", "join")
            for value in bound
        ]
        return [*bindings.get("join", []), *values.values(), *flatten(remaining)]

    def compile_upsert(
        self,
        query: Builder,
        values: list[Mapping[str, Any]],
        unique_by: list[str],
        update: list[Any] | Mapping[str, Any],
    ) -> str:
        raise UnsupportedOperationError(
            "This database engine does not support upserts.",
            grammar=self.dialect_name,
        )

    # ------------------------------------------------------------------
    # Delete statements
    # ------------------------------------------------------------------

    def compile_delete(self, query: Builder) -> str:
        table = self.wrap_table(query.from_table)
        where = self.compile_wheres(query)

        if query.joins:
            sql = self.compile_delete_with_joins(query, table, where)
        else:
            sql = self.compile_delete_without_joins(query, table, where)

        return sql.strip()

    def compile_delete_without_joins(self, query: Builder, table: str, where: str) -> str:
        return f"delete from {table} {where}"

    def compile_delete_with_joins(self, query: Builder, table: str, where: str) -> str:
        alias = table.split(" as ")[-1]
        joins = self.compile_joins(query, query.joins)
        return f"delete {alias} from {table} {joins} {where}"

    def prepare_bindings_for_delete(self, bindings: Mapping[str, list[Any]]) -> list[Any]:
        return flatten(
            [bound for bucket, bound in bindings.items() if bucket != "select"]
        )

    def compile_truncate(self, query: Builder) -> dict[str, list[Any]]:
        return {"truncate table " + self.wrap_table(query.from_table): []}

    # ------------------------------------------------------------------
    # Wrapping
    # ------------------------------------------------------------------

    def wrap(self, value: Any, prefix_alias: bool = False) -> str:
        """Quote a column or table reference.

        Args:
            value: A dotted reference, optionally aliased with ``as`` or
                addressing a JSON path with ``->``.  Expressions are
                returned verbatim.
            prefix_alias: Whether the alias also receives the table prefix.

        Returns:
            The quoted reference.
        """
        if self.is_expression(value):
            return str(self.get_value(value))

        value = str(value)

        if " as " in value.lower():
            return self.wrap_aliased_value(value, prefix_alias)

        if self.is_json_selector(value):
            return self.wrap_json_selector(value)

        return self.wrap_segments(value.split("."))

    def wrap_aliased_value(self, value: str, prefix_alias: bool = False) -> str:
        segments = ALIAS_PATTERN.split(value, maxsplit=1)

        if prefix_alias:
            segments[1] = self.table_prefix + segments[1]

        return self.wrap(segments[0]) + " as " + self.wrap_value(segments[1])

    def wrap_segments(self, segments: list[str]) -> str:
        return ".".join(
            self.wrap_table(segment) if index == 0 and len(segments) > 1 else self.wrap_value(segment)
            for index, segment in enumerate(segments)
        )

    def wrap_table(self, table: Any) -> str:
        if self.is_expression(table):
            return str(self.get_value(table))
        return self.wrap(self.table_prefix + str(table), True)

    def wrap_value(self, value: str) -> str:
        if value == "*":
            return value
        return '"' + value.replace('"', '""') + '"'

    def columnize(self, columns: Iterable[Any]) -> str:
        return ", ".join(self.wrap(column) for column in columns)

    def parameterize(self, values: Iterable[Any] | Mapping[str, Any]) -> str:
        if isinstance(values, Mapping):
            values = values.values()
        return ", ".join(self.parameter(value) for value in values)

    def parameter(self, value: Any) -> str:
        return str(self.get_value(value)) if self.is_expression(value) else "?"

    @staticmethod
    def is_expression(value: Any) -> bool:
        return isinstance(value, Expression)

    @staticmethod
    def get_value(expression: Expression) -> Any:
        return expression.get_value()

    @staticmethod
    def remove_leading_boolean(value: str) -> str:
        return re.sub(r"^(and |or )", "", value, count=1, flags=re.IGNORECASE)

    @staticmethod
    def concatenate(segments: Mapping[str, str | None]) -> str:
        return " ".join(str(value) for value in segments.values() if value)

    # ------------------------------------------------------------------
    # JSON paths
    # ------------------------------------------------------------------

    @staticmethod
    def is_json_selector(value: Any) -> bool:
        return isinstance(value, str) and "->" in value

    def wrap_json_selector(self, value: str) -> str:
        raise UnsupportedOperationError(
            "This database engine does not support JSON operations.",
            grammar=self.dialect_name,
        )

    def wrap_json_boolean_selector(self, value: str) -> str:
        return self.wrap_json_selector(value)

    def wrap_json_boolean_value(self, value: str) -> str:
        return value

    def wrap_json_field_and_path(self, column: str) -> tuple[str, str]:
        """Split ``field->a->b`` into the wrapped field and a JSON path argument."""
        parts = column.split("->", 1)
        field = self.wrap(parts[0])
        path = ", " + self.wrap_json_path(parts[1], "->") if len(parts) > 1 else ""
        return field, path

    def wrap_json_path(self, value: str, delimiter: str = "->") -> str:
        value = re.sub(r"(\\+)?'", "''", value)
        json_path = ".".join(self.wrap_json_path_segment(segment) for segment in value.split(delimiter))
        return "'$" + ("" if json_path.startswith("[") else ".") + json_path + "'"

    @staticmethod
    def wrap_json_path_segment(segment: str) -> str:
        match = re.search(r"(\[[^\]]+\])+", segment)
        if match:
            key = segment[: segment.rfind(match.group(0))]
            if key:
                return f'"{key}"{match.group(0)}'
            return match.group(0)
        return f'"{segment}"'
