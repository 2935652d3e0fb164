"""SQL Server dialect grammar."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from fluentql.compile.base import Grammar
from fluentql.query.clauses import DateWhere

if TYPE_CHECKING:
    from fluentql.query.builder import Builder

_TABLE_VALUED_FUNCTION = re.compile(r"^(.+?)(\(.*?\))]$")


class SqlServerGrammar(Grammar):
    """Compiles builders to Transact-SQL.

    SQL Server has no ``limit``/``offset``: a bare limit becomes
    ``select top n`` and an offset is emulated with ``row_number()``.
    Locks are table hints on the ``from`` clause.
    """

    @property
    def dialect_name(self) -> str:
        return "sqlsrv"

    def compile_select(self, query: Builder) -> str:
        if not query.offset_value:
            return super().compile_select(query)

        original = query.columns
        if not query.columns:
            query.columns = ["*"]

        try:
            return self.compile_ansi_offset(query, self.compile_components(query))
        finally:
            query.columns = original

    def compile_columns(self, query: Builder, columns: list[Any]) -> str | None:
        if query.aggregate_clause is not None:
            return None

        select = "select distinct " if query.distinct_value else "select "

        limit = query.limit_value
        if isinstance(limit, int) and limit > 0 and (query.offset_value or 0) <= 0:
            select += f"top {limit} "

        return select + self.columnize(columns)

    def compile_from(self, query: Builder, table: Any) -> str:
        sql = super().compile_from(query, table)

        if isinstance(query.lock_value, str):
            return f"{sql} {query.lock_value}"
        if query.lock_value is not None:
            return sql + " with(rowlock," + ("updlock," if query.lock_value else "") + "holdlock)"
        return sql

    def where_date(self, query: Builder, where: DateWhere) -> str:
        value = self.parameter(where.value)
        return f"cast({self.wrap(where.column)} as date) {where.operator} {value}"

    def where_time(self, query: Builder, where: DateWhere) -> str:
        value = self.parameter(where.value)
        return f"cast({self.wrap(where.column)} as time) {where.operator} {value}"

    # ------------------------------------------------------------------
    # Offset emulation
    # ------------------------------------------------------------------

    def compile_ansi_offset(self, query: Builder, components: dict[str, str | None]) -> str:
        """Page through the result with a ``row_number()`` window.

        Args:
            query: The builder being compiled.
            components: The compiled select fragments, keyed by component.

        Returns:
            The paginated select statement.
        """
        if not components.get("orders"):
            components["orders"] = "order by (select 0)"

        orders = components.pop("orders")
        components["columns"] = (components.get("columns") or "") + self.compile_over(orders)

        return self.compile_table_expression(self.concatenate(components), query)

    @staticmethod
    def compile_over(orderings: str | None) -> str:
        return f", row_number() over ({orderings}) as row_num"

    def compile_table_expression(self, sql: str, query: Builder) -> str:
        constraint = self.compile_row_constraint(query)
        return f"select * from ({sql}) as temp_table where row_num {constraint} order by row_num"

    @staticmethod
    def compile_row_constraint(query: Builder) -> str:
        start = int(query.offset_value or 0) + 1

        if query.limit_value and query.limit_value > 0:
            finish = int(query.offset_value or 0) + int(query.limit_value)
            return f"between {start} and {finish}"

        return f">= {start}"

    def compile_limit(self, query: Builder, limit: int) -> str:
        return ""

    def compile_offset(self, query: Builder, offset: int) -> str:
        return ""

    def compile_lock(self, query: Builder, value: Any) -> str:
        return ""

    def compile_random(self, seed: Any) -> str:
        return "NEWID()"

    def wrap_union(self, sql: str) -> str:
        return f"select * from ({sql}) as {self.wrap_table('temp_table')}"

    def compile_exists(self, query: Builder) -> str:
        exists_query = query.clone()
        exists_query.columns = []
        return self.compile_select(exists_query.select_raw("1 [exists]").limit(1))

    def prepare_bindings_for_exists(self, bindings: Mapping[str, list[Any]]) -> list[Any]:
        # compile_exists replaces the select list
        return [value for bucket, bound in bindings.items() if bucket != "select" for value in bound]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def compile_update_with_joins(
        self, query: Builder, table: str, columns: str, where: str
    ) -> str:
        alias = table.split(" as ")[-1]
        joins = self.compile_joins(query, query.joins)
        return f"update {alias} set {columns} from {table} {joins} {where}"

    def compile_delete_without_joins(self, query: Builder, table: str, where: str) -> str:
        sql = super().compile_delete_without_joins(query, table, where)

        limit = query.limit_value
        if limit is not None and limit > 0 and (query.offset_value or 0) <= 0:
            return sql.replace("delete", f"delete top ({limit})", 1)
        return sql

    def compile_upsert(
        self,
        query: Builder,
        values: list[Mapping[str, Any]],
        unique_by: list[str],
        update: list[Any],
    ) -> str:
        """Compile an upsert as a ``merge`` against a ``values`` source table."""
        columns = self.columnize(list(values[0].keys()))
        source = self.wrap_table("laravel_source")

        parameters = ", ".join(f"({self.parameterize(record)})" for record in values)
        sql = f"merge {self.wrap_table(query.from_table)} "
        sql += f"using (values {parameters}) {source} ({columns}) "

        on = " and ".join(
            f"{self.wrap('laravel_source.' + column)} = {self.wrap(f'{query.from_table}.{column}')}"
            for column in unique_by
        )
        sql += f"on {on} "

        if update:
            assignments = []
            for entry in update:
                if isinstance(entry, tuple):
                    column, value = entry
                    assignments.append(f"{self.wrap(column)} = {self.parameter(value)}")
                else:
                    assignments.append(f"{self.wrap(entry)} = {self.wrap('laravel_source.' + entry)}")
            sql += "when matched then update set " + ", ".join(assignments) + " "

        return sql + f"when not matched then insert ({columns}) values ({columns});"

    def prepare_bindings_for_update(
        self, bindings: Mapping[str, list[Any]], values: Mapping[str, Any]
    ) -> list[Any]:
        remaining = [value for bucket, bound in bindings.items() if bucket != "select" for value in bound]
        return [*values.values(), *remaining]

    # ------------------------------------------------------------------
    # Wrapping
    # ------------------------------------------------------------------

    def wrap_value(self, value: str) -> str:
        if value == "*":
            return value
        return "[" + value.replace("]", "]]") + "]"

    def wrap_table(self, table: Any) -> str:
        if self.is_expression(table):
            return str(self.get_value(table))
        return self.wrap_table_valued_function(super().wrap_table(table))

    @staticmethod
    def wrap_table_valued_function(table: str) -> str:
        """Move the call arguments of ``[fn(args)]`` outside the brackets."""
        match = _TABLE_VALUED_FUNCTION.match(table)
        if match:
            return match.group(1) + "]" + match.group(2)
        return table

    def wrap_json_selector(self, value: str) -> str:
        field, path = self.wrap_json_field_and_path(value)
        return f"json_value({field}{path})"

    def wrap_json_boolean_value(self, value: str) -> str:
        return f"'{value}'"
