"""PostgreSQL dialect grammar."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from fluentql.compile.base import ALIAS_PATTERN, Grammar
from fluentql.query.clauses import BasicWhere, DateWhere

if TYPE_CHECKING:
    from fluentql.query.builder import Builder


class PostgresGrammar(Grammar):
    """Compiles builders to PostgreSQL-flavoured SQL.

    Updates and deletes that need joins or a limit are rewritten as
    ``ctid in (select ...)`` since PostgreSQL has no ``update ... join``.
    """

    @property
    def dialect_name(self) -> str:
        return "pgsql"

    def where_basic(self, query: Builder, where: BasicWhere) -> str:
        operator = str(where.operator)
        value = self.parameter(where.value)

        if "like" in operator.lower():
            return f"{self.wrap(where.column)}::text {operator} {value}"

        # jsonb key operators; "??" reaches the driver as a literal "?"
        if "?" in operator:
            return f"{self.wrap(where.column)} {operator.replace('?', '??')} {value}"

        return super().where_basic(query, where)

    def where_date(self, query: Builder, where: DateWhere) -> str:
        value = self.parameter(where.value)
        return f"{self.wrap(where.column)}::date {where.operator} {value}"

    def where_time(self, query: Builder, where: DateWhere) -> str:
        value = self.parameter(where.value)
        return f"{self.wrap(where.column)}::time {where.operator} {value}"

    def date_based_where(self, type: str, query: Builder, where: DateWhere) -> str:
        value = self.parameter(where.value)
        return f"extract({type} from {self.wrap(where.column)}) {where.operator} {value}"

    def compile_columns(self, query: Builder, columns: list[Any]) -> str | None:
        if query.aggregate_clause is not None:
            return None

        if isinstance(query.distinct_value, list):
            select = f"select distinct on ({self.columnize(query.distinct_value)}) "
        elif query.distinct_value:
            select = "select distinct "
        else:
            select = "select "

        return select + self.columnize(columns)

    def compile_lock(self, query: Builder, value: Any) -> str:
        if not isinstance(value, str):
            return "for update" if value else "for share"
        return value

    # ------------------------------------------------------------------
    # Inserts
    # ------------------------------------------------------------------

    def compile_insert_or_ignore(self, query: Builder, values: list[Mapping[str, Any]]) -> str:
        return self.compile_insert(query, values) + " on conflict do nothing"

    def compile_insert_get_id(
        self,
        query: Builder,
        values: list[Mapping[str, Any]],
        sequence: str | None = None,
    ) -> str:
        return self.compile_insert(query, values) + " returning " + self.wrap(sequence or "id")

    def compile_upsert(
        self,
        query: Builder,
        values: list[Mapping[str, Any]],
        unique_by: list[str],
        update: list[Any],
    ) -> str:
        sql = self.compile_insert(query, values)
        sql += f" on conflict ({self.columnize(unique_by)}) do update set "

        columns = []
        for entry in update:
            if isinstance(entry, tuple):
                column, value = entry
                columns.append(f"{self.wrap(column)} = {self.parameter(value)}")
            else:
                columns.append(f"{self.wrap(entry)} = {self.wrap_value('excluded')}.{self.wrap(entry)}")

        return sql + ", ".join(columns)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def compile_update(self, query: Builder, values: Mapping[str, Any]) -> str:
        if query.joins or query.limit_value is not None:
            return self.compile_update_with_joins_or_limit(query, values)
        return super().compile_update(query, values)

    def compile_update_columns(self, query: Builder, values: Mapping[str, Any]) -> str:
        columns = []
        for key, value in values.items():
            column = str(key).split(".")[-1]
            if self.is_json_selector(key):
                columns.append(self.compile_json_update_column(column, value))
            else:
                columns.append(f"{self.wrap(column)} = {self.parameter(value)}")
        return ", ".join(columns)

    def compile_json_update_column(self, key: str, value: Any) -> str:
        segments = key.split("->")
        field = self.wrap(segments.pop(0))
        path = "'{\"" + '","'.join(segments) + "\"}'"
        return f"{field} = jsonb_set({field}::jsonb, {path}, {self.parameter(value)})"

    def compile_update_with_joins_or_limit(self, query: Builder, values: Mapping[str, Any]) -> str:
        table = self.wrap_table(query.from_table)
        columns = self.compile_update_columns(query, values)
        select = self._compile_ctid_select(query)
        return f"update {table} set {columns} where {self.wrap('ctid')} in ({select})"

    def prepare_bindings_for_update(
        self, bindings: Mapping[str, list[Any]], values: Mapping[str, Any]
    ) -> list[Any]:
        """Bind the assigned values first, then every bucket except ``select``.

        Lists, and values assigned through a JSON selector, are bound as
        JSON documents.
        """
        prepared = [
            json.dumps(value)
            if isinstance(value, list)
            or (self.is_json_selector(column) and not self.is_expression(value))
            else value
            for column, value in values.items()
        ]
        remaining = [value for bucket, bound in bindings.items() if bucket != "select" for value in bound]
        return [*prepared, *remaining]

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    def compile_delete(self, query: Builder) -> str:
        if query.joins or query.limit_value is not None:
            return self.compile_delete_with_joins_or_limit(query)
        return super().compile_delete(query)

    def compile_delete_with_joins_or_limit(self, query: Builder) -> str:
        table = self.wrap_table(query.from_table)
        select = self._compile_ctid_select(query)
        return f"delete from {table} where {self.wrap('ctid')} in ({select})"

    def compile_truncate(self, query: Builder) -> dict[str, list[Any]]:
        return {f"truncate {self.wrap_table(query.from_table)} restart identity cascade": []}

    def _compile_ctid_select(self, query: Builder) -> str:
        alias = ALIAS_PATTERN.split(str(query.from_table))[-1]
        return self.compile_select(query.clone().select(f"{alias}.ctid"))

    # ------------------------------------------------------------------
    # JSON
    # ------------------------------------------------------------------

    def wrap_json_selector(self, value: str) -> str:
        path = value.split("->")
        field = self.wrap_segments(path.pop(0).split("."))
        wrapped = self.wrap_json_path_attributes(path)
        attribute = wrapped.pop()

        if wrapped:
            return f"{field}->" + "->".join(wrapped) + f"->>{attribute}"
        return f"{field}->>{attribute}"

    def wrap_json_boolean_selector(self, value: str) -> str:
        selector = self.wrap_json_selector(value).replace("->>", "->")
        return f"({selector})::jsonb"

    def wrap_json_boolean_value(self, value: str) -> str:
        return f"'{value}'::jsonb"

    @staticmethod
    def wrap_json_path_attributes(path: list[str]) -> list[str]:
        return [attribute if _is_int(attribute) else f"'{attribute}'" for attribute in path]


def _is_int(value: str) -> bool:
    return value.lstrip("-").isdigit()
