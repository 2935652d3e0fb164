"""MySQL dialect grammar."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from fluentql.compile.base import Grammar
from fluentql.query.clauses import NullWhere

if TYPE_CHECKING:
    from fluentql.query.builder import Builder


class MySqlGrammar(Grammar):
    """Compiles builders to MySQL-flavoured SQL.

    Identifiers are quoted with backticks.  JSON columns are addressed
    with ``json_extract`` and updated in place with ``json_set``.
    """

    @property
    def dialect_name(self) -> str:
        return "mysql"

    def where_null(self, query: Builder, where: NullWhere) -> str:
        if self.is_json_selector(where.column):
            field, path = self.wrap_json_field_and_path(where.column)
            return (
                f"(json_extract({field}{path}) is null OR "
                f"json_type(json_extract({field}{path})) = 'NULL')"
            )
        return super().where_null(query, where)

    def where_not_null(self, query: Builder, where: NullWhere) -> str:
        if self.is_json_selector(where.column):
            field, path = self.wrap_json_field_and_path(where.column)
            return (
                f"(json_extract({field}{path}) is not null AND "
                f"json_type(json_extract({field}{path})) != 'NULL')"
            )
        return super().where_not_null(query, where)

    def compile_random(self, seed: Any) -> str:
        return f"RAND({seed})"

    def compile_lock(self, query: Builder, value: Any) -> str:
        if not isinstance(value, str):
            return "for update" if value else "lock in share mode"
        return value

    def compile_insert(self, query: Builder, values: list[Mapping[str, Any]]) -> str:
        # An empty record inserts a row of column defaults.
        return super().compile_insert(query, values or [{}])

    def compile_insert_or_ignore(self, query: Builder, values: list[Mapping[str, Any]]) -> str:
        return self.compile_insert(query, values).replace("insert", "insert ignore", 1)

    def compile_update_columns(self, query: Builder, values: Mapping[str, Any]) -> str:
        columns = []
        for key, value in values.items():
            if self.is_json_selector(key):
                columns.append(self.compile_json_update_column(key, value))
            else:
                columns.append(f"{self.wrap(key)} = {self.parameter(value)}")
        return ", ".join(columns)

    def compile_json_update_column(self, key: str, value: Any) -> str:
        """Compile ``field->path = value`` as a ``json_set`` call.

        Booleans are inlined as JSON literals; lists and dicts are bound as
        JSON documents.
        """
        if isinstance(value, bool):
            value = "true" if value else "false"
        elif isinstance(value, (list, dict)):
            value = "cast(? as json)"
        else:
            value = self.parameter(value)

        field, path = self.wrap_json_field_and_path(key)
        return f"{field} = json_set({field}{path}, {value})"

    def compile_update_without_joins(
        self, query: Builder, table: str, columns: str, where: str
    ) -> str:
        sql = super().compile_update_without_joins(query, table, columns, where)
        return self._append_orders_and_limit(query, sql)

    def prepare_bindings_for_update(
        self, bindings: Mapping[str, list[Any]], values: Mapping[str, Any]
    ) -> list[Any]:
        prepared = {
            column: json.dumps(value) if isinstance(value, (list, dict)) else value
            for column, value in values.items()
            if not (self.is_json_selector(column) and isinstance(value, bool))
        }
        return super().prepare_bindings_for_update(bindings, prepared)

    def compile_upsert(
        self,
        query: Builder,
        values: list[Mapping[str, Any]],
        unique_by: list[str],
        update: list[Any],
    ) -> str:
        sql = self.compile_insert(query, values) + " on duplicate key update "

        columns = []
        for entry in update:
            if isinstance(entry, tuple):
                column, value = entry
                columns.append(f"{self.wrap(column)} = {self.parameter(value)}")
            else:
                columns.append(f"{self.wrap(entry)} = values({self.wrap(entry)})")

        return sql + ", ".join(columns)

    def compile_delete_without_joins(self, query: Builder, table: str, where: str) -> str:
        sql = super().compile_delete_without_joins(query, table, where)
        return self._append_orders_and_limit(query, sql)

    def _append_orders_and_limit(self, query: Builder, sql: str) -> str:
        if query.orders:
            sql += " " + self.compile_orders(query, query.orders)
        if query.limit_value is not None:
            sql += " " + self.compile_limit(query, query.limit_value)
        return sql

    def wrap_value(self, value: str) -> str:
        if value == "*":
            return value
        return "`" + value.replace("`", "``") + "`"

    def wrap_json_selector(self, value: str) -> str:
        field, path = self.wrap_json_field_and_path(value)
        return f"json_unquote(json_extract({field}{path}))"

    def wrap_json_boolean_selector(self, value: str) -> str:
        field, path = self.wrap_json_field_and_path(value)
        return f"json_extract({field}{path})"
