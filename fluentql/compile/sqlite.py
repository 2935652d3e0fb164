"""SQLite dialect grammar."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from fluentql.compile.base import ALIAS_PATTERN, Grammar
from fluentql.query.clauses import DateWhere

if TYPE_CHECKING:
    from fluentql.query.builder import Builder

#: strftime() format used for each date part.
_DATE_FORMATS: dict[str, str] = {
    "date": "%Y-%m-%d",
    "day": "%d",
    "month": "%m",
    "year": "%Y",
    "time": "%H:%M:%S",
}


class SQLiteGrammar(Grammar):
    """Compiles builders to SQLite-flavoured SQL.

    Date parts are compared through ``strftime``; JSON columns are read
    with ``json_extract`` and updated with ``json_patch``.
    """

    @property
    def dialect_name(self) -> str:
        return "sqlite"

    def wrap_union(self, sql: str) -> str:
        return f"select * from ({sql})"

    def compile_lock(self, query: Builder, value: Any) -> str:
        return ""

    def date_based_where(self, type: str, query: Builder, where: DateWhere) -> str:
        value = self.parameter(where.value)
        column = self.wrap(where.column)
        return f"strftime('{_DATE_FORMATS[type]}', {column}) {where.operator} cast({value} as text)"

    def compile_insert_or_ignore(self, query: Builder, values: list[Mapping[str, Any]]) -> str:
        return self.compile_insert(query, values).replace("insert", "insert or ignore", 1)

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
    # Updates and deletes
    # ------------------------------------------------------------------

    def compile_update(self, query: Builder, values: Mapping[str, Any]) -> str:
        if query.joins or query.limit_value is not None:
            table = self.wrap_table(query.from_table)
            columns = self.compile_update_columns(query, values)
            select = self._compile_rowid_select(query)
            return f"update {table} set {columns} where {self.wrap('rowid')} in ({select})"
        return super().compile_update(query, values)

    def compile_update_columns(self, query: Builder, values: Mapping[str, Any]) -> str:
        groups = self.group_json_columns_for_update(values)

        columns = []
        for key, value in self._merge_json_groups(values, groups).items():
            column = str(key).split(".")[-1]
            if key in groups:
                columns.append(f"{self.wrap(column)} = {self.compile_json_patch(column, value)}")
            else:
                columns.append(f"{self.wrap(column)} = {self.parameter(value)}")
        return ", ".join(columns)

    def group_json_columns_for_update(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Nest every ``column->a->b`` assignment under its column.

        ``{"options->a->b": 1}`` becomes ``{"options": {"a": {"b": 1}}}``.
        """
        groups: dict[str, Any] = {}
        for key, value in values.items():
            if not self.is_json_selector(key):
                continue

            _, dot, rest = key.partition(".")
            *parents, leaf = (rest if dot else key).split("->")

            target = groups
            for segment in parents:
                target = target.setdefault(segment, {})
            target[leaf] = value
        return groups

    def _merge_json_groups(self, values: Mapping[str, Any], groups: dict[str, Any]) -> dict[str, Any]:
        merged = {key: value for key, value in values.items() if not self.is_json_selector(key)}
        merged.update(groups)
        return merged

    def compile_json_patch(self, column: str, value: Any) -> str:
        return f"json_patch(ifnull({self.wrap(column)}, json('{{}}')), json({self.parameter(value)}))"

    def prepare_bindings_for_update(
        self, bindings: Mapping[str, list[Any]], values: Mapping[str, Any]
    ) -> list[Any]:
        groups = self.group_json_columns_for_update(values)
        prepared = [
            json.dumps(value) if isinstance(value, (list, dict)) else value
            for value in self._merge_json_groups(values, groups).values()
        ]
        remaining = [value for bucket, bound in bindings.items() if bucket != "select" for value in bound]
        return [*prepared, *remaining]

    def compile_delete(self, query: Builder) -> str:
        if query.joins or query.limit_value is not None:
            table = self.wrap_table(query.from_table)
            select = self._compile_rowid_select(query)
            return f"delete from {table} where {self.wrap('rowid')} in ({select})"
        return super().compile_delete(query)

    def compile_truncate(self, query: Builder) -> dict[str, list[Any]]:
        return {
            "delete from sqlite_sequence where name = ?": [self.table_prefix + str(query.from_table)],
            "delete from " + self.wrap_table(query.from_table): [],
        }

    def _compile_rowid_select(self, query: Builder) -> str:
        alias = ALIAS_PATTERN.split(str(query.from_table))[-1]
        return self.compile_select(query.clone().select(f"{alias}.rowid"))

    def wrap_json_selector(self, value: str) -> str:
        field, path = self.wrap_json_field_and_path(value)
        return f"json_extract({field}{path})"
