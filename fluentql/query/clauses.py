"""Clause records held by a :class:`~fluentql.query.builder.Builder`.

Every ``where`` and ``having`` record is a small dataclass; the grammar
dispatches on the record class with ``match``.  The ``type`` property
exposes the closed :class:`WhereType` / :class:`HavingType` tag for
callers that inspect a builder's state.
"""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any


class WhereType(str, Enum):
    BASIC = "Basic"
    JSON_BOOLEAN = "JsonBoolean"
    IN = "In"
    NOT_IN = "NotIn"
    IN_RAW = "InRaw"
    NOT_IN_RAW = "NotInRaw"
    NULL = "Null"
    NOT_NULL = "NotNull"
    BETWEEN = "Between"
    BETWEEN_COLUMNS = "BetweenColumns"
    COLUMN = "Column"
    EXISTS = "Exists"
    NOT_EXISTS = "NotExists"
    SUB = "Sub"
    NESTED = "Nested"
    RAW = "Raw"
    DATE = "Date"
    DAY = "Day"
    MONTH = "Month"
    YEAR = "Year"
    TIME = "Time"


class HavingType(str, Enum):
    BASIC = "Basic"
    BETWEEN = "Between"
    RAW = "Raw"


class DatePart(str, Enum):
    """Date component compared by a date-based where clause."""

    DATE = "date"
    DAY = "day"
    MONTH = "month"
    YEAR = "year"
    TIME = "time"


# ---------------------------------------------------------------------------
# Where records
# ---------------------------------------------------------------------------


@dataclass
class BasicWhere:
    column: Any
    operator: str
    value: Any
    boolean: str = "and"

    @property
    def type(self) -> WhereType:
        return WhereType.BASIC


@dataclass
class JsonBooleanWhere:
    column: str
    operator: str
    value: Any
    boolean: str = "and"

    @property
    def type(self) -> WhereType:
        return WhereType.JSON_BOOLEAN


@dataclass
class InWhere:
    column: Any
    values: list[Any]
    boolean: str = "and"
    not_: bool = False

    @property
    def type(self) -> WhereType:
        return WhereType.NOT_IN if self.not_ else WhereType.IN


@dataclass
class InRawWhere:
    column: Any
    values: list[int]
    boolean: str = "and"
    not_: bool = False

    @property
    def type(self) -> WhereType:
        return WhereType.NOT_IN_RAW if self.not_ else WhereType.IN_RAW


@dataclass
class NullWhere:
    column: Any
    boolean: str = "and"
    not_: bool = False

    @property
    def type(self) -> WhereType:
        return WhereType.NOT_NULL if self.not_ else WhereType.NULL


@dataclass
class BetweenWhere:
    column: Any
    values: list[Any]
    boolean: str = "and"
    not_: bool = False

    @property
    def type(self) -> WhereType:
        return WhereType.BETWEEN


@dataclass
class BetweenColumnsWhere:
    column: Any
    values: list[Any]
    boolean: str = "and"
    not_: bool = False

    @property
    def type(self) -> WhereType:
        return WhereType.BETWEEN_COLUMNS


@dataclass
class ColumnWhere:
    first: Any
    operator: str
    second: Any
    boolean: str = "and"

    @property
    def type(self) -> WhereType:
        return WhereType.COLUMN


@dataclass
class ExistsWhere:
    query: Any
    boolean: str = "and"
    not_: bool = False

    @property
    def type(self) -> WhereType:
        return WhereType.NOT_EXISTS if self.not_ else WhereType.EXISTS


@dataclass
class SubWhere:
    column: Any
    operator: str
    query: Any
    boolean: str = "and"

    @property
    def type(self) -> WhereType:
        return WhereType.SUB


@dataclass
class NestedWhere:
    query: Any
    boolean: str = "and"

    @property
    def type(self) -> WhereType:
        return WhereType.NESTED


@dataclass
class RawWhere:
    sql: Any
    boolean: str = "and"

    @property
    def type(self) -> WhereType:
        return WhereType.RAW


@dataclass
class DateWhere:
    part: DatePart
    column: Any
    operator: str
    value: Any
    boolean: str = "and"

    @property
    def type(self) -> WhereType:
        return WhereType(self.part.value.capitalize())


Where = (
    BasicWhere
    | JsonBooleanWhere
    | InWhere
    | InRawWhere
    | NullWhere
    | BetweenWhere
    | BetweenColumnsWhere
    | ColumnWhere
    | ExistsWhere
    | SubWhere
    | NestedWhere
    | RawWhere
    | DateWhere
)

# ---------------------------------------------------------------------------
# Having records
# ---------------------------------------------------------------------------


@dataclass
class BasicHaving:
    column: Any
    operator: str
    value: Any
    boolean: str = "and"

    @property
    def type(self) -> HavingType:
        return HavingType.BASIC


@dataclass
class BetweenHaving:
    column: Any
    values: list[Any]
    boolean: str = "and"
    not_: bool = False

    @property
    def type(self) -> HavingType:
        return HavingType.BETWEEN


@dataclass
class RawHaving:
    sql: Any
    boolean: str = "and"

    @property
    def type(self) -> HavingType:
        return HavingType.RAW


Having = BasicHaving | BetweenHaving | RawHaving

# ---------------------------------------------------------------------------
# Orders, unions and aggregates
# ---------------------------------------------------------------------------


@dataclass
class Order:
    column: Any
    direction: str = "asc"


@dataclass
class RawOrder:
    sql: Any


@dataclass
class Union:
    query: Any
    all: bool = False


@dataclass
class Aggregate:
    """Transient ``{function, columns}`` pair used while compiling an aggregate."""

    function: str
    columns: list[Any]


def copy_clause(clause: Any) -> Any:
    """Return an independent copy of a clause record.

    Nested builders are cloned and list fields are copied so that the
    copy shares no mutable state with *clause*.
    """
    changes: dict[str, Any] = {}
    for field in fields(clause):
        current = getattr(clause, field.name)
        if field.name == "query" and hasattr(current, "clone"):
            changes[field.name] = current.clone()
        elif isinstance(current, list):
            changes[field.name] = list(current)
    return replace(clause, **changes)
