"""Raw SQL expressions and the sub-query capability protocol."""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


class Expression:
    """A fragment of raw SQL that is emitted verbatim.

    Expressions are never quoted by the grammar and never bound as
    parameters.

    Args:
        value: The raw SQL text (numbers are accepted and stringified).
    """

    __slots__ = ("_value",)

    def __init__(self, value: Any) -> None:
        self._value = value

    def get_value(self) -> Any:
        """Return the raw value of the expression."""
        return self._value

    def __str__(self) -> str:
        return str(self._value)

    def __repr__(self) -> str:
        return f"Expression({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Expression):
            return NotImplemented
        return self._value == other._value

    def __hash__(self) -> int:
        return hash((Expression, self._value))


def raw(value: Any) -> Expression:
    """Shorthand for :class:`Expression`."""
    return Expression(value)


@runtime_checkable
class HasSqlAndBindings(Protocol):
    """Anything that can stand in for a sub-query.

    Builders satisfy it, and so can higher-level query objects that wrap
    a builder.
    """

    def to_sql(self) -> str: ...

    def get_bindings(self) -> list[Any]: ...

    def get_connection(self) -> Any: ...


def is_queryable(value: Any) -> bool:
    """Return True if *value* can be used where a sub-query is accepted."""
    if isinstance(value, Expression):
        return False
    return isinstance(value, HasSqlAndBindings) or callable(value)
