"""Small collection helpers shared by the builder and the grammars."""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any


def flatten(values: Any) -> list[Any]:
    """Flatten nested lists, tuples and mapping values into one list.

    Strings, bytes and every other scalar are kept as single items.
    """
    if isinstance(values, Mapping):
        values = values.values()
    elif not isinstance(values, (list, tuple, set, frozenset)):
        return [values]

    result: list[Any] = []
    for value in values:
        if isinstance(value, (list, tuple, set, frozenset, Mapping)):
            result.extend(flatten(value))
        else:
            result.append(value)
    return result


def head(values: Iterable[Any], default: Any = None) -> Any:
    """Return the first item of *values*, or *default* when it is empty."""
    return next(iter(values), default)


def wrap_list(value: Any) -> list[Any]:
    """Return *value* as a list (``None`` becomes an empty list)."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]
