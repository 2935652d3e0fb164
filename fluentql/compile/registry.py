"""Grammar registry (Open/Closed Principle).

``GrammarFactory``
    Central registry for :class:`~fluentql.compile.base.Grammar`
    implementations, keyed by driver name.  Register a new grammar once;
    connections look it up automatically.

Usage::

    from fluentql.compile.registry import GrammarFactory

    @GrammarFactory.register("oracle")
    class OracleGrammar(Grammar):
        ...
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import ClassVar

from fluentql.compile.base import Grammar
from fluentql.errors import CompilationError

logger = logging.getLogger(__name__)


class GrammarFactory:
    """Registry mapping driver names to :class:`Grammar` classes.

    Example::

        grammar = GrammarFactory.create("pgsql", table_prefix="app_")
    """

    _grammars: ClassVar[dict[str, type[Grammar]]] = {}

    @classmethod
    def register(cls, name: str) -> Callable[[type[Grammar]], type[Grammar]]:
        """Decorator that registers a grammar class under ``name``.

        Args:
            name: The driver name (e.g. ``"pgsql"``).

        Returns:
            A decorator that registers and returns the grammar class.
        """

        def decorator(grammar_cls: type[Grammar]) -> type[Grammar]:
            cls._grammars[name] = grammar_cls
            return grammar_cls

        return decorator

    @classmethod
    def register_class(cls, name: str, grammar_cls: type[Grammar]) -> None:
        """Register a grammar class without using the decorator form."""
        cls._grammars[name] = grammar_cls

    @classmethod
    def create(cls, name: str, table_prefix: str = "") -> Grammar:
        """Instantiate the grammar registered for ``name``.

        Args:
            name: The driver name.
            table_prefix: Prefix applied to every table the grammar wraps.

        Returns:
            A fresh :class:`Grammar` instance.

        Raises:
            CompilationError: If no grammar is registered for ``name``.
        """
        grammar_cls = cls._grammars.get(name)
        if grammar_cls is None:
            registered = sorted(cls._grammars)
            raise CompilationError(
                f"Unsupported driver: '{name}'. Registered drivers: {registered}."
            )
        logger.debug("Creating %s grammar for driver %r", grammar_cls.__name__, name)
        return grammar_cls().set_table_prefix(table_prefix)

    @classmethod
    def registered_targets(cls) -> list[str]:
        """Return the sorted list of registered driver names."""
        return sorted(cls._grammars)
