"""Pydantic models describing database connections.

A :class:`DatabaseConfig` names a default connection and maps connection
names to :class:`ConnectionConfig` entries.  It is usually loaded from
plain data (a settings file, environment-derived dict, ...)::

    from fluentql.config import DatabaseConfig

    config = DatabaseConfig.from_mapping({
        "default": "main",
        "connections": {
            "main": {"driver": "sqlite", "url": "sqlite:///app.db", "prefix": "app_"},
        },
    })
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from fluentql.errors import ConfigError

#: Supported driver names; each has a registered grammar.
Driver = Literal["mysql", "pgsql", "sqlite", "sqlsrv"]

#: SQLAlchemy backend name expected for each driver.
_DRIVER_BACKENDS: dict[str, str] = {
    "mysql": "mysql",
    "pgsql": "postgresql",
    "sqlite": "sqlite",
    "sqlsrv": "mssql",
}


class ConnectionConfig(BaseModel):
    """Settings for one database connection.

    Attributes:
        driver: Grammar/processor family to use.
        url: SQLAlchemy database URL.
        database: Database name, used to qualify cross-database sub-queries.
        prefix: Prefix added to every table name.
        log_queries: Record executed statements in the connection's query log.
        engine_options: Extra keyword arguments for ``sqlalchemy.create_engine``.
    """

    model_config = ConfigDict(extra="forbid")

    driver: Driver
    url: str
    database: str | None = None
    prefix: str = ""
    log_queries: bool = False
    engine_options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("prefix")
    @classmethod
    def _prefix_has_no_quotes(cls, value: str) -> str:
        if any(quote in value for quote in ('"', "`", "[", "]", "'")):
            raise ValueError("table prefix must not contain quote characters")
        return value

    @model_validator(mode="after")
    def _url_matches_driver(self) -> ConnectionConfig:
        """Raise ConfigError if the URL's backend contradicts ``driver``."""
        try:
            backend = make_url(self.url).get_backend_name()
        except ArgumentError as exc:
            raise ConfigError(f"Invalid database URL: {self.url!r}.", field="url") from exc

        expected = _DRIVER_BACKENDS[self.driver]
        if backend != expected:
            raise ConfigError(
                f"Driver '{self.driver}' expects a '{expected}' URL, got '{backend}'.",
                field="url",
            )
        return self


class DatabaseConfig(BaseModel):
    """All configured connections plus the name of the default one.

    Attributes:
        default: Name of the connection used when none is given.
        connections: Connection settings keyed by name.
    """

    model_config = ConfigDict(extra="forbid")

    default: str
    connections: dict[str, ConnectionConfig]

    @model_validator(mode="after")
    def _default_exists(self) -> DatabaseConfig:
        if self.default not in self.connections:
            raise ConfigError(
                f"Default connection '{self.default}' is not configured. "
                f"Configured connections: {sorted(self.connections)}.",
                field="default",
            )
        return self

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> DatabaseConfig:
        """Build a config from plain data.

        Raises:
            pydantic.ValidationError: If a field is missing or malformed.
            ConfigError: If the settings are inconsistent.
        """
        return cls.model_validate(dict(data))
