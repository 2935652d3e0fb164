"""Shared pytest fixtures for fluentQL unit and integration tests."""
from __future__ import annotations

import pytest

from fluentql.query.builder import Builder
from tests.fixtures import (
    get_builder,
    get_mysql_builder,
    get_postgres_builder,
    get_sqlite_builder,
    get_sqlserver_builder,
)


@pytest.fixture()
def builder() -> Builder:
    """A fresh builder on the base grammar."""
    return get_builder()


@pytest.fixture()
def mysql() -> Builder:
    return get_mysql_builder()


@pytest.fixture()
def postgres() -> Builder:
    return get_postgres_builder()


@pytest.fixture()
def sqlite() -> Builder:
    return get_sqlite_builder()


@pytest.fixture()
def sqlserver() -> Builder:
    return get_sqlserver_builder()
