"""
Shared pytest fixtures for minorm tests.

This module provides:
- Metadata cache, settings cache and log context cleanup for test isolation
- An in-memory SQLite data source, with and without the PERSON table
- A synthesized PersonRepository

Usage:
    def test_something(person_source, people):
        with transaction_scope(person_source):
            people.save(Person(name="Ada", age=30))
"""

from collections.abc import Iterator

import pytest

from minorm.datasource import SQLiteDataSource
from minorm.logging import clear_context
from minorm.metadata import clear_metadata_cache
from minorm.repository import create_repository
from minorm.schema import create_table
from minorm.settings import get_settings
from minorm.transaction import transaction

from sample_entities import Person, PersonRepository


@pytest.fixture(autouse=True)
def _isolation() -> Iterator[None]:
    """Reset process-wide caches around every test."""
    clear_metadata_cache()
    get_settings.cache_clear()
    clear_context()
    yield
    clear_metadata_cache()
    get_settings.cache_clear()
    clear_context()


@pytest.fixture
def source() -> Iterator[SQLiteDataSource]:
    """Empty shared in-memory database, dropped after the test."""
    with SQLiteDataSource() as data_source:
        yield data_source


@pytest.fixture
def person_source(source: SQLiteDataSource) -> SQLiteDataSource:
    """In-memory database with the PERSON table created."""
    transaction(source, lambda: create_table(Person))
    return source


@pytest.fixture
def people() -> PersonRepository:
    return create_repository(PersonRepository)
