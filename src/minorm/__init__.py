"""
minorm - a minimal object/relational mapper.

Entity types are plain dataclasses or pydantic models annotated with
markers; repositories are contracts whose methods are turned into SQL by
name. All database work happens inside a transaction bound to the calling
execution context.

Quick start::

    from dataclasses import dataclass
    from typing import Annotated

    from minorm import (
        GeneratedValue, Id, Repository, SQLiteDataSource,
        create_repository, create_table, transaction_scope,
    )

    @dataclass
    class Person:
        id: Annotated[int | None, Id, GeneratedValue] = None
        name: str | None = None
        age: int | None = None

    class PersonRepository(Repository[Person, int]):
        def find_by_age(self, age: int) -> Person | None: ...

    source = SQLiteDataSource()
    people = create_repository(PersonRepository)
    with transaction_scope(source):
        create_table(Person)
        people.save(Person(name="Ada", age=30))
"""

__version__ = "0.1.0"

from minorm.datasource import (
    DataSource,
    EngineDataSource,
    SQLiteDataSource,
    create_data_source,
    data_source_from_settings,
)
from minorm.dialect import Dialect, SQLiteDialect, StandardDialect, get_dialect, register_dialect
from minorm.errors import (
    ConfigurationError,
    DatabaseError,
    ErrorCategory,
    NoActiveTransactionError,
    OrmError,
    UncheckedDatabaseError,
    UnsupportedOperationError,
)
from minorm.interceptors import AroundAdvice, Interceptor, InterceptorRegistry
from minorm.logging import configure_logging, get_logger
from minorm.mapper import find_all, save
from minorm.markers import Column, GeneratedValue, Id, marker, query, table
from minorm.metadata import EntityInfo, PropertyDescriptor, describe, entity_info
from minorm.repository import Repository, create_repository, dispatch_table
from minorm.schema import create_table, create_table_sql
from minorm.settings import OrmSettings, get_settings
from minorm.transaction import (
    Session,
    current_connection,
    current_session,
    in_transaction,
    transaction,
    transaction_scope,
)
from minorm.typemap import TYPE_MAPPING, Long

__all__ = [
    "__version__",
    # markers
    "Id",
    "GeneratedValue",
    "Column",
    "table",
    "query",
    "marker",
    # metadata
    "Long",
    "TYPE_MAPPING",
    "PropertyDescriptor",
    "EntityInfo",
    "describe",
    "entity_info",
    # dialects and data sources
    "Dialect",
    "StandardDialect",
    "SQLiteDialect",
    "get_dialect",
    "register_dialect",
    "DataSource",
    "SQLiteDataSource",
    "EngineDataSource",
    "create_data_source",
    "data_source_from_settings",
    # transactions
    "Session",
    "transaction",
    "transaction_scope",
    "current_session",
    "current_connection",
    "in_transaction",
    # schema and mapping
    "create_table",
    "create_table_sql",
    "find_all",
    "save",
    # repositories
    "Repository",
    "create_repository",
    "dispatch_table",
    "InterceptorRegistry",
    "Interceptor",
    "AroundAdvice",
    # errors
    "OrmError",
    "ErrorCategory",
    "ConfigurationError",
    "DatabaseError",
    "NoActiveTransactionError",
    "UnsupportedOperationError",
    "UncheckedDatabaseError",
    # ambient
    "OrmSettings",
    "get_settings",
    "configure_logging",
    "get_logger",
]
