"""Data sources: where transactions get their connections.

A data source hands out one DB-API connection per ``get_connection()`` call
and tells the transaction scope which dialect to render SQL with and which
driver exceptions to translate into :class:`~minorm.errors.DatabaseError`.
The connection is closed by the transaction scope that acquired it.

Supported URL schemes
---------------------
==================  ==========================================  ==================
Scheme              Example                                     Data source
==================  ==========================================  ==================
``memory``          ``memory`` or ``:memory:`` or ``None``       SQLiteDataSource
``sqlite``          ``sqlite:///path/to/file.db``                SQLiteDataSource
``(file path)``     ``./data/my.db``                             SQLiteDataSource
``(other)``         ``sqlite+pysqlite:///x.db``                  EngineDataSource
==================  ==========================================  ==================

Usage::

    from minorm.datasource import create_data_source

    source = create_data_source("sqlite:///people.db")
    transaction(source, lambda: create_table(Person))
"""

from __future__ import annotations

import sqlite3
import uuid
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from minorm.dialect import Dialect, SQLiteDialect, get_dialect
from minorm.errors import DatabaseError
from minorm.logging import get_logger
from minorm.settings import OrmSettings

logger = get_logger(__name__)


@runtime_checkable
class DataSource(Protocol):
    """Contract consumed by :func:`~minorm.transaction.transaction_scope`."""

    @property
    def dialect(self) -> Dialect: ...

    @property
    def driver_errors(self) -> tuple[type[BaseException], ...]: ...

    def get_connection(self) -> Any: ...


class SQLiteDataSource:
    """
    SQLite data source on the built-in sqlite3 module.

    Every ``get_connection()`` opens a fresh connection. For ``:memory:`` the
    connections share one named in-memory database, kept alive by an anchor
    connection until :meth:`close`, so data survives across transactions.
    """

    def __init__(
        self,
        path: str = ":memory:",
        *,
        timeout: float = 5.0,
        dialect: Dialect | None = None,
    ):
        self._timeout = timeout
        self._dialect: Dialect = dialect or SQLiteDialect()
        self._anchor: sqlite3.Connection | None = None
        if path in ("", ":memory:"):
            self._target = f"file:minorm-{uuid.uuid4().hex}?mode=memory&cache=shared"
            self._uri = True
            self._anchor = self._connect()
        else:
            self._target = path
            self._uri = path.startswith("file:")

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    @property
    def driver_errors(self) -> tuple[type[BaseException], ...]:
        return (sqlite3.Error,)

    @property
    def is_memory(self) -> bool:
        return self._anchor is not None

    def _connect(self) -> sqlite3.Connection:
        try:
            return sqlite3.connect(
                self._target,
                timeout=self._timeout,
                check_same_thread=False,
                uri=self._uri,
            )
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to connect to SQLite: {e}",
                context={"target": self._target},
                cause=e,
            ) from e

    def get_connection(self) -> sqlite3.Connection:
        return self._connect()

    def close(self) -> None:
        """Drop the in-memory database (no-op for file databases)."""
        if self._anchor is not None:
            self._anchor.close()
            self._anchor = None

    def __enter__(self) -> SQLiteDataSource:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"SQLiteDataSource({self._target!r})"


class EngineDataSource:
    """Data source backed by a SQLAlchemy :class:`~sqlalchemy.engine.Engine`.

    Connections come from ``engine.raw_connection()``; closing one returns it
    to the engine's pool. The dialect is looked up by the engine's dialect
    name unless given explicitly.
    """

    def __init__(self, engine: Engine, dialect: Dialect | None = None):
        self._engine = engine
        self._dialect: Dialect = dialect or get_dialect(engine.dialect.name)
        dbapi = getattr(engine.dialect, "loaded_dbapi", None) or engine.dialect.dbapi
        self._driver_errors: tuple[type[BaseException], ...] = (dbapi.Error,)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        dialect: Dialect | None = None,
        echo: bool = False,
        **kwargs: Any,
    ) -> EngineDataSource:
        if url.startswith("sqlite"):
            kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = create_engine(url, echo=echo, **kwargs)
        return cls(engine, dialect)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    @property
    def driver_errors(self) -> tuple[type[BaseException], ...]:
        return self._driver_errors

    def get_connection(self) -> Any:
        return self._engine.raw_connection()

    def close(self) -> None:
        self._engine.dispose()

    def __repr__(self) -> str:
        return f"EngineDataSource({self._engine.url!r})"


def create_data_source(url: str | None = None, *, dialect: str | None = None) -> DataSource:
    """Create a data source from a URL string or SQLite file path."""
    forced = get_dialect(dialect) if dialect else None

    if url is None or url in ("memory", ":memory:", "sqlite://", "sqlite:///:memory:"):
        source: DataSource = SQLiteDataSource(dialect=forced)
    elif url.startswith("sqlite:///"):
        source = SQLiteDataSource(url[len("sqlite:///"):], dialect=forced)
    elif "://" in url:
        source = EngineDataSource.from_url(url, dialect=forced)
    else:
        source = SQLiteDataSource(url, dialect=forced)

    logger.debug("data_source_created", source=repr(source), dialect=source.dialect.name)
    return source


def data_source_from_settings(settings: OrmSettings) -> DataSource:
    return create_data_source(settings.database_url, dialect=settings.dialect)


__all__ = [
    "DataSource",
    "SQLiteDataSource",
    "EngineDataSource",
    "create_data_source",
    "data_source_from_settings",
]
