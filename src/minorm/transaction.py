"""
Transaction scoping: one connection per execution context.

A transaction scope acquires a connection from a data source, turns
auto-commit off, and binds a :class:`Session` to the calling execution
context (thread or asyncio task) until the scope ends. Everything that talks
to the database (``create_table``, synthesized repositories) fetches the
bound session through :func:`current_session` instead of receiving a
connection argument.

Manifesto:
    - **One binding per context:** a ContextVar slot tagged with its owner, so
      a session copied into another thread or task is not visible there
    - **Always released:** the slot is reset and the connection closed on
      every exit path
    - **Original failure wins:** a rollback failure is logged, never raised
      over the error that caused the rollback
    - **Single unwrapping point:** ``UncheckedDatabaseError`` coming out of a
      repository is turned back into its ``DatabaseError`` here and nowhere else

Architecture:
    ::

        transaction_scope(source)
        ┌──────────────────────────────────────────────────────────┐
        │ nested? ──────────────────────────► ConfigurationError    │
        │ connection = source.get_connection()                      │
        │ begin (autocommit off), bind Session, LogContext(tx_id)   │
        │                                                           │
        │   yield session   ── UncheckedDatabaseError → unwrap ──┐  │
        │        │                                               │  │
        │     commit()                                           │  │
        │        │                                  any failure ◄┘  │
        │        │                                  rollback()      │
        │        │                                  (logged if it   │
        │        │                                   fails)         │
        │  finally: unbind, close connection                        │
        └──────────────────────────────────────────────────────────┘

Examples:
    >>> from minorm.datasource import SQLiteDataSource
    >>> source = SQLiteDataSource()
    >>> def work():
    ...     current_connection().execute("SELECT 1")
    >>> transaction(source, work)

Tags:
    transaction, contextvars, connection, commit, rollback
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NoReturn, TypeVar

from minorm.dialect import Dialect
from minorm.errors import (
    ConfigurationError,
    DatabaseError,
    NoActiveTransactionError,
    UncheckedDatabaseError,
    categorize_error,
)
from minorm.logging import LogContext, get_logger

if TYPE_CHECKING:
    from minorm.datasource import DataSource

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Session:
    """The connection bound to an execution context, with how to talk to it."""

    connection: Any
    dialect: Dialect
    driver_errors: tuple[type[BaseException], ...]
    tx_id: str


@dataclass(frozen=True)
class _Binding:
    session: Session
    owner: tuple[int, int | None]


_current: ContextVar[_Binding | None] = ContextVar("minorm_session", default=None)


def _execution_context() -> tuple[int, int | None]:
    try:
        task = asyncio.current_task()
    except RuntimeError:
        task = None
    return threading.get_ident(), id(task) if task is not None else None


def _bound_session() -> Session | None:
    binding = _current.get()
    if binding is None or binding.owner != _execution_context():
        return None
    return binding.session


def current_session() -> Session:
    """Return the session bound to the calling execution context.

    Raises:
        NoActiveTransactionError: if no transaction is active here.
    """
    session = _bound_session()
    if session is None:
        raise NoActiveTransactionError("no current connection, run inside transaction(...)")
    return session


def current_connection() -> Any:
    """Return the DB-API connection bound to the calling execution context."""
    return current_session().connection


def in_transaction() -> bool:
    return _bound_session() is not None


@contextmanager
def database_errors(
    driver_errors: tuple[type[BaseException], ...],
    action: str,
    **context: Any,
) -> Iterator[None]:
    """Translate driver exceptions raised in the block into :class:`DatabaseError`."""
    try:
        yield
    except driver_errors as exc:
        raise DatabaseError(
            f"{action} failed: {exc}",
            context={"action": action, **context},
            cause=exc,
        ) from exc


def _driver_connection(connection: Any) -> Any:
    # pooled SQLAlchemy connections proxy the DB-API connection
    return getattr(connection, "dbapi_connection", connection)


def _begin(session: Session) -> None:
    raw = _driver_connection(session.connection)
    with database_errors(session.driver_errors, "begin"):
        if hasattr(raw, "autocommit"):
            raw.autocommit = False
        elif isinstance(raw, sqlite3.Connection):
            # legacy sqlite3 transaction control only opens a transaction for DML
            raw.isolation_level = None
            raw.execute("BEGIN")


def _raise_unwrapped(error: DatabaseError) -> NoReturn:
    context = error.__context__
    try:
        raise error
    finally:
        # raising while the wrapper is being handled would chain it as context
        error.__context__ = context


def _rollback_after(session: Session, error: BaseException) -> None:
    try:
        with database_errors(session.driver_errors, "rollback"):
            session.connection.rollback()
    except DatabaseError as rollback_error:
        logger.warning(
            "transaction_rollback_failed",
            error=str(rollback_error),
            original_error=repr(error),
        )
    else:
        logger.debug(
            "transaction_rolled_back",
            error=repr(error),
            category=categorize_error(error).value,
        )


def _close(session: Session, *, failed: bool) -> None:
    try:
        with database_errors(session.driver_errors, "close"):
            session.connection.close()
    except DatabaseError as close_error:
        if not failed:
            raise
        logger.warning("connection_close_failed", error=str(close_error))


@contextmanager
def transaction_scope(source: DataSource) -> Iterator[Session]:
    """Run the ``with`` block inside one transaction on one connection.

    Commits on normal exit, rolls back on any failure, and always unbinds
    and closes the connection.

    Raises:
        ConfigurationError: if a transaction is already active in this
            execution context.
        DatabaseError: on connect, execution, commit or close failure.
    """
    if source is None:
        raise TypeError("source must not be None")
    if _bound_session() is not None:
        raise ConfigurationError(
            "a transaction is already active in this execution context, "
            "nested transactions are not supported"
        )

    driver_errors = tuple(source.driver_errors)
    with database_errors(driver_errors, "connect"):
        connection = source.get_connection()

    session = Session(
        connection=connection,
        dialect=source.dialect,
        driver_errors=driver_errors,
        tx_id=uuid.uuid4().hex[:12],
    )
    token = _current.set(_Binding(session, _execution_context()))
    failed = False
    with LogContext(tx_id=session.tx_id):
        try:
            _begin(session)
            logger.debug("transaction_started", dialect=session.dialect.name)

            failure: DatabaseError | None = None
            try:
                yield session
            except UncheckedDatabaseError as exc:
                failure = exc.database_error
            if failure is not None:
                _raise_unwrapped(failure)

            with database_errors(driver_errors, "commit"):
                connection.commit()
            logger.debug("transaction_committed")
        except BaseException as exc:
            failed = True
            _rollback_after(session, exc)
            raise
        finally:
            _current.reset(token)
            _close(session, failed=failed)


def transaction(source: DataSource, block: Callable[[], T]) -> T:
    """Run ``block`` inside :func:`transaction_scope` and return its result."""
    if block is None:
        raise TypeError("block must not be None")
    with transaction_scope(source):
        return block()


__all__ = [
    "Session",
    "current_session",
    "current_connection",
    "in_transaction",
    "database_errors",
    "transaction_scope",
    "transaction",
]
