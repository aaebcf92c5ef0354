"""
Tests for transaction scoping.

Tests verify:
- One connection is bound per execution context and released on every path
- Commit on success, rollback on failure, original failure wins
- Nested scopes are rejected without disturbing the outer binding
- UncheckedDatabaseError is unwrapped at the scope boundary
"""

from __future__ import annotations

import asyncio
import contextvars
import sqlite3
import threading
from unittest.mock import MagicMock

import pytest
import structlog
from structlog.testing import capture_logs

from minorm.dialect import SQLiteDialect
from minorm.errors import (
    ConfigurationError,
    DatabaseError,
    NoActiveTransactionError,
    UncheckedDatabaseError,
)
from minorm.transaction import (
    current_connection,
    current_session,
    database_errors,
    in_transaction,
    transaction,
    transaction_scope,
)


def _connection() -> MagicMock:
    return MagicMock(spec=["cursor", "commit", "rollback", "close", "autocommit", "execute"])


class FakeSource:
    """Data source handing out mock connections."""

    def __init__(self, connection: MagicMock | None = None):
        self._connection = connection
        self.handed_out: list[MagicMock] = []
        self.dialect = SQLiteDialect()
        self.driver_errors = (sqlite3.Error,)

    def get_connection(self) -> MagicMock:
        connection = self._connection or _connection()
        self.handed_out.append(connection)
        return connection


@pytest.fixture
def connection() -> MagicMock:
    return _connection()


@pytest.fixture
def fake(connection: MagicMock) -> FakeSource:
    return FakeSource(connection)


class TestBinding:
    def test_no_binding_outside(self):
        assert not in_transaction()
        with pytest.raises(NoActiveTransactionError):
            current_connection()
        with pytest.raises(NoActiveTransactionError):
            current_session()

    def test_connection_bound_inside(self, fake, connection):
        def block():
            assert in_transaction()
            return current_connection()

        assert transaction(fake, block) is connection
        assert not in_transaction()

    def test_returns_block_result(self, fake):
        assert transaction(fake, lambda: 42) == 42

    def test_session_fields(self, fake, connection):
        with transaction_scope(fake) as session:
            assert current_session() is session
            assert session.connection is connection
            assert session.dialect.name == "sqlite"
            assert session.driver_errors == (sqlite3.Error,)
            assert len(session.tx_id) == 12

    def test_autocommit_disabled(self, fake, connection):
        connection.autocommit = True
        with transaction_scope(fake):
            assert connection.autocommit is False

    def test_tx_id_in_log_context(self, fake):
        with transaction_scope(fake) as session:
            assert structlog.contextvars.get_contextvars()["tx_id"] == session.tx_id
        assert "tx_id" not in structlog.contextvars.get_contextvars()

    def test_sqlite_connection_starts_inside_transaction(self, source):
        with transaction_scope(source) as session:
            assert session.connection.in_transaction

    def test_none_arguments(self, fake):
        with pytest.raises(TypeError):
            transaction(None, lambda: None)
        with pytest.raises(TypeError):
            transaction(fake, None)


class TestCommitAndRollback:
    def test_commit_on_success(self, fake, connection):
        transaction(fake, lambda: None)
        connection.commit.assert_called_once()
        connection.rollback.assert_not_called()
        connection.close.assert_called_once()

    def test_rollback_on_failure(self, fake, connection):
        def block():
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            transaction(fake, block)

        connection.rollback.assert_called_once()
        connection.commit.assert_not_called()
        connection.close.assert_called_once()
        assert not in_transaction()

    def test_failed_rollback_is_logged_not_raised(self, fake, connection):
        connection.rollback.side_effect = sqlite3.OperationalError("disk I/O error")

        def block():
            raise ValueError("original")

        with capture_logs() as logs:
            with pytest.raises(ValueError, match="original"):
                transaction(fake, block)

        warnings = [e for e in logs if e["event"] == "transaction_rollback_failed"]
        assert len(warnings) == 1
        assert warnings[0]["log_level"] == "warning"
        assert "disk I/O error" in warnings[0]["error"]
        connection.close.assert_called_once()
        assert not in_transaction()

    def test_rollback_logged_with_category(self, fake):
        def block():
            raise UncheckedDatabaseError(DatabaseError("save failed"))

        with capture_logs() as logs:
            with pytest.raises(DatabaseError):
                transaction(fake, block)

        rolled_back = [e for e in logs if e["event"] == "transaction_rolled_back"]
        assert rolled_back[0]["category"] == "DATABASE"

    def test_commit_failure(self, fake, connection):
        connection.commit.side_effect = sqlite3.OperationalError("database is locked")

        with pytest.raises(DatabaseError, match="commit failed") as exc_info:
            transaction(fake, lambda: None)

        assert isinstance(exc_info.value.cause, sqlite3.OperationalError)
        connection.rollback.assert_called_once()
        connection.close.assert_called_once()

    def test_close_failure_after_success(self, fake, connection):
        connection.close.side_effect = sqlite3.ProgrammingError("closed twice")
        with pytest.raises(DatabaseError, match="close failed"):
            transaction(fake, lambda: None)
        assert not in_transaction()

    def test_close_failure_does_not_mask_original(self, fake, connection):
        connection.close.side_effect = sqlite3.ProgrammingError("closed twice")

        def block():
            raise KeyError("original")

        with pytest.raises(KeyError):
            transaction(fake, block)

    def test_connect_failure(self):
        source = FakeSource()
        source.get_connection = MagicMock(side_effect=sqlite3.OperationalError("unable to open"))

        with pytest.raises(DatabaseError, match="connect failed"):
            transaction(source, lambda: None)
        assert not in_transaction()


class TestUnwrapping:
    def test_unchecked_error_unwrapped(self, fake, connection):
        original = DatabaseError("save failed")

        def block():
            raise UncheckedDatabaseError(original)

        with pytest.raises(DatabaseError) as exc_info:
            transaction(fake, block)

        assert exc_info.value is original
        connection.rollback.assert_called_once()

    def test_unwrapped_error_keeps_its_own_context(self, fake):
        driver_error = sqlite3.OperationalError("no such table: NOPE")

        def block():
            try:
                raise driver_error
            except sqlite3.Error as exc:
                original = DatabaseError("query failed", cause=exc)
            try:
                raise original
            except DatabaseError as exc:
                raise UncheckedDatabaseError(exc) from exc

        with pytest.raises(DatabaseError) as exc_info:
            transaction(fake, block)

        assert not isinstance(exc_info.value.__context__, UncheckedDatabaseError)
        assert exc_info.value.__cause__ is driver_error

    def test_database_error_passes_through(self, fake):
        original = DatabaseError("query failed")

        def block():
            raise original

        with pytest.raises(DatabaseError) as exc_info:
            transaction(fake, block)
        assert exc_info.value is original


class TestNesting:
    def test_nested_scope_rejected(self):
        source = FakeSource()
        with transaction_scope(source) as outer:
            with pytest.raises(ConfigurationError, match="nested"):
                transaction(source, lambda: None)
            assert current_session() is outer

        assert len(source.handed_out) == 1
        source.handed_out[0].commit.assert_called_once()

    def test_sequential_scopes_get_fresh_connections(self):
        source = FakeSource()
        first = transaction(source, current_connection)
        second = transaction(source, current_connection)
        assert first is not second
        first.close.assert_called_once()


class TestDatabaseErrors:
    def test_translates_driver_errors(self):
        with pytest.raises(DatabaseError) as exc_info:
            with database_errors((sqlite3.Error,), "query", sql="SELECT 1"):
                raise sqlite3.OperationalError("syntax error")
        assert exc_info.value.message == "query failed: syntax error"
        assert exc_info.value.context == {"action": "query", "sql": "SELECT 1"}

    def test_other_errors_pass(self):
        with pytest.raises(ValueError):
            with database_errors((sqlite3.Error,), "query"):
                raise ValueError("not a driver error")


class TestExecutionContextIsolation:
    def test_thread_does_not_see_binding(self, fake):
        seen = []
        with transaction_scope(fake):
            thread = threading.Thread(target=lambda: seen.append(in_transaction()))
            thread.start()
            thread.join()
        assert seen == [False]

    def test_copied_context_does_not_leak_to_thread(self, fake):
        seen = []
        with transaction_scope(fake):
            context = contextvars.copy_context()
            thread = threading.Thread(target=lambda: seen.append(context.run(in_transaction)))
            thread.start()
            thread.join()
        assert seen == [False]

    def test_concurrent_threads_use_own_connections(self):
        source = FakeSource()
        barrier = threading.Barrier(4)
        bound = []
        lock = threading.Lock()

        def work():
            def block():
                barrier.wait()
                connection = current_connection()
                barrier.wait()
                assert current_connection() is connection
                return connection

            result = transaction(source, block)
            with lock:
                bound.append(result)

        threads = [threading.Thread(target=work) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len({id(c) for c in bound}) == 4
        for connection in source.handed_out:
            connection.commit.assert_called_once()

    def test_child_task_does_not_see_binding(self, fake):
        async def probe() -> bool:
            return in_transaction()

        async def main() -> tuple[bool, bool]:
            with transaction_scope(fake):
                inside = in_transaction()
                child = await asyncio.create_task(probe())
            return inside, child

        assert asyncio.run(main()) == (True, False)

    def test_tasks_run_independent_transactions(self):
        source = FakeSource()

        async def work() -> object:
            with transaction_scope(source):
                connection = current_connection()
                await asyncio.sleep(0)
                assert current_connection() is connection
                return connection

        async def main() -> list[object]:
            return await asyncio.gather(work(), work(), work())

        results = asyncio.run(main())
        assert len({id(c) for c in results}) == 3
