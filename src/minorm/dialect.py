"""SQL dialects for generated statements.

The schema generator and the entity mapper never hard-code SQL syntax; they
ask a :class:`Dialect` for the fragment. Two dialects ship:

* :class:`StandardDialect`: the reference rendering
  (``ID INTEGER AUTO_INCREMENT,\\nPRIMARY KEY (ID)`` and
  ``MERGE INTO ... VALUES (...)``), understood by H2-style engines;
* :class:`SQLiteDialect`: the same statements in a form ``sqlite3`` executes
  (``INTEGER PRIMARY KEY AUTOINCREMENT``, ``INSERT OR REPLACE``).

Both use ``?`` placeholders, which is also what ``@query`` SQL is written
with.

Examples:
    >>> d = get_dialect("sqlite")
    >>> d.upsert("PERSON", ["ID", "NAME"])
    'INSERT OR REPLACE INTO PERSON (ID, NAME) VALUES (?, ?)'
    >>> StandardDialect().upsert("PERSON", ["ID", "NAME"])
    'MERGE INTO PERSON (ID, NAME) VALUES (?, ?)'

Guardrails:
    ❌ DON'T: Build DDL/DML strings outside a dialect
    ✅ DO: Add a dialect (``register_dialect``) for a new backend

Tags:
    dialect, sql, ddl, upsert, portability
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from minorm.errors import ConfigurationError

if TYPE_CHECKING:
    from minorm.metadata import PropertyDescriptor


@runtime_checkable
class Dialect(Protocol):
    """SQL dialect contract. Every method returns a SQL fragment or statement."""

    @property
    def name(self) -> str: ...

    def placeholders(self, count: int) -> str: ...

    def column_definition(self, prop: PropertyDescriptor) -> str: ...

    def create_table(self, table: str, properties: Sequence[PropertyDescriptor]) -> str: ...

    def upsert(self, table: str, columns: Sequence[str]) -> str: ...

    def select_all(self, table: str) -> str: ...

    def select_where(self, table: str, column: str) -> str: ...

    def generated_key(self, cursor: Any) -> Any: ...


class _QmarkDialect:
    """Statements shared by the ``?``-placeholder dialects."""

    def placeholders(self, count: int) -> str:
        return ", ".join("?" for _ in range(count))

    def create_table(self, table: str, properties: Sequence[PropertyDescriptor]) -> str:
        columns = ", ".join(self.column_definition(prop) for prop in properties)  # type: ignore[attr-defined]
        return f"CREATE TABLE {table} ({columns})"

    def select_all(self, table: str) -> str:
        return f"SELECT * FROM {table}"

    def select_where(self, table: str, column: str) -> str:
        return f"SELECT * FROM {table} WHERE {column} = ?"

    def generated_key(self, cursor: Any) -> Any:
        return getattr(cursor, "lastrowid", None)


class StandardDialect(_QmarkDialect):
    """Reference rendering: ``AUTO_INCREMENT``, inline ``PRIMARY KEY`` clause, ``MERGE``."""

    @property
    def name(self) -> str:
        return "standard"

    def column_definition(self, prop: PropertyDescriptor) -> str:
        definition = f"{prop.column_name} {prop.sql_type}"
        if not prop.nullable:
            definition += " NOT NULL"
        if prop.is_generated:
            definition += " AUTO_INCREMENT"
        if prop.is_id:
            definition += f",\nPRIMARY KEY ({prop.column_name})"
        return definition

    def upsert(self, table: str, columns: Sequence[str]) -> str:
        return f"MERGE INTO {table} ({', '.join(columns)}) VALUES ({self.placeholders(len(columns))})"


class SQLiteDialect(_QmarkDialect):
    """SQLite rendering: rowid-backed ``INTEGER PRIMARY KEY AUTOINCREMENT``, ``INSERT OR REPLACE``."""

    @property
    def name(self) -> str:
        return "sqlite"

    def column_definition(self, prop: PropertyDescriptor) -> str:
        if prop.is_generated and not prop.is_id:
            raise ConfigurationError(
                f"sqlite only generates values for the identifier, not for {prop.name!r}",
                context={"column": prop.column_name},
            )
        # AUTOINCREMENT requires the exact type name INTEGER (a rowid alias)
        sql_type = "INTEGER" if prop.is_generated else prop.sql_type
        definition = f"{prop.column_name} {sql_type}"
        if not prop.nullable:
            definition += " NOT NULL"
        if prop.is_id:
            definition += " PRIMARY KEY"
            if prop.is_generated:
                definition += " AUTOINCREMENT"
        return definition

    def upsert(self, table: str, columns: Sequence[str]) -> str:
        return (
            f"INSERT OR REPLACE INTO {table} ({', '.join(columns)}) "
            f"VALUES ({self.placeholders(len(columns))})"
        )


# Pre-instantiated singletons (dialects are stateless)
_DIALECTS: dict[str, Dialect] = {
    "standard": StandardDialect(),
    "h2": StandardDialect(),  # alias
    "sqlite": SQLiteDialect(),
}


def get_dialect(name: str) -> Dialect:
    """Get a dialect by name (``standard``, ``h2``, ``sqlite``).

    Raises:
        ConfigurationError: If ``name`` is not registered.
    """
    key = name.lower()
    if key not in _DIALECTS:
        raise ConfigurationError(
            f"Unknown dialect '{name}'. Supported: {sorted(_DIALECTS)}"
        )
    return _DIALECTS[key]


def register_dialect(name: str, dialect: Dialect) -> None:
    """Register a custom dialect implementation (lower-cased lookup key)."""
    _DIALECTS[name.lower()] = dialect


__all__ = [
    "Dialect",
    "StandardDialect",
    "SQLiteDialect",
    "get_dialect",
    "register_dialect",
]
