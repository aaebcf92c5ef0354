"""Tests for the Dialect abstraction layer."""

from __future__ import annotations

import pytest

from minorm.dialect import (
    Dialect,
    SQLiteDialect,
    StandardDialect,
    get_dialect,
    register_dialect,
)
from minorm.errors import ConfigurationError
from minorm.metadata import entity_info

from sample_entities import Customer, Person


# =========================================================================
# Fixtures
# =========================================================================


@pytest.fixture(params=["standard", "sqlite"])
def dialect(request: pytest.FixtureRequest) -> Dialect:
    """Parametric fixture: run each test against every dialect."""
    return get_dialect(request.param)


@pytest.fixture
def standard() -> StandardDialect:
    return StandardDialect()


@pytest.fixture
def sqlite() -> SQLiteDialect:
    return SQLiteDialect()


# =========================================================================
# Protocol conformance
# =========================================================================


class TestProtocol:
    def test_isinstance(self, dialect: Dialect) -> None:
        assert isinstance(dialect, Dialect)

    def test_placeholders(self, dialect: Dialect) -> None:
        assert dialect.placeholders(3) == "?, ?, ?"
        assert dialect.placeholders(0) == ""

    def test_select_all(self, dialect: Dialect) -> None:
        assert dialect.select_all("PERSON") == "SELECT * FROM PERSON"

    def test_select_where(self, dialect: Dialect) -> None:
        assert dialect.select_where("PERSON", "AGE") == "SELECT * FROM PERSON WHERE AGE = ?"

    def test_generated_key_reads_lastrowid(self, dialect: Dialect) -> None:
        class Cursor:
            lastrowid = 7

        assert dialect.generated_key(Cursor()) == 7
        assert dialect.generated_key(object()) is None


# =========================================================================
# Standard rendering
# =========================================================================


class TestStandardDialect:
    def test_name(self, standard: StandardDialect) -> None:
        assert standard.name == "standard"

    def test_generated_identifier_column(self, standard: StandardDialect) -> None:
        prop = entity_info(Person).id_property
        assert standard.column_definition(prop) == "ID INTEGER AUTO_INCREMENT,\nPRIMARY KEY (ID)"

    def test_assigned_identifier_column(self, standard: StandardDialect) -> None:
        prop = entity_info(Customer).id_property
        assert standard.column_definition(prop) == "CODE VARCHAR(255),\nPRIMARY KEY (CODE)"

    def test_plain_column(self, standard: StandardDialect) -> None:
        prop = entity_info(Person).property_named("name")
        assert standard.column_definition(prop) == "NAME VARCHAR(255)"

    def test_upsert(self, standard: StandardDialect) -> None:
        sql = standard.upsert("PERSON", ["ID", "NAME", "AGE"])
        assert sql == "MERGE INTO PERSON (ID, NAME, AGE) VALUES (?, ?, ?)"


# =========================================================================
# SQLite rendering
# =========================================================================


class TestSQLiteDialect:
    def test_name(self, sqlite: SQLiteDialect) -> None:
        assert sqlite.name == "sqlite"

    def test_generated_identifier_column(self, sqlite: SQLiteDialect) -> None:
        prop = entity_info(Person).id_property
        assert sqlite.column_definition(prop) == "ID INTEGER PRIMARY KEY AUTOINCREMENT"

    def test_assigned_identifier_column(self, sqlite: SQLiteDialect) -> None:
        prop = entity_info(Customer).id_property
        assert sqlite.column_definition(prop) == "CODE VARCHAR(255) PRIMARY KEY"

    def test_create_table(self, sqlite: SQLiteDialect) -> None:
        info = entity_info(Customer)
        assert sqlite.create_table(info.table_name, info.properties) == (
            "CREATE TABLE PEOPLE (CODE VARCHAR(255) PRIMARY KEY, "
            "DISPLAY_NAME VARCHAR(255), BALANCE BIGINT)"
        )

    def test_upsert(self, sqlite: SQLiteDialect) -> None:
        sql = sqlite.upsert("PERSON", ["ID", "NAME"])
        assert sql == "INSERT OR REPLACE INTO PERSON (ID, NAME) VALUES (?, ?)"


# =========================================================================
# Registry
# =========================================================================


class TestRegistry:
    def test_lookup_is_case_insensitive(self) -> None:
        assert isinstance(get_dialect("SQLite"), SQLiteDialect)

    def test_h2_alias(self) -> None:
        assert isinstance(get_dialect("h2"), StandardDialect)

    def test_unknown(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown dialect"):
            get_dialect("oracle")

    def test_register(self) -> None:
        class Shouting(StandardDialect):
            @property
            def name(self) -> str:
                return "shouting"

        register_dialect("Shouting", Shouting())
        assert get_dialect("shouting").name == "shouting"
